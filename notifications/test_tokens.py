import hashlib
import json
import re
from concurrent.futures import ThreadPoolExecutor
from decimal import Decimal

import pytest

import generate_token
from notifications.tokens import (
    FieldPair,
    InvalidArgument,
    MalformedInput,
    TokenValidator,
    extract_field_pairs,
    stringify_value,
)

SECRET = "mySecret"


@pytest.fixture
def validator():
    return TokenValidator(SECRET)


@pytest.fixture
def notification():
    """
    A notification shaped like the ones the gateway posts.
    """
    return {
        "TerminalKey": "TinkoffBankTest",
        "OrderId": "21050",
        "Success": True,
        "Status": "CONFIRMED",
        "PaymentId": 13660,
        "ErrorCode": "0",
        "Amount": 100000,
        "CardId": 322264,
        "Pan": "430000******0777",
        "ExpDate": "1122",
        "Receipt": {"Email": "a@test.ru", "Items": [{"Name": "Tea", "Price": 100000}]},
        "Data": {"Phone": "+71234567890"},
    }


def sha256_hex(text):
    return hashlib.sha256(text.encode("utf-8")).hexdigest()


def test_concrete_scenario(validator):
    payload = {"OrderId": "100", "Success": True, "Receipt": {"Items": []}, "Token": "abc"}

    assert validator.canonical_string(payload) == "100mySecrettrue"
    assert validator.compute_token(payload) == sha256_hex("100mySecrettrue")
    assert validator.verify(payload) is False

    payload["Token"] = sha256_hex("100mySecrettrue")
    assert validator.verify(payload) is True


def test_verify_ignores_token_case(validator):
    payload = {"OrderId": "100", "Success": True}
    payload["Token"] = validator.compute_token(payload).upper()

    assert validator.verify(payload) is True


def test_compute_token_is_deterministic(validator, notification):
    assert validator.compute_token(notification) == validator.compute_token(notification)
    assert TokenValidator(SECRET).compute_token(notification) == validator.compute_token(notification)


def test_compute_token_does_not_depend_on_field_order(validator, notification):
    reordered = dict(reversed(list(notification.items())))

    assert validator.compute_token(reordered) == validator.compute_token(notification)


@pytest.mark.parametrize("name", ["Receipt", "Data", "Token", "receipt", "DATA", "token", "tOkEn"])
def test_excluded_fields_do_not_change_the_token(validator, notification, name):
    expected = validator.compute_token(notification)

    notification[name] = "tampered"
    assert validator.compute_token(notification) == expected


def test_field_names_sort_ordinally(validator):
    # "B" < "Password" < "a" by code point
    assert validator.canonical_string({"a": "1", "B": "2"}) == "2mySecret1"


def test_digest_shape(validator, notification):
    for payload in ({}, notification, {"Amount": 0}):
        assert re.fullmatch(r"[0-9a-f]{64}", validator.compute_token(payload))


def test_empty_payload_hashes_the_password_only(validator):
    assert validator.compute_token({}) == sha256_hex(SECRET)


def test_verify_round_trip_and_mutation(validator, notification):
    signed = validator.sign(notification)
    assert "Token" not in notification
    assert validator.verify(signed) is True

    signed["Amount"] = 1
    assert validator.verify(signed) is False


def test_verify_without_token_returns_false(validator, notification):
    assert validator.verify(notification) is False
    assert validator.verify({}) is False

    notification["Token"] = ""
    assert validator.verify(notification) is False

    notification["Token"] = None
    assert validator.verify(notification) is False


def test_verify_reads_token_by_exact_name(validator, notification):
    # "token" is excluded from the digest but is not the claimed token
    notification["token"] = validator.compute_token(notification)

    assert validator.verify(notification) is False


def test_verify_rejects_token_from_another_password(notification):
    signed = TokenValidator("otherSecret").sign(notification)

    assert TokenValidator(SECRET).verify(signed) is False


@pytest.mark.parametrize("password", ["", None, 123])
def test_construction_requires_password(password):
    with pytest.raises(InvalidArgument):
        TokenValidator(password)


def test_validator_is_immutable_and_hides_password(validator):
    with pytest.raises(AttributeError):
        validator._password = "other"

    assert SECRET not in repr(validator)


@pytest.mark.parametrize(
    "value,expected",
    [
        (True, "true"),
        (False, "false"),
        ("Text", "Text"),
        (100000, "100000"),
        (100.0, "100"),
        (1.5, "1.5"),
        (Decimal("10.50"), "10.50"),
        (None, ""),
        ({"Phone": "+7", "Ok": True}, '{"Phone":"+7","Ok":true}'),
        (["a", 1], '["a",1]'),
        ({"Name": "Чай"}, '{"Name":"Чай"}'),
    ],
)
def test_stringify_value(value, expected):
    assert stringify_value(value) == expected


def test_extract_field_pairs_keeps_payload_order():
    pairs = extract_field_pairs({"Success": False, "OrderId": "7"})

    assert pairs == [FieldPair("Success", "false"), FieldPair("OrderId", "7")]


@pytest.mark.parametrize("payload", [["OrderId", "100"], "OrderId=100", None, {1: "100"}, {"OrderId": object()}])
def test_malformed_payloads_raise(validator, payload):
    with pytest.raises(MalformedInput):
        validator.compute_token(payload)


def test_verify_raises_for_non_mapping(validator):
    with pytest.raises(MalformedInput):
        validator.verify([("Token", "abc")])


def test_validator_can_be_shared_between_threads(validator, notification):
    expected = validator.compute_token(notification)

    with ThreadPoolExecutor(max_workers=4) as pool:
        results = list(pool.map(validator.compute_token, [notification] * 32))

    assert set(results) == {expected}


def test_generate_token_script(tmp_path, capsys, validator, notification):
    path = tmp_path / "notification.json"
    path.write_text(json.dumps(notification), encoding="utf-8")

    assert generate_token.main([str(path), "--password", SECRET]) == 0
    out = capsys.readouterr().out
    assert validator.compute_token(notification) in out
    assert SECRET not in out

    path.write_text(json.dumps(validator.sign(notification)), encoding="utf-8")
    assert generate_token.main([str(path), "--password", SECRET, "--verify"]) == 0
    assert generate_token.main([str(path), "--password", "wrong", "--verify"]) == 1


def test_generate_token_script_requires_password(tmp_path, capsys, monkeypatch):
    monkeypatch.delenv("TINKOFF_TERMINAL_PASSWORD", raising=False)
    path = tmp_path / "notification.json"
    path.write_text("{}", encoding="utf-8")

    assert generate_token.main([str(path), "--password", ""]) == 2
    assert "error" in capsys.readouterr().err


def test_generate_token_function(notification):
    assert generate_token.generate_token(notification, SECRET) == TokenValidator(SECRET).compute_token(notification)


def test_exclusion_folds_ascii_only(validator):
    # KELVIN SIGN lowercases to "k" but is not an ASCII "K"
    assert validator.canonical_string({"To\u212aen": "x"}) == "mySecretx"
    assert validator.canonical_string({"TOKEN": "x", "rEcEiPt": "y"}) == "mySecret"


@pytest.mark.parametrize("value", [{"Price": Decimal("10.50")}, [object()], {"When": {1, 2}}])
def test_unsupported_nested_values_raise(validator, value):
    with pytest.raises(MalformedInput):
        validator.compute_token({"Data2": value})


@pytest.mark.parametrize("content", ["{not json", "\xff\xfe"])
def test_generate_token_script_rejects_unreadable_payload(tmp_path, capsys, content):
    path = tmp_path / "notification.json"
    path.write_bytes(content.encode("latin-1"))

    assert generate_token.main([str(path), "--password", SECRET]) == 2
    assert "error" in capsys.readouterr().err


def test_generate_token_script_missing_file(tmp_path, capsys):
    assert generate_token.main([str(tmp_path / "missing.json"), "--password", SECRET]) == 2
    assert "error" in capsys.readouterr().err
