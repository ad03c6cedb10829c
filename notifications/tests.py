import pytest

from django.urls import reverse
from unittest.mock import patch

from notifications.models import Payment
from notifications.tokens import TokenValidator

TERMINAL_PASSWORD = "terminal-password-123"


# `settings` comes from pytest-django and is restored after every test.
@pytest.fixture
def terminal_settings(settings):
    settings.TINKOFF_TERMINAL_PASSWORD = TERMINAL_PASSWORD
    settings.TINKOFF_TERMINAL_KEY = ""
    return settings


@pytest.fixture
def build_notification():
    """
    Returns a factory producing a signed notification, the way the gateway
    would post it. Overrides are applied before signing.
    """
    validator = TokenValidator(TERMINAL_PASSWORD)

    def _build(**overrides):
        payload = {
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
            "Data": {"Phone": "+71234567890"},
        }
        payload.update(overrides)
        return validator.sign(payload)

    return _build


def post_notification(client, payload):
    return client.post(reverse("tinkoff-notification"), data=payload, content_type="application/json")


@pytest.mark.django_db
def test_happy_path_confirmed(client, terminal_settings, build_notification):
    """
    A valid CONFIRMED notification is acknowledged and stores the payment.
    """
    response = post_notification(client, build_notification())

    # 1. The gateway expects a plain OK
    assert response.status_code == 200
    assert response.content == b"OK"

    # 2. The payment was recorded
    payment = Payment.objects.get(payment_id="13660")
    assert payment.order_id == "21050"
    assert payment.amount == 100000
    assert payment.status == "CONFIRMED"
    assert payment.success is True
    assert payment.error_code == "0"


@pytest.mark.django_db
def test_notification_replay_idempotency(client, terminal_settings, build_notification):
    """
    The gateway redelivers notifications; the same status must not be saved twice.
    """
    payload = build_notification()

    first_response = post_notification(client, payload)
    assert first_response.status_code == 200

    with patch.object(Payment, "save") as mock_save:
        second_response = post_notification(client, payload)

    assert second_response.status_code == 200
    assert second_response.content == b"OK"
    mock_save.assert_not_called()
    assert Payment.objects.count() == 1


@pytest.mark.django_db
def test_status_progression(client, terminal_settings, build_notification):
    response = post_notification(client, build_notification(Status="AUTHORIZED"))
    assert response.status_code == 200
    assert Payment.objects.get(payment_id="13660").status == "AUTHORIZED"

    response = post_notification(client, build_notification(Status="CONFIRMED"))
    assert response.status_code == 200
    assert Payment.objects.get(payment_id="13660").status == "CONFIRMED"

    response = post_notification(client, build_notification(Status="REFUNDED", Amount=0))
    assert response.status_code == 200
    assert Payment.objects.get(payment_id="13660").status == "REFUNDED"


@pytest.mark.django_db
@pytest.mark.parametrize(
    "stored,late",
    [
        ("CONFIRMED", "AUTHORIZED"),
        ("CONFIRMED", "NEW"),
        ("REFUNDED", "CONFIRMED"),
        ("REFUNDED", "PARTIAL_REFUNDED"),
        ("REJECTED", "CONFIRMED"),
    ],
)
def test_late_status_does_not_roll_back(client, terminal_settings, build_notification, stored, late):
    """
    Delivery order is not guaranteed; an older status arriving late is acknowledged and ignored.
    """
    post_notification(client, build_notification(Status=stored, Amount=500))

    response = post_notification(client, build_notification(Status=late, Amount=100000))

    assert response.status_code == 200
    assert response.content == b"OK"
    payment = Payment.objects.get(payment_id="13660")
    assert payment.status == stored
    assert payment.amount == 500


def test_stale_status_ranking():
    payment = Payment(status="CONFIRMED")

    assert payment.is_stale("CONFIRMED")
    assert payment.is_stale("AUTHORIZED")
    assert payment.is_stale("REVERSED")
    assert not payment.is_stale("PARTIAL_REFUNDED")
    assert not payment.is_stale("REFUNDED")


@pytest.mark.django_db
def test_rejected_payment_is_recorded(client, terminal_settings, build_notification):
    response = post_notification(client, build_notification(Status="REJECTED", Success=False, ErrorCode="1051"))

    assert response.status_code == 200
    payment = Payment.objects.get(payment_id="13660")
    assert payment.status == "REJECTED"
    assert payment.success is False
    assert payment.error_code == "1051"


@pytest.mark.django_db
def test_unknown_status_is_rejected(client, terminal_settings, build_notification):
    response = post_notification(client, build_notification(Status="TELEPORTED"))

    assert response.status_code == 400
    assert "Status" in response.json()
    assert Payment.objects.count() == 0


@pytest.mark.django_db
def test_token_is_compared_case_insensitively(client, terminal_settings, build_notification):
    payload = build_notification()
    payload["Token"] = payload["Token"].upper()

    response = post_notification(client, payload)

    assert response.status_code == 200


@pytest.mark.django_db
def test_receipt_and_data_are_not_signed(client, terminal_settings, build_notification):
    payload = build_notification()
    payload["Receipt"] = {"Email": "a@test.ru"}
    payload["Data"] = {"Phone": "+70000000000"}

    response = post_notification(client, payload)

    assert response.status_code == 200


@pytest.mark.django_db
@pytest.mark.parametrize(
    "tamper",
    [
        lambda payload: payload.update(Amount=1),
        lambda payload: payload.update(Status="REFUNDED"),
        lambda payload: payload.update(Token="abc"),
        lambda payload: payload.pop("Token"),
    ],
)
def test_invalid_token_is_rejected(client, terminal_settings, build_notification, tamper):
    payload = build_notification()
    tamper(payload)

    response = post_notification(client, payload)

    assert response.status_code == 403
    assert response.json() == {"error": "Invalid token"}
    assert Payment.objects.count() == 0


@pytest.mark.django_db
def test_missing_terminal_password(client, settings, build_notification):
    settings.TINKOFF_TERMINAL_PASSWORD = ""

    response = post_notification(client, build_notification())

    assert response.status_code == 500
    assert Payment.objects.count() == 0


@pytest.mark.django_db
def test_unknown_terminal_is_rejected(client, terminal_settings, build_notification):
    terminal_settings.TINKOFF_TERMINAL_KEY = "OurTerminal"

    response = post_notification(client, build_notification(TerminalKey="SomeoneElse"))

    assert response.status_code == 403
    assert Payment.objects.count() == 0


@pytest.mark.django_db
def test_non_object_body(client, terminal_settings):
    response = post_notification(client, ["OrderId", "21050"])

    assert response.status_code == 400


@pytest.mark.django_db
def test_invalid_json_body(client, terminal_settings):
    response = client.post(reverse("tinkoff-notification"), data="{not json", content_type="application/json")

    assert response.status_code == 400


@pytest.mark.django_db
def test_signed_notification_missing_business_fields(client, terminal_settings, build_notification):
    payload = build_notification()
    del payload["PaymentId"]
    payload = TokenValidator(TERMINAL_PASSWORD).sign(payload)

    response = post_notification(client, payload)

    assert response.status_code == 400
    assert "PaymentId" in response.json()
    assert Payment.objects.count() == 0
