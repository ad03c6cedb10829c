import hashlib
import hmac
import json
import logging
from collections.abc import Mapping
from decimal import Decimal
from typing import NamedTuple

logger = logging.getLogger(__name__)


PASSWORD_KEY = "Password"
TOKEN_KEY = "Token"

# Never part of the digest input: the signature itself and nested receipt/data blocks.
EXCLUDED_KEYS = frozenset({"Receipt", "Data", TOKEN_KEY})
_EXCLUDED_KEYS_FOLDED = frozenset(key.lower() for key in EXCLUDED_KEYS)
_ASCII_UPPER = "ABCDEFGHIJKLMNOPQRSTUVWXYZ"
_ASCII_FOLD = str.maketrans(_ASCII_UPPER, _ASCII_UPPER.lower())


class TokenError(ValueError):
    """Base class for token validator errors."""


class InvalidArgument(TokenError):
    """The validator was constructed without a usable terminal password."""


class MalformedInput(TokenError):
    """The payload is not a mapping of named scalar entries."""


class FieldPair(NamedTuple):
    name: str
    value: str


def stringify_value(value) -> str:
    """
    Render a payload value the way the gateway does before hashing.

    Booleans become lowercase ``true``/``false``, integral floats drop the
    trailing ``.0``, nulls become an empty string and nested objects are
    serialized as compact JSON without being flattened.
    """
    # bool first: it is an int subclass
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, str):
        return value
    if value is None:
        return ""
    if isinstance(value, float):
        if value.is_integer():
            return str(int(value))
        return str(value)
    if isinstance(value, (int, Decimal)):
        return str(value)
    if isinstance(value, (Mapping, list, tuple)):
        try:
            return json.dumps(value, separators=(",", ":"), ensure_ascii=False)
        except (TypeError, ValueError) as exc:
            raise MalformedInput(f"Nested value cannot be serialized: {exc}") from exc
    raise MalformedInput(f"Unsupported value type {type(value).__name__!r}")


def extract_field_pairs(payload) -> list[FieldPair]:
    """
    Turn every top-level payload entry into a (name, text) pair.

    Order follows the payload and carries no meaning; the pairs are sorted
    again before hashing.
    """
    if not isinstance(payload, Mapping):
        raise MalformedInput(f"Payload must be a mapping, got {type(payload).__name__!r}")

    pairs = []
    for name, value in payload.items():
        if not isinstance(name, str):
            raise MalformedInput(f"Field names must be strings, got {name!r}")
        pairs.append(FieldPair(name, stringify_value(value)))
    return pairs


def is_excluded(name: str) -> bool:
    # Only ASCII letters fold; other characters must match exactly.
    return name.translate(_ASCII_FOLD) in _EXCLUDED_KEYS_FOLDED


class TokenValidator:
    """
    Computes and checks the ``Token`` field of gateway notifications.

    The token is the lowercase hex SHA-256 of the values of all non-excluded
    fields plus the terminal password (as field ``Password``), concatenated
    in ordinal order of the field names. Instances are immutable and can be
    shared between threads.
    """

    __slots__ = ("_password",)

    def __init__(self, password: str):
        if not isinstance(password, str) or not password:
            raise InvalidArgument("Terminal password must be a non-empty string")
        object.__setattr__(self, "_password", password)

    def __setattr__(self, name, value):
        raise AttributeError("TokenValidator is immutable")

    def __repr__(self):
        return "TokenValidator(password='***')"

    def canonical_string(self, payload) -> str:
        pairs = [pair for pair in extract_field_pairs(payload) if not is_excluded(pair.name)]
        pairs.append(FieldPair(PASSWORD_KEY, self._password))
        # str comparison is by code point, i.e. ordinal
        return "".join(pair.value for pair in sorted(pairs, key=lambda pair: pair.name))

    def compute_token(self, payload) -> str:
        canonical = self.canonical_string(payload)
        try:
            data = canonical.encode("utf-8")
        except UnicodeEncodeError as exc:
            raise MalformedInput(f"Payload is not valid text: {exc.reason}") from exc
        return hashlib.sha256(data).hexdigest()

    def verify(self, payload) -> bool:
        pairs = extract_field_pairs(payload)
        claimed = next((pair.value for pair in pairs if pair.name == TOKEN_KEY), None)
        if not claimed:
            logger.debug("Notification carries no Token field")
            return False

        expected = self.compute_token(payload)
        return hmac.compare_digest(claimed.lower().encode("utf-8", "surrogatepass"), expected.encode("utf-8"))

    def sign(self, payload) -> dict:
        """Return a copy of ``payload`` with its ``Token`` field set."""
        token = self.compute_token(payload)
        signed = dict(payload)
        signed[TOKEN_KEY] = token
        return signed
