"""
Time-ordered identifiers derived from record content.

An id is 26 lowercase Crockford base-32 characters: 10 characters of
millisecond timestamp followed by 16 characters of randomness. The
randomness is not random at all here; it is seeded from a content hash so
that re-importing the same record produces the same id.

Content hash: FNV-1a (128 bit) over the canonical serialisation of the
record, i.e. JSON with sorted keys, no whitespace, non-ASCII kept as UTF-8,
datetimes rendered as ``YYYY-MM-DD HH:MM:SS`` and the ``ulid`` key removed.
"""
import json
from datetime import date, datetime, timedelta, UTC
from enum import Enum
from typing import Any, Dict, Mapping

from .errors import MalformedInput

ALPHABET = "0123456789abcdefghjkmnpqrstvwxyz"
TIME_LEN = 10
RANDOM_LEN = 16
ID_LEN = TIME_LEN + RANDOM_LEN
TIME_BITS = 48
RANDOM_BITS = 80

ZERO_TIME = "0" * TIME_LEN
EPOCH = datetime(1970, 1, 1, tzinfo=UTC)
UTC_FORMAT = "%Y-%m-%d %H:%M:%S"
ONE_MS = timedelta(milliseconds=1)

FNV_128_OFFSET = 0x6C62272E07BB014262B821756295C58D
FNV_128_PRIME = 0x0000000001000000000000000000013B
FNV_128_MASK = (1 << 128) - 1


def _encode(value: int, length: int) -> str:
    chars = []
    for _ in range(length):
        chars.append(ALPHABET[value & 0x1F])
        value >>= 5
    return "".join(reversed(chars))


def _decode(text: str) -> int:
    value = 0
    for char in text.lower():
        value = (value << 5) | ALPHABET.index(char)
    return value


def to_millis(timestamp: datetime) -> int:
    """Epoch milliseconds of an (assumed UTC when naive) datetime, clamped to 48 bits."""
    if timestamp.tzinfo is None:
        timestamp = timestamp.replace(tzinfo=UTC)
    millis = (timestamp - EPOCH) // ONE_MS
    return max(0, min(millis, (1 << TIME_BITS) - 1))


def encode_time(millis: int) -> str:
    return _encode(millis, TIME_LEN)


def encode_random(value: int) -> str:
    return _encode(abs(value) % (1 << RANDOM_BITS), RANDOM_LEN)


def decode_time(ulid: str) -> datetime:
    """Return the timestamp embedded in an id."""
    millis = _decode(ulid[:TIME_LEN])
    return EPOCH + ONE_MS * millis


def is_valid_id(text: Any) -> bool:
    return (
        isinstance(text, str)
        and len(text) == ID_LEN
        and all(char in ALPHABET for char in text)
        and text[0] in "01234567"
    )


def has_placeholder_time(ulid: str) -> bool:
    """True for a well formed id whose time component is all zeros."""
    return is_valid_id(ulid) and ulid.startswith(ZERO_TIME)


def fnv1a_128(data: bytes) -> int:
    """FNV-1a, 128 bit variant."""
    value = FNV_128_OFFSET
    for byte in data:
        value ^= byte
        value = (value * FNV_128_PRIME) & FNV_128_MASK
    return value


def _json_default(value: Any) -> Any:
    if isinstance(value, datetime):
        return value.astimezone(UTC).strftime(UTC_FORMAT)
    if isinstance(value, date):
        return value.isoformat()
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, (set, frozenset)):
        return sorted(value)
    raise TypeError(f"Object of type {type(value).__name__} is not serializable")


def canonical_bytes(content: Mapping[str, Any]) -> bytes:
    """Stable serialisation of a record, excluding its ``ulid`` field."""
    payload: Dict[str, Any] = {k: v for k, v in content.items() if k != "ulid"}
    try:
        text = json.dumps(
            payload,
            sort_keys=True,
            separators=(",", ":"),
            ensure_ascii=False,
            default=_json_default,
        )
    except (TypeError, ValueError) as e:
        # Mixed key types or values with no JSON form, e.g. YAML !!binary
        raise MalformedInput(f"Record cannot be serialised for hashing: {e}") from e
    return text.encode("utf-8")


def content_hash(content: Mapping[str, Any]) -> int:
    return fnv1a_128(canonical_bytes(content))


def id_from_seed(seed: int, timestamp: datetime) -> str:
    """Build an id from a non-negative integer seed and a timestamp."""
    return encode_time(to_millis(timestamp)) + encode_random(seed)


def derive_id(content: Mapping[str, Any], timestamp: datetime) -> str:
    """
    Derive a deterministic id for a record.

    Args:
        content: Record fields; a ``ulid`` key, if present, is ignored
        timestamp: Creation time that becomes the time component

    Returns:
        26 character lowercase id
    """
    return id_from_seed(content_hash(content), timestamp)


def combine(ulid: str, timestamp: datetime) -> str:
    """Replace the time component of an id, keeping its randomness."""
    return encode_time(to_millis(timestamp)) + ulid[TIME_LEN:].lower()
