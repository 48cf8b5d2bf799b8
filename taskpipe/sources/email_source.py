"""
Email (RFC 822 / .eml) source adapter.

The message body seeds the task body. Headers are then folded left to
right; a later header of the same kind replaces the earlier result:

    Date        creation time, and the id is re-derived from a hash of the
                whole message combined with that time
    From, To    metadata ``from`` / ``to`` as lists of {name, email}
    Message-ID  metadata ``messageId``
    Subject     first line of the body
    Keywords    tags, one per comma separated group
    Comments    metadata ``comments``

Any other header is ignored.
"""
import logging
from datetime import UTC
from email import errors as email_errors
from email import policy
from email.message import EmailMessage
from email.parser import BytesParser
from typing import Any, Dict, List, Optional

from ..common.errors import MalformedInput
from ..common.models import ImportRecord, format_utc
from ..common.normalize_engine import NormalizeEngine
from ..common.ulid_utils import EPOCH, fnv1a_128, id_from_seed

logger = logging.getLogger(__name__)

FATAL_DEFECTS = (
    email_errors.MissingHeaderBodySeparatorDefect,
    email_errors.FirstHeaderLineIsContinuationDefect,
)


def parse_message(content: bytes) -> EmailMessage:
    """Parse raw message bytes, rejecting input without a usable header section."""
    message = BytesParser(policy=policy.default).parsebytes(content)
    fatal = [d for d in message.defects if isinstance(d, FATAL_DEFECTS)]
    if not message.keys() or fatal:
        reason = fatal[0].__class__.__name__ if fatal else "no headers found"
        logger.error(f"Malformed email: {reason}")
        raise MalformedInput(f"Malformed email message: {reason}")
    return message


def message_text(message: EmailMessage) -> str:
    """Plain text payload with normalized line terminators and the final newline removed."""
    part = message.get_body(preferencelist=("plain",))
    if part is None:
        return ""
    text = part.get_content()
    if isinstance(text, bytes):
        text = text.decode("utf-8", errors="replace")
    text = text.replace("\r\n", "\n").replace("\r", "\n")
    return text[:-1] if text.endswith("\n") else text


def _addresses(header: Any) -> List[Dict[str, str]]:
    return [
        {"name": address.display_name or "", "email": address.addr_spec}
        for address in getattr(header, "addresses", ())
    ]


def _keywords(header: Any) -> List[str]:
    groups = (" ".join(group.split()) for group in str(header).split(","))
    return [group for group in groups if group]


def email_to_record(message: EmailMessage, content: bytes) -> Dict[str, Any]:
    """Build the generic task mapping for a parsed message."""
    seed = fnv1a_128(content)
    body = message_text(message)
    record: Dict[str, Any] = {"ulid": id_from_seed(seed, EPOCH)}
    metadata: Dict[str, Any] = {}
    subject: Optional[str] = None
    tags: List[str] = []

    for name, value in message.items():
        kind = name.lower()
        if kind == "date":
            sent = getattr(value, "datetime", None)
            if sent is None:
                raise MalformedInput(f"Invalid Date header: {value}")
            if sent.tzinfo is None:
                sent = sent.replace(tzinfo=UTC)
            sent = sent.astimezone(UTC).replace(microsecond=0)
            record["ulid"] = id_from_seed(seed, sent)
            record["created_at"] = format_utc(sent)
            record["modified_utc"] = format_utc(sent)
        elif kind in ("from", "to"):
            metadata[kind] = _addresses(value)
        elif kind == "message-id":
            metadata["messageId"] = str(value).strip()
        elif kind == "subject":
            subject = str(value)
        elif kind == "keywords":
            tags = _keywords(value)
        elif kind == "comments":
            metadata["comments"] = str(value)

    if subject is not None:
        body = subject + ("\n\n" + body if body else "")

    record["body"] = body
    record["tags"] = tags
    if metadata:
        record["metadata"] = metadata
    return record


def parse_email(content: bytes, normalizer: Optional[NormalizeEngine] = None) -> ImportRecord:
    """Parse an email message and normalize it into an import record."""
    normalizer = normalizer or NormalizeEngine()
    message = parse_message(content)
    return normalizer.normalize(email_to_record(message, content))
