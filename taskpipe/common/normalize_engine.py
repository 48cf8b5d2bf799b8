"""
Normalize engine for transforming external task records into canonical format.
"""
import logging
from datetime import date, datetime, UTC
from pathlib import Path
from typing import Dict, Any, List, Mapping, Optional, Sequence, Tuple

from .errors import MalformedInput
from .models import CanonicalTask, ImportRecord, Note, TaskState
from .schema_validator import CANONICAL_SCHEMA_PATH, validate_canonical_task
from .ulid_utils import EPOCH, derive_id

logger = logging.getLogger(__name__)

# First present key wins, in this order
CREATED_ALIASES = ("entry", "creation", "created_at")
BODY_ALIASES = ("body", "description")
STATE_ALIASES = ("state", "status")
PRIORITY_ALIASES = ("priority_adjustment", "urgency", "priority")
MODIFIED_ALIASES = ("modified", "modified_at", "modified_utc", "modification_date", "updated_at")
DUE_ALIASES = ("due", "due_utc", "due_on")
CLOSED_ALIASES = ("closed", "closed_utc", "closed_on", "end", "end_utc", "end_on")

KNOWN_KEYS = frozenset(
    CREATED_ALIASES + BODY_ALIASES + STATE_ALIASES + PRIORITY_ALIASES
    + MODIFIED_ALIASES + DUE_ALIASES + CLOSED_ALIASES
    + ("tags", "project", "notes", "annotations", "user", "ulid", "metadata")
)

STATE_NAMES = {
    "open": TaskState.OPEN,
    "pending": TaskState.OPEN,
    "recurring": TaskState.OPEN,
    "waiting": TaskState.WAITING,
    "done": TaskState.DONE,
    "completed": TaskState.DONE,
    "obsolete": TaskState.OBSOLETE,
    "deleted": TaskState.OBSOLETE,
}

COMPACT_UTC_FORMAT = "%Y%m%dT%H%M%S"


def parse_utc(value: Any) -> Optional[datetime]:
    """
    Parse a timestamp into an aware UTC datetime with whole seconds.

    The ISO 8601 date-time form is tried first, then the compact
    ``YYYYMMDDTHHMMSS`` form used by Taskwarrior exports.

    Returns:
        Parsed datetime, or None if no format matches
    """
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, date):
        parsed = datetime(value.year, value.month, value.day)
    elif isinstance(value, str) and value.strip():
        text = value.strip()
        try:
            parsed = datetime.fromisoformat(text.replace('Z', '+00:00'))
        except ValueError:
            try:
                parsed = datetime.strptime(text.rstrip('Z'), COMPACT_UTC_FORMAT)
            except ValueError:
                return None
    else:
        return None

    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=UTC)
    return parsed.astimezone(UTC).replace(microsecond=0)


def _to_number(value: Any) -> Optional[float]:
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return float(value)
    if isinstance(value, str):
        try:
            return float(value.strip())
        except ValueError:
            return None
    return None


def _collapse(labels: Sequence[str]) -> List[str]:
    seen = set()
    unique = []
    for label in labels:
        if label not in seen:
            seen.add(label)
            unique.append(label)
    return unique


class NormalizeEngine:
    """Engine for normalizing loosely-typed external records into import records."""

    def __init__(self, canonical_schema_path: Path = CANONICAL_SCHEMA_PATH):
        """
        Initialize normalize engine.

        Args:
            canonical_schema_path: Path to canonical task schema file
        """
        self.canonical_schema_path = Path(canonical_schema_path)

    @staticmethod
    def first_present(raw: Mapping[str, Any], aliases: Sequence[str]) -> Tuple[Optional[str], Any]:
        """Return the first alias present with a non-null value, and that value."""
        for key in aliases:
            if raw.get(key) is not None:
                return key, raw[key]
        return None, None

    def annotation_to_note(self, annotation: Any) -> Note:
        """Map a Taskwarrior style annotation ``{entry, description}`` to a note."""
        if not isinstance(annotation, Mapping) or "description" not in annotation:
            raise MalformedInput(f"Invalid annotation: {annotation!r}")
        entry = annotation.get("entry")
        description = str(annotation["description"])
        note_utc = parse_utc(entry) or EPOCH
        ulid = derive_id({"entry": entry, "description": description}, note_utc)
        return Note(ulid=ulid, body=description)

    def to_note(self, item: Any) -> Note:
        if isinstance(item, str):
            body, ulid = item, None
        elif isinstance(item, Mapping) and item.get("body") is not None:
            body, ulid = str(item["body"]), item.get("ulid")
        else:
            raise MalformedInput(f"Invalid note: {item!r}")

        if ulid:
            return Note(ulid=str(ulid).lower(), body=body)
        # Placeholder time component, filled in when the note is persisted
        return Note(ulid=derive_id({"body": body}, EPOCH), body=body)

    def normalize(self, raw: Any) -> ImportRecord:
        """
        Transform an external record into a canonical import record.

        Args:
            raw: Mapping decoded from JSON, YAML or an email

        Returns:
            Import record with task, notes and tags

        Raises:
            MalformedInput: If the record is not a mapping or violates the canonical schema
        """
        if not isinstance(raw, Mapping):
            raise MalformedInput(f"Expected a task object but got {type(raw).__name__}")

        consumed = {key for key, value in raw.items() if value is None and key in KNOWN_KEYS}

        key, value = self.first_present(raw, CREATED_ALIASES)
        created_utc = parse_utc(value)
        if created_utc is not None:
            consumed.add(key)
        else:
            created_utc = EPOCH

        key, value = self.first_present(raw, BODY_ALIASES)
        body = ""
        if key:
            body = value if isinstance(value, str) else str(value)
            consumed.add(key)

        key, value = self.first_present(raw, STATE_ALIASES)
        state = STATE_NAMES.get(str(value).strip().lower()) if key else None
        if state is not None:
            consumed.add(key)
        else:
            state = TaskState.OPEN

        key, value = self.first_present(raw, PRIORITY_ALIASES)
        priority_adjustment = _to_number(value)
        if priority_adjustment is not None:
            consumed.add(key)

        key, value = self.first_present(raw, MODIFIED_ALIASES)
        modified_utc = parse_utc(value)
        if modified_utc is not None:
            consumed.add(key)
        if modified_utc is None or modified_utc < created_utc:
            modified_utc = created_utc

        tags: List[str] = []
        if raw.get("tags") is not None:
            raw_tags = raw["tags"]
            if isinstance(raw_tags, str):
                raw_tags = [raw_tags]
            if not isinstance(raw_tags, list):
                raise MalformedInput(f"Tags must be a list but got {raw_tags!r}")
            tags.extend(str(tag) for tag in raw_tags)
            consumed.add("tags")
        if raw.get("project") is not None:
            tags.append(str(raw["project"]))
            consumed.add("project")

        key, value = self.first_present(raw, DUE_ALIASES)
        due_utc = parse_utc(value)
        if due_utc is not None:
            consumed.add(key)

        key, value = self.first_present(raw, CLOSED_ALIASES)
        closed_utc = parse_utc(value)
        if closed_utc is not None:
            consumed.add(key)

        notes: List[Note] = []
        if isinstance(raw.get("notes"), list):
            notes = [self.to_note(item) for item in raw["notes"]]
            consumed.add("notes")
        elif isinstance(raw.get("annotations"), list):
            notes = [self.annotation_to_note(item) for item in raw["annotations"]]
            consumed.add("annotations")

        user = ""
        if raw.get("user") is not None:
            user = str(raw["user"])
            consumed.add("user")

        # Any non-blank id is kept as is; foreign ids need not be time ordered
        explicit_ulid = None
        if raw.get("ulid") is not None:
            explicit_ulid = str(raw["ulid"]).strip().lower() or None
            consumed.add("ulid")

        base_metadata: Optional[Dict[str, Any]] = None
        if isinstance(raw.get("metadata"), Mapping):
            base_metadata = dict(raw["metadata"])
            consumed.add("metadata")

        remaining = {k: v for k, v in raw.items() if k not in consumed}
        metadata = None
        if base_metadata is not None or remaining:
            metadata = {**(base_metadata or {}), **remaining}

        task = CanonicalTask(
            ulid="",
            body=body,
            created_utc=created_utc,
            modified_utc=modified_utc,
            state=state,
            priority_adjustment=priority_adjustment,
            due_utc=due_utc,
            closed_utc=closed_utc,
            user=user,
            metadata=metadata,
        )
        record = ImportRecord(task=task, notes=notes, tags=_collapse(tags))

        if explicit_ulid is not None:
            task.ulid = explicit_ulid
        else:
            content = task.to_storage()
            content["tags"] = record.tags
            content["notes"] = [note.to_external() for note in notes]
            task.ulid = derive_id(content, created_utc)

        self.validate(record)
        return record

    def validate(self, record: ImportRecord) -> None:
        """Check a normalized record against the canonical task schema."""
        data = record.task.to_storage()
        data["tags"] = record.tags
        data["notes"] = [note.to_external() for note in record.notes]
        is_valid, error_msg = validate_canonical_task(data, self.canonical_schema_path)
        if not is_valid:
            logger.warning(f"Rejected task {record.task.ulid or '<new>'}: {error_msg}")
            raise MalformedInput(f"Canonical validation failed: {error_msg}")
