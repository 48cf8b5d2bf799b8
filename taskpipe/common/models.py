"""
Canonical task, note and import record types.
"""
from dataclasses import dataclass, field
from datetime import datetime, UTC
from enum import Enum
from typing import Any, Dict, List, Optional

from .ulid_utils import UTC_FORMAT


class TaskState(str, Enum):
    OPEN = "Open"
    WAITING = "Waiting"
    DONE = "Done"
    OBSOLETE = "Obsolete"

    @property
    def is_terminal(self) -> bool:
        return self in (TaskState.DONE, TaskState.OBSOLETE)


def format_utc(value: Optional[datetime]) -> Optional[str]:
    """Render a timestamp in the storage text form, or None."""
    if value is None:
        return None
    if value.tzinfo is None:
        value = value.replace(tzinfo=UTC)
    return value.astimezone(UTC).strftime(UTC_FORMAT)


@dataclass
class Note:
    ulid: str
    body: str

    def to_external(self) -> Dict[str, Any]:
        return {"ulid": self.ulid, "body": self.body}


@dataclass
class CanonicalTask:
    """The single normalized representation every source converges to."""
    ulid: str
    body: str
    created_utc: datetime
    modified_utc: datetime
    state: TaskState = TaskState.OPEN
    priority_adjustment: Optional[float] = None
    due_utc: Optional[datetime] = None
    closed_utc: Optional[datetime] = None
    user: str = ""
    metadata: Optional[Dict[str, Any]] = None

    @property
    def is_closed(self) -> bool:
        return self.state.is_terminal or self.closed_utc is not None

    def to_external(self) -> Dict[str, Any]:
        """Plain mapping using canonical keys, readable by the normalizer."""
        external: Dict[str, Any] = {
            "ulid": self.ulid,
            "body": self.body,
            "state": self.state.value,
            "priority_adjustment": self.priority_adjustment,
            "created_at": format_utc(self.created_utc),
            "modified_utc": format_utc(self.modified_utc),
            "due_utc": format_utc(self.due_utc),
            "closed_utc": format_utc(self.closed_utc),
            "user": self.user,
        }
        if self.metadata is not None:
            external["metadata"] = self.metadata
        return external

    def to_storage(self) -> Dict[str, Any]:
        """Column values handed to the Storage Layer."""
        return {
            "ulid": self.ulid,
            "body": self.body,
            "state": self.state.value,
            "priority_adjustment": self.priority_adjustment,
            "created_utc": format_utc(self.created_utc),
            "modified_utc": format_utc(self.modified_utc),
            "due_utc": format_utc(self.due_utc),
            "closed_utc": format_utc(self.closed_utc),
            "user": self.user,
            "metadata": self.metadata,
        }


@dataclass
class ImportRecord:
    """Transient aggregate produced by the normalizer; never stored as is."""
    task: CanonicalTask
    notes: List[Note] = field(default_factory=list)
    tags: List[str] = field(default_factory=list)

    def to_external(self) -> Dict[str, Any]:
        external = self.task.to_external()
        metadata = external.pop("metadata", None)
        external["tags"] = list(self.tags)
        external["notes"] = [note.to_external() for note in self.notes]
        if self.task.metadata is not None:
            external["metadata"] = metadata
        return external
