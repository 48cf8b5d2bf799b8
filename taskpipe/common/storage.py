"""
Interface of the Storage Layer the pipelines write to and read from.

The relational schema, the triggers that derive ``modified_utc`` and
``closed_utc``, and the database engine live behind this interface.
"""
import logging
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional, Sequence

from .errors import StorageError
from .models import CanonicalTask, Note

logger = logging.getLogger(__name__)


class TaskStore(ABC):
    """
    Storage Layer collaborator.

    Every method is a separate, non-transactional operation. Implementations
    raise ``StorageError`` when an operation fails.
    """

    @abstractmethod
    def insert_task(self, task: CanonicalTask) -> None:
        """Insert a task row."""

    @abstractmethod
    def insert_tags(self, ulid: str, tags: Sequence[str]) -> None:
        """Attach tags to an existing task."""

    @abstractmethod
    def insert_notes(self, ulid: str, notes: Sequence[Note]) -> None:
        """Attach notes to an existing task."""

    @abstractmethod
    def update_task(self, ulid: str, fields: Dict[str, Any]) -> None:
        """
        Update columns of a task row.

        The store recomputes ``modified_utc`` (and, for closed tasks,
        ``closed_utc``) through its own triggers.
        """

    @abstractmethod
    def get_tags(self, ulid: str) -> List[str]:
        """Tags of a task."""

    @abstractmethod
    def get_notes(self, ulid: str) -> List[Note]:
        """Notes of a task."""

    @abstractmethod
    def find_task(self, id_substring: str) -> Optional[CanonicalTask]:
        """Find a task whose id ends with or contains ``id_substring``."""

    @abstractmethod
    def query_tasks_view(self) -> List[Dict[str, Any]]:
        """Rows of the flattened task view, including tags and notes."""


def attach_tags_and_notes(store: TaskStore, ulid: str, tags: Sequence[str], notes: Sequence[Note]) -> List[str]:
    """
    Insert tags, then notes, for a task that is already stored.

    A failure of either insert does not undo the task; it is reported back
    as a warning line instead.

    Returns:
        Warning lines, empty when both inserts succeeded
    """
    warnings = []
    if tags:
        try:
            store.insert_tags(ulid, tags)
        except StorageError as e:
            logger.warning(f"Tags for task {ulid} not inserted: {e}")
            warnings.append(f'⚠️  Tags {", ".join(tags)} could not be added to task "{ulid}": {e}')
    if notes:
        try:
            store.insert_notes(ulid, notes)
        except StorageError as e:
            logger.warning(f"Notes for task {ulid} not inserted: {e}")
            warnings.append(f'⚠️  {len(notes)} note(s) could not be added to task "{ulid}": {e}')
    return warnings
