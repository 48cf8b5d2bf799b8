"""
Shared fixtures: an in-memory Storage Layer that records every call.
"""
import sys
from datetime import datetime, UTC
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence

import pytest

# Add parent directory to path to import modules
sys.path.append(str(Path(__file__).parent.parent))

from taskpipe.common.config import Config
from taskpipe.common.errors import StorageError
from taskpipe.common.models import CanonicalTask, Note
from taskpipe.common.normalize_engine import NormalizeEngine
from taskpipe.common.storage import TaskStore


class MemoryTaskStore(TaskStore):
    """TaskStore fake keeping rows in dicts and logging each call."""

    def __init__(self, fail_tags: bool = False, fail_notes: bool = False):
        self.fail_tags = fail_tags
        self.fail_notes = fail_notes
        self.tasks: Dict[str, CanonicalTask] = {}
        self.tags: Dict[str, List[str]] = {}
        self.notes: Dict[str, List[Note]] = {}
        self.calls: List[tuple] = []

    def insert_task(self, task: CanonicalTask) -> None:
        self.calls.append(("insert_task", task.ulid))
        if task.ulid in self.tasks:
            raise StorageError(f"UNIQUE constraint failed: tasks.ulid {task.ulid}")
        self.tasks[task.ulid] = task

    def insert_tags(self, ulid: str, tags: Sequence[str]) -> None:
        self.calls.append(("insert_tags", ulid, list(tags)))
        if self.fail_tags:
            raise StorageError("tag insert failed")
        self.tags.setdefault(ulid, []).extend(tags)

    def insert_notes(self, ulid: str, notes: Sequence[Note]) -> None:
        self.calls.append(("insert_notes", ulid, list(notes)))
        if self.fail_notes:
            raise StorageError("note insert failed")
        self.notes.setdefault(ulid, []).extend(notes)

    def update_task(self, ulid: str, fields: Dict[str, Any]) -> None:
        self.calls.append(("update_task", ulid, dict(fields)))

    def get_tags(self, ulid: str) -> List[str]:
        return list(self.tags.get(ulid, []))

    def get_notes(self, ulid: str) -> List[Note]:
        return list(self.notes.get(ulid, []))

    def find_task(self, id_substring: str) -> Optional[CanonicalTask]:
        for ulid, task in self.tasks.items():
            if ulid.endswith(id_substring) or id_substring in ulid:
                return task
        return None

    def query_tasks_view(self) -> List[Dict[str, Any]]:
        rows = []
        for ulid, task in sorted(self.tasks.items()):
            row = task.to_storage()
            row["tags"] = self.get_tags(ulid)
            row["notes"] = [note.to_external() for note in self.get_notes(ulid)]
            rows.append(row)
        return rows

    def calls_named(self, name: str) -> List[tuple]:
        return [call for call in self.calls if call[0] == name]


FIXED_NOW = datetime(2024, 6, 1, 12, 30, 15, tzinfo=UTC)


@pytest.fixture
def store():
    return MemoryTaskStore()


@pytest.fixture
def failing_store():
    return MemoryTaskStore(fail_tags=True, fail_notes=True)


@pytest.fixture
def config(tmp_path):
    return Config(data_dir=tmp_path / "data")


@pytest.fixture
def normalizer():
    return NormalizeEngine()


@pytest.fixture
def fixed_now():
    return FIXED_NOW


@pytest.fixture
def stored_record(store, normalizer):
    """An open task with one tag and one note, already in the store."""
    record = normalizer.normalize({
        "body": "Write report",
        "created_at": "2024-05-01 09:00:00",
        "user": "alice",
        "tags": ["work"],
        "notes": [{"body": "Outline first"}],
    })
    store.insert_task(record.task)
    store.insert_tags(record.task.ulid, record.tags)
    store.insert_notes(record.task.ulid, record.notes)
    store.calls.clear()
    return record
