"""
Edit engine: render a task as YAML, let it be edited until it parses, then
write the result back through the Storage Layer.
"""
import logging
import sys
from dataclasses import dataclass
from datetime import datetime, UTC
from enum import Enum
from typing import Any, Callable, Dict, List, Mapping, Optional, Sequence

import yaml

from .config import effective_user
from .errors import MalformedInput, TaskNotFound
from .editor import run_user_editor
from .models import CanonicalTask, ImportRecord, Note, format_utc
from .normalize_engine import NormalizeEngine
from .storage import TaskStore, attach_tags_and_notes
from .ulid_utils import combine, has_placeholder_time

logger = logging.getLogger(__name__)

NOTHING_CHANGED = "⚠️ Nothing changed"
EDIT_CANCELLED = "⚠️ Edit cancelled"

EditFunction = Callable[[str], Optional[str]]


class EditMode(Enum):
    APPLY_PRE_EDIT = "apply_pre_edit"
    OPEN_EDITOR = "open_editor"
    OPEN_EDITOR_REQUIRE_EDIT = "open_editor_require_edit"


class EditStatus(Enum):
    VALID = "valid"
    ABORTED_UNCHANGED = "aborted_unchanged"
    CANCELLED = "cancelled"


@dataclass
class EditOutcome:
    status: EditStatus
    record: Optional[ImportRecord] = None
    text: str = ""
    data: Any = None
    message: str = ""


def render_editable(task: CanonicalTask, tags: Sequence[str], notes: Sequence[Note]) -> str:
    """
    Render a task with its tags and notes as editable YAML.

    The ``metadata`` key appears only when the task carries metadata; its
    presence in the edited text decides whether metadata is kept.
    """
    record = ImportRecord(task=task, notes=list(notes), tags=list(tags))
    return yaml.safe_dump(record.to_external(), sort_keys=False, allow_unicode=True)


def describe_yaml_error(error: yaml.YAMLError) -> str:
    """Human readable YAML error with 1-based line and column."""
    mark = getattr(error, "problem_mark", None)
    if mark is None:
        return f"Invalid YAML: {error}"
    problem = getattr(error, "problem", None) or getattr(error, "context", None) or "parse error"
    return f"Invalid YAML: {problem} at line {mark.line + 1}, column {mark.column + 1}"


def _quiet_message(mode: EditMode, message: str) -> str:
    return "" if mode is EditMode.OPEN_EDITOR else message


def edit_until_valid(
    mode: EditMode,
    text: str,
    edit: EditFunction,
    normalizer: Optional[NormalizeEngine] = None,
) -> EditOutcome:
    """
    Run edit rounds until the text decodes into a valid task.

    Each round calls ``edit`` exactly once with the text shown in that
    round. Text that fails to decode is reported on stderr and becomes the
    starting point of the next round; there is no retry limit.

    Args:
        mode: Edit mode, decides which aborts are reported
        text: Initial YAML text
        edit: Editor or programmatic edit function; None means cancelled
        normalizer: Engine used to decode the edited mapping

    Returns:
        Outcome with the decoded record and the exact accepted text
    """
    normalizer = normalizer or NormalizeEngine()
    shown = text

    while True:
        edited = edit(shown)
        if edited is None:
            logger.info("Edit cancelled")
            return EditOutcome(EditStatus.CANCELLED, text=shown, message=_quiet_message(mode, EDIT_CANCELLED))

        if edited == shown:
            logger.info("Edit left the task unchanged")
            return EditOutcome(
                EditStatus.ABORTED_UNCHANGED,
                text=shown,
                message=_quiet_message(mode, NOTHING_CHANGED),
            )

        try:
            data = yaml.safe_load(edited)
            record = normalizer.normalize(data)
        except yaml.YAMLError as e:
            diagnostic = describe_yaml_error(e)
        except MalformedInput as e:
            diagnostic = str(e)
        except ValueError as e:
            # Scalars that look like dates but are out of range, e.g. 2024-13-01
            diagnostic = f"Invalid YAML: {e}"
        else:
            return EditOutcome(EditStatus.VALID, record=record, text=edited, data=data)

        logger.warning(f"Rejected edit: {diagnostic}")
        print(diagnostic + "\n", file=sys.stderr)
        shown = edited


def _has_metadata_mapping(data: Any) -> bool:
    return isinstance(data, Mapping) and isinstance(data.get("metadata"), Mapping)


class EditEngine:
    """Engine for editing stored tasks."""

    def __init__(
        self,
        store: TaskStore,
        editor: EditFunction = run_user_editor,
        normalize_engine: Optional[NormalizeEngine] = None,
        clock: Callable[[], datetime] = lambda: datetime.now(UTC),
    ):
        """
        Initialize edit engine.

        Args:
            store: Storage Layer the edited task is written to
            editor: Function that lets a human edit text
            normalize_engine: Engine used to decode edited text
            clock: Source of the current time
        """
        self.store = store
        self.editor = editor
        self.normalize_engine = normalize_engine or NormalizeEngine()
        self.clock = clock

    def edit_task(
        self,
        task: CanonicalTask,
        mode: EditMode = EditMode.OPEN_EDITOR_REQUIRE_EDIT,
        tags: Optional[Sequence[str]] = None,
        notes: Optional[Sequence[Note]] = None,
        pre_edit: Optional[EditFunction] = None,
    ) -> str:
        """
        Edit a stored task and write the changes back.

        Args:
            task: Task as currently stored
            mode: Edit mode
            tags: Tags shown for editing, fetched from the store if None
            notes: Notes shown for editing, fetched from the store if None
            pre_edit: Edit function, required for ``APPLY_PRE_EDIT``

        Returns:
            Result message; empty for a silent abort
        """
        if mode is EditMode.APPLY_PRE_EDIT:
            if pre_edit is None:
                raise ValueError("APPLY_PRE_EDIT mode requires a pre_edit function")
            edit = pre_edit
        else:
            edit = self.editor

        shown_tags = list(self.store.get_tags(task.ulid) if tags is None else tags)
        shown_notes = list(self.store.get_notes(task.ulid) if notes is None else notes)

        outcome = edit_until_valid(
            mode,
            render_editable(task, shown_tags, shown_notes),
            edit,
            self.normalize_engine,
        )
        if outcome.status is not EditStatus.VALID:
            return outcome.message

        return self._write_back(task, outcome, shown_tags, shown_notes)

    def _write_back(
        self,
        original: CanonicalTask,
        outcome: EditOutcome,
        shown_tags: List[str],
        shown_notes: List[Note],
    ) -> str:
        now = self.clock()
        edited = outcome.record.task
        edited.ulid = original.ulid
        if not edited.user:
            edited.user = effective_user()
        if not _has_metadata_mapping(outcome.data):
            edited.metadata = None
        # The store only refreshes modified_utc when the stored value is unchanged
        edited.modified_utc = original.modified_utc

        fields: Dict[str, Any] = edited.to_storage()
        fields.pop("ulid")
        self.store.update_task(original.ulid, fields)

        # Second update keeps closed_utc from being overwritten by the store
        if edited.is_closed:
            self.store.update_task(original.ulid, {"modified_utc": format_utc(now)})

        known_note_ids = {note.ulid for note in shown_notes}
        new_notes = [
            Note(ulid=combine(note.ulid, now), body=note.body) if has_placeholder_time(note.ulid) else note
            for note in outcome.record.notes
            if note.ulid not in known_note_ids
        ]
        new_tags = [tag for tag in outcome.record.tags if tag not in shown_tags]

        warnings = attach_tags_and_notes(self.store, original.ulid, new_tags, new_notes)
        logger.info(f"Edited task {original.ulid}")
        return "\n".join(warnings + [f'✏️  Edited task "{edited.body}" with ulid "{original.ulid}"'])

    def edit_task_by_id(self, id_substring: str) -> str:
        """Look up a task by (part of) its id and open it in the editor."""
        task = self.store.find_task(id_substring)
        if task is None:
            logger.error(f"No task matches {id_substring}")
            raise TaskNotFound(id_substring)
        return self.edit_task(task, EditMode.OPEN_EDITOR_REQUIRE_EDIT)
