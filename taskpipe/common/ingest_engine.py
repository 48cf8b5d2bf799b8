"""
Core ingest engine for importing task files into the Storage Layer.
"""
import logging
from pathlib import Path
from typing import List, Optional, Tuple

from .config import Config, effective_user
from .edit_engine import EditEngine, EditMode
from .io_utils import list_importable_files, read_source_file, remove_source_file
from .models import ImportRecord, Note
from .normalize_engine import NormalizeEngine
from .storage import TaskStore, attach_tags_and_notes
from .ulid_utils import combine, has_placeholder_time
from ..sources import IMPORTABLE_EXTENSIONS, parse_source

logger = logging.getLogger(__name__)


class IngestEngine:
    """Engine for importing and ingesting JSON and email task files."""

    def __init__(
        self,
        config: Config,
        store: TaskStore,
        edit_engine: Optional[EditEngine] = None,
        normalize_engine: Optional[NormalizeEngine] = None,
    ):
        """
        Initialize ingest engine.

        Args:
            config: Configuration context
            store: Storage Layer imported tasks are written to
            edit_engine: Engine used by ``ingest_file`` to review imported tasks
            normalize_engine: Engine used to normalize decoded records
        """
        self.config = config
        self.store = store
        self.normalize_engine = normalize_engine or NormalizeEngine()
        self.edit_engine = edit_engine or EditEngine(store, normalize_engine=self.normalize_engine)

    def read_record(self, file_path: Path) -> ImportRecord:
        """Read a source file and decode it with the adapter for its extension."""
        file_path = Path(file_path)
        content = read_source_file(file_path)
        return parse_source(content, file_path.suffix, self.normalize_engine)

    def insert_import_record(self, record: ImportRecord) -> str:
        """
        Persist an import record: the task, then its tags, then its notes.

        A failing task insert propagates. Failing tag or note inserts are
        reported as warning lines ahead of the success message.

        Args:
            record: Normalized import record; its notes are updated in place
                with their final ids

        Returns:
            Result message
        """
        task = record.task
        if not task.user:
            task.user = effective_user()
        record.notes = [
            Note(ulid=combine(note.ulid, task.created_utc), body=note.body)
            if has_placeholder_time(note.ulid) else note
            for note in record.notes
        ]

        self.store.insert_task(task)
        warnings = attach_tags_and_notes(self.store, task.ulid, record.tags, record.notes)
        logger.info(f"Imported task {task.ulid}")
        return "\n".join(warnings + [f'📥 Imported task "{task.body}" with ulid "{task.ulid}"'])

    def _import(self, file_path: Path) -> Tuple[ImportRecord, str]:
        logger.info(f"Starting import of {file_path}")
        record = self.read_record(file_path)
        return record, self.insert_import_record(record)

    def import_file(self, file_path: Path) -> str:
        """
        Import a single JSON or email file.

        Args:
            file_path: Path to the source file

        Returns:
            Result message
        """
        _, message = self._import(Path(file_path))
        return message

    def ingest_file(self, file_path: Path) -> str:
        """
        Import a file, open the imported task in the editor, then delete the file.

        The file is only deleted when both the import and the edit succeeded.
        """
        file_path = Path(file_path)
        record, import_message = self._import(file_path)
        edit_message = self.edit_engine.edit_task(
            record.task,
            EditMode.OPEN_EDITOR,
            tags=record.tags,
            notes=record.notes,
        )
        remove_source_file(file_path)
        messages = [import_message, edit_message, f'❌ Deleted file "{file_path}"']
        return "\n".join(message for message in messages if message)

    def _run_directory(self, source_dir: Path, action) -> str:
        files = list_importable_files(source_dir, IMPORTABLE_EXTENSIONS)
        if not files:
            logger.warning(f"No importable files found in {source_dir}")
            return ""

        logger.info(f"Found {len(files)} files in {source_dir}")
        messages: List[str] = []
        for file_path in files:
            messages.append(action(file_path))
        logger.info(f"Completed {len(messages)} files from {source_dir}")
        return "\n".join(messages)

    def import_directory(self, source_dir: Path) -> str:
        """
        Import every ``.json`` and ``.eml`` file of a directory, in name order.

        The first failing file aborts the remaining files.
        """
        return self._run_directory(Path(source_dir), self.import_file)

    def ingest_directory(self, source_dir: Path) -> str:
        """Ingest every ``.json`` and ``.eml`` file of a directory, in name order."""
        return self._run_directory(Path(source_dir), self.ingest_file)
