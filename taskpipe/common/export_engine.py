"""
Export engine for rendering stored tasks and backing up the database.
"""
import csv
import io
import json
import logging
import subprocess
from datetime import datetime, UTC
from pathlib import Path
from typing import Any, Dict, List, Optional

from .config import Config
from .errors import IOFailure, UnsupportedFormat
from .io_utils import write_text_file
from .storage import TaskStore

logger = logging.getLogger(__name__)

EXPORT_COLUMNS = (
    "ulid",
    "body",
    "state",
    "priority_adjustment",
    "created_utc",
    "modified_utc",
    "due_utc",
    "closed_utc",
    "user",
    "tags",
    "notes",
    "metadata",
)

BACKUP_NAME_FORMAT = "%Y-%m-%dt%H%M"


def _csv_cell(column: str, value: Any) -> Any:
    if value is None:
        return ""
    if column == "tags" and isinstance(value, (list, tuple)):
        return ",".join(str(tag) for tag in value)
    if column in ("notes", "metadata") and not isinstance(value, str):
        return json.dumps(value, ensure_ascii=False, default=str)
    return value


class ExportEngine:
    """Engine for exporting the task view in several formats."""

    def __init__(self, config: Config, store: TaskStore):
        """
        Initialize export engine.

        Args:
            config: Configuration context, provides the database path
            store: Storage Layer the task view is read from
        """
        self.config = config
        self.store = store

    def rows(self) -> List[Dict[str, Any]]:
        """Task view rows restricted to the export columns, in column order."""
        return [{column: row.get(column) for column in EXPORT_COLUMNS} for row in self.store.query_tasks_view()]

    def dump_csv(self) -> str:
        buffer = io.StringIO()
        writer = csv.writer(buffer)
        writer.writerow(EXPORT_COLUMNS)
        for row in self.rows():
            writer.writerow([_csv_cell(column, row[column]) for column in EXPORT_COLUMNS])
        return buffer.getvalue()

    def dump_ndjson(self) -> str:
        return "".join(
            json.dumps(row, separators=(',', ':'), ensure_ascii=False, default=str) + "\n"
            for row in self.rows()
        )

    def dump_json(self) -> str:
        return json.dumps(self.rows(), indent=2, ensure_ascii=False, default=str) + "\n"

    def _run_sqlite(self, *args: str) -> str:
        command = ["sqlite3", str(self.config.db_path), *args]
        try:
            result = subprocess.run(command, capture_output=True, text=True, check=True)
        except subprocess.CalledProcessError as e:
            message = (e.stderr or "").strip() or str(e)
            logger.error(f"sqlite3 failed: {message}")
            raise IOFailure(message) from e
        except OSError as e:
            logger.error(f"Could not run sqlite3: {e}")
            raise IOFailure(str(e)) from e
        return result.stdout

    def dump_sql(self) -> str:
        """SQL dump of the whole database, as produced by ``sqlite3 .dump``."""
        return self._run_sqlite(".dump")

    def backup_database(self, now: Optional[datetime] = None) -> str:
        """
        Copy the database to ``<data_dir>/backups/<date-time>.db``.

        Args:
            now: Time used for the backup file name, defaults to the current time

        Returns:
            Result message
        """
        now = now or datetime.now(UTC)
        backup_path = self.config.backup_dir / f"{now.strftime(BACKUP_NAME_FORMAT)}.db"
        try:
            backup_path.parent.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            logger.error(f"Could not create {backup_path.parent}: {e}")
            raise IOFailure(str(e)) from e

        logger.info(f"Backing up {self.config.db_path} to {backup_path}")
        self._run_sqlite(f".backup '{backup_path}'")
        return f'✅ Backed up database "{self.config.db_name}" to "{backup_path}"'

    def write_export(self, fmt: str, output_path: Path) -> None:
        """
        Render an export and write it to a file.

        Args:
            fmt: One of ``csv``, ``ndjson``, ``json``, ``sql``
            output_path: Destination file, parent directories are created
        """
        renderers = {
            "csv": self.dump_csv,
            "ndjson": self.dump_ndjson,
            "json": self.dump_json,
            "sql": self.dump_sql,
        }
        if fmt not in renderers:
            raise UnsupportedFormat(fmt)
        write_text_file(renderers[fmt](), Path(output_path))
