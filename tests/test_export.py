"""
Tests for export renderers and database backup.
"""
import csv
import io
import json
import subprocess

import pytest

from taskpipe.common import export_engine as export_module
from taskpipe.common.errors import IOFailure, UnsupportedFormat
from taskpipe.common.export_engine import EXPORT_COLUMNS, ExportEngine


@pytest.fixture
def engine(config, store, stored_record):
    return ExportEngine(config, store)


@pytest.fixture
def sqlite_calls(monkeypatch):
    """Replace subprocess.run in the export module, recording the commands."""
    calls = []

    def fake_run(command, **kwargs):
        calls.append(command)
        return subprocess.CompletedProcess(command, 0, stdout="BEGIN TRANSACTION;\nCOMMIT;\n", stderr="")

    monkeypatch.setattr(export_module.subprocess, "run", fake_run)
    return calls


class TestRenderers:
    """Test the textual export formats."""

    def test_csv(self, engine, stored_record):
        rows = list(csv.reader(io.StringIO(engine.dump_csv())))
        assert rows[0] == list(EXPORT_COLUMNS)
        assert len(rows) == 2

        row = dict(zip(rows[0], rows[1]))
        assert row["ulid"] == stored_record.task.ulid
        assert row["body"] == "Write report"
        assert row["tags"] == "work"
        assert json.loads(row["notes"]) == [note.to_external() for note in stored_record.notes]
        assert row["metadata"] == ""
        assert row["due_utc"] == ""

    def test_ndjson(self, engine, stored_record):
        lines = engine.dump_ndjson().splitlines()
        assert len(lines) == 1
        row = json.loads(lines[0])
        assert list(row) == list(EXPORT_COLUMNS)
        assert row["state"] == "Open"
        assert row["tags"] == ["work"]

    def test_json(self, engine):
        rows = json.loads(engine.dump_json())
        assert isinstance(rows, list)
        assert rows[0]["body"] == "Write report"

    def test_empty_store(self, config, store):
        engine = ExportEngine(config, store)
        assert engine.dump_csv().splitlines() == [",".join(EXPORT_COLUMNS)]
        assert engine.dump_ndjson() == ""
        assert json.loads(engine.dump_json()) == []

    def test_write_export(self, engine, tmp_path):
        output = tmp_path / "out" / "tasks.ndjson"
        engine.write_export("ndjson", output)
        assert output.read_text(encoding="utf-8") == engine.dump_ndjson()

    def test_write_export_unknown_format(self, engine, tmp_path):
        with pytest.raises(UnsupportedFormat):
            engine.write_export("xml", tmp_path / "tasks.xml")


class TestSqlite:
    """Test the sqlite3 backed operations."""

    def test_dump_sql(self, engine, config, sqlite_calls):
        assert engine.dump_sql().startswith("BEGIN TRANSACTION;")
        assert sqlite_calls == [["sqlite3", str(config.db_path), ".dump"]]

    def test_backup_path(self, engine, config, sqlite_calls, fixed_now):
        message = engine.backup_database(now=fixed_now)

        expected = config.data_dir / "backups" / "2024-06-01t1230.db"
        assert expected.parent.is_dir()
        assert sqlite_calls == [["sqlite3", str(config.db_path), f".backup '{expected}'"]]
        assert message == f'✅ Backed up database "main.db" to "{expected}"'

    def test_missing_sqlite(self, engine, monkeypatch):
        def missing(command, **kwargs):
            raise FileNotFoundError(2, "No such file or directory", "sqlite3")

        monkeypatch.setattr(export_module.subprocess, "run", missing)
        with pytest.raises(IOFailure, match="No such file"):
            engine.dump_sql()

    def test_sqlite_error(self, engine, monkeypatch):
        def failing(command, **kwargs):
            raise subprocess.CalledProcessError(1, command, output="", stderr="Error: unable to open database\n")

        monkeypatch.setattr(export_module.subprocess, "run", failing)
        with pytest.raises(IOFailure, match="unable to open database"):
            engine.backup_database()
