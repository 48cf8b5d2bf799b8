"""
IO utilities for reading source files and writing export files.
"""
import logging
import os
from pathlib import Path
from typing import Iterable, List

from .errors import IOFailure, IsADirectoryFailure

logger = logging.getLogger(__name__)


def read_source_file(file_path: Path) -> bytes:
    """
    Read a whole source file.

    Raises:
        IsADirectoryFailure: If the path is a directory
        IOFailure: On any other OS error, carrying its message verbatim
    """
    file_path = Path(file_path)
    try:
        if file_path.is_dir():
            raise IsADirectoryError(21, "Is a directory", str(file_path))
        with open(file_path, 'rb') as f:
            return f.read()
    except IsADirectoryError:
        logger.error(f"Expected a file but got directory: {file_path}")
        raise IsADirectoryFailure(file_path) from None
    except OSError as e:
        logger.error(f"Error reading file {file_path}: {e}")
        raise IOFailure(str(e)) from e


def list_importable_files(dir_path: Path, extensions: Iterable[str]) -> List[Path]:
    """Entries of a directory whose extension is one of ``extensions``, sorted by name."""
    dir_path = Path(dir_path)
    suffixes = set(extensions)
    try:
        entries = sorted(os.listdir(dir_path))
    except OSError as e:
        logger.error(f"Error listing directory {dir_path}: {e}")
        raise IOFailure(str(e)) from e
    return [dir_path / name for name in entries if Path(name).suffix in suffixes]


def remove_source_file(file_path: Path) -> None:
    try:
        Path(file_path).unlink()
        logger.info(f"Deleted {file_path}")
    except OSError as e:
        logger.error(f"Error deleting {file_path}: {e}")
        raise IOFailure(str(e)) from e

def write_text_file(text: str, output_path: Path) -> None:
    """Write a rendered export to a file, creating parent directories."""
    try:
        output_path.parent.mkdir(parents=True, exist_ok=True)
        with open(output_path, 'w', encoding='utf-8', newline='') as f:
            f.write(text)
        logger.info(f"Wrote {len(text)} characters to {output_path}")
    except OSError as e:
        logger.error(f"Error writing to {output_path}: {e}")
        raise IOFailure(str(e)) from e
