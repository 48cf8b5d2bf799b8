"""
Hand text to the user's editor and read it back.
"""
import logging
import os
import shlex
import subprocess
import tempfile
from pathlib import Path
from typing import List, Optional

from .errors import IOFailure

logger = logging.getLogger(__name__)


def editor_command() -> List[str]:
    return shlex.split(os.environ.get("VISUAL") or os.environ.get("EDITOR") or "vi")


def run_user_editor(text: str) -> Optional[str]:
    """
    Open ``text`` in the user's editor.

    Args:
        text: Initial content of the temporary ``.yaml`` file

    Returns:
        The saved content, or None when the editor exited with an error
    """
    with tempfile.NamedTemporaryFile('w', suffix='.yaml', delete=False, encoding='utf-8') as f:
        f.write(text)
        temp_path = Path(f.name)

    try:
        command = editor_command() + [str(temp_path)]
        logger.debug(f"Running editor: {command}")
        result = subprocess.run(command)
        if result.returncode != 0:
            logger.warning(f"Editor exited with status {result.returncode}")
            return None
        return temp_path.read_text(encoding='utf-8')
    except OSError as e:
        logger.error(f"Could not run editor: {e}")
        raise IOFailure(str(e)) from e
    finally:
        temp_path.unlink(missing_ok=True)
