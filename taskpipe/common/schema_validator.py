"""
Checks normalized task records against the canonical task schema.

The validator is built once per schema file; when a record breaks several
rules only the most relevant error is reported.
"""
import json
import logging
from functools import lru_cache
from pathlib import Path
from typing import Any, Dict, Optional, Tuple

from jsonschema.exceptions import best_match
from jsonschema.protocols import Validator
from jsonschema.validators import validator_for

logger = logging.getLogger(__name__)

CANONICAL_SCHEMA_PATH = Path(__file__).resolve().parent.parent / "schemas" / "canonical_task.schema.json"


@lru_cache(maxsize=None)
def load_schema(schema_path: Path = CANONICAL_SCHEMA_PATH) -> Dict[str, Any]:
    """Read a schema document."""
    try:
        return json.loads(Path(schema_path).read_text(encoding="utf-8"))
    except (json.JSONDecodeError, OSError) as e:
        logger.error(f"Cannot read task schema {schema_path}: {e}")
        raise


@lru_cache(maxsize=None)
def task_validator(schema_path: Path = CANONICAL_SCHEMA_PATH) -> Validator:
    """Validator for the schema at ``schema_path``, using the draft it declares."""
    schema = load_schema(schema_path)
    validator_class = validator_for(schema)
    validator_class.check_schema(schema)
    return validator_class(schema)


def describe_violation(data: Any, validator: Validator) -> Optional[str]:
    """
    Describe the most relevant schema violation in ``data``.

    Returns:
        ``"<path>: <message>"`` with ``<record>`` standing for the top
        level, or None when the data conforms
    """
    error = best_match(validator.iter_errors(data))
    if error is None:
        return None
    location = "/".join(str(part) for part in error.absolute_path) or "<record>"
    return f"{location}: {error.message}"


def validate_canonical_task(
    task_data: Dict[str, Any],
    schema_path: Path = CANONICAL_SCHEMA_PATH,
) -> Tuple[bool, Optional[str]]:
    """
    Validate a task, with optional ``tags`` and ``notes``, against the canonical schema.

    Returns:
        Tuple of (is_valid, error_message)
    """
    problem = describe_violation(task_data, task_validator(schema_path))
    return problem is None, problem
