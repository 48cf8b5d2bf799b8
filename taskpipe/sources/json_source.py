"""
JSON source adapter.
"""
import json
import logging
from typing import Any, Optional

from ..common.errors import MalformedInput
from ..common.models import ImportRecord
from ..common.normalize_engine import NormalizeEngine

logger = logging.getLogger(__name__)


def decode_json(content: bytes) -> Any:
    """Decode JSON bytes; the error message includes the offending bytes."""
    try:
        return json.loads(content)
    except ValueError as e:
        logger.error(f"JSON decode error: {e}")
        raise MalformedInput(f"{e} in task \n{content!r}") from e


def parse_json(content: bytes, normalizer: Optional[NormalizeEngine] = None) -> ImportRecord:
    """Decode a JSON task object and normalize it."""
    normalizer = normalizer or NormalizeEngine()
    return normalizer.normalize(decode_json(content))
