"""
Source adapters, selected by file extension.
"""
from typing import Callable, Dict, Optional

from ..common.errors import UnsupportedFormat
from ..common.models import ImportRecord
from ..common.normalize_engine import NormalizeEngine
from .email_source import parse_email
from .json_source import parse_json

Adapter = Callable[[bytes, Optional[NormalizeEngine]], ImportRecord]

ADAPTERS: Dict[str, Adapter] = {
    ".json": parse_json,
    ".eml": parse_email,
}

IMPORTABLE_EXTENSIONS = tuple(ADAPTERS)


def get_adapter(extension: str) -> Adapter:
    try:
        return ADAPTERS[extension]
    except KeyError:
        raise UnsupportedFormat(extension) from None


def parse_source(content: bytes, extension: str, normalizer: Optional[NormalizeEngine] = None) -> ImportRecord:
    """Decode ``content`` with the adapter registered for ``extension``."""
    return get_adapter(extension)(content, normalizer)
