"""
Configuration context threaded into every pipeline entry point.
"""
import getpass
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Union

import yaml

logger = logging.getLogger(__name__)

DEFAULT_DATA_DIR = Path.home() / "tasklite"
DEFAULT_DB_NAME = "main.db"
BACKUP_DIR_NAME = "backups"


@dataclass(frozen=True)
class Config:
    data_dir: Path = DEFAULT_DATA_DIR
    db_name: str = DEFAULT_DB_NAME

    @property
    def db_path(self) -> Path:
        return Path(self.data_dir) / self.db_name

    @property
    def backup_dir(self) -> Path:
        return Path(self.data_dir) / BACKUP_DIR_NAME

    @classmethod
    def from_dict(cls, values: Dict[str, Any]) -> "Config":
        data_dir = values.get("data_dir")
        return cls(
            data_dir=Path(data_dir).expanduser() if data_dir else DEFAULT_DATA_DIR,
            db_name=values.get("db_name") or DEFAULT_DB_NAME,
        )


def load_config(config_path: Union[str, Path]) -> Config:
    """Load configuration from a YAML file. Missing keys fall back to defaults."""
    with open(config_path, 'r', encoding='utf-8') as f:
        values = yaml.safe_load(f) or {}
    if not isinstance(values, dict):
        raise ValueError(f"Config file {config_path} must contain a mapping")
    config = Config.from_dict(values)
    logger.debug(f"Loaded config from {config_path}: {config}")
    return config


def effective_user() -> str:
    """Name of the user running the process, used when a task has no owner."""
    return getpass.getuser()
