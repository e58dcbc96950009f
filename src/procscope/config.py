"""Configuration and scratch storage, loaded from environment variables."""

import os
import tempfile
from pathlib import Path
from typing import Literal

from pydantic import field_validator
from pydantic_settings import BaseSettings

from procscope.logs import get_logger

logger = get_logger(__name__)


class ProcscopeSettings(BaseSettings):
    temp_dir: Path = Path(tempfile.gettempdir())
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = "INFO"
    dump_flags: int = 0  # passed through to the OS dump facility
    kill_descendants: bool = True

    model_config = {"env_prefix": "PROCSCOPE_"}

    @field_validator("log_level", mode="before")
    @classmethod
    def normalize_log_level(cls, value: object) -> object:
        return value.upper() if isinstance(value, str) else value


class TempStorage:
    """Writable scratch area supplied by the host environment."""

    def __init__(self, root: Path) -> None:
        self._root = Path(root)

    @property
    def root(self) -> Path:
        return self._root

    def path_for(self, name: str) -> Path:
        """Return a path for ``name`` inside the scratch area, creating it if needed."""
        self._root.mkdir(parents=True, exist_ok=True)
        return self._root / name

    @staticmethod
    def delete_file_safe(path: Path) -> None:
        """Delete ``path`` if present; an absent or locked file is ignored."""
        try:
            os.remove(path)
        except FileNotFoundError:
            pass
        except OSError as exc:
            logger.warning("temp.delete_failed", path=str(path), error=str(exc))
