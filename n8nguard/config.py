# n8nguard/config.py
from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Mapping, Optional

from n8nguard.utils.logger import parse_level

DEFAULT_STORE_DIR = "workflows"


@dataclass(frozen=True)
class Settings:
    """
    Runtime settings, read from the environment:
      N8NGUARD_CATALOG    node catalog file (.json/.yaml); bundled catalog if unset
      N8NGUARD_STORE_DIR  root directory of the file workflow store
      N8NGUARD_LOG_DIR    enables the rotating file log when set
      LOG_LEVEL           DEBUG | INFO | WARNING | ERROR
    """
    catalog_path: Optional[Path] = None
    store_dir: Path = Path(DEFAULT_STORE_DIR)
    log_dir: Optional[Path] = None
    log_level: int = parse_level("INFO")

    @classmethod
    def from_env(cls, env: Optional[Mapping[str, str]] = None) -> "Settings":
        env = os.environ if env is None else env
        catalog = env.get("N8NGUARD_CATALOG") or None
        log_dir = env.get("N8NGUARD_LOG_DIR") or None
        return cls(
            catalog_path=Path(catalog) if catalog else None,
            store_dir=Path(env.get("N8NGUARD_STORE_DIR") or DEFAULT_STORE_DIR),
            log_dir=Path(log_dir) if log_dir else None,
            log_level=parse_level(env.get("LOG_LEVEL"), default=parse_level("INFO")),
        )
