"""Application settings for the ordering service."""

from __future__ import annotations

import json
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from ordering.services.logging import log_event


@dataclass
class ServiceConfig:
    """Settings read once at start-up."""

    secret_key: str
    database_url: str
    log_level: str
    root: Path

    @property
    def data_dir(self) -> Path:
        return self.root / "data"

    @property
    def settings_file(self) -> Path:
        return self.data_dir / "settings.json"

    @classmethod
    def load(cls, root: Optional[Path] = None) -> "ServiceConfig":
        """Build settings from data/settings.json, falling back to the environment."""

        root = root or Path(__file__).resolve().parent
        config = cls(
            secret_key=os.environ.get("ORDERING_SECRET_KEY", "ordering-dev-secret"),
            database_url=os.environ.get("DATABASE_URL", "sqlite:///data/ordering.db"),
            log_level=os.environ.get("LOG_LEVEL", "INFO"),
            root=root,
        )

        if config.settings_file.exists():
            try:
                data = json.loads(config.settings_file.read_text(encoding="utf-8"))
            except (OSError, ValueError) as exc:
                log_event("warning", "config.settings_unreadable", path=str(config.settings_file), error=str(exc))
                data = {}
            if isinstance(data, dict):
                config.secret_key = data.get("SECRET_KEY", config.secret_key)
                config.database_url = data.get("DATABASE_URL", config.database_url)
                config.log_level = data.get("LOG_LEVEL", config.log_level)

        return config
