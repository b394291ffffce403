from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Optional

from ..core.config import AppConfig, ConfigSet, load_config_set

logger = logging.getLogger(__name__)


class ConfigService:
    """Holds the configuration loaded from JSON files plus environment overrides."""

    def __init__(self, config_dir: Path) -> None:
        self._config_dir = config_dir
        self._config: Optional[ConfigSet] = None

    @property
    def config_dir(self) -> Path:
        return self._config_dir

    def load(self) -> ConfigSet:
        self._config = load_config_set(self._config_dir)
        logger.info(
            "Configuration loaded from %s (environment=%s, store=%s)",
            self._config_dir,
            self._config.server.environment,
            self._config.rag.store.backend,
        )
        return self._config

    def get(self) -> ConfigSet:
        if self._config is None:
            return self.load()
        return self._config

    def get_app_config(self) -> AppConfig:
        return self.get().app_config


def create_config_service() -> ConfigService:
    override = os.getenv("APP_CONFIG_DIR")
    if override:
        return ConfigService(config_dir=Path(override))
    return ConfigService(config_dir=Path(__file__).resolve().parents[3] / "config")
