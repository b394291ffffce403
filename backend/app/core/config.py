from __future__ import annotations

import json
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Literal, Optional

from pydantic import BaseModel, Field, ValidationError, constr


class LocalAIConfig(BaseModel):
    base_url: str = Field(..., description="Base URL for the LocalAI service")
    request_timeout_seconds: float = Field(
        120,
        ge=1,
        description="Timeout in seconds for LocalAI HTTP requests",
    )
    health_timeout_seconds: float = Field(
        5,
        gt=0,
        description="Timeout in seconds for the LocalAI readiness probe",
    )


class ModelsConfig(BaseModel):
    default_model: constr(strip_whitespace=True, min_length=1)
    localai: LocalAIConfig
    default_temperature: float = 0.7
    default_max_tokens: int = Field(512, ge=1)


class StoreConfig(BaseModel):
    backend: Literal["pgvector", "sqlite"] = "sqlite"
    database_url: str = Field(..., description="SQLAlchemy URL of the document database")
    pool_size: int = Field(20, ge=1)
    pool_timeout_seconds: float = Field(2, gt=0)


class RagConfig(BaseModel):
    embedding_model: str = "all-MiniLM-L6-v2"
    default_limit: int = Field(5, ge=1, le=20)
    default_similarity_threshold: float = Field(0.7, ge=0, le=1)
    store: StoreConfig


class ServerConfig(BaseModel):
    environment: str = "development"
    log_level: str = "info"
    cors_origin: str = "*"
    version: str = "1.0.0"
    host: str = "0.0.0.0"
    port: int = Field(3000, ge=1, le=65535)

    @property
    def is_production(self) -> bool:
        return self.environment.lower() == "production"


class SecretsConfig(BaseModel):
    jwt_secret: Optional[str] = None


class AppConfig(BaseModel):
    models: ModelsConfig
    rag: RagConfig
    server: ServerConfig
    secrets: SecretsConfig


@dataclass
class ConfigSet:
    models: ModelsConfig
    rag: RagConfig
    server: ServerConfig
    secrets: SecretsConfig

    @property
    def app_config(self) -> AppConfig:
        return AppConfig(
            models=self.models,
            rag=self.rag,
            server=self.server,
            secrets=self.secrets,
        )


class ConfigLoaderError(RuntimeError):
    pass


def _read_json(path: Path, *, required: bool = True) -> dict:
    if not path.exists():
        if not required:
            return {}
        raise ConfigLoaderError(f"Configuration file not found: {path}")
    try:
        return json.loads(path.read_text("utf-8"))
    except json.JSONDecodeError as exc:
        raise ConfigLoaderError(f"Invalid JSON in {path}: {exc}") from exc


def _apply_env_overrides(config: ConfigSet) -> None:
    """Apply environment variable overrides on top of the file configuration."""
    base_url = os.getenv("LOCALAI_URL")
    if base_url:
        config.models.localai.base_url = base_url

    model = os.getenv("LOCALAI_MODEL")
    if model:
        config.models.default_model = model

    embedding_model = os.getenv("EMBEDDING_MODEL")
    if embedding_model:
        config.rag.embedding_model = embedding_model

    database_url = os.getenv("DATABASE_URL")
    if database_url:
        config.rag.store.database_url = database_url

    backend = os.getenv("RAG_STORE_BACKEND")
    if backend:
        if backend not in ("pgvector", "sqlite"):
            raise ConfigLoaderError(f"Unsupported RAG_STORE_BACKEND: {backend}")
        config.rag.store.backend = backend  # type: ignore[assignment]

    jwt_secret = os.getenv("JWT_SECRET")
    if jwt_secret:
        config.secrets.jwt_secret = jwt_secret

    environment = os.getenv("APP_ENV")
    if environment:
        config.server.environment = environment

    log_level = os.getenv("LOG_LEVEL")
    if log_level:
        config.server.log_level = log_level

    cors_origin = os.getenv("CORS_ORIGIN")
    if cors_origin:
        config.server.cors_origin = cors_origin

    port = os.getenv("PORT")
    if port:
        try:
            config.server.port = int(port)
        except ValueError as exc:
            raise ConfigLoaderError(f"Invalid PORT: {port}") from exc


def load_config_set(config_dir: Path) -> ConfigSet:
    """Load all configuration files from the provided directory."""
    try:
        config = ConfigSet(
            models=ModelsConfig(**_read_json(config_dir / "models.json")),
            rag=RagConfig(**_read_json(config_dir / "rag.json")),
            server=ServerConfig(**_read_json(config_dir / "server.json", required=False)),
            secrets=SecretsConfig(**_read_json(config_dir / "secrets.json", required=False)),
        )
    except ValidationError as exc:
        raise ConfigLoaderError(str(exc)) from exc

    _apply_env_overrides(config)
    return config
