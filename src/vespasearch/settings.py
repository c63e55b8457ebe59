"""
Centralized application settings.

The configuration is shared across CLI, API, and the background ingestion
tasks.
"""
from __future__ import annotations

import os
from pathlib import Path
from typing import Any, Dict, List, Optional

try:  # Python 3.11+
    import tomllib  # type: ignore[attr-defined]
except ModuleNotFoundError:  # pragma: no cover - fallback for older interpreters
    import tomli as tomllib  # type: ignore[attr-defined]

from pydantic_settings import BaseSettings, SettingsConfigDict


class AppSettings(BaseSettings):
    """Project-wide settings loaded from env or .env files."""

    model_config = SettingsConfigDict(
        env_prefix="VESPASEARCH_",
        env_nested_delimiter="__",
        extra="allow",
    )

    data_dir: Path = Path("./data")

    vespa_endpoint: str = "http://localhost:8080"
    vespa_document_endpoint: Optional[str] = None
    vespa_namespace: str = "codesearch"
    vespa_document_type: str = "codesearch"
    vespa_hits: int = 10
    vespa_target_hits: int = 10
    vespa_semantic_profile: str = "semantic"
    vespa_hybrid_profile: str = "hybrid"
    vespa_timeout: float = 30.0
    vespa_ca_cert: Optional[str] = None
    vespa_client_cert: Optional[str] = None
    vespa_client_key: Optional[str] = None

    embedding_provider: str = "huggingface"
    embedding_api_base: str = "https://router.huggingface.co/hf-inference/models"
    embedding_model: str = "sentence-transformers/all-mpnet-base-v2"
    embedding_api_key: Optional[str] = None
    embedding_dimension: int = 768
    embedding_max_chars: int = 8000
    embedding_timeout: float = 60.0

    summary_api_base: Optional[str] = None
    summary_model: str = "facebook/bart-large-cnn"
    summary_api_key: Optional[str] = None
    summary_max_chars: int = 12000
    summary_fallback_chars: int = 2000
    summary_max_length: int = 400
    summary_min_length: int = 120
    summary_timeout: float = 120.0

    retry_max_retries: int = 4
    retry_base_delay: float = 1.0
    retry_max_delay: float = 30.0

    mirror_host: str = "github.com"
    mirror_org: Optional[str] = None
    mirror_token: Optional[str] = None

    max_file_bytes: int = 200_000

    events_capacity: int = 64
    events_keepalive_seconds: float = 15.0

    api_key: Optional[str] = None
    api_host: str = "0.0.0.0"
    api_port: int = 3001
    cors_origins: List[str] = ["*"]
    log_json: bool = False

    @property
    def registry_path(self) -> Path:
        return self.data_dir / "data" / "registry.json"

    @property
    def repos_path(self) -> Path:
        return self.data_dir / "repos"

    @property
    def document_endpoint(self) -> str:
        return self.vespa_document_endpoint or self.vespa_endpoint

    @property
    def summary_base(self) -> str:
        return self.summary_api_base or self.embedding_api_base

    @property
    def mirror_enabled(self) -> bool:
        return bool(self.mirror_org)


_CONFIG_ENV_VAR = "VESPASEARCH_CONFIG_PATH"
_DEFAULT_CONFIG_FILE = Path("vespasearch_settings.toml")

# (toml section, key) -> AppSettings field
_SECTION_FIELDS: Dict[str, Dict[str, str]] = {
    "workspace": {"data_dir": "data_dir"},
    "vespa": {
        "endpoint": "vespa_endpoint",
        "document_endpoint": "vespa_document_endpoint",
        "namespace": "vespa_namespace",
        "document_type": "vespa_document_type",
        "hits": "vespa_hits",
        "target_hits": "vespa_target_hits",
        "semantic_profile": "vespa_semantic_profile",
        "hybrid_profile": "vespa_hybrid_profile",
        "timeout": "vespa_timeout",
        "ca_cert": "vespa_ca_cert",
        "client_cert": "vespa_client_cert",
        "client_key": "vespa_client_key",
    },
    "embedding": {
        "provider": "embedding_provider",
        "api_base": "embedding_api_base",
        "model": "embedding_model",
        "api_key": "embedding_api_key",
        "dimension": "embedding_dimension",
        "max_chars": "embedding_max_chars",
        "timeout": "embedding_timeout",
    },
    "summary": {
        "api_base": "summary_api_base",
        "model": "summary_model",
        "api_key": "summary_api_key",
        "max_chars": "summary_max_chars",
        "fallback_chars": "summary_fallback_chars",
        "max_length": "summary_max_length",
        "min_length": "summary_min_length",
        "timeout": "summary_timeout",
    },
    "retry": {
        "max_retries": "retry_max_retries",
        "base_delay": "retry_base_delay",
        "max_delay": "retry_max_delay",
    },
    "mirror": {
        "host": "mirror_host",
        "org": "mirror_org",
        "token": "mirror_token",
    },
    "ingestion": {"max_file_bytes": "max_file_bytes"},
    "events": {
        "capacity": "events_capacity",
        "keepalive_seconds": "events_keepalive_seconds",
    },
    "api": {
        "api_key": "api_key",
        "host": "api_host",
        "port": "api_port",
        "cors_origins": "cors_origins",
        "log_json": "log_json",
    },
}


def _load_toml_config() -> Dict[str, Any]:
    """Load configuration from the primary TOML file on disk."""
    candidates: List[Path] = []
    config_override = os.getenv(_CONFIG_ENV_VAR)
    if config_override:
        candidates.append(Path(config_override))
    candidates.append(_DEFAULT_CONFIG_FILE)

    for candidate in candidates:
        if candidate.is_file():
            with candidate.open("rb") as handle:
                return tomllib.load(handle)
    return {}


def _blank_to_none(value: Any) -> Any:
    if isinstance(value, str) and value.strip() == "":
        return None
    return value


def _flatten_config(raw: Dict[str, Any]) -> Dict[str, Any]:
    """Translate grouped TOML sections into AppSettings keyword arguments."""
    data: Dict[str, Any] = {}
    for section, fields in _SECTION_FIELDS.items():
        values = raw.get(section, {})
        for key, field_name in fields.items():
            if key in values:
                data[field_name] = _blank_to_none(values[key])
    return {key: value for key, value in data.items() if value is not None}


def load_settings() -> AppSettings:
    raw = _load_toml_config()
    flattened = _flatten_config(raw)
    return AppSettings(**flattened)


settings = load_settings()
