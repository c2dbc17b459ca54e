"""Application settings for CodeLens.

Settings are pydantic models populated from an optional YAML file
(``config/codelens.yaml`` or the path in ``CODELENS_CONFIG``) and then
overridden by environment variables. ``.env`` files are honoured.
"""

import logging
import os
from functools import lru_cache
from pathlib import Path
from typing import List, Optional

import yaml
from dotenv import load_dotenv
from pydantic import BaseModel, Field

load_dotenv()

logger = logging.getLogger(__name__)

_DEFAULT_CONFIG_PATH = Path(__file__).parent.parent / "config" / "codelens.yaml"


class DatabaseSettings(BaseModel):
    url: str = "sqlite:///codelens.db"
    echo: bool = False


class LLMSettings(BaseModel):
    provider: str = "openai"                    # openai | ollama
    model: str = "gpt-4o-mini"
    temperature: float = 0.3
    max_tokens: int = 2000
    embed_model: str = "text-embedding-3-small"
    ollama_host: str = "localhost"
    ollama_port: int = 11434
    request_timeout: float = 120.0            # Ollama HTTP client timeout
    api_key: Optional[str] = None


class AnalysisSettings(BaseModel):
    """Tunables for the explanation pipeline."""

    batch_size: int = Field(default=5, ge=1)
    max_symbols: int = Field(default=50, ge=1)
    search_top_k: int = Field(default=10, ge=1)
    dependency_depth: int = Field(default=1, ge=0)
    # Per-file character budget for cohesive synthesis:
    # max(min_chars, total_chars // file_count), capped at max_chars
    synthesis_min_chars: int = 2000
    synthesis_max_chars: int = 5000
    synthesis_total_chars: int = 20000
    summary_max_chars: int = 2000
    related_files_for_symbol: int = 5
    languages: List[str] = Field(
        default_factory=lambda: ["typescript", "javascript", "python", "go"]
    )


class IndexSettings(BaseModel):
    cache_ttl: int = 300


class CodeLensSettings(BaseModel):
    database: DatabaseSettings = Field(default_factory=DatabaseSettings)
    llm: LLMSettings = Field(default_factory=LLMSettings)
    analysis: AnalysisSettings = Field(default_factory=AnalysisSettings)
    index: IndexSettings = Field(default_factory=IndexSettings)
    log_level: str = "INFO"


# Environment variable -> (section, key)
_ENV_OVERRIDES = {
    "DATABASE_URL": ("database", "url"),
    "LLM_PROVIDER": ("llm", "provider"),
    "LLM_MODEL": ("llm", "model"),
    "EMBED_MODEL": ("llm", "embed_model"),
    "OPENAI_API_KEY": ("llm", "api_key"),
    "OLLAMA_HOST": ("llm", "ollama_host"),
    "CODELENS_MAX_SYMBOLS": ("analysis", "max_symbols"),
    "CODELENS_BATCH_SIZE": ("analysis", "batch_size"),
    "CODELENS_CACHE_TTL": ("index", "cache_ttl"),
}


def _load_yaml(path: Path) -> dict:
    if not path.exists():
        logger.debug(f"No config file at {path}, using defaults")
        return {}
    with open(path, "r") as f:
        data = yaml.safe_load(f) or {}
    if not isinstance(data, dict):
        raise ValueError(f"Config file {path} must contain a mapping")
    logger.debug(f"Loaded settings from {path}")
    return data


def load_settings(config_path: Optional[str] = None) -> CodeLensSettings:
    """Build settings from YAML (if present) plus environment overrides."""
    path = Path(config_path or os.getenv("CODELENS_CONFIG") or _DEFAULT_CONFIG_PATH)
    raw = _load_yaml(path)

    for env_name, (section, key) in _ENV_OVERRIDES.items():
        value = os.getenv(env_name)
        if value is not None:
            raw.setdefault(section, {})[key] = value

    if os.getenv("LOG_LEVEL"):
        raw["log_level"] = os.environ["LOG_LEVEL"]

    return CodeLensSettings.model_validate(raw)


@lru_cache(maxsize=1)
def get_settings() -> CodeLensSettings:
    """Process-wide settings singleton."""
    return load_settings()
