"""Runtime settings for the invoice search service."""

import logging
import os
from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError as PydanticValidationError, field_validator

from .core.exceptions import ConfigurationError
from .models.query import DEFAULT_LIMIT, MAX_LIMIT

logger = logging.getLogger(__name__)


def env_str(name: str, default: Optional[str] = None) -> Optional[str]:
    value = os.getenv(name)
    if value is None or not value.strip():
        return default
    return value.strip()


def env_int(name: str, default: int) -> int:
    value = env_str(name)
    if value is None:
        return default
    try:
        return int(value)
    except ValueError:
        logger.warning(f"Invalid integer for {name}: {value!r}, using {default}")
        return default


def env_float(name: str, default: float) -> float:
    value = env_str(name)
    if value is None:
        return default
    try:
        return float(value)
    except ValueError:
        logger.warning(f"Invalid number for {name}: {value!r}, using {default}")
        return default


def env_bool(name: str, default: bool) -> bool:
    value = env_str(name)
    if value is None:
        return default
    lowered = value.lower()
    if lowered in ("1", "true", "yes", "on"):
        return True
    if lowered in ("0", "false", "no", "off"):
        return False
    logger.warning(f"Invalid boolean for {name}: {value!r}, using {default}")
    return default


class SearchSettings(BaseModel):
    """Service configuration, loaded from the environment with ``from_env``."""

    model_config = ConfigDict(frozen=True)

    database_url: Optional[str] = Field(None, description="PostgreSQL DSN; in-memory store when unset")
    gemini_api_key: Optional[str] = Field(None, description="Generative Language API key")
    embedding_model: str = Field("text-embedding-004", min_length=1, description="Gemini embedding model")
    embedding_backend: Literal["hashing", "gemini"] = Field("hashing", description="Embedding provider")
    embedding_dimension: int = Field(768, ge=8, le=8192, description="Vector length for hashing embeddings")
    embedding_timeout_seconds: float = Field(15.0, gt=0, le=300, description="Timeout for one embedding call")
    vocabulary_ttl_seconds: float = Field(300, ge=0, description="Vocabulary cache lifetime")
    default_limit: int = Field(DEFAULT_LIMIT, ge=1, le=MAX_LIMIT, description="Default result limit")
    enable_fuzzy_correction: bool = Field(True, description="Run fuzzy correction before preprocessing")
    log_level: str = Field("INFO", description="Logging level")

    @field_validator('log_level')
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Normalise and check the logging level name."""
        level = v.upper()
        if level not in ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"):
            raise ValueError(f"Unknown log level: {v}")
        return level

    @field_validator('embedding_backend', mode='before')
    @classmethod
    def validate_backend(cls, v: str) -> str:
        return v.lower() if isinstance(v, str) else v

    @classmethod
    def from_env(cls) -> 'SearchSettings':
        """
        Build settings from environment variables.

        Raises:
            ConfigurationError: If a value is out of range or unknown
        """
        try:
            return cls(
                database_url=env_str("DATABASE_URL"),
                gemini_api_key=env_str("GEMINI_API_KEY"),
                embedding_model=env_str("EMBEDDING_MODEL", "text-embedding-004"),
                embedding_backend=env_str("EMBEDDING_BACKEND", "hashing"),
                embedding_dimension=env_int("EMBEDDING_DIMENSION", 768),
                embedding_timeout_seconds=env_float("EMBEDDING_TIMEOUT_SECONDS", 15.0),
                vocabulary_ttl_seconds=env_float("VOCABULARY_TTL_SECONDS", 300),
                default_limit=env_int("SEARCH_DEFAULT_LIMIT", DEFAULT_LIMIT),
                enable_fuzzy_correction=env_bool("ENABLE_FUZZY_CORRECTION", True),
                log_level=env_str("LOG_LEVEL", "INFO")
            )
        except PydanticValidationError as e:
            raise ConfigurationError(f"Invalid configuration: {e}") from e
