"""Configuration management using Pydantic Settings."""

import logging
from dataclasses import dataclass
from enum import Enum
from functools import lru_cache
from pathlib import Path
from typing import Any, Literal

from pydantic import SecretStr, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from bizdesk.core.exceptions import ConfigurationError

logger = logging.getLogger(__name__)


class BackendKind(str, Enum):
    """Persistence backend selected at boot."""

    RELATIONAL = "relational"  # Supabase
    AUTH_DOCUMENT = "auth_document"  # Firebase / Firestore
    LOCAL_ONLY = "local_only"


@dataclass(frozen=True)
class BackendConfig:
    """The backend chosen once at process start.

    ``client`` is the connected SDK handle for the remote kinds and ``None``
    for local-only mode.
    """

    kind: BackendKind
    client: Any = None

    def __post_init__(self) -> None:
        if self.kind != BackendKind.LOCAL_ONLY and self.client is None:
            raise ConfigurationError(
                f"Backend '{self.kind.value}' requires a connected client",
                setting="client",
            )

    @classmethod
    def local_only(cls) -> "BackendConfig":
        return cls(kind=BackendKind.LOCAL_ONLY)

    @classmethod
    def relational(cls, client: Any) -> "BackendConfig":
        return cls(kind=BackendKind.RELATIONAL, client=client)

    @classmethod
    def auth_document(cls, client: Any) -> "BackendConfig":
        return cls(kind=BackendKind.AUTH_DOCUMENT, client=client)

    @property
    def is_remote(self) -> bool:
        return self.kind != BackendKind.LOCAL_ONLY


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore",
    )

    # Supabase (relational backend)
    SUPABASE_URL: str = ""
    SUPABASE_ANON_KEY: SecretStr = SecretStr("")

    # Firebase (auth/document backend, used only when Supabase is absent)
    FIREBASE_PROJECT_ID: str = ""
    FIREBASE_CREDENTIALS_PATH: str = ""

    # Local store
    LOCAL_STORE_DIR: str = ".bizdesk"
    LOCAL_STORE_PREFIX: str = "bizdesk"
    LOCAL_STORE_VERSION: str = "v2"
    LOCAL_STORE_WATCH: bool = True

    # Remote resilience
    CIRCUIT_BREAKER_FAILURE_THRESHOLD: int = 5
    CIRCUIT_BREAKER_RECOVERY_SECONDS: float = 30.0

    # Logging
    LOG_LEVEL: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"
    LOG_FORMAT: Literal["text", "json"] = "text"

    @field_validator("SUPABASE_URL")
    @classmethod
    def validate_supabase_url(cls, v: str) -> str:
        """Validate that SUPABASE_URL is a valid URL."""
        if v and not v.startswith(("http://", "https://")):
            raise ValueError("SUPABASE_URL must start with http:// or https://")
        return v.rstrip("/") if v else v

    @property
    def supabase_configured(self) -> bool:
        """Check if the relational backend is configured."""
        return bool(self.SUPABASE_URL and self.SUPABASE_ANON_KEY.get_secret_value())

    @property
    def firebase_configured(self) -> bool:
        """Check if the auth/document backend is configured."""
        return bool(self.FIREBASE_PROJECT_ID)

    @property
    def backend_kind(self) -> BackendKind:
        """Backend to use; Supabase wins over Firebase, local is the fallback."""
        if self.supabase_configured:
            return BackendKind.RELATIONAL
        if self.firebase_configured:
            return BackendKind.AUTH_DOCUMENT
        return BackendKind.LOCAL_ONLY

    @property
    def local_store_path(self) -> Path:
        return Path(self.LOCAL_STORE_DIR).expanduser()

    def validate_startup(self) -> None:
        """Reject half-configured backends.

        Raises:
            ConfigurationError: If a backend has some but not all of its settings.
        """
        if self.SUPABASE_URL and not self.SUPABASE_ANON_KEY.get_secret_value():
            raise ConfigurationError(
                "SUPABASE_URL is set but SUPABASE_ANON_KEY is missing",
                setting="SUPABASE_ANON_KEY",
            )
        if self.FIREBASE_CREDENTIALS_PATH and not self.FIREBASE_PROJECT_ID:
            raise ConfigurationError(
                "FIREBASE_CREDENTIALS_PATH is set but FIREBASE_PROJECT_ID is missing",
                setting="FIREBASE_PROJECT_ID",
            )
        if self.CIRCUIT_BREAKER_FAILURE_THRESHOLD < 1:
            raise ConfigurationError(
                "CIRCUIT_BREAKER_FAILURE_THRESHOLD must be at least 1",
                setting="CIRCUIT_BREAKER_FAILURE_THRESHOLD",
            )


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance.

    Returns:
        Settings instance with validated configuration.

    Raises:
        ConfigurationError: If a backend is only partially configured.
    """
    settings = Settings()
    settings.validate_startup()
    logger.info("Settings loaded", extra={"backend": settings.backend_kind.value})
    return settings
