"""Application configuration helpers."""

from __future__ import annotations

import os
from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path
from typing import Final

from dotenv import load_dotenv
from pydantic import AnyHttpUrl, BaseModel, ValidationError

# Load environment variables from .env file
env_path = Path(__file__).parent.parent / ".env"
load_dotenv(dotenv_path=env_path)

DEFAULT_RIGOUR_API_URL: Final[str] = "https://mcp.rigour.run/api"
DEFAULT_CHECK_RUN_NAME: Final[str] = "Rigour Analysis"


class SettingsError(RuntimeError):
    """Raised when application configuration is invalid or incomplete."""


@dataclass(frozen=True)
class AppCredentials:
    github_app_id: int
    github_private_key_pem: str


class Settings(BaseModel):
    """Runtime settings loaded from environment variables."""

    environment: str = "development"
    port: int = 3000
    github_api_base_url: AnyHttpUrl = "https://api.github.com"
    github_app_id: int | None = None
    github_private_key_pem: str | None = None
    github_webhook_secret: str | None = None
    rigour_api_url: AnyHttpUrl = DEFAULT_RIGOUR_API_URL
    rigour_timeout_seconds: float = 30.0
    check_run_name: str = DEFAULT_CHECK_RUN_NAME

    @property
    def is_production(self) -> bool:
        return self.environment.strip().lower() == "production"

    @property
    def normalized_github_api_base_url(self) -> str:
        """Return the GitHub API base URL without a trailing slash."""
        return str(self.github_api_base_url).rstrip("/")

    @property
    def normalized_rigour_api_url(self) -> str:
        """Return the Rigour API base URL without a trailing slash."""
        return str(self.rigour_api_url).rstrip("/")

    def require_app_credentials(self) -> AppCredentials:
        """Ensure GitHub App secrets are configured and return them."""

        missing = []
        if self.github_app_id is None:
            missing.append("GITHUB_APP_ID")
        if not self.github_private_key_pem:
            missing.append("GITHUB_PRIVATE_KEY")

        if missing:
            missing_vars = ", ".join(missing)
            raise SettingsError(
                "GitHub App is not configured. Missing environment variables: "
                f"{missing_vars}."
            )

        return AppCredentials(
            github_app_id=int(self.github_app_id),
            github_private_key_pem=self.github_private_key_pem,
        )


def _load_private_key() -> str | None:
    """Read the App private key from GITHUB_PRIVATE_KEY or GITHUB_PRIVATE_KEY_PATH."""

    inline = os.getenv("GITHUB_PRIVATE_KEY")
    if inline:
        return inline.replace("\\n", "\n")

    key_path = os.getenv("GITHUB_PRIVATE_KEY_PATH")
    if not key_path:
        return None

    resolved = Path(key_path).expanduser().resolve()
    if not resolved.is_file():
        raise SettingsError(f"Private key file not found: {resolved}")
    return resolved.read_text(encoding="utf-8")


def _validate_production(settings: Settings) -> None:
    missing = []
    if settings.github_app_id is None:
        missing.append("GITHUB_APP_ID")
    if not settings.github_private_key_pem:
        missing.append("GITHUB_PRIVATE_KEY")
    if not settings.github_webhook_secret:
        missing.append("GITHUB_WEBHOOK_SECRET")
    if missing:
        raise SettingsError(f"Missing required config in production: {', '.join(missing)}.")


def _build_settings() -> Settings:
    github_app_id = os.getenv("GITHUB_APP_ID")

    try:
        github_app_id_value: int | None
        if github_app_id and github_app_id.strip():
            github_app_id_value = int(github_app_id)
        else:
            github_app_id_value = None
    except ValueError as exc:
        raise SettingsError("Invalid value for GITHUB_APP_ID. It must be an integer.") from exc

    private_key = _load_private_key() if github_app_id_value is not None else None

    try:
        settings = Settings(
            environment=os.getenv("APP_ENV") or "development",
            port=os.getenv("PORT") or 3000,
            github_api_base_url=os.getenv("GITHUB_API_BASE_URL") or "https://api.github.com",
            github_app_id=github_app_id_value,
            github_private_key_pem=private_key,
            github_webhook_secret=os.getenv("GITHUB_WEBHOOK_SECRET") or None,
            rigour_api_url=os.getenv("RIGOUR_API_URL") or DEFAULT_RIGOUR_API_URL,
            rigour_timeout_seconds=os.getenv("RIGOUR_TIMEOUT_SECONDS") or 30.0,
            check_run_name=os.getenv("CHECK_RUN_NAME") or DEFAULT_CHECK_RUN_NAME,
        )
    except ValidationError as exc:
        raise SettingsError("Invalid application configuration.") from exc

    if settings.is_production:
        _validate_production(settings)
    return settings


@lru_cache(maxsize=1)
def _cached_settings() -> Settings:
    return _build_settings()


def get_settings() -> Settings:
    """Retrieve cached application settings."""
    return _cached_settings()


def reset_settings_cache() -> None:
    """Clear the cached settings (primarily for tests)."""
    _cached_settings.cache_clear()
