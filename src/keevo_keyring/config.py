"""Bridge configuration using pydantic-settings.

Values are read from ``KEEVO_*`` environment variables or a ``.env`` file.
"""

from functools import lru_cache
from typing import Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class BridgeSettings(BaseSettings):
    """Settings for the signing-surface bridge."""

    model_config = SettingsConfigDict(
        env_prefix="KEEVO_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # ======================
    # Signing surface
    # ======================
    popup_url: str = Field(
        default="http://127.0.0.1:8080/",
        description="URL of the websocket bridge popup opened for each request",
    )
    port_name: str = Field(
        default="keevo-popup",
        description="Name the popup uses when it attaches its message channel",
    )

    # ======================
    # Timeouts (seconds)
    # ======================
    attach_timeout: float = Field(
        default=60.0, gt=0, description="Max wait for the popup to attach its channel"
    )
    response_timeout: Optional[float] = Field(
        default=None,
        gt=0,
        description="Max wait for the device response (None = wait for the user)",
    )
    gate_timeout: Optional[float] = Field(
        default=30.0,
        gt=0,
        description="Max wait for a previous request to finish (None = wait forever)",
    )

    # ======================
    # Environment
    # ======================
    environment: str = Field(default="development", description="Runtime environment")
    debug: bool = Field(default=False, description="Enable debug logging")

    @field_validator("popup_url")
    @classmethod
    def validate_popup_url(cls, value: str) -> str:
        if not value.startswith(("http://", "https://")):
            raise ValueError("Popup URL must be an http(s) URL")
        return value

    @property
    def is_production(self) -> bool:
        """Check if running in production environment."""
        return self.environment.lower() == "production"

    def require_secure_popup(self) -> None:
        """Refuse a plain-http popup URL in production.

        Raises:
            ValueError: If running in production with a non-https popup URL
        """
        if self.is_production and not self.popup_url.startswith("https://"):
            raise ValueError(
                f"Popup URL is not https URL: {self.popup_url} (environment={self.environment})"
            )

    def get_safe_dict(self) -> dict:
        """Return settings dict for diagnostics."""
        return {
            "environment": self.environment,
            "debug": self.debug,
            "popup_url": self.popup_url,
            "port_name": self.port_name,
            "timeouts": {
                "attach": self.attach_timeout,
                "response": self.response_timeout,
                "gate": self.gate_timeout,
            },
        }


@lru_cache
def get_settings() -> BridgeSettings:
    """Get cached settings instance."""
    return BridgeSettings()
