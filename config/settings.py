"""
Configuration settings with Pydantic validation.
All settings are loaded from environment variables (or a .env file).
"""

from pathlib import Path
from typing import Annotated, Any, Optional

from pydantic import Field, SecretStr, field_validator, model_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict

from src.strategy.signal_config import SignalConfig


class Settings(BaseSettings):
    """Main application settings with validation."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Database
    database_path: Path = Field(
        default=Path("data/signals.db"),
        description="Path to SQLite database"
    )

    # Logging
    log_level: str = Field(
        default="INFO",
        pattern="^(DEBUG|INFO|WARNING|ERROR|CRITICAL)$",
        description="Logging level"
    )
    log_file: Optional[Path] = Field(
        default=Path("logs/signals.log"),
        description="Path to log file"
    )
    log_json: bool = Field(
        default=False,
        description="Render logs as JSON lines (production)"
    )

    # Signal engine overrides (None = use the built-in default)
    signal_action_threshold: Optional[float] = Field(
        default=None,
        ge=0,
        le=100,
        description="Minimum score for LONG/SHORT decisions"
    )
    signal_watchlist_threshold: Optional[float] = Field(
        default=None,
        ge=0,
        le=100,
        description="Minimum score for a signal to be shown in the UI"
    )
    signal_adx_minimum: Optional[float] = Field(default=None, ge=0, le=100)
    signal_adx_strong: Optional[float] = Field(default=None, ge=0, le=100)
    signal_relaxed_reversal: Optional[bool] = Field(default=None)
    signal_safe_zone_atr: Optional[float] = Field(default=None, ge=0, le=10)
    signal_max_stop_loss: Optional[float] = Field(default=None, ge=0, le=50)
    signal_volatility_extreme: Optional[float] = Field(default=None, ge=0, le=50)

    # Signal job
    signal_job_max_workers: int = Field(
        default=4,
        ge=1,
        le=32,
        description="Concurrent coin evaluations per job run"
    )
    indicator_max_age_seconds: int = Field(
        default=60,
        ge=1,
        description="Indicator rows older than this are reported as stale"
    )

    # Market data
    binance_base_url: str = Field(
        default="https://api.binance.com/api/v3",
        description="Binance REST base URL"
    )
    price_cache_seconds: float = Field(
        default=1.0,
        gt=0,
        le=300,
        description="TTL for cached 24h ticker responses"
    )

    # Email alerts (Resend)
    resend_api_key: Optional[SecretStr] = Field(
        default=None,
        description="Resend API key for alert emails"
    )
    alert_from_email: str = Field(
        default="Signal Desk <alerts@example.com>",
        description="Sender address for alert emails"
    )
    alert_recipients: Annotated[list[str], NoDecode] = Field(
        default_factory=list,
        description="Comma-separated recipient addresses for signal alerts"
    )
    email_notifications_enabled: bool = Field(default=True)

    # AI analysis (Gemini)
    gemini_api_key: Optional[SecretStr] = Field(default=None)
    gemini_model: str = Field(default="gemini-2.5-pro")

    # Cron endpoint protection
    cron_secret: Optional[SecretStr] = Field(
        default=None,
        description="Bearer token required by the cron endpoint (unset = open, development only)"
    )

    # Dashboard
    dashboard_host: str = Field(
        default="127.0.0.1",
        description="API server bind address (use 0.0.0.0 for network access)"
    )
    dashboard_port: int = Field(
        default=8081,
        ge=1024,
        le=65535,
        description="API server port"
    )

    @field_validator("alert_recipients", mode="before")
    @classmethod
    def split_recipients(cls, v: Any) -> Any:
        """Accept a comma-separated string for the recipient list."""
        if isinstance(v, str):
            return [item.strip() for item in v.split(",") if item.strip()]
        return v

    @field_validator("alert_recipients")
    @classmethod
    def validate_recipients(cls, v: list[str]) -> list[str]:
        for address in v:
            if "@" not in address:
                raise ValueError(f"Invalid alert recipient address: {address!r}")
        return v

    @model_validator(mode="after")
    def validate_signal_overrides(self) -> "Settings":
        """Reject signal overrides that would produce an invalid engine configuration."""
        self.signal_config()
        return self

    def signal_config_overrides(self) -> dict[str, dict[str, Any]]:
        """Nested overrides for SignalConfig built from the SIGNAL_* settings."""
        mapping = {
            ("thresholds", "action"): self.signal_action_threshold,
            ("thresholds", "watchlist"): self.signal_watchlist_threshold,
            ("trend", "adx_minimum"): self.signal_adx_minimum,
            ("trend", "adx_strong"): self.signal_adx_strong,
            ("trend", "relaxed_reversal"): self.signal_relaxed_reversal,
            ("structure", "safe_zone_atr"): self.signal_safe_zone_atr,
            ("risk", "max_stop_loss"): self.signal_max_stop_loss,
            ("risk", "volatility_extreme"): self.signal_volatility_extreme,
        }
        overrides: dict[str, dict[str, Any]] = {}
        for (section, name), value in mapping.items():
            if value is not None:
                overrides.setdefault(section, {})[name] = value
        return overrides

    def signal_config(self) -> SignalConfig:
        """
        Build the process-wide signal configuration.

        Raises:
            SignalConfigError: If the overrides break configuration invariants
        """
        return SignalConfig.from_dict(self.signal_config_overrides())

    @property
    def email_configured(self) -> bool:
        return bool(self.resend_api_key and self.alert_recipients and self.email_notifications_enabled)


# Global settings instance (lazy loaded)
_settings: Optional[Settings] = None


def get_settings() -> Settings:
    """Get or create settings instance."""
    global _settings
    if _settings is None:
        _settings = Settings()
    return _settings


def reload_settings() -> Settings:
    """Force re-read from the environment / .env file."""
    global _settings
    _settings = Settings()
    return _settings
