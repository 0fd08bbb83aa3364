"""Application configuration and settings management."""

from pathlib import Path
from typing import Annotated, Any, Literal, Optional

import json
from pydantic import BaseModel, Field, field_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict


class ProviderSetting(BaseModel):
    """Location provider registered with the sink when a simulation starts."""

    name: str
    accuracy: Literal["fine", "coarse"] = "fine"
    power_requirement: Literal["low", "medium", "high"] = "low"


DEFAULT_PROVIDERS = (
    ProviderSetting(name="gps", accuracy="fine", power_requirement="high"),
    ProviderSetting(name="network", accuracy="coarse", power_requirement="low"),
    ProviderSetting(name="fused", accuracy="fine", power_requirement="low"),
)


class Settings(BaseSettings):
    """Runtime configuration loaded from environment variables or defaults."""

    model_config = SettingsConfigDict(
        env_prefix="VLOC_",
        case_sensitive=False,
        env_file=".env",
        env_file_encoding="utf-8",
    )

    app_name: str = "Virtual Location Route Replay API"
    api_prefix: str = "/api"
    log_level: str = Field(default="INFO", description="Root log level applied by create_app().")
    data_root: Path = Field(default=Path("data"), description="Root directory for exported timelines.")

    default_pace_min_per_km: float = Field(
        default=6.0,
        gt=0.0,
        description="Pace used when a segment has no valid pace (10 km/h).",
    )
    sample_spacing_m: float = Field(
        default=15.0,
        gt=0.0,
        description="Target path distance per timeline sample; a segment gets about one sample per this many metres.",
    )
    target_push_interval_ms: int = Field(default=1000, ge=1)
    target_push_duration_ms: int = Field(default=60_000, ge=0)
    target_lead_offset_ms: int = Field(
        default=1500,
        ge=0,
        description="Delay before timeline playback when a target broadcast runs alongside it.",
    )
    providers: Annotated[tuple[ProviderSetting, ...], NoDecode] = Field(
        default=DEFAULT_PROVIDERS,
        description="Providers armed on the location sink (gps, network, fused by default).",
    )

    sink_bridge_url: Optional[str] = Field(
        default=None,
        description="Base URL of a device bridge accepting mock locations (e.g., http://127.0.0.1:8765).",
    )
    sink_timeout_seconds: float = Field(default=5.0, gt=0.0)
    sink_push_timeout_seconds: float = Field(
        default=1.0,
        gt=0.0,
        description="Timeout of a single location push; pushes are never retried.",
    )
    sink_max_retries: int = Field(default=2, ge=0)
    sink_backoff_seconds: float = Field(default=0.2, ge=0.0)

    frontend_allowed_origins: Annotated[tuple[str, ...], NoDecode] = Field(
        default=(
            "http://localhost:8081",
            "http://127.0.0.1:8081",
            "http://localhost:19006",
        ),
        description="Permitted web origins for browser clients (CORS).",
    )

    @field_validator("data_root", mode="before")
    @classmethod
    def _expand_path(cls, value: Any) -> Path:
        path_value = value if isinstance(value, Path) else Path(str(value))
        return path_value.expanduser().resolve()

    @field_validator("frontend_allowed_origins", mode="before")
    @classmethod
    def _parse_str_tuple_from_env(cls, value: Any) -> tuple[str, ...]:
        """Parse string tuple from environment variable (comma-separated or JSON array)."""
        if isinstance(value, tuple):
            return value
        if isinstance(value, list):
            return tuple(str(item) for item in value)
        if isinstance(value, str):
            try:
                parsed = json.loads(value)
                if isinstance(parsed, list):
                    return tuple(str(item) for item in parsed)
            except (json.JSONDecodeError, TypeError):
                pass
            if "," in value:
                return tuple(item.strip() for item in value.split(",") if item.strip())
            if value.strip():
                return (value.strip(),)
        return tuple()

    @field_validator("providers", mode="before")
    @classmethod
    def _parse_providers_from_env(cls, value: Any) -> Any:
        """Accept a JSON array of provider objects or a comma-separated list of names.

        ``VLOC_PROVIDERS=gps,network`` keeps the default accuracy/power classes
        for known names and falls back to fine/low for anything else.
        """
        if not isinstance(value, str):
            return value
        try:
            parsed = json.loads(value)
        except (json.JSONDecodeError, TypeError):
            parsed = None
        if isinstance(parsed, list):
            return parsed
        known = {provider.name: provider for provider in DEFAULT_PROVIDERS}
        names = [item.strip() for item in value.split(",") if item.strip()]
        return tuple(known.get(name, ProviderSetting(name=name)) for name in names)


settings = Settings()
