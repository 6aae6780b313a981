from decimal import Decimal
from pathlib import Path
from typing import Any

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


BASE_DIR = Path(__file__).resolve().parents[1]


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=BASE_DIR / ".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"
    )

    log_level: str = Field(default="INFO", description="Logging level")
    log_json: bool = Field(default=False, description="Render log lines as JSON instead of console output")

    # Price impact breakpoints (percent, exclusive lower bounds)
    price_impact_low_percent: Decimal = Field(
        default=Decimal("1"),
        description="Impact above this is graded Low",
    )
    price_impact_medium_percent: Decimal = Field(
        default=Decimal("3"),
        description="Impact above this is graded Medium",
    )
    price_impact_high_percent: Decimal = Field(
        default=Decimal("5"),
        description="Impact above this is graded High and needs an explicit override",
    )
    price_impact_blocked_percent: Decimal = Field(
        default=Decimal("15"),
        description="Impact above this is graded Severe and blocked outside expert mode",
    )

    # Swap defaults
    default_slippage_percent: Decimal = Field(
        default=Decimal("0.5"),
        ge=0,
        le=50,
        description="Slippage tolerance handed to the execution service when none is set",
    )
    min_native_reserve: Decimal = Field(
        default=Decimal("0.01"),
        ge=0,
        description="Native balance kept back for gas when the max input is applied",
    )
    swap_route_label: str = Field(
        default="SwapRouter",
        description="Router name used as the prefix of swap telemetry labels",
    )

    # Telemetry
    telemetry_enabled: bool = Field(default=True, description="Emit telemetry events to configured sinks")
    telemetry_endpoint: str = Field(
        default="",
        description="Collector URL for the HTTP telemetry sink (disabled when empty)",
    )
    telemetry_timeout_seconds: float = Field(default=5.0, gt=0, description="HTTP telemetry request timeout")
    telemetry_batch_size: int = Field(
        default=20,
        ge=1,
        le=500,
        description="Events buffered before the HTTP sink posts a batch",
    )
    telemetry_max_buffer: int = Field(
        default=1000,
        ge=1,
        description="Undelivered events kept by the HTTP sink; the oldest are dropped beyond this",
    )
    telemetry_retry_seconds: float = Field(
        default=30.0,
        ge=0,
        description="Delay after a failed post before a full batch schedules another one",
    )

    @model_validator(mode="after")
    def _check_impact_breakpoints(self) -> "Settings":
        breakpoints = self.impact_breakpoints
        if any(lower >= upper for lower, upper in zip(breakpoints, breakpoints[1:])):
            raise ValueError("price impact breakpoints must be strictly ascending")
        return self

    @property
    def impact_breakpoints(self) -> tuple[Decimal, Decimal, Decimal, Decimal]:
        return (
            self.price_impact_low_percent,
            self.price_impact_medium_percent,
            self.price_impact_high_percent,
            self.price_impact_blocked_percent,
        )

    @property
    def has_telemetry_endpoint(self) -> bool:
        return bool(self.telemetry_endpoint)

    def describe(self) -> dict[str, Any]:
        """Non-secret settings snapshot for startup logs."""
        return {
            "log_level": self.log_level,
            "impact_breakpoints": [str(value) for value in self.impact_breakpoints],
            "default_slippage_percent": str(self.default_slippage_percent),
            "telemetry_enabled": self.telemetry_enabled,
            "telemetry_endpoint_configured": self.has_telemetry_endpoint,
        }


# Global settings instance
settings = Settings()
