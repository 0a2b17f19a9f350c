"""
Engine Settings - operational parameters of the lifecycle engine

Defaults are suitable for a single municipality deployment. Every field can
be overridden through an ALICERCE_* environment variable, e.g.
ALICERCE_NOTIFICATION_MAX_WORKERS=16 or ALICERCE_LOG_JSON=true.
"""

from typing import Literal

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

LogLevel = Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]


class EngineSettings(BaseSettings):
    """
    Lifecycle engine configuration

    Two switches relax rules the engine enforces by default:
    enforce_winner_coverage and allow_proposals_during_review. When relaxed,
    the engine still logs a warning and flags the audit entry.
    """

    model_config = SettingsConfigDict(env_prefix="ALICERCE_", extra="ignore")

    # Notification fan-out
    notification_max_workers: int = Field(
        default=8,
        ge=1,
        le=64,
        description="Maximum concurrent sends during one fan-out",
    )

    notification_timeout_seconds: float = Field(
        default=30.0,
        gt=0,
        description="Sends still running after this many seconds are reported as failed",
    )

    email_simulation: bool = Field(
        default=True,
        description="Record e-mail log entries as 'simulated' instead of 'success'",
    )

    sender_name: str = Field(
        default="Sistema Alicerce",
        description="Name used in message signatures",
    )

    portal_url: str = Field(
        default="https://alicerce.example.gov.br",
        description="Supplier portal link included in messages",
    )

    # Demand rules
    protocol_prefix: str = Field(
        default="ALI.DEM",
        min_length=1,
        description="Prefix for demand protocols",
    )

    enforce_winner_coverage: bool = Field(
        default=True,
        description="Reject per-item winner decisions that do not cover every item exactly once",
    )

    allow_proposals_during_review: bool = Field(
        default=False,
        description="Accept proposals while the demand is under review",
    )

    # Logging
    log_level: LogLevel = Field(default="INFO", description="Root log level")

    log_json: bool = Field(
        default=False,
        description="Render logs as JSON lines instead of console output",
    )

    @field_validator("log_level", mode="before")
    @classmethod
    def normalize_log_level(cls, v: object) -> object:
        return v.upper() if isinstance(v, str) else v
