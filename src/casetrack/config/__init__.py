"""
Configuration Module
====================

Application settings and configuration management using Pydantic.
"""

from enum import Enum
from functools import lru_cache
from pathlib import Path
from typing import Literal
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.

    Uses Pydantic for validation and type safety.
    """

    # ========== Application ==========
    app_name: str = Field(default="casetrack-sla", description="Application name")
    app_version: str = Field(default="1.0.0", description="Application version")
    environment: str = Field(default="development", description="Environment name")
    debug: bool = Field(default=False, description="Enable debug mode")
    log_level: str = Field(default="INFO", description="Root log level")

    # ========== Database ==========
    database_url: str = Field(
        default="postgresql+asyncpg://localhost:5432/casetrack",
        description="PostgreSQL connection URL (async)"
    )
    db_pool_size: int = Field(default=5, description="Database connection pool size", ge=1)
    db_max_overflow: int = Field(default=10, description="Max overflow connections", ge=0)

    # ========== Rule Catalog ==========
    sla_rules_source: Literal["yaml", "database"] = Field(
        default="yaml",
        description="Where SLA rules are read from"
    )
    sla_rules_path: Path = Field(
        default=Path("sla_rules.yaml"),
        description="Path to the SLA rule catalog YAML file"
    )

    # ========== Evaluation ==========
    sla_evaluation_interval_seconds: int = Field(
        default=6 * 3600,
        description="Seconds between evaluation passes over open cases",
        ge=60
    )
    evaluation_batch_size: int = Field(
        default=200,
        description="Open cases fetched per repository page",
        ge=1
    )
    evaluation_concurrency: int = Field(
        default=4,
        description="Cases evaluated in parallel during a pass",
        ge=1,
        le=64
    )
    stale_retry_attempts: int = Field(
        default=3,
        description="Retries for a single case after a stale version conflict",
        ge=0,
        le=10
    )
    auto_escalation_enabled: bool = Field(
        default=True,
        description="Global switch for automatic escalation"
    )
    calendar_max_lookahead_days: int = Field(
        default=366,
        description="Guard for business-hours calendar walks",
        ge=7
    )

    # ========== System Default Rule ==========
    default_rule_enabled: bool = Field(
        default=True,
        description="Fall back to a per-priority default rule when no rule matches"
    )
    default_sla_hours_critical: int = Field(default=12, ge=1, le=168)
    default_sla_hours_high: int = Field(default=24, ge=1, le=168)
    default_sla_hours_medium: int = Field(default=72, ge=1, le=168)
    default_sla_hours_low: int = Field(default=168, ge=1, le=720)
    default_warning_threshold_percent: float = Field(default=75, ge=50, le=95)
    default_timezone: str = Field(default="Asia/Kolkata", description="IANA timezone")

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"
    )

    @field_validator("environment")
    @classmethod
    def validate_environment(cls, v: str) -> str:
        """Ensure environment is one of allowed values."""
        allowed = {"development", "staging", "production"}
        if v not in allowed:
            raise ValueError(f"environment must be one of {allowed}")
        return v

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        allowed = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
        if v.upper() not in allowed:
            raise ValueError(f"log_level must be one of {allowed}")
        return v.upper()

    @field_validator("default_timezone")
    @classmethod
    def validate_default_timezone(cls, v: str) -> str:
        try:
            ZoneInfo(v)
        except (ZoneInfoNotFoundError, ValueError):
            raise ValueError(f"unknown timezone: {v}")
        return v

    def default_hours_for(self, priority: str) -> int:
        """Default resolution hours for a case priority."""
        return {
            Priority.CRITICAL: self.default_sla_hours_critical,
            Priority.HIGH: self.default_sla_hours_high,
            Priority.MEDIUM: self.default_sla_hours_medium,
            Priority.LOW: self.default_sla_hours_low,
        }.get(priority, self.default_sla_hours_medium)


@lru_cache()
def get_settings() -> Settings:
    """Returns cached Settings instance."""
    return Settings()


# ========== Constants ==========

class Priority(str, Enum):
    """Case priority levels."""
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class Severity(str, Enum):
    """Case severity levels."""
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class CaseKind(str, Enum):
    """Kinds of case tracked under an SLA."""
    COMPLAINT = "complaint"
    APPLICATION = "application"


class ComplaintStatus(str, Enum):
    """Complaint lifecycle statuses."""
    DRAFT = "draft"
    SUBMITTED = "submitted"
    UNDER_REVIEW = "under_review"
    INVESTIGATION = "investigation"
    PENDING_INFO = "pending_info"
    ACTION_TAKEN = "action_taken"
    CLOSED = "closed"
    REJECTED = "rejected"
    APPEALED = "appealed"


class ApplicationStatus(str, Enum):
    """Service application lifecycle statuses."""
    DRAFT = "draft"
    SUBMITTED = "submitted"
    UNDER_REVIEW = "under_review"
    DOCUMENTS_REQUIRED = "documents_required"
    PROCESSING = "processing"
    APPROVED = "approved"
    REJECTED = "rejected"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class SLATarget(str, Enum):
    """SLA clocks a rule can define."""
    ACKNOWLEDGMENT = "acknowledgment"
    FIRST_RESPONSE = "first_response"
    RESOLUTION = "resolution"


class SLAState(str, Enum):
    """Derived SLA states of a case."""
    NO_DEADLINE = "no_deadline"
    WITHIN_SLA = "within_sla"
    WARNING = "warning"
    BREACHED = "breached"
    CLOSED = "closed"


class EventType(str, Enum):
    """Events emitted by an evaluation."""
    ESCALATION = "escalation"
    WARNING = "warning"
    BREACH = "breach"


# ========== Lists for validation ==========

ALL_CASE_TYPES = "all"

MAX_ESCALATION_LEVEL = 5

WEEKDAYS = [
    "monday", "tuesday", "wednesday", "thursday",
    "friday", "saturday", "sunday"
]

TERMINAL_STATUSES = {
    CaseKind.COMPLAINT: frozenset({ComplaintStatus.CLOSED.value, ComplaintStatus.REJECTED.value}),
    CaseKind.APPLICATION: frozenset({
        ApplicationStatus.APPROVED.value, ApplicationStatus.REJECTED.value,
        ApplicationStatus.COMPLETED.value, ApplicationStatus.CANCELLED.value
    }),
}

OPEN_STATUSES = {
    CaseKind.COMPLAINT: frozenset(
        s.value for s in ComplaintStatus
        if s is not ComplaintStatus.DRAFT
        and s.value not in TERMINAL_STATUSES[CaseKind.COMPLAINT]
    ),
    CaseKind.APPLICATION: frozenset(
        s.value for s in ApplicationStatus
        if s is not ApplicationStatus.DRAFT
        and s.value not in TERMINAL_STATUSES[CaseKind.APPLICATION]
    ),
}
