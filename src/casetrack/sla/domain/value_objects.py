"""
SLA Value Objects
==================

Immutable value objects for the SLA domain.

Value objects are defined by their attributes rather than an identity.
They are immutable and can be freely shared. An ``SlaRule`` in particular
is snapshotted onto a case when the case is opened, so later edits to the
catalog never change a case's historical deadline.
"""

from dataclasses import dataclass, field
from datetime import date, datetime, timedelta, timezone
from typing import Annotated, Any, Dict, List, Literal, Optional, Union
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from pydantic import (
    AliasChoices, BaseModel, ConfigDict, Field,
    field_validator, model_validator
)

from casetrack.config import (
    ALL_CASE_TYPES, MAX_ESCALATION_LEVEL, WEEKDAYS, Priority, Severity, SLATarget
)


def _parse_clock(value: str) -> int:
    """Parse ``HH:MM`` into minutes after local midnight (``24:00`` allowed)."""
    try:
        hours_str, minutes_str = value.strip().split(":")[:2]
        hours, minutes = int(hours_str), int(minutes_str)
    except (AttributeError, ValueError):
        raise ValueError(f"invalid time of day {value!r}, expected HH:MM")
    if not (0 <= minutes < 60) or not (0 <= hours <= 24) or (hours == 24 and minutes):
        raise ValueError(f"time of day out of range: {value!r}")
    return hours * 60 + minutes


def _ensure_aware(value: Optional[datetime]) -> Optional[datetime]:
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


class DayHours(BaseModel):
    """Operating window of one weekday, local wall-clock ``[start, end)``."""
    model_config = ConfigDict(frozen=True)

    start: str = Field(description="Opening time, HH:MM")
    end: str = Field(description="Closing time, HH:MM (24:00 = midnight)")

    @model_validator(mode="after")
    def validate_window(self) -> "DayHours":
        if _parse_clock(self.start) >= _parse_clock(self.end):
            raise ValueError(f"business hours start {self.start} must be before end {self.end}")
        return self

    @property
    def start_offset(self) -> timedelta:
        return timedelta(minutes=_parse_clock(self.start))

    @property
    def end_offset(self) -> timedelta:
        return timedelta(minutes=_parse_clock(self.end))

    @property
    def hours(self) -> float:
        return (self.end_offset - self.start_offset).total_seconds() / 3600


def default_business_hours() -> Dict[str, Optional[DayHours]]:
    """Monday to Friday, 09:00-17:00."""
    hours: Dict[str, Optional[DayHours]] = {
        day: DayHours(start="09:00", end="17:00") for day in WEEKDAYS[:5]
    }
    hours.update({"saturday": None, "sunday": None})
    return hours


# ========== Escalation actions (closed set of variants) ==========

class NotifyAction(BaseModel):
    """Notify one or more recipients over a channel."""
    model_config = ConfigDict(frozen=True)

    kind: Literal["notify"] = "notify"
    recipients: List[str] = Field(default_factory=list, description="Roles, user ids or addresses")
    channel: str = Field(default="in_app", description="email, sms, in_app, ...")
    template: Optional[str] = None


class ReassignAction(BaseModel):
    """Move the case to another role or officer."""
    model_config = ConfigDict(frozen=True)

    kind: Literal["reassign"] = "reassign"
    to_role: Optional[str] = None
    to_user_id: Optional[str] = None

    @model_validator(mode="after")
    def validate_target(self) -> "ReassignAction":
        if not self.to_role and not self.to_user_id:
            raise ValueError("reassign action needs to_role or to_user_id")
        return self


class LogOnlyAction(BaseModel):
    """Record the transition on the case timeline only."""
    model_config = ConfigDict(frozen=True)

    kind: Literal["log_only"] = "log_only"
    message: Optional[str] = None


class CustomAction(BaseModel):
    """Opaque payload for integrations the engine does not model."""
    model_config = ConfigDict(frozen=True)

    kind: Literal["custom"] = "custom"
    payload: Dict[str, Any] = Field(default_factory=dict)


EscalationAction = Annotated[
    Union[NotifyAction, ReassignAction, LogOnlyAction, CustomAction],
    Field(discriminator="kind"),
]


class EscalationLevel(BaseModel):
    """One escalation step: reaching ``threshold_percent`` of the SLA raises the case to ``level``."""
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    threshold_percent: float = Field(
        ge=0,
        validation_alias=AliasChoices("threshold_percent", "threshold"),
        description="Percentage of the resolution SLA elapsed (may exceed 100)"
    )
    level: int = Field(ge=1, le=MAX_ESCALATION_LEVEL, description="Escalation level (1-based)")
    actions: List[EscalationAction] = Field(default_factory=list)


# ========== Rule ==========

class SlaRule(BaseModel):
    """
    A named SLA policy.

    Targets are expressed in hours. A rule with ``business_hours_only`` set
    counts time only inside its weekly business hours, skipping holidays,
    in the rule's own timezone.

    Rules are never hard-deleted: ``deactivate()`` returns a soft-disabled
    copy so historical computations stay reproducible.
    """
    model_config = ConfigDict(frozen=True)

    id: str = Field(min_length=1)
    name: str = Field(min_length=2, max_length=100)
    description: Optional[str] = None

    # Filters (None = wildcard)
    case_type: Optional[str] = Field(
        default=None,
        description="Complaint type id, application type, or 'all'"
    )
    priority: Optional[Priority] = None
    severity: Optional[Severity] = None
    conditions: Dict[str, Any] = Field(default_factory=dict)

    # Targets in hours
    acknowledgment_time: Optional[float] = Field(default=None, gt=0)
    first_response_time: Optional[float] = Field(default=None, gt=0)
    resolution_time: float = Field(gt=0)

    # Escalation
    escalation_levels: List[EscalationLevel] = Field(default_factory=list)
    warning_thresholds: List[float] = Field(default_factory=lambda: [75.0, 90.0])
    auto_escalate: bool = True
    escalation_notifications: List[EscalationAction] = Field(default_factory=list)
    breach_notifications: List[EscalationAction] = Field(default_factory=list)

    # Calendar
    business_hours_only: bool = False
    business_hours: Dict[str, Optional[DayHours]] = Field(default_factory=default_business_hours)
    holidays: List[date] = Field(default_factory=list)
    timezone: str = "Asia/Kolkata"

    # Lifecycle
    is_active: bool = True
    effective_from: Optional[datetime] = None
    effective_until: Optional[datetime] = None
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    metadata: Dict[str, Any] = Field(default_factory=dict)

    @field_validator("effective_from", "effective_until", "created_at")
    @classmethod
    def validate_aware(cls, v: Optional[datetime]) -> Optional[datetime]:
        """Naive timestamps in rule data are taken as UTC."""
        return _ensure_aware(v)

    @field_validator("escalation_levels")
    @classmethod
    def validate_escalation_levels(cls, v: List[EscalationLevel]) -> List[EscalationLevel]:
        """Sort by threshold; level numbers must rise with the threshold."""
        ordered = sorted(v, key=lambda lvl: lvl.threshold_percent)
        for lower, higher in zip(ordered, ordered[1:]):
            if higher.level <= lower.level:
                raise ValueError(
                    "escalation level numbers must increase with threshold "
                    f"({lower.threshold_percent}%->L{lower.level}, "
                    f"{higher.threshold_percent}%->L{higher.level})"
                )
        return ordered

    @field_validator("warning_thresholds")
    @classmethod
    def validate_warning_thresholds(cls, v: List[float]) -> List[float]:
        if any(t <= 0 for t in v):
            raise ValueError("warning thresholds must be positive percentages")
        return sorted(set(v))

    @field_validator("business_hours", mode="before")
    @classmethod
    def validate_business_hours(cls, v: Any) -> Any:
        """
        Lowercase weekday keys; missing weekdays are non-operating.

        An absent or empty map means the default office week. To close
        every day, list the weekdays with null hours.
        """
        if not v:
            return default_business_hours()
        if not isinstance(v, dict):
            raise ValueError("business hours must be a mapping of weekday to hours")
        normalized = {str(k).lower(): hours for k, hours in v.items()}
        unknown = set(normalized) - set(WEEKDAYS)
        if unknown:
            raise ValueError(f"unknown weekdays in business hours: {sorted(unknown)}")
        return {day: normalized.get(day) for day in WEEKDAYS}

    @field_validator("timezone")
    @classmethod
    def validate_timezone(cls, v: str) -> str:
        try:
            ZoneInfo(v)
        except (ZoneInfoNotFoundError, ValueError):
            raise ValueError(f"unknown timezone: {v}")
        return v

    @model_validator(mode="after")
    def validate_effective_window(self) -> "SlaRule":
        if (
            self.effective_from is not None
            and self.effective_until is not None
            and self.effective_from > self.effective_until
        ):
            raise ValueError("effective_from must not be after effective_until")
        return self

    @property
    def tzinfo(self) -> ZoneInfo:
        return ZoneInfo(self.timezone)

    @property
    def is_generic_case_type(self) -> bool:
        return self.case_type == ALL_CASE_TYPES

    def is_effective(self, at: datetime) -> bool:
        """Active and inside ``[effective_from, effective_until]``."""
        if not self.is_active:
            return False
        if self.effective_from is not None and at < self.effective_from:
            return False
        if self.effective_until is not None and at > self.effective_until:
            return False
        return True

    def target_hours(self, target: SLATarget) -> Optional[float]:
        return {
            SLATarget.ACKNOWLEDGMENT: self.acknowledgment_time,
            SLATarget.FIRST_RESPONSE: self.first_response_time,
            SLATarget.RESOLUTION: self.resolution_time,
        }[target]

    def with_holiday(self, day: date) -> "SlaRule":
        if day in self.holidays:
            return self
        return self.model_copy(update={"holidays": sorted([*self.holidays, day])})

    def without_holiday(self, day: date) -> "SlaRule":
        return self.model_copy(update={"holidays": [h for h in self.holidays if h != day]})

    def deactivate(self) -> "SlaRule":
        return self.model_copy(update={"is_active": False})


# ========== Engine inputs and results ==========

@dataclass(frozen=True)
class CaseAttributes:
    """Classification of a case used to select its rule."""
    case_type: Optional[str]
    priority: Optional[str] = None
    severity: Optional[str] = None
    attributes: Dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class DeadlineSet:
    """Deadlines computed for one case under one rule."""
    resolution: datetime
    acknowledgment: Optional[datetime] = None
    first_response: Optional[datetime] = None


@dataclass(frozen=True)
class EscalationDecision:
    """Outcome of comparing elapsed SLA time against escalation thresholds."""
    new_level: int
    crossed_levels: List[EscalationLevel]
    should_escalate: bool
    elapsed_percent: float


@dataclass(frozen=True)
class TimeRemaining:
    """Whole hours and minutes until the deadline, zero when overdue."""
    overdue: bool
    hours: int
    minutes: int

    def to_dict(self) -> dict:
        return {"overdue": self.overdue, "hours": self.hours, "minutes": self.minutes}
