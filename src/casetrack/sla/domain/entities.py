"""
SLA Domain Entities
====================

Pure Python domain entities for SLA tracking.

Following Domain-Driven Design principles, these entities contain
business logic and are free of infrastructure concerns. Complaints and
service applications share one shape for SLA purposes.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import ClassVar, List, Optional, Sequence, Union

from casetrack.config import TERMINAL_STATUSES, CaseKind, EventType, SLAState
from casetrack.core import InvalidCaseStateError
from casetrack.sla.domain.value_objects import (
    CaseAttributes, DeadlineSet, EscalationAction, SlaRule
)


def _actions_to_dicts(actions: Sequence[EscalationAction]) -> List[dict]:
    return [action.model_dump() for action in actions]


# ========== Events ==========

@dataclass(frozen=True)
class EscalationEvent:
    """A case moved up one escalation level."""
    event_type: ClassVar[EventType] = EventType.ESCALATION

    case_id: str
    from_level: int
    to_level: int
    reason: str
    occurred_at: datetime
    required_actions: Sequence[EscalationAction] = ()

    def to_dict(self) -> dict:
        return {
            "event_type": self.event_type.value,
            "case_id": self.case_id,
            "from_level": self.from_level,
            "to_level": self.to_level,
            "reason": self.reason,
            "occurred_at": self.occurred_at.isoformat(),
            "required_actions": _actions_to_dicts(self.required_actions),
        }


@dataclass(frozen=True)
class WarningEvent:
    """A warning threshold was reached for the first time."""
    event_type: ClassVar[EventType] = EventType.WARNING

    case_id: str
    threshold_percent: float
    elapsed_percent: float
    occurred_at: datetime
    required_actions: Sequence[EscalationAction] = ()

    def to_dict(self) -> dict:
        return {
            "event_type": self.event_type.value,
            "case_id": self.case_id,
            "threshold_percent": self.threshold_percent,
            "elapsed_percent": round(self.elapsed_percent, 2),
            "occurred_at": self.occurred_at.isoformat(),
            "required_actions": _actions_to_dicts(self.required_actions),
        }


@dataclass(frozen=True)
class BreachEvent:
    """The resolution deadline passed. Emitted once per case."""
    event_type: ClassVar[EventType] = EventType.BREACH

    case_id: str
    deadline: datetime
    occurred_at: datetime
    overdue_hours: float
    required_actions: Sequence[EscalationAction] = ()

    def to_dict(self) -> dict:
        return {
            "event_type": self.event_type.value,
            "case_id": self.case_id,
            "deadline": self.deadline.isoformat(),
            "occurred_at": self.occurred_at.isoformat(),
            "overdue_hours": round(self.overdue_hours, 2),
            "required_actions": _actions_to_dicts(self.required_actions),
        }


SLAEvent = Union[EscalationEvent, WarningEvent, BreachEvent]


# ========== Results ==========

@dataclass(frozen=True)
class CaseOpening:
    """SLA fields decided when a case is submitted."""
    rule: SlaRule
    submitted_at: datetime
    deadlines: DeadlineSet
    used_fallback: bool = False
    escalation_level: int = 0
    state: SLAState = SLAState.WITHIN_SLA

    @property
    def rule_id(self) -> str:
        return self.rule.id


@dataclass(frozen=True)
class CaseEvaluation:
    """Outcome of one periodic evaluation of a case."""
    case_id: str
    state: SLAState
    escalation_level: int
    escalated_at: Optional[datetime]
    breached_at: Optional[datetime]
    elapsed_percent: float
    events: List[SLAEvent] = field(default_factory=list)
    newly_fired_warnings: List[float] = field(default_factory=list)

    @property
    def escalations(self) -> List[EscalationEvent]:
        return [e for e in self.events if isinstance(e, EscalationEvent)]

    @property
    def breach(self) -> Optional[BreachEvent]:
        return next((e for e in self.events if isinstance(e, BreachEvent)), None)

    @property
    def has_changes(self) -> bool:
        return bool(self.events)


# ========== Case ==========

@dataclass
class SLACase:
    """
    Complaint or application as seen by the SLA engine.

    The engine only ever writes the SLA fields of a case (deadlines,
    escalation bookkeeping, fired warnings, breach flag, rule snapshot);
    business status belongs to the case-management side. Once the status is
    terminal the SLA fields are frozen.
    """

    id: str
    kind: CaseKind
    case_type: Optional[str]
    priority: str
    status: str
    severity: Optional[str] = None
    attributes: dict = field(default_factory=dict)

    # Timestamps
    submitted_at: Optional[datetime] = None
    closed_at: Optional[datetime] = None

    # SLA fields
    sla_deadline: Optional[datetime] = None
    acknowledgment_deadline: Optional[datetime] = None
    first_response_deadline: Optional[datetime] = None
    escalation_level: int = 0
    escalated_at: Optional[datetime] = None
    rule_id: Optional[str] = None
    rule_snapshot: Optional[SlaRule] = None
    fired_warnings: List[float] = field(default_factory=list)
    breached_at: Optional[datetime] = None

    # Optimistic concurrency token, bumped by the repository on each write
    version: int = 0

    def __post_init__(self):
        """Validate case on initialization."""
        self.kind = CaseKind(self.kind)
        if self.escalation_level < 0:
            raise ValueError("escalation_level cannot be negative")
        if self.sla_deadline and self.submitted_at and self.sla_deadline < self.submitted_at:
            raise ValueError("sla_deadline cannot be before submitted_at")

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES[self.kind]

    @property
    def rule_attributes(self) -> CaseAttributes:
        return CaseAttributes(
            case_type=self.case_type,
            priority=self.priority,
            severity=self.severity,
            attributes=dict(self.attributes),
        )

    def apply_opening(self, opening: CaseOpening) -> None:
        """Stamp the deadlines and rule snapshot decided at submission."""
        if self.is_terminal:
            raise InvalidCaseStateError(self.id, f"status '{self.status}' is terminal")
        self.submitted_at = opening.submitted_at
        self.sla_deadline = opening.deadlines.resolution
        self.acknowledgment_deadline = opening.deadlines.acknowledgment
        self.first_response_deadline = opening.deadlines.first_response
        self.rule_id = opening.rule_id
        self.rule_snapshot = opening.rule
        self.escalation_level = opening.escalation_level
        self.escalated_at = None
        self.fired_warnings = []
        self.breached_at = None

    def apply_evaluation(self, evaluation: CaseEvaluation) -> None:
        """Copy the SLA bookkeeping of an evaluation onto the case."""
        if self.is_terminal:
            raise InvalidCaseStateError(self.id, f"status '{self.status}' is terminal")
        if evaluation.escalation_level < self.escalation_level:
            raise InvalidCaseStateError(
                self.id,
                f"escalation level cannot drop from {self.escalation_level} "
                f"to {evaluation.escalation_level}"
            )
        self.escalation_level = evaluation.escalation_level
        self.escalated_at = evaluation.escalated_at
        self.breached_at = evaluation.breached_at
        self.fired_warnings = sorted({*self.fired_warnings, *evaluation.newly_fired_warnings})
