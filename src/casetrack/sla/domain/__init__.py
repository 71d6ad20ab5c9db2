"""
SLA Domain Layer
================

Domain layer for the SLA engine.

Contains:
- Value Objects: Immutable objects defined by attributes (SlaRule, EscalationLevel)
- Entities: Core business objects with identity (SLACase) and the events they emit
- Domain Services: Stateless business logic (CalendarResolver, RuleSelector,
  DeadlineCalculator, EscalationTracker, SLAStateMachine)

This layer has no dependencies on infrastructure - pure Python business logic.
"""

from casetrack.sla.domain.calendar import CalendarResolver, MAX_LOOKAHEAD_DAYS
from casetrack.sla.domain.deadline import DeadlineCalculator
from casetrack.sla.domain.entities import (
    BreachEvent,
    CaseEvaluation,
    CaseOpening,
    EscalationEvent,
    SLACase,
    SLAEvent,
    WarningEvent,
)
from casetrack.sla.domain.escalation import EscalationTracker
from casetrack.sla.domain.selector import RuleSelector
from casetrack.sla.domain.state_machine import SLAStateMachine
from casetrack.sla.domain.value_objects import (
    CaseAttributes,
    CustomAction,
    DayHours,
    DeadlineSet,
    EscalationAction,
    EscalationDecision,
    EscalationLevel,
    LogOnlyAction,
    NotifyAction,
    ReassignAction,
    SlaRule,
    TimeRemaining,
)

__all__ = [
    # Value Objects
    "SlaRule",
    "DayHours",
    "EscalationLevel",
    "EscalationAction",
    "NotifyAction",
    "ReassignAction",
    "LogOnlyAction",
    "CustomAction",
    "CaseAttributes",
    "DeadlineSet",
    "EscalationDecision",
    "TimeRemaining",
    # Entities & Events
    "SLACase",
    "CaseOpening",
    "CaseEvaluation",
    "EscalationEvent",
    "WarningEvent",
    "BreachEvent",
    "SLAEvent",
    # Domain Services
    "CalendarResolver",
    "RuleSelector",
    "DeadlineCalculator",
    "EscalationTracker",
    "SLAStateMachine",
    "MAX_LOOKAHEAD_DAYS",
]
