"""
SLA State Machine
=================

Drives a case through its SLA lifecycle.

States are derived from the case fields rather than stored:

    NO_DEADLINE -> WITHIN_SLA -> WARNING -> BREACHED
                                               \\
    any open state ------------------------------> CLOSED (terminal, frozen)

The escalation level runs alongside the state: a case can be escalated
while still within its SLA, and keeps its level once breached.
"""

from datetime import datetime
from typing import List, Optional

from casetrack.config import SLAState
from casetrack.core import InvalidCaseStateError
from casetrack.sla.domain.calendar import MAX_LOOKAHEAD_DAYS
from casetrack.sla.domain.deadline import DeadlineCalculator
from casetrack.sla.domain.entities import (
    BreachEvent, CaseEvaluation, CaseOpening, EscalationEvent,
    SLACase, SLAEvent, WarningEvent
)
from casetrack.sla.domain.escalation import EscalationTracker
from casetrack.sla.domain.value_objects import SlaRule


class SLAStateMachine:
    """
    Orchestrates deadline calculation and escalation tracking for one case.

    Holds no mutable state: every call takes the case, the rule and the
    current instant, and returns a value describing what should change.
    """

    def __init__(self, max_lookahead_days: int = MAX_LOOKAHEAD_DAYS):
        self._max_lookahead_days = max_lookahead_days

    def open_case(
        self,
        rule: SlaRule,
        submitted_at: datetime,
        used_fallback: bool = False
    ) -> CaseOpening:
        """Compute the initial deadlines for a newly submitted case."""
        deadlines = DeadlineCalculator.compute_deadlines(
            submitted_at, rule, self._max_lookahead_days
        )
        return CaseOpening(
            rule=rule,
            submitted_at=submitted_at,
            deadlines=deadlines,
            used_fallback=used_fallback,
        )

    def evaluate(
        self,
        case: SLACase,
        rule: SlaRule,
        now: datetime,
        auto_escalate: bool = True
    ) -> CaseEvaluation:
        """
        Evaluate a case at ``now``.

        Emits, in order: one escalation event per newly crossed level
        (lowest first), one warning event per newly reached warning
        threshold, and a single breach event the first time ``now`` is past
        the resolution deadline.

        Args:
            case: Open case with submitted_at and sla_deadline set
            rule: The rule snapshotted on the case
            now: Evaluation instant (aware)
            auto_escalate: Global switch; the rule's own flag also applies

        Raises:
            InvalidCaseStateError: Terminal case or missing SLA fields
        """
        self._check_evaluable(case)
        if now.tzinfo is None:
            raise ValueError("now must be timezone-aware")

        elapsed_hours = DeadlineCalculator.elapsed_sla_hours(case.submitted_at, now, rule)
        decision = EscalationTracker.evaluate(
            elapsed_hours, rule.resolution_time, case.escalation_level, rule.escalation_levels
        )

        events: List[SLAEvent] = []
        level = case.escalation_level
        escalated_at = case.escalated_at

        if auto_escalate and rule.auto_escalate and decision.should_escalate:
            for crossed in decision.crossed_levels:
                events.append(EscalationEvent(
                    case_id=case.id,
                    from_level=level,
                    to_level=crossed.level,
                    reason=(
                        f"{decision.elapsed_percent:.1f}% of {rule.resolution_time:g}h SLA elapsed "
                        f"(threshold {crossed.threshold_percent:g}%)"
                    ),
                    occurred_at=now,
                    required_actions=tuple(crossed.actions),
                ))
                level = crossed.level
            escalated_at = now

        new_warnings = EscalationTracker.check_warnings(
            decision.elapsed_percent, rule.warning_thresholds, case.fired_warnings
        )
        for threshold in new_warnings:
            events.append(WarningEvent(
                case_id=case.id,
                threshold_percent=threshold,
                elapsed_percent=decision.elapsed_percent,
                occurred_at=now,
                required_actions=tuple(rule.escalation_notifications),
            ))

        breached_at = case.breached_at
        if breached_at is None and now > case.sla_deadline:
            breached_at = now
            events.append(BreachEvent(
                case_id=case.id,
                deadline=case.sla_deadline,
                occurred_at=now,
                overdue_hours=(now - case.sla_deadline).total_seconds() / 3600,
                required_actions=tuple(rule.breach_notifications),
            ))

        return CaseEvaluation(
            case_id=case.id,
            state=self._state_for(now, case.sla_deadline, decision.elapsed_percent, rule),
            escalation_level=level,
            escalated_at=escalated_at,
            breached_at=breached_at,
            elapsed_percent=decision.elapsed_percent,
            events=events,
            newly_fired_warnings=new_warnings,
        )

    def derive_state(self, case: SLACase, rule: Optional[SlaRule], now: datetime) -> SLAState:
        """Current SLA state of a case, for display."""
        if case.is_terminal:
            return SLAState.CLOSED
        if case.sla_deadline is None or case.submitted_at is None:
            return SLAState.NO_DEADLINE
        if rule is None:
            if now > case.sla_deadline:
                return SLAState.BREACHED
            return SLAState.WARNING if case.fired_warnings else SLAState.WITHIN_SLA

        elapsed_percent = EscalationTracker.elapsed_percent(
            DeadlineCalculator.elapsed_sla_hours(case.submitted_at, now, rule),
            rule.resolution_time
        )
        return self._state_for(now, case.sla_deadline, elapsed_percent, rule)

    @staticmethod
    def _state_for(
        now: datetime,
        deadline: datetime,
        elapsed_percent: float,
        rule: SlaRule
    ) -> SLAState:
        if now > deadline:
            return SLAState.BREACHED
        if rule.warning_thresholds and elapsed_percent >= rule.warning_thresholds[0]:
            return SLAState.WARNING
        return SLAState.WITHIN_SLA

    @staticmethod
    def _check_evaluable(case: SLACase) -> None:
        if case.is_terminal:
            raise InvalidCaseStateError(case.id, f"status '{case.status}' is terminal")
        if case.submitted_at is None:
            raise InvalidCaseStateError(case.id, "submitted_at is missing")
        if case.sla_deadline is None:
            raise InvalidCaseStateError(case.id, "no SLA deadline has been set")
