"""
Deadline Calculator
===================

Turns a start instant and a target duration into a deadline.

Round-the-clock rules add elapsed time in UTC, so a deadline is always
exactly ``duration_hours`` of real time after the start even across a
daylight-saving change. Business-hours rules walk forward through the
rule's calendar one operating window at a time.
"""

from datetime import datetime, timedelta, timezone

from casetrack.config import SLATarget
from casetrack.core import ConfigurationError
from casetrack.sla.domain.calendar import MAX_LOOKAHEAD_DAYS, CalendarResolver
from casetrack.sla.domain.value_objects import DeadlineSet, SlaRule


class DeadlineCalculator:
    """Stateless deadline arithmetic."""

    @staticmethod
    def compute_deadline(
        start: datetime,
        duration_hours: float,
        rule: SlaRule,
        max_iterations: int = MAX_LOOKAHEAD_DAYS
    ) -> datetime:
        """
        Compute the deadline ``duration_hours`` of SLA time after ``start``.

        Args:
            start: Aware start instant
            duration_hours: Positive SLA duration
            rule: Rule supplying the calendar
            max_iterations: Guard on operating windows consumed

        Returns:
            The deadline as an aware UTC datetime

        Raises:
            ValueError: Naive start or non-positive duration
            ConfigurationError: Calendar walk did not finish within the guard
        """
        if start.tzinfo is None:
            raise ValueError("start must be timezone-aware")
        if duration_hours <= 0:
            raise ValueError(f"duration must be positive, got {duration_hours}")

        start_utc = start.astimezone(timezone.utc)
        if not rule.business_hours_only:
            return start_utc + timedelta(hours=duration_hours)

        return DeadlineCalculator._walk_business_hours(
            start_utc, timedelta(hours=duration_hours), rule, max_iterations
        )

    @staticmethod
    def _walk_business_hours(
        start: datetime,
        remaining: timedelta,
        rule: SlaRule,
        max_iterations: int
    ) -> datetime:
        holidays = frozenset(rule.holidays)
        zone = rule.tzinfo
        current = start

        for _ in range(max_iterations):
            current = CalendarResolver.advance_to_next_operating_instant(
                current, rule.business_hours, holidays, zone, max_iterations
            )
            _, window_end = CalendarResolver.day_window(
                current, rule.business_hours, holidays, zone
            )
            available = window_end - current
            if available >= remaining:
                return current + remaining
            remaining -= available
            # Closing time is outside the half-open window, so the next
            # advance moves on to the following operating day
            current = window_end

        raise ConfigurationError(
            f"Business-hours deadline for rule {rule.id} not reached within "
            f"{max_iterations} operating days",
            {"rule_id": rule.id, "start": start.isoformat()}
        )

    @staticmethod
    def compute_deadlines(
        start: datetime,
        rule: SlaRule,
        max_iterations: int = MAX_LOOKAHEAD_DAYS
    ) -> DeadlineSet:
        """Resolution deadline plus the optional acknowledgment and first-response ones."""
        optional = {}
        for target in (SLATarget.ACKNOWLEDGMENT, SLATarget.FIRST_RESPONSE):
            hours = rule.target_hours(target)
            optional[target.value] = (
                DeadlineCalculator.compute_deadline(start, hours, rule, max_iterations)
                if hours else None
            )

        return DeadlineSet(
            resolution=DeadlineCalculator.compute_deadline(
                start, rule.resolution_time, rule, max_iterations
            ),
            acknowledgment=optional[SLATarget.ACKNOWLEDGMENT.value],
            first_response=optional[SLATarget.FIRST_RESPONSE.value],
        )

    @staticmethod
    def elapsed_sla_hours(start: datetime, now: datetime, rule: SlaRule) -> float:
        """
        SLA time elapsed since ``start`` on the rule's own clock.

        Wall-clock hours for round-the-clock rules, operating hours for
        business-hours rules, so 100% of the resolution target coincides
        with the resolution deadline.
        """
        if now <= start:
            return 0.0
        if not rule.business_hours_only:
            return (now - start).total_seconds() / 3600
        return CalendarResolver.operating_hours_between(
            start, now, rule.business_hours, frozenset(rule.holidays), rule.tzinfo
        )
