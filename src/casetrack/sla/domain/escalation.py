"""
Escalation Tracker
==================

Maps the percentage of the resolution SLA that has elapsed onto the rule's
escalation levels and warning thresholds.
"""

from typing import Iterable, List, Sequence

from casetrack.sla.domain.value_objects import EscalationDecision, EscalationLevel


class EscalationTracker:
    """Stateless threshold bookkeeping."""

    @staticmethod
    def elapsed_percent(elapsed_hours: float, resolution_hours: float) -> float:
        if resolution_hours <= 0:
            raise ValueError(f"resolution hours must be positive, got {resolution_hours}")
        return max(0.0, elapsed_hours) / resolution_hours * 100

    @staticmethod
    def evaluate(
        elapsed_hours: float,
        resolution_hours: float,
        current_level: int,
        escalation_levels: Sequence[EscalationLevel]
    ) -> EscalationDecision:
        """
        Determine the escalation level a case should be at.

        Every level whose threshold has been reached and whose number is
        above ``current_level`` is returned in ``crossed_levels``, lowest
        first, so a late evaluation that jumps several thresholds still
        carries out each intermediate level's actions. The level never
        goes down.

        Args:
            elapsed_hours: SLA time elapsed since submission
            resolution_hours: Resolution target of the rule
            current_level: Level the case is currently at
            escalation_levels: Levels sorted by ascending threshold

        Returns:
            EscalationDecision
        """
        percent = EscalationTracker.elapsed_percent(elapsed_hours, resolution_hours)
        reached = [lvl for lvl in escalation_levels if lvl.threshold_percent <= percent]
        crossed = sorted(
            (lvl for lvl in reached if lvl.level > current_level),
            key=lambda lvl: (lvl.threshold_percent, lvl.level)
        )
        new_level = max([current_level, *(lvl.level for lvl in crossed)])

        return EscalationDecision(
            new_level=new_level,
            crossed_levels=crossed,
            should_escalate=new_level > current_level,
            elapsed_percent=percent,
        )

    @staticmethod
    def check_warnings(
        elapsed_percent: float,
        warning_thresholds: Iterable[float],
        already_fired: Iterable[float]
    ) -> List[float]:
        """Warning thresholds reached for the first time, ascending."""
        fired = set(already_fired)
        return sorted(
            t for t in set(warning_thresholds)
            if t <= elapsed_percent and t not in fired
        )
