"""
System default rules used when no catalog rule applies to a case.
"""

from datetime import datetime, timezone
from typing import Dict, Optional

from casetrack.config import Priority, Settings
from casetrack.sla.domain import CaseAttributes, SlaRule

_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


class SystemDefaultRules:
    """
    Round-the-clock fallback rule per priority, built from settings.

    Returns None when fallback is disabled, in which case the caller must
    treat a missing match as a configuration error.
    """

    def __init__(self, settings: Settings):
        self._enabled = settings.default_rule_enabled
        self._rules: Dict[str, SlaRule] = {
            priority.value: SlaRule(
                id=f"system-default-{priority.value}",
                name=f"System default ({priority.value})",
                description="Applied when no configured rule matches the case",
                resolution_time=settings.default_hours_for(priority),
                warning_thresholds=[settings.default_warning_threshold_percent],
                timezone=settings.default_timezone,
                created_at=_EPOCH,
            )
            for priority in Priority
        }

    @property
    def enabled(self) -> bool:
        return self._enabled

    def __call__(self, case_attrs: CaseAttributes) -> Optional[SlaRule]:
        if not self._enabled:
            return None
        return self._rules.get(case_attrs.priority or "", self._rules[Priority.MEDIUM.value])
