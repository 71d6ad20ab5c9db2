"""
Rule Selector
=============

Picks the single SLA rule that applies to a case.

Candidates are filtered by effectiveness and by their filters, then ranked
by specificity: one point for each of case type, priority and severity the
rule constrains, plus one per condition key. Ties go to an exact case type
over the generic ``"all"``, then to the most recently created rule, then to
the lowest rule id.
"""

from datetime import datetime
from typing import Iterable, List, Optional, Tuple

from casetrack.sla.domain.value_objects import CaseAttributes, SlaRule


class RuleSelector:
    """Stateless rule matching and ranking."""

    @staticmethod
    def matches(rule: SlaRule, case_attrs: CaseAttributes) -> bool:
        """Every filter the rule sets must match the case; unset filters match anything."""
        if rule.case_type is not None and not rule.is_generic_case_type:
            if rule.case_type != case_attrs.case_type:
                return False
        if rule.priority is not None and rule.priority != case_attrs.priority:
            return False
        if rule.severity is not None and rule.severity != case_attrs.severity:
            return False
        for key, expected in rule.conditions.items():
            if key not in case_attrs.attributes or case_attrs.attributes[key] != expected:
                return False
        return True

    @staticmethod
    def specificity(rule: SlaRule) -> int:
        """Number of filter dimensions the rule constrains."""
        score = len(rule.conditions)
        for value in (rule.case_type, rule.priority, rule.severity):
            if value is not None:
                score += 1
        return score

    @staticmethod
    def _rank(rule: SlaRule) -> Tuple[int, int, float, str]:
        exact_case_type = int(rule.case_type is not None and not rule.is_generic_case_type)
        # Negated so that ascending sort puts the winner first
        return (
            -RuleSelector.specificity(rule),
            -exact_case_type,
            -rule.created_at.timestamp(),
            rule.id,
        )

    @staticmethod
    def rank(
        case_attrs: CaseAttributes,
        candidate_rules: Iterable[SlaRule],
        at: datetime
    ) -> List[SlaRule]:
        """All applicable rules, best first."""
        applicable = [
            rule for rule in candidate_rules
            if rule.is_effective(at) and RuleSelector.matches(rule, case_attrs)
        ]
        return sorted(applicable, key=RuleSelector._rank)

    @staticmethod
    def select_rule(
        case_attrs: CaseAttributes,
        candidate_rules: Iterable[SlaRule],
        at: datetime
    ) -> Optional[SlaRule]:
        """
        Select the applicable rule for a case.

        Args:
            case_attrs: Case classification and condition attributes
            candidate_rules: Rules from the catalog
            at: Instant at which effectiveness is judged

        Returns:
            The winning rule, or None when nothing applies
        """
        ranked = RuleSelector.rank(case_attrs, candidate_rules, at)
        return ranked[0] if ranked else None
