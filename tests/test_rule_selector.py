from __future__ import annotations

from datetime import datetime

from casetrack.sla.domain import CaseAttributes, RuleSelector

from support import UTC, make_rule

NOW = datetime(2026, 10, 19, 12, 0, tzinfo=UTC)
FRAUD_HIGH = CaseAttributes(case_type="cyber_fraud", priority="high", severity="medium")


def test_more_specific_rule_wins() -> None:
    priority_only = make_rule(id="priority-only", priority="high")
    type_and_priority = make_rule(id="type-and-priority", case_type="cyber_fraud", priority="high")

    selected = RuleSelector.select_rule(FRAUD_HIGH, [priority_only, type_and_priority], NOW)

    assert selected is type_and_priority


def test_non_matching_filters_exclude_rule() -> None:
    rules = [
        make_rule(id="other-type", case_type="harassment"),
        make_rule(id="low", priority="low"),
        make_rule(id="critical", severity="critical"),
    ]

    assert RuleSelector.select_rule(FRAUD_HIGH, rules, NOW) is None


def test_conditions_count_towards_specificity() -> None:
    generic = make_rule(id="generic", case_type="cyber_fraud")
    with_condition = make_rule(id="district", case_type="cyber_fraud", conditions={"district": "pune"})
    attrs = CaseAttributes(case_type="cyber_fraud", priority="high", attributes={"district": "pune"})

    assert RuleSelector.specificity(with_condition) == 2
    assert RuleSelector.select_rule(attrs, [generic, with_condition], NOW) is with_condition


def test_condition_must_be_present_on_case() -> None:
    rule = make_rule(conditions={"district": "pune"})

    assert RuleSelector.matches(rule, FRAUD_HIGH) is False


def test_exact_case_type_beats_all_at_equal_specificity() -> None:
    generic = make_rule(id="a-generic", case_type="all", created_at=datetime(2026, 5, 1, tzinfo=UTC))
    exact = make_rule(id="b-exact", case_type="cyber_fraud", created_at=datetime(2026, 1, 1, tzinfo=UTC))

    assert RuleSelector.select_rule(FRAUD_HIGH, [generic, exact], NOW) is exact


def test_newest_rule_wins_tie_then_lowest_id() -> None:
    older = make_rule(id="a", priority="high", created_at=datetime(2026, 1, 1, tzinfo=UTC))
    newer = make_rule(id="b", priority="high", created_at=datetime(2026, 6, 1, tzinfo=UTC))
    twin = make_rule(id="c", priority="high", created_at=datetime(2026, 6, 1, tzinfo=UTC))

    ranked = RuleSelector.rank(FRAUD_HIGH, [older, twin, newer], NOW)

    assert [rule.id for rule in ranked] == ["b", "c", "a"]


def test_inactive_and_out_of_window_rules_are_ignored() -> None:
    inactive = make_rule(id="inactive", priority="high", is_active=False)
    future = make_rule(id="future", priority="high", effective_from=datetime(2027, 1, 1, tzinfo=UTC))
    expired = make_rule(id="expired", priority="high", effective_until=datetime(2026, 1, 31, tzinfo=UTC))
    fallback = make_rule(id="fallback")

    assert RuleSelector.select_rule(FRAUD_HIGH, [inactive, future, expired, fallback], NOW) is fallback


def test_unbounded_effective_window_is_always_effective() -> None:
    rule = make_rule(effective_from=None, effective_until=None)

    assert rule.is_effective(datetime(1999, 1, 1, tzinfo=UTC)) is True


def test_select_is_deterministic_regardless_of_candidate_order() -> None:
    rules = [make_rule(id=f"rule-{i}", priority="high") for i in range(5)]

    first = RuleSelector.select_rule(FRAUD_HIGH, rules, NOW)
    second = RuleSelector.select_rule(FRAUD_HIGH, list(reversed(rules)), NOW)

    assert first.id == second.id == "rule-0"
