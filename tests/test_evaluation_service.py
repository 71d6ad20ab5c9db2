from __future__ import annotations

from datetime import datetime, timedelta

import pytest

from casetrack.core import StaleCaseVersionError
from casetrack.sla.application import RuleStatisticsService, SLAEvaluationService, SLAService
from casetrack.sla.domain import BreachEvent, EscalationEvent, SLACase

from support import (
    UTC,
    FixedClock,
    InMemoryCaseRepository,
    InMemoryRuleCatalog,
    RecordingDispatcher,
    make_case,
    make_rule,
)

SUBMITTED = datetime(2026, 10, 19, 0, 0, tzinfo=UTC)
RULE = make_rule(
    resolution_time=10,
    escalation_levels=[{"threshold": 75, "level": 1}, {"threshold": 90, "level": 2}],
    warning_thresholds=[75],
)


def _opened(case_id: str, submitted_at: datetime = SUBMITTED, **overrides) -> SLACase:
    fields = {
        "id": case_id,
        "submitted_at": submitted_at,
        "sla_deadline": submitted_at + timedelta(hours=RULE.resolution_time),
        "rule_id": RULE.id,
        "rule_snapshot": RULE,
    }
    fields.update(overrides)
    return make_case(**fields)


def _evaluation_service(repository, clock, dispatcher=None, catalog=None, **kwargs) -> SLAEvaluationService:
    catalog = catalog or InMemoryRuleCatalog([RULE])
    return SLAEvaluationService(
        sla_service=SLAService(catalog, clock),
        case_repository=repository,
        rule_catalog=catalog,
        event_dispatcher=dispatcher or RecordingDispatcher(repository),
        **kwargs,
    )


@pytest.mark.asyncio
async def test_pass_escalates_and_persists_before_dispatch() -> None:
    repository = InMemoryCaseRepository([_opened("CC1")])
    dispatcher = RecordingDispatcher(repository)
    clock = FixedClock(SUBMITTED + timedelta(hours=9.5))

    report = await _evaluation_service(repository, clock, dispatcher).evaluate_open_cases()

    stored = repository.cases["CC1"]
    assert report.evaluated == 1
    assert report.escalated == 2
    assert report.warnings_fired == 1
    assert report.breaches == 0
    assert report.failed == 0
    assert stored.escalation_level == 2
    assert stored.fired_warnings == [75]
    assert stored.version == 1
    assert dispatcher.versions_at_dispatch == [1]
    assert [type(e) for e in dispatcher.events][:2] == [EscalationEvent, EscalationEvent]


@pytest.mark.asyncio
async def test_second_pass_is_quiet_until_breach() -> None:
    repository = InMemoryCaseRepository([_opened("CC1")])
    dispatcher = RecordingDispatcher(repository)
    clock = FixedClock(SUBMITTED + timedelta(hours=9.5))
    service = _evaluation_service(repository, clock, dispatcher)

    await service.evaluate_open_cases()
    quiet = await service.evaluate_open_cases()
    clock.current = SUBMITTED + timedelta(hours=12)
    breach = await service.evaluate_open_cases()

    assert (quiet.escalated, quiet.warnings_fired, quiet.breaches) == (0, 0, 0)
    assert repository.saves == ["CC1", "CC1"]
    assert breach.breaches == 1
    assert isinstance(dispatcher.events[-1], BreachEvent)
    assert repository.cases["CC1"].breached_at == SUBMITTED + timedelta(hours=12)


@pytest.mark.asyncio
async def test_pages_through_all_open_cases_and_ignores_terminal_ones() -> None:
    cases = [_opened(f"CC{i}", SUBMITTED + timedelta(minutes=i)) for i in range(5)]
    cases.append(_opened("CLOSED", status="closed"))
    repository = InMemoryCaseRepository(cases)
    clock = FixedClock(SUBMITTED + timedelta(hours=20))

    report = await _evaluation_service(repository, clock, batch_size=2, concurrency=2).evaluate_open_cases()

    assert report.evaluated == 5
    assert report.breaches == 5
    assert repository.cases["CLOSED"].version == 0


@pytest.mark.asyncio
async def test_catalog_is_read_once_per_pass() -> None:
    catalog = InMemoryRuleCatalog([RULE])
    repository = InMemoryCaseRepository([_opened(f"CC{i}") for i in range(3)])
    clock = FixedClock(SUBMITTED + timedelta(hours=1))

    await _evaluation_service(repository, clock, catalog=catalog).evaluate_open_cases()

    assert catalog.list_calls == 1


@pytest.mark.asyncio
async def test_missing_snapshot_is_re_resolved() -> None:
    legacy = _opened("CC-LEGACY", rule_snapshot=None, rule_id=None)
    repository = InMemoryCaseRepository([legacy])
    clock = FixedClock(SUBMITTED + timedelta(hours=1))

    report = await _evaluation_service(repository, clock).evaluate_open_cases()

    stored = repository.cases["CC-LEGACY"]
    assert report.evaluated == 1
    assert stored.rule_snapshot == RULE
    assert stored.rule_id == RULE.id


@pytest.mark.asyncio
async def test_unevaluable_case_is_skipped() -> None:
    no_deadline = make_case(id="CC-NODEADLINE", submitted_at=SUBMITTED, rule_snapshot=RULE)
    repository = InMemoryCaseRepository([no_deadline, _opened("CC1")])
    clock = FixedClock(SUBMITTED + timedelta(hours=9.5))

    report = await _evaluation_service(repository, clock).evaluate_open_cases()

    assert report.skipped == 1
    assert report.evaluated == 1
    assert report.failed == 0


class _FlakyRepository(InMemoryCaseRepository):
    """Fails saves for one case, and simulates a concurrent writer for another."""

    def __init__(self, cases, broken_id: str, contended_id: str, conflicts: int = 1) -> None:
        super().__init__(cases)
        self.broken_id = broken_id
        self.contended_id = contended_id
        self.conflicts = conflicts

    async def save_sla_fields(self, case: SLACase) -> SLACase:
        if case.id == self.broken_id:
            raise RuntimeError("disk full")
        if case.id == self.contended_id and self.conflicts > 0:
            self.conflicts -= 1
            self.cases[case.id].version += 1
            raise StaleCaseVersionError(case.id, case.version)
        return await super().save_sla_fields(case)


@pytest.mark.asyncio
async def test_failure_on_one_case_does_not_abort_pass() -> None:
    repository = _FlakyRepository(
        [_opened("CC-BROKEN"), _opened("CC-CONTENDED"), _opened("CC-OK")],
        broken_id="CC-BROKEN",
        contended_id="CC-CONTENDED",
    )
    clock = FixedClock(SUBMITTED + timedelta(hours=9.5))

    report = await _evaluation_service(repository, clock).evaluate_open_cases()

    assert report.evaluated == 2
    assert report.retried == 1
    assert [(f.case_id, f.error_type) for f in report.failures] == [("CC-BROKEN", "RuntimeError")]
    assert repository.cases["CC-CONTENDED"].escalation_level == 2
    assert repository.cases["CC-OK"].escalation_level == 2


@pytest.mark.asyncio
async def test_persistent_conflict_is_reported_after_retries() -> None:
    repository = _FlakyRepository([_opened("CC1")], broken_id="", contended_id="CC1", conflicts=10)
    clock = FixedClock(SUBMITTED + timedelta(hours=9.5))

    report = await _evaluation_service(repository, clock, stale_retry_attempts=2).evaluate_open_cases()

    assert report.evaluated == 0
    assert [f.error_type for f in report.failures] == ["StaleCaseVersionError"]


@pytest.mark.asyncio
async def test_evaluate_case_by_id() -> None:
    repository = InMemoryCaseRepository([_opened("CC1")])
    clock = FixedClock(SUBMITTED + timedelta(hours=8))

    evaluation = await _evaluation_service(repository, clock).evaluate_case_by_id("CC1")

    assert evaluation.escalation_level == 1
    assert repository.cases["CC1"].escalation_level == 1


@pytest.mark.asyncio
async def test_rule_statistics_are_recomputed_from_cases() -> None:
    now = SUBMITTED + timedelta(hours=30)
    repository = InMemoryCaseRepository([
        _opened("ON-TIME", status="closed", closed_at=SUBMITTED + timedelta(hours=4)),
        _opened("LATE", status="closed", closed_at=SUBMITTED + timedelta(hours=12)),
        _opened("FLAGGED", breached_at=SUBMITTED + timedelta(hours=11)),
        _opened("FRESH", SUBMITTED + timedelta(hours=25)),
    ])
    service = RuleStatisticsService(repository, FixedClock(now))

    stats = await service.compute(RULE.id)

    assert stats.total_cases == 4
    assert stats.open_cases == 2
    assert stats.breached_cases == 2
    assert stats.compliance_rate == 50.0
    assert stats.average_resolution_hours == 8.0

    repository.cases["FRESH"].version += 1
    assert (await service.compute(RULE.id)).version != stats.version


@pytest.mark.asyncio
async def test_rule_statistics_without_cases() -> None:
    stats = await RuleStatisticsService(InMemoryCaseRepository(), FixedClock(SUBMITTED)).compute("unused")

    assert stats.total_cases == 0
    assert stats.compliance_rate == 100.0
    assert stats.average_resolution_hours is None
