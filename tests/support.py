"""Builders and in-memory collaborators shared by the test modules."""

from __future__ import annotations

import copy
from datetime import datetime, timezone
from typing import Any, Sequence

from casetrack.config import CaseKind
from casetrack.core import InvalidCaseStateError, ResourceNotFoundException, StaleCaseVersionError
from casetrack.sla.application import ICaseRepository, IClock, IEventDispatcher, IRuleCatalogProvider
from casetrack.sla.domain import SLACase, SLAEvent, SlaRule

UTC = timezone.utc


def make_rule(**overrides: Any) -> SlaRule:
    data: dict[str, Any] = {
        "id": "rule-1",
        "name": "Test rule",
        "resolution_time": 10,
        "timezone": "UTC",
        "created_at": datetime(2026, 1, 1, tzinfo=UTC),
    }
    data.update(overrides)
    return SlaRule.model_validate(data)


def make_case(**overrides: Any) -> SLACase:
    data: dict[str, Any] = {
        "id": "CC2026000001",
        "kind": CaseKind.COMPLAINT,
        "case_type": "cyber_fraud",
        "priority": "high",
        "status": "submitted",
    }
    data.update(overrides)
    return SLACase(**data)


class FixedClock(IClock):
    def __init__(self, now: datetime) -> None:
        self.current = now

    def now(self) -> datetime:
        return self.current


class InMemoryRuleCatalog(IRuleCatalogProvider):
    def __init__(self, rules: Sequence[SlaRule] = ()) -> None:
        self.rules = list(rules)
        self.list_calls = 0

    async def list_rules(self) -> list[SlaRule]:
        self.list_calls += 1
        return list(self.rules)


class InMemoryCaseRepository(ICaseRepository):
    """Stores copies so that callers never share state with the store."""

    def __init__(self, cases: Sequence[SLACase] = ()) -> None:
        self.cases: dict[str, SLACase] = {case.id: copy.deepcopy(case) for case in cases}
        self.saves: list[str] = []

    async def get(self, case_id: str) -> SLACase:
        if case_id not in self.cases:
            raise ResourceNotFoundException("Case", case_id)
        return copy.deepcopy(self.cases[case_id])

    async def list_open(self, limit: int = 100, offset: int = 0) -> list[SLACase]:
        open_cases = sorted(
            (c for c in self.cases.values() if not c.is_terminal and c.submitted_at is not None),
            key=lambda c: (c.submitted_at, c.id),
        )
        return [copy.deepcopy(c) for c in open_cases[offset:offset + limit]]

    async def list_overdue(self, now: datetime, limit: int = 100, offset: int = 0) -> list[SLACase]:
        overdue = sorted(
            (
                c for c in self.cases.values()
                if not c.is_terminal and c.sla_deadline is not None and c.sla_deadline < now
            ),
            key=lambda c: (c.sla_deadline, c.id),
        )
        return [copy.deepcopy(c) for c in overdue[offset:offset + limit]]

    async def list_by_rule(self, rule_id: str) -> list[SLACase]:
        return [copy.deepcopy(c) for c in self.cases.values() if c.rule_id == rule_id]

    async def save_sla_fields(self, case: SLACase) -> SLACase:
        stored = self.cases.get(case.id)
        if stored is None:
            raise ResourceNotFoundException("Case", case.id)
        if stored.is_terminal:
            raise InvalidCaseStateError(case.id, f"status '{stored.status}' is not open")
        if stored.version != case.version:
            raise StaleCaseVersionError(case.id, case.version)
        case.version += 1
        self.cases[case.id] = copy.deepcopy(case)
        self.saves.append(case.id)
        return case


class RecordingDispatcher(IEventDispatcher):
    def __init__(self, repository: InMemoryCaseRepository | None = None) -> None:
        self.events: list[SLAEvent] = []
        self.repository = repository
        self.versions_at_dispatch: list[int] = []

    async def dispatch(self, events: Sequence[SLAEvent]) -> None:
        self.events.extend(events)
        if self.repository is not None and events:
            self.versions_at_dispatch.append(self.repository.cases[events[0].case_id].version)
