from __future__ import annotations

import logging
from datetime import datetime

import pytest
import yaml

from casetrack.core import ConfigurationError
from casetrack.sla.domain import CaseAttributes, WarningEvent
from casetrack.sla.infrastructure import (
    LoggingEventDispatcher,
    RuleCatalogManager,
    SLAScheduler,
    YAMLRuleCatalogProvider,
    parse_rule_catalog,
)

from support import UTC

CATALOG = """
rules:
  - id: fraud-high
    name: High priority cyber fraud
    case_type: cyber_fraud
    priority: high
    resolution_time: 24
    first_response_time: 2
    business_hours_only: true
    business_hours:
      monday: {start: "09:00", end: "17:00"}
      tuesday: {start: "09:00", end: "17:00"}
    holidays: ["2026-10-02"]
    escalation_levels:
      - threshold: 75
        level: 1
        actions:
          - {kind: notify, recipients: [sho], channel: email}
      - threshold: 100
        level: 2
        actions:
          - {kind: reassign, to_role: district_officer}
  - id: all-default
    name: Everything else
    case_type: all
    resolution_time: 72
"""


def test_parse_rule_catalog() -> None:
    rules = parse_rule_catalog(yaml.safe_load(CATALOG))

    assert [rule.id for rule in rules] == ["fraud-high", "all-default"]
    assert rules[0].business_hours["wednesday"] is None
    assert rules[0].escalation_levels[1].actions[0].to_role == "district_officer"


@pytest.mark.parametrize(
    "document",
    [
        {"rules": {"id": "not-a-list"}},
        {"rules": [{"id": "missing-resolution", "name": "Broken"}]},
        {"rules": [
            {"id": "dup", "name": "One", "resolution_time": 1},
            {"id": "dup", "name": "Two", "resolution_time": 2},
        ]},
        ["rules"],
    ],
)
def test_malformed_catalogs_are_configuration_errors(document) -> None:
    with pytest.raises(ConfigurationError):
        parse_rule_catalog(document)


def test_empty_document_has_no_rules() -> None:
    assert parse_rule_catalog(None) == []


@pytest.mark.asyncio
async def test_provider_loads_file(tmp_path) -> None:
    path = tmp_path / "sla_rules.yaml"
    path.write_text(CATALOG, encoding="utf-8")

    provider = YAMLRuleCatalogProvider(path)
    candidates = await provider.get_candidate_rules(CaseAttributes(case_type="cyber_fraud"))

    assert len(candidates) == 2


@pytest.mark.asyncio
async def test_missing_file_means_empty_catalog(tmp_path) -> None:
    provider = YAMLRuleCatalogProvider(tmp_path / "absent.yaml")

    assert await provider.list_rules() == []


def test_invalid_file_at_startup_raises(tmp_path) -> None:
    path = tmp_path / "sla_rules.yaml"
    path.write_text("rules: [unclosed", encoding="utf-8")

    with pytest.raises(ConfigurationError):
        YAMLRuleCatalogProvider(path)


@pytest.mark.asyncio
async def test_failed_reload_keeps_previous_rules(tmp_path) -> None:
    path = tmp_path / "sla_rules.yaml"
    path.write_text(CATALOG, encoding="utf-8")
    manager = RuleCatalogManager(YAMLRuleCatalogProvider(path))

    path.write_text("rules:\n  - id: broken\n", encoding="utf-8")
    assert manager.reload() is False
    assert len(await manager.provider.list_rules()) == 2

    path.write_text("rules:\n  - {id: only, name: Only rule, resolution_time: 5}\n", encoding="utf-8")
    assert manager.reload() is True
    assert [rule.id for rule in await manager.provider.list_rules()] == ["only"]


def test_watching_can_start_and_stop(tmp_path) -> None:
    manager = RuleCatalogManager(YAMLRuleCatalogProvider(tmp_path / "sla_rules.yaml"))

    manager.start_watching()
    manager.stop_watching()

    assert manager.is_watching is False


@pytest.mark.asyncio
async def test_logging_dispatcher_writes_structured_records(caplog) -> None:
    event = WarningEvent(
        case_id="CC1",
        threshold_percent=75,
        elapsed_percent=80.0,
        occurred_at=datetime(2026, 10, 19, 12, 0, tzinfo=UTC),
    )

    with caplog.at_level(logging.INFO, logger="casetrack.sla.infrastructure.external"):
        await LoggingEventDispatcher().dispatch([event])

    record = caplog.records[-1]
    assert record.getMessage() == "SLA warning event"
    assert record.case_id == "CC1"
    assert record.threshold_percent == 75


@pytest.mark.asyncio
async def test_scheduler_lifecycle() -> None:
    calls: list[int] = []

    async def _job() -> None:
        calls.append(1)

    scheduler = SLAScheduler(interval_seconds=3600, run_immediately=False)
    await scheduler.start(_job)
    assert scheduler.is_running is True

    await scheduler.stop()
    assert scheduler.is_running is False
    assert calls == []
