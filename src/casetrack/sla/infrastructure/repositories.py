"""
SLA Infrastructure Repositories
=================================

Concrete implementations of the collaborator interfaces.

This layer contains the data access logic - how we store and retrieve
rules and cases, from the database or from the YAML rule catalog.
"""

import threading
from datetime import date, datetime, timezone
from pathlib import Path
from typing import Any, List, Optional

import yaml
from pydantic import ValidationError
from sqlalchemy import and_, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from casetrack.config import ALL_CASE_TYPES, OPEN_STATUSES, CaseKind
from casetrack.core import (
    ConfigurationError,
    InvalidCaseStateError,
    RepositoryException,
    ResourceNotFoundException,
    StaleCaseVersionError,
)
from casetrack.shared.infrastructure.logging import get_logger
from casetrack.sla.application import ICaseRepository, IRuleCatalogProvider
from casetrack.sla.domain import CaseAttributes, SLACase, SlaRule
from casetrack.sla.infrastructure.models import CaseModel, SLARuleModel

logger = get_logger(__name__)


def _to_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Normalise to UTC before writing; SQLite drops the offset."""
    if value is None:
        return None
    return value.astimezone(timezone.utc)


def _from_db(value: Optional[datetime]) -> Optional[datetime]:
    """Stored instants are UTC; some backends hand them back naive."""
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


# ========== Mapping ==========

def rule_to_model(rule: SlaRule, model: Optional[SLARuleModel] = None) -> SLARuleModel:
    data = rule.model_dump(mode="json")
    model = model or SLARuleModel(id=rule.id)
    model.name = rule.name
    model.description = rule.description
    model.case_type = rule.case_type
    model.priority = data["priority"]
    model.severity = data["severity"]
    model.conditions = data["conditions"]
    model.acknowledgment_time = rule.acknowledgment_time
    model.first_response_time = rule.first_response_time
    model.resolution_time = rule.resolution_time
    model.escalation_levels = data["escalation_levels"]
    model.warning_thresholds = data["warning_thresholds"]
    model.auto_escalate = rule.auto_escalate
    model.escalation_notifications = data["escalation_notifications"]
    model.breach_notifications = data["breach_notifications"]
    model.business_hours_only = rule.business_hours_only
    model.business_hours = data["business_hours"]
    model.holidays = data["holidays"]
    model.timezone = rule.timezone
    model.is_active = rule.is_active
    model.effective_from = _to_utc(rule.effective_from)
    model.effective_until = _to_utc(rule.effective_until)
    model.created_at = _to_utc(rule.created_at)
    model.rule_metadata = data["metadata"]
    return model


def model_to_rule(model: SLARuleModel) -> SlaRule:
    try:
        return SlaRule(
            id=model.id,
            name=model.name,
            description=model.description,
            case_type=model.case_type,
            priority=model.priority,
            severity=model.severity,
            conditions=model.conditions or {},
            acknowledgment_time=model.acknowledgment_time,
            first_response_time=model.first_response_time,
            resolution_time=model.resolution_time,
            escalation_levels=model.escalation_levels or [],
            warning_thresholds=model.warning_thresholds or [],
            auto_escalate=model.auto_escalate,
            escalation_notifications=model.escalation_notifications or [],
            breach_notifications=model.breach_notifications or [],
            business_hours_only=model.business_hours_only,
            business_hours=model.business_hours or None,
            holidays=model.holidays or [],
            timezone=model.timezone,
            is_active=model.is_active,
            effective_from=_from_db(model.effective_from),
            effective_until=_from_db(model.effective_until),
            created_at=_from_db(model.created_at),
            metadata=model.rule_metadata or {},
        )
    except ValidationError as e:
        raise ConfigurationError(
            f"Stored SLA rule '{model.id}' is invalid",
            {"rule_id": model.id, "errors": e.errors(include_url=False)}
        ) from e


def model_to_case(model: CaseModel, drop_invalid_snapshot: bool = False) -> SLACase:
    """
    Map a case row to the domain entity.

    With ``drop_invalid_snapshot`` an unreadable rule snapshot is logged and
    discarded, so the engine re-resolves the rule instead of failing the
    whole listing.
    """
    snapshot = None
    if model.rule_snapshot:
        try:
            snapshot = SlaRule.model_validate(model.rule_snapshot)
        except ValidationError as e:
            if not drop_invalid_snapshot:
                raise ConfigurationError(
                    f"Rule snapshot on case '{model.id}' is invalid",
                    {"case_id": model.id, "errors": e.errors(include_url=False)}
                ) from e
            logger.warning(
                "Discarding invalid rule snapshot",
                extra={"case_id": model.id, "error_count": e.error_count()}
            )

    return SLACase(
        id=model.id,
        kind=CaseKind(model.kind),
        case_type=model.case_type,
        priority=model.priority,
        status=model.status,
        severity=model.severity,
        attributes=dict(model.attributes or {}),
        submitted_at=_from_db(model.submitted_at),
        closed_at=_from_db(model.closed_at),
        sla_deadline=_from_db(model.sla_deadline),
        acknowledgment_deadline=_from_db(model.acknowledgment_deadline),
        first_response_deadline=_from_db(model.first_response_deadline),
        escalation_level=model.escalation_level,
        escalated_at=_from_db(model.escalated_at),
        rule_id=model.rule_id,
        rule_snapshot=snapshot,
        fired_warnings=list(model.fired_warnings or []),
        breached_at=_from_db(model.breached_at),
        version=model.version,
    )


def _is_open():
    """Per-kind open-status filter."""
    return or_(*(
        and_(CaseModel.kind == kind.value, CaseModel.status.in_(sorted(statuses)))
        for kind, statuses in OPEN_STATUSES.items()
    ))


def _sla_values(case: SLACase) -> dict:
    """Columns the engine is allowed to write."""
    return {
        "submitted_at": _to_utc(case.submitted_at),
        "sla_deadline": _to_utc(case.sla_deadline),
        "acknowledgment_deadline": _to_utc(case.acknowledgment_deadline),
        "first_response_deadline": _to_utc(case.first_response_deadline),
        "escalation_level": case.escalation_level,
        "escalated_at": _to_utc(case.escalated_at),
        "rule_id": case.rule_id,
        "rule_snapshot": case.rule_snapshot.model_dump(mode="json") if case.rule_snapshot else None,
        "fired_warnings": list(case.fired_warnings),
        "breached_at": _to_utc(case.breached_at),
    }


# ========== SQLAlchemy ==========

class SQLAlchemyCaseRepository(ICaseRepository):
    """
    SQLAlchemy implementation of the case repository.

    Opens one session per call so that concurrent evaluations in a pass
    never share a session.
    """

    def __init__(self, session_maker: async_sessionmaker[AsyncSession]):
        self._session_maker = session_maker

    async def get(self, case_id: str) -> SLACase:
        async with self._session_maker() as session:
            model = await session.get(CaseModel, case_id)
            if model is None:
                raise ResourceNotFoundException("Case", case_id)
            return model_to_case(model)

    async def add(self, case: SLACase) -> SLACase:
        """Insert a new case. Used by the case-management side and tests."""
        model = CaseModel(
            id=case.id,
            kind=case.kind.value,
            case_type=case.case_type,
            priority=case.priority,
            severity=case.severity,
            status=case.status,
            attributes=dict(case.attributes),
            closed_at=_to_utc(case.closed_at),
            version=case.version,
            **_sla_values(case),
        )
        async with self._session_maker() as session:
            session.add(model)
            try:
                await session.commit()
            except Exception as e:
                await session.rollback()
                raise RepositoryException(f"Failed to add case {case.id}", {"error": str(e)}) from e
        return case

    async def list_open(self, limit: int = 100, offset: int = 0) -> List[SLACase]:
        stmt = (
            select(CaseModel)
            .where(_is_open(), CaseModel.submitted_at.is_not(None))
            .order_by(CaseModel.submitted_at.asc(), CaseModel.id.asc())
            .limit(limit)
            .offset(offset)
        )
        async with self._session_maker() as session:
            result = await session.execute(stmt)
            return [model_to_case(m, drop_invalid_snapshot=True) for m in result.scalars().all()]

    async def list_overdue(self, now: datetime, limit: int = 100, offset: int = 0) -> List[SLACase]:
        stmt = (
            select(CaseModel)
            .where(
                _is_open(),
                CaseModel.sla_deadline.is_not(None),
                CaseModel.sla_deadline < _to_utc(now),
            )
            .order_by(CaseModel.sla_deadline.asc(), CaseModel.id.asc())
            .limit(limit)
            .offset(offset)
        )
        async with self._session_maker() as session:
            result = await session.execute(stmt)
            return [model_to_case(m, drop_invalid_snapshot=True) for m in result.scalars().all()]

    async def list_by_rule(self, rule_id: str) -> List[SLACase]:
        stmt = select(CaseModel).where(CaseModel.rule_id == rule_id).order_by(CaseModel.id.asc())
        async with self._session_maker() as session:
            result = await session.execute(stmt)
            return [model_to_case(m, drop_invalid_snapshot=True) for m in result.scalars().all()]

    async def save_sla_fields(self, case: SLACase) -> SLACase:
        stmt = (
            update(CaseModel)
            .where(CaseModel.id == case.id, CaseModel.version == case.version, _is_open())
            .values(**_sla_values(case), version=case.version + 1)
        )
        async with self._session_maker() as session:
            result = await session.execute(stmt)
            if result.rowcount == 0:
                await session.rollback()
                row = (await session.execute(
                    select(CaseModel.kind, CaseModel.status).where(CaseModel.id == case.id)
                )).first()
                if row is None:
                    raise ResourceNotFoundException("Case", case.id)
                # SLA fields of a closed case are frozen
                if row.status not in OPEN_STATUSES[CaseKind(row.kind)]:
                    raise InvalidCaseStateError(case.id, f"status '{row.status}' is not open")
                raise StaleCaseVersionError(case.id, case.version)
            await session.commit()

        case.version += 1
        return case


class SQLAlchemyRuleCatalogProvider(IRuleCatalogProvider):
    """
    Rule catalog stored in the 'sla_rules' table.

    Rules are soft-disabled rather than deleted so that historical
    computations remain reproducible.
    """

    def __init__(self, session_maker: async_sessionmaker[AsyncSession]):
        self._session_maker = session_maker

    async def list_rules(self) -> List[SlaRule]:
        stmt = select(SLARuleModel).order_by(SLARuleModel.created_at.asc(), SLARuleModel.id.asc())
        async with self._session_maker() as session:
            result = await session.execute(stmt)
            return [model_to_rule(m) for m in result.scalars().all()]

    async def get_candidate_rules(self, case_attrs: CaseAttributes) -> List[SlaRule]:
        stmt = select(SLARuleModel).where(SLARuleModel.is_active.is_(True))
        if case_attrs.case_type is not None:
            stmt = stmt.where(or_(
                SLARuleModel.case_type.is_(None),
                SLARuleModel.case_type.in_([case_attrs.case_type, ALL_CASE_TYPES]),
            ))
        async with self._session_maker() as session:
            result = await session.execute(stmt)
            return [model_to_rule(m) for m in result.scalars().all()]

    async def get_rule(self, rule_id: str) -> SlaRule:
        async with self._session_maker() as session:
            model = await session.get(SLARuleModel, rule_id)
            if model is None:
                raise ResourceNotFoundException("SLA rule", rule_id)
            return model_to_rule(model)

    async def save_rule(self, rule: SlaRule) -> SlaRule:
        """Insert or replace a rule."""
        async with self._session_maker() as session:
            model = await session.get(SLARuleModel, rule.id)
            if model is None:
                session.add(rule_to_model(rule))
            else:
                rule_to_model(rule, model)
            await session.commit()
        logger.info("SLA rule saved", extra={"rule_id": rule.id, "is_active": rule.is_active})
        return rule

    async def deactivate_rule(self, rule_id: str) -> SlaRule:
        rule = (await self.get_rule(rule_id)).deactivate()
        return await self.save_rule(rule)

    async def add_holiday(self, rule_id: str, day: date) -> SlaRule:
        rule = (await self.get_rule(rule_id)).with_holiday(day)
        return await self.save_rule(rule)

    async def remove_holiday(self, rule_id: str, day: date) -> SlaRule:
        rule = (await self.get_rule(rule_id)).without_holiday(day)
        return await self.save_rule(rule)


# ========== YAML ==========

def parse_rule_catalog(data: Any, source: str = "<memory>") -> List[SlaRule]:
    """
    Build rules from a parsed YAML document.

    Expected shape::

        rules:
          - id: complaint-high
            name: High priority complaints
            resolution_time: 24
            ...

    Raises:
        ConfigurationError: Malformed document, invalid rule or duplicate id
    """
    if data is None:
        return []
    if not isinstance(data, dict) or not isinstance(data.get("rules", []), list):
        raise ConfigurationError(f"SLA rule catalog {source} must contain a 'rules' list")

    rules: List[SlaRule] = []
    seen: set[str] = set()
    for index, raw in enumerate(data.get("rules") or []):
        try:
            rule = SlaRule.model_validate(raw)
        except ValidationError as e:
            raise ConfigurationError(
                f"Invalid SLA rule #{index} in {source}",
                {"index": index, "errors": e.errors(include_url=False)}
            ) from e
        if rule.id in seen:
            raise ConfigurationError(f"Duplicate SLA rule id '{rule.id}' in {source}")
        seen.add(rule.id)
        rules.append(rule)
    return rules


class YAMLRuleCatalogProvider(IRuleCatalogProvider):
    """
    SLA rule catalog loaded from a YAML file.

    ``reload()`` swaps the catalog atomically and keeps the previous one
    when the new file is invalid. Watching the file is done by
    ``RuleCatalogManager``.
    """

    def __init__(self, config_path: Path | str):
        self._config_path = Path(config_path)
        self._lock = threading.Lock()
        self._rules: List[SlaRule] = self._load()

    @property
    def path(self) -> Path:
        return self._config_path

    def _load(self) -> List[SlaRule]:
        if not self._config_path.exists():
            logger.warning(
                "SLA rule catalog not found, starting with no rules",
                extra={"path": str(self._config_path)}
            )
            return []

        with open(self._config_path, "r", encoding="utf-8") as f:
            try:
                data = yaml.safe_load(f)
            except yaml.YAMLError as e:
                raise ConfigurationError(
                    f"SLA rule catalog {self._config_path} is not valid YAML",
                    {"error": str(e)}
                ) from e

        rules = parse_rule_catalog(data, str(self._config_path))
        logger.info(
            "SLA rule catalog loaded",
            extra={"path": str(self._config_path), "rule_count": len(rules)}
        )
        return rules

    def reload(self) -> bool:
        """Reload from file; on failure the previous catalog stays in force."""
        try:
            rules = self._load()
        except (ConfigurationError, OSError) as e:
            logger.error(
                "Failed to reload SLA rule catalog, keeping previous rules",
                extra={"path": str(self._config_path), "error": str(e)}
            )
            return False
        with self._lock:
            self._rules = rules
        return True

    async def list_rules(self) -> List[SlaRule]:
        with self._lock:
            return list(self._rules)
