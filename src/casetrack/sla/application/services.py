"""
SLA Application Services
=========================

Application services orchestrate the pure SLA engine and coordinate it
with its collaborators: the rule catalog, the case repository, the clock
and the event dispatcher.

Following SOLID principles:
- Single Responsibility: Each service has one clear purpose
- Dependency Inversion: Depend on abstractions (repositories), not concrete implementations
"""

import asyncio
import hashlib
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import Callable, List, Optional, Sequence
from uuid import uuid4

from casetrack.config import SLAState
from casetrack.core import (
    InvalidCaseStateError,
    NoApplicableRuleError,
    StaleCaseVersionError,
)
from casetrack.shared.infrastructure.logging import get_context_logger, get_logger, log_latency
from casetrack.sla.application.dto import (
    BatchEvaluationReport,
    CaseFailure,
    DeadlineResolution,
    RuleStatistics,
)
from casetrack.sla.domain import (
    BreachEvent,
    CaseAttributes,
    CaseEvaluation,
    CaseOpening,
    EscalationEvent,
    RuleSelector,
    SLACase,
    SLAEvent,
    SLAStateMachine,
    SlaRule,
    TimeRemaining,
    WarningEvent,
)

logger = get_logger(__name__)

FallbackRuleProvider = Callable[[CaseAttributes], Optional[SlaRule]]


# ========== Collaborator Interfaces (Dependency Inversion) ==========

class IRuleCatalogProvider(ABC):
    """Interface for read-only access to the SLA rule catalog."""

    @abstractmethod
    async def list_rules(self) -> List[SlaRule]:
        """All rules, including inactive ones (selection filters them)."""

    async def get_candidate_rules(self, case_attrs: CaseAttributes) -> List[SlaRule]:
        """Rules that may apply to a case. Providers may pre-filter."""
        return await self.list_rules()


class ICaseRepository(ABC):
    """Interface for case data access, limited to SLA fields on write."""

    @abstractmethod
    async def get(self, case_id: str) -> SLACase:
        """Get case by id. Raises ResourceNotFoundException."""

    @abstractmethod
    async def list_open(self, limit: int = 100, offset: int = 0) -> List[SLACase]:
        """Non-terminal, submitted cases in a stable order."""

    @abstractmethod
    async def list_overdue(self, now: datetime, limit: int = 100, offset: int = 0) -> List[SLACase]:
        """Open cases whose resolution deadline is before ``now``, earliest first."""

    @abstractmethod
    async def list_by_rule(self, rule_id: str) -> List[SLACase]:
        """Every case whose SLA was resolved against the rule."""

    @abstractmethod
    async def save_sla_fields(self, case: SLACase) -> SLACase:
        """
        Persist the SLA fields of a case if its version is unchanged
        and it is still open.

        Raises:
            StaleCaseVersionError: The stored version differs from ``case.version``
            InvalidCaseStateError: The stored case has been closed meanwhile
        """


class IClock(ABC):
    """Source of the current instant."""

    @abstractmethod
    def now(self) -> datetime:
        """Current aware instant."""


class SystemClock(IClock):
    """Wall clock in UTC."""

    def now(self) -> datetime:
        return datetime.now(timezone.utc)


class IEventDispatcher(ABC):
    """Hands SLA events to the notification and timeline side."""

    @abstractmethod
    async def dispatch(self, events: Sequence[SLAEvent]) -> None:
        """Dispatch events in order."""


# ========== Application Services ==========

class SLAService:
    """
    Entry point used by the case-management side.

    Resolves rules and deadlines at submission, evaluates a case against its
    rule, and answers the read-only overdue / time-remaining questions.
    """

    def __init__(
        self,
        rule_catalog: IRuleCatalogProvider,
        clock: IClock,
        fallback: Optional[FallbackRuleProvider] = None,
        state_machine: Optional[SLAStateMachine] = None,
        auto_escalation_enabled: bool = True
    ):
        self._rule_catalog = rule_catalog
        self._clock = clock
        self._fallback = fallback
        self._state_machine = state_machine or SLAStateMachine()
        self._auto_escalation_enabled = auto_escalation_enabled

    @property
    def clock(self) -> IClock:
        return self._clock

    def select_rule(
        self,
        case_attrs: CaseAttributes,
        candidates: Sequence[SlaRule],
        at: datetime
    ) -> tuple[SlaRule, bool]:
        """
        Select from ``candidates``, falling back to the system default.

        Returns:
            (rule, used_fallback)

        Raises:
            NoApplicableRuleError: Nothing matched and no default exists
        """
        rule = RuleSelector.select_rule(case_attrs, candidates, at)
        if rule is not None:
            return rule, False

        default = self._fallback(case_attrs) if self._fallback else None
        if default is None:
            logger.error(
                "No applicable SLA rule",
                extra={
                    "case_type": case_attrs.case_type,
                    "priority": case_attrs.priority,
                    "severity": case_attrs.severity,
                    "candidates": len(candidates),
                }
            )
            raise NoApplicableRuleError(case_attrs)

        logger.warning(
            "No SLA rule matched, applying system default",
            extra={"rule_id": default.id, "case_type": case_attrs.case_type}
        )
        return default, True

    async def _open(self, case_attrs: CaseAttributes, submitted_at: datetime) -> CaseOpening:
        candidates = await self._rule_catalog.get_candidate_rules(case_attrs)
        rule, used_fallback = self.select_rule(case_attrs, candidates, submitted_at)
        return self._state_machine.open_case(rule, submitted_at, used_fallback)

    async def resolve_rule_and_deadline(
        self,
        case_attrs: CaseAttributes,
        submitted_at: datetime
    ) -> DeadlineResolution:
        """
        Resolve the applicable rule and compute the case's deadlines.

        Configuration errors propagate so that submission fails visibly.
        """
        opening = await self._open(case_attrs, submitted_at)
        return DeadlineResolution(
            rule_id=opening.rule.id,
            rule_name=opening.rule.name,
            sla_deadline=opening.deadlines.resolution,
            first_response_deadline=opening.deadlines.first_response,
            acknowledgment_deadline=opening.deadlines.acknowledgment,
            used_fallback=opening.used_fallback,
        )

    async def open_case(self, case: SLACase) -> SLACase:
        """Stamp deadlines and the rule snapshot onto a newly submitted case."""
        submitted_at = case.submitted_at or self._clock.now()
        opening = await self._open(case.rule_attributes, submitted_at)
        case.apply_opening(opening)
        logger.info(
            "SLA opened for case",
            extra={
                "case_id": case.id,
                "rule_id": opening.rule.id,
                "sla_deadline": case.sla_deadline.isoformat(),
                "used_fallback": opening.used_fallback,
            }
        )
        return case

    def evaluate_case(
        self,
        case: SLACase,
        rule: SlaRule,
        now: Optional[datetime] = None
    ) -> CaseEvaluation:
        """Evaluate a case against its rule; the caller persists and dispatches."""
        return self._state_machine.evaluate(
            case, rule, now or self._clock.now(), self._auto_escalation_enabled
        )

    def is_overdue(self, case: SLACase, now: Optional[datetime] = None) -> bool:
        if case.sla_deadline is None:
            return False
        return (now or self._clock.now()) > case.sla_deadline

    def time_remaining(
        self,
        case: SLACase,
        now: Optional[datetime] = None
    ) -> Optional[TimeRemaining]:
        """Whole hours and minutes left, None when the case has no deadline."""
        if case.sla_deadline is None:
            return None
        remaining = (case.sla_deadline - (now or self._clock.now())).total_seconds()
        if remaining <= 0:
            return TimeRemaining(overdue=True, hours=0, minutes=0)
        hours, rest = divmod(int(remaining), 3600)
        return TimeRemaining(overdue=False, hours=hours, minutes=rest // 60)

    def sla_state(self, case: SLACase, now: Optional[datetime] = None) -> SLAState:
        return self._state_machine.derive_state(
            case, case.rule_snapshot, now or self._clock.now()
        )


class SLAEvaluationService:
    """
    Periodic evaluation of every open case.

    Run by the scheduler. Each case is evaluated independently: a failure on
    one case is recorded in the report and never aborts the pass.
    """

    def __init__(
        self,
        sla_service: SLAService,
        case_repository: ICaseRepository,
        rule_catalog: IRuleCatalogProvider,
        event_dispatcher: IEventDispatcher,
        batch_size: int = 200,
        concurrency: int = 4,
        stale_retry_attempts: int = 3
    ):
        self._sla_service = sla_service
        self._case_repo = case_repository
        self._rule_catalog = rule_catalog
        self._dispatcher = event_dispatcher
        self._batch_size = batch_size
        self._concurrency = concurrency
        self._stale_retry_attempts = stale_retry_attempts

    async def evaluate_open_cases(self) -> BatchEvaluationReport:
        """
        Evaluate all open cases once.

        The rule catalog is read once at the start of the pass; rule edits
        made during the pass apply from the next one.

        Returns:
            BatchEvaluationReport with counts and per-case failures
        """
        now = self._sla_service.clock.now()
        report = BatchEvaluationReport(run_id=uuid4().hex, started_at=now)
        run_logger = get_context_logger(__name__, report.run_id)

        rules = await self._rule_catalog.list_rules()
        semaphore = asyncio.Semaphore(self._concurrency)

        async def guarded(case: SLACase) -> None:
            async with semaphore:
                await self._evaluate_isolated(case, rules, now, report, run_logger)

        with log_latency(run_logger, "sla_evaluation_pass"):
            offset = 0
            while True:
                page = await self._case_repo.list_open(limit=self._batch_size, offset=offset)
                if not page:
                    break
                await asyncio.gather(*(guarded(case) for case in page))
                if len(page) < self._batch_size:
                    break
                offset += len(page)

        report.finished_at = self._sla_service.clock.now()
        run_logger.info(
            "SLA evaluation pass finished",
            extra={
                "evaluated": report.evaluated,
                "escalated": report.escalated,
                "warnings_fired": report.warnings_fired,
                "breaches": report.breaches,
                "skipped": report.skipped,
                "failed": report.failed,
            }
        )
        return report

    async def evaluate_case_by_id(self, case_id: str) -> CaseEvaluation:
        """Evaluate one case now, with the same retry policy as a pass."""
        rules = await self._rule_catalog.list_rules()
        case = await self._case_repo.get(case_id)
        evaluation, _ = await self._evaluate_with_retry(
            case, rules, self._sla_service.clock.now()
        )
        return evaluation

    async def _evaluate_isolated(
        self,
        case: SLACase,
        rules: Sequence[SlaRule],
        now: datetime,
        report: BatchEvaluationReport,
        run_logger
    ) -> None:
        try:
            evaluation, retries = await self._evaluate_with_retry(case, rules, now)
        except InvalidCaseStateError as exc:
            report.skipped += 1
            run_logger.warning(
                "Skipping case",
                extra={"case_id": case.id, "reason": exc.reason}
            )
            return
        except Exception as exc:
            report.failures.append(CaseFailure(
                case_id=case.id,
                error_type=type(exc).__name__,
                message=str(exc),
            ))
            run_logger.exception(
                "Case evaluation failed",
                extra={"case_id": case.id, "error_type": type(exc).__name__}
            )
            return

        report.evaluated += 1
        report.retried += retries
        for event in evaluation.events:
            if isinstance(event, EscalationEvent):
                report.escalated += 1
            elif isinstance(event, WarningEvent):
                report.warnings_fired += 1
            elif isinstance(event, BreachEvent):
                report.breaches += 1

    async def _evaluate_with_retry(
        self,
        case: SLACase,
        rules: Sequence[SlaRule],
        now: datetime
    ) -> tuple[CaseEvaluation, int]:
        retries = 0
        while True:
            try:
                return await self._evaluate_and_persist(case, rules, now), retries
            except StaleCaseVersionError:
                if retries >= self._stale_retry_attempts:
                    raise
                retries += 1
                logger.info(
                    "Stale case version, reloading",
                    extra={"case_id": case.id, "attempt": retries}
                )
                case = await self._case_repo.get(case.id)

    async def _evaluate_and_persist(
        self,
        case: SLACase,
        rules: Sequence[SlaRule],
        now: datetime
    ) -> CaseEvaluation:
        if case.is_terminal:
            raise InvalidCaseStateError(case.id, f"status '{case.status}' is terminal")
        if case.submitted_at is None:
            raise InvalidCaseStateError(case.id, "submitted_at is missing")

        rule = case.rule_snapshot
        resnapshotted = False
        if rule is None:
            # Cases opened before rule snapshots existed are re-resolved
            # against the rule catalog as it stood at submission
            rule, _ = self._sla_service.select_rule(case.rule_attributes, rules, case.submitted_at)
            case.rule_snapshot = rule
            case.rule_id = rule.id
            resnapshotted = True
            logger.info(
                "Re-resolved rule for case without snapshot",
                extra={"case_id": case.id, "rule_id": rule.id}
            )

        evaluation = self._sla_service.evaluate_case(case, rule, now)
        if not evaluation.has_changes and not resnapshotted:
            return evaluation

        case.apply_evaluation(evaluation)
        await self._case_repo.save_sla_fields(case)
        if evaluation.events:
            await self._dispatcher.dispatch(evaluation.events)
        return evaluation


class RuleStatisticsService:
    """Compliance statistics per rule, recomputed from cases on demand."""

    def __init__(self, case_repository: ICaseRepository, clock: IClock):
        self._case_repo = case_repository
        self._clock = clock

    async def compute(self, rule_id: str, now: Optional[datetime] = None) -> RuleStatistics:
        now = now or self._clock.now()
        cases = await self._case_repo.list_by_rule(rule_id)

        breached = 0
        open_cases = 0
        resolution_hours: List[float] = []
        fingerprint = hashlib.sha256(rule_id.encode())

        for case in sorted(cases, key=lambda c: c.id):
            fingerprint.update(f"|{case.id}:{case.version}".encode())
            if not case.is_terminal:
                open_cases += 1
            if self._is_breached(case, now):
                breached += 1
            if case.is_terminal and case.closed_at and case.submitted_at:
                resolution_hours.append(
                    (case.closed_at - case.submitted_at).total_seconds() / 3600
                )

        total = len(cases)
        return RuleStatistics(
            rule_id=rule_id,
            total_cases=total,
            open_cases=open_cases,
            breached_cases=breached,
            average_resolution_hours=(
                round(sum(resolution_hours) / len(resolution_hours), 2)
                if resolution_hours else None
            ),
            compliance_rate=100.0 if total == 0 else round((total - breached) / total * 100, 2),
            computed_at=now,
            version=fingerprint.hexdigest()[:16],
        )

    @staticmethod
    def _is_breached(case: SLACase, now: datetime) -> bool:
        if case.breached_at is not None:
            return True
        if case.sla_deadline is None:
            return False
        if case.is_terminal:
            return case.closed_at is not None and case.closed_at > case.sla_deadline
        return now > case.sla_deadline
