"""
SLA Application Layer
======================

Application layer for the SLA engine.

Contains:
- Services: Orchestrate the engine and coordinate with repositories
- DTOs: Results handed back to the case-management side and the scheduler
- Defaults: System fallback rules built from settings

This layer depends on the domain layer and collaborator interfaces,
but not on concrete infrastructure implementations.
"""

from casetrack.sla.application.defaults import SystemDefaultRules
from casetrack.sla.application.dto import (
    BatchEvaluationReport,
    CaseFailure,
    DeadlineResolution,
    RuleStatistics,
)
from casetrack.sla.application.services import (
    ICaseRepository,
    IClock,
    IEventDispatcher,
    IRuleCatalogProvider,
    RuleStatisticsService,
    SLAEvaluationService,
    SLAService,
    SystemClock,
)

__all__ = [
    # DTOs
    "DeadlineResolution",
    "BatchEvaluationReport",
    "CaseFailure",
    "RuleStatistics",
    # Services
    "SLAService",
    "SLAEvaluationService",
    "RuleStatisticsService",
    "SystemDefaultRules",
    # Collaborator Interfaces
    "IRuleCatalogProvider",
    "ICaseRepository",
    "IClock",
    "SystemClock",
    "IEventDispatcher",
]
