"""
SLA Infrastructure Layer
=========================

Infrastructure implementations for the SLA engine:
- Models: SQLAlchemy ORM models
- Repositories: Data access layer (database and YAML rule catalog)
- External: Rule file watcher, scheduler, event dispatch
"""

from casetrack.sla.infrastructure.models import CaseModel, SLARuleModel
from casetrack.sla.infrastructure.repositories import (
    SQLAlchemyCaseRepository,
    SQLAlchemyRuleCatalogProvider,
    YAMLRuleCatalogProvider,
    parse_rule_catalog,
)
from casetrack.sla.infrastructure.external import (
    LoggingEventDispatcher,
    RuleCatalogManager,
    SLAScheduler,
)

__all__ = [
    "CaseModel",
    "SLARuleModel",
    "SQLAlchemyCaseRepository",
    "SQLAlchemyRuleCatalogProvider",
    "YAMLRuleCatalogProvider",
    "parse_rule_catalog",
    "LoggingEventDispatcher",
    "RuleCatalogManager",
    "SLAScheduler",
]
