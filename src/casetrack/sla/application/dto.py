"""
SLA Application DTOs
=====================

Data Transfer Objects returned to the collaborators around the engine
(case-creation flow, scheduler, reporting).

These Pydantic models handle serialization and validation of results.
Following YAGNI - only what's needed.
"""

from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, Field


class DeadlineResolution(BaseModel):
    """Rule and deadlines resolved for a case at submission."""
    rule_id: str = Field(..., description="Id of the applied rule")
    rule_name: str = Field(..., description="Name of the applied rule")
    sla_deadline: datetime = Field(..., description="Resolution deadline")
    first_response_deadline: Optional[datetime] = Field(None, description="First response deadline")
    acknowledgment_deadline: Optional[datetime] = Field(None, description="Acknowledgment deadline")
    used_fallback: bool = Field(False, description="True when the system default rule was applied")


class CaseFailure(BaseModel):
    """A case that could not be evaluated during a pass."""
    case_id: str
    error_type: str
    message: str


class BatchEvaluationReport(BaseModel):
    """Summary of one evaluation pass over the open cases."""
    run_id: str = Field(..., description="Correlation id of the pass")
    started_at: datetime
    finished_at: Optional[datetime] = None
    evaluated: int = Field(0, ge=0, description="Cases evaluated without error")
    escalated: int = Field(0, ge=0, description="Escalation events emitted")
    warnings_fired: int = Field(0, ge=0)
    breaches: int = Field(0, ge=0)
    skipped: int = Field(0, ge=0, description="Cases not in an evaluable state")
    retried: int = Field(0, ge=0, description="Stale-version retries performed")
    failures: List[CaseFailure] = Field(default_factory=list)

    @property
    def failed(self) -> int:
        return len(self.failures)


class RuleStatistics(BaseModel):
    """
    Compliance figures for one rule, recomputed from case records on demand.

    ``version`` changes whenever any contributing case changes, so callers
    can cache and compare.
    """
    rule_id: str
    total_cases: int = Field(ge=0)
    open_cases: int = Field(ge=0)
    breached_cases: int = Field(ge=0)
    average_resolution_hours: Optional[float] = None
    compliance_rate: float = Field(ge=0, le=100)
    computed_at: datetime
    version: str
