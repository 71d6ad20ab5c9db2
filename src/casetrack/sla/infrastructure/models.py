"""
SLA Infrastructure Models
==========================

SQLAlchemy ORM models for the SLA engine.

These are the database representations of our domain objects.
They belong in the infrastructure layer, not the domain layer.
"""

from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import JSON, Boolean, DateTime, Float, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from casetrack.config import CaseKind
from casetrack.infrastructure.database import Base


class SLARuleModel(Base):
    """
    Database model for SlaRule.

    Maps to the 'sla_rules' table. Nested structures (escalation levels,
    business hours, holidays, actions) are stored as JSON documents.
    """
    __tablename__ = "sla_rules"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    # Filters
    case_type: Mapped[Optional[str]] = mapped_column(String(100), nullable=True, index=True)
    priority: Mapped[Optional[str]] = mapped_column(String(20), nullable=True)
    severity: Mapped[Optional[str]] = mapped_column(String(20), nullable=True)
    conditions: Mapped[dict] = mapped_column(JSON, nullable=False, default=dict)

    # Targets in hours
    acknowledgment_time: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    first_response_time: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    resolution_time: Mapped[float] = mapped_column(Float, nullable=False)

    # Escalation
    escalation_levels: Mapped[list] = mapped_column(JSON, nullable=False, default=list)
    warning_thresholds: Mapped[list] = mapped_column(JSON, nullable=False, default=list)
    auto_escalate: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    escalation_notifications: Mapped[list] = mapped_column(JSON, nullable=False, default=list)
    breach_notifications: Mapped[list] = mapped_column(JSON, nullable=False, default=list)

    # Calendar
    business_hours_only: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    business_hours: Mapped[dict] = mapped_column(JSON, nullable=False, default=dict)
    holidays: Mapped[list] = mapped_column(JSON, nullable=False, default=list)
    timezone: Mapped[str] = mapped_column(String(64), nullable=False, default="Asia/Kolkata")

    # Lifecycle
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True, index=True)
    effective_from: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    effective_until: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=lambda: datetime.now(timezone.utc)
    )
    rule_metadata: Mapped[dict] = mapped_column("metadata", JSON, nullable=False, default=dict)


class CaseModel(Base):
    """
    Database model for complaints and service applications.

    Maps to the 'sla_cases' table. Only the SLA columns are written by the
    engine; ``version`` is bumped on every write for optimistic concurrency.
    """
    __tablename__ = "sla_cases"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    kind: Mapped[CaseKind] = mapped_column(String(20), nullable=False, index=True)
    case_type: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    priority: Mapped[str] = mapped_column(String(20), nullable=False, default="medium")
    severity: Mapped[Optional[str]] = mapped_column(String(20), nullable=True)
    status: Mapped[str] = mapped_column(String(50), nullable=False, index=True)
    attributes: Mapped[dict] = mapped_column(JSON, nullable=False, default=dict)

    # Timestamps
    submitted_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    closed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    # SLA tracking
    sla_deadline: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True, index=True)
    acknowledgment_deadline: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    first_response_deadline: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    escalation_level: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    escalated_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    rule_id: Mapped[Optional[str]] = mapped_column(String(64), nullable=True, index=True)
    rule_snapshot: Mapped[Optional[dict]] = mapped_column(JSON, nullable=True)
    fired_warnings: Mapped[list] = mapped_column(JSON, nullable=False, default=list)
    breached_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    version: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
