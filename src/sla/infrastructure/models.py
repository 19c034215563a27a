"""
SLA Infrastructure Models
==========================

SQLAlchemy ORM models for the SLA module.

These are the database representations of our domain entities.
They belong in the infrastructure layer, not the domain layer.
"""

from datetime import datetime, timezone
from typing import Any, Optional
from uuid import UUID, uuid4

from sqlalchemy import JSON, BigInteger, Boolean, DateTime, Integer, String, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from src.config import SLAStatus
from src.infrastructure.database import Base


class SLAConfigModel(Base):
    """
    Database model for the SLAConfig entity.

    Maps to the 'sla_configs' table. Triggers, escalation rules and the
    calendar are stored as JSON documents.
    """
    __tablename__ = "sla_configs"

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)
    organization_id: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    project_id: Mapped[Optional[str]] = mapped_column(String(255), nullable=True, index=True)

    name: Mapped[str] = mapped_column(String(255), nullable=False)
    metric: Mapped[str] = mapped_column(String(50), nullable=False)
    target_duration: Mapped[int] = mapped_column(Integer, nullable=False)  # minutes

    start_condition: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False, default=dict)
    stop_condition: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False, default=dict)
    pause_conditions: Mapped[list[Any]] = mapped_column(JSON, nullable=False, default=list)
    escalation_rules: Mapped[list[Any]] = mapped_column(JSON, nullable=False, default=list)
    calendar: Mapped[Optional[dict[str, Any]]] = mapped_column(JSON, nullable=True)

    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=lambda: datetime.now(timezone.utc))
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=lambda: datetime.now(timezone.utc))


class SLAInstanceModel(Base):
    """
    Database model for the SLAInstance entity.

    Maps to the 'sla_instances' table. `version` backs the conditional
    write used by every state transition.
    """
    __tablename__ = "sla_instances"

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)
    organization_id: Mapped[str] = mapped_column(String(255), nullable=False, index=True)

    # Cleared when the config is deleted; the instance is kept for history
    sla_config_id: Mapped[Optional[UUID]] = mapped_column(Uuid, nullable=True, index=True)
    issue_id: Mapped[str] = mapped_column(String(255), nullable=False, index=True)

    status: Mapped[str] = mapped_column(String(20), nullable=False, default=SLAStatus.ACTIVE.value, index=True)

    # Business-time accounting, milliseconds
    target_ms: Mapped[int] = mapped_column(BigInteger, nullable=False)
    elapsed_ms: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    remaining_ms: Mapped[int] = mapped_column(BigInteger, nullable=False)

    started_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    resumed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    paused_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    breach_time: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, index=True)
    completed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
