"""
SLA Application DTOs
=====================

Data Transfer Objects for the SLA API layer.

These Pydantic models handle serialization/deserialization and validation
for requests and responses. Trigger descriptors and escalation rules are
validated for shape only (JSON objects) and passed through unchanged.
"""

from datetime import datetime
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, Field

from src.sla.domain import BusinessCalendar, SLAConfig, SLAInstance


# ========== Type Aliases for Literals ==========
SLAStatusStr = Literal["active", "paused", "met", "breached"]
SLAMetricStr = Literal["time_to_first_response", "time_to_resolution", "time_to_close"]


# ========== Request DTOs ==========

class SLAConfigCreateDTO(BaseModel):
    """DTO for creating an SLA configuration."""
    name: str = Field(..., min_length=1, max_length=255, description="Display name")
    metric: SLAMetricStr = Field(..., description="Clock this config measures")
    target_duration: int = Field(..., gt=0, description="Target business time in minutes")
    start_condition: Dict[str, Any] = Field(..., description="Opaque start trigger")
    stop_condition: Dict[str, Any] = Field(..., description="Opaque stop trigger")
    pause_conditions: List[Dict[str, Any]] = Field(default_factory=list)
    escalation_rules: List[Dict[str, Any]] = Field(default_factory=list)
    calendar: Optional[BusinessCalendar] = Field(
        None,
        description="Business calendar; the default calendar applies when omitted"
    )
    project_id: Optional[str] = None
    is_active: bool = True


class SLAConfigUpdateDTO(BaseModel):
    """DTO for partially updating an SLA configuration."""
    name: Optional[str] = Field(None, min_length=1, max_length=255)
    metric: Optional[SLAMetricStr] = None
    target_duration: Optional[int] = Field(None, gt=0)
    start_condition: Optional[Dict[str, Any]] = None
    stop_condition: Optional[Dict[str, Any]] = None
    pause_conditions: Optional[List[Dict[str, Any]]] = None
    escalation_rules: Optional[List[Dict[str, Any]]] = None
    calendar: Optional[BusinessCalendar] = None
    project_id: Optional[str] = None
    is_active: Optional[bool] = None


class SLAConfigQueryDTO(BaseModel):
    """Filters for listing SLA configurations."""
    is_active: Optional[bool] = None
    project_id: Optional[str] = None


class StartSLARequest(BaseModel):
    """Request to start tracking an issue against a config."""
    sla_config_id: str = Field(..., min_length=1)
    issue_id: str = Field(..., min_length=1)


# ========== Response DTOs ==========

class SLAConfigResponse(BaseModel):
    """Response model for an SLA configuration."""
    id: str
    organization_id: str
    name: str
    metric: SLAMetricStr
    target_duration: int
    start_condition: Dict[str, Any]
    stop_condition: Dict[str, Any]
    pause_conditions: List[Dict[str, Any]]
    escalation_rules: List[Dict[str, Any]]
    calendar: Optional[BusinessCalendar] = None
    project_id: Optional[str] = None
    is_active: bool
    created_at: datetime
    updated_at: datetime

    @classmethod
    def from_domain(cls, config: SLAConfig) -> "SLAConfigResponse":
        return cls(
            id=config.id,
            organization_id=config.organization_id,
            name=config.name,
            metric=config.metric.value,
            target_duration=config.target_duration,
            start_condition=config.start_condition,
            stop_condition=config.stop_condition,
            pause_conditions=config.pause_conditions,
            escalation_rules=config.escalation_rules,
            calendar=config.calendar,
            project_id=config.project_id,
            is_active=config.is_active,
            created_at=config.created_at,
            updated_at=config.updated_at
        )


class SLAInstanceResponse(BaseModel):
    """Response model for an SLA instance."""
    id: str = Field(..., description="Instance ID")
    sla_config_id: Optional[str] = Field(None, description="Null once the config is deleted")
    issue_id: str
    status: SLAStatusStr
    started_at: datetime
    paused_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    elapsed_ms: int = Field(..., description="Business ms consumed in closed active periods")
    remaining_ms: int = Field(..., description="Budget as of the last active entry")
    breach_time: datetime = Field(..., description="Business-time adjusted deadline")

    @classmethod
    def from_domain(cls, instance: SLAInstance) -> "SLAInstanceResponse":
        return cls(
            id=instance.id,
            sla_config_id=instance.sla_config_id,
            issue_id=instance.issue_id,
            status=instance.status.value,
            started_at=instance.started_at,
            paused_at=instance.paused_at,
            completed_at=instance.completed_at,
            elapsed_ms=instance.elapsed_ms,
            remaining_ms=instance.remaining_ms,
            breach_time=instance.breach_time
        )


class BreachScanResponse(BaseModel):
    """Summary of one breach scan run."""
    scanned: int
    breached: int
    skipped: int
    failed: int = 0
