"""
SLA Domain Entities
====================

Pure Python domain entities for SLA tracking.

Following Domain-Driven Design principles, these entities contain
business logic and are free of infrastructure concerns. The instance
lifecycle is a closed state machine:

    (none) --start--> active
    active --pause--> paused
    paused --resume--> active
    active/paused --complete--> met | breached

Every transition checks its source state before touching any field, so a
rejected call leaves the instance exactly as it was. Timestamps passed in
are normalized to aware UTC; naive values are taken to be UTC.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from src.config import ALLOWED_TRANSITIONS, SLAMetric, SLAStatus
from src.core import ValidationException
from src.shared.infrastructure.clock import ensure_utc
from src.sla.domain.value_objects import BusinessCalendar, BusinessHoursCalculator


@dataclass
class SLAConfig:
    """
    Tenant-owned SLA definition.

    Trigger descriptors and escalation rules are opaque mappings interpreted
    by an external rule evaluator; they are carried through unchanged.
    """

    id: Optional[str]
    organization_id: str
    name: str
    metric: SLAMetric
    target_duration: int  # minutes of business time
    start_condition: Dict[str, Any]
    stop_condition: Dict[str, Any]
    pause_conditions: List[Dict[str, Any]] = field(default_factory=list)
    escalation_rules: List[Dict[str, Any]] = field(default_factory=list)
    calendar: Optional[BusinessCalendar] = None
    project_id: Optional[str] = None
    is_active: bool = True
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    updated_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def __post_init__(self):
        if self.target_duration <= 0:
            raise ValueError("target_duration must be a positive number of minutes")

    @property
    def target_duration_ms(self) -> int:
        return BusinessHoursCalculator.minutes_to_ms(self.target_duration)


@dataclass
class SLAInstance:
    """
    One tracked occurrence of an SLA config applied to an issue.

    Time accounting:
    - elapsed_ms accumulates business time of closed active periods
    - remaining_ms is target_ms - elapsed_ms as of the last active entry
    - breach_time = add_business_ms(last active entry, remaining_ms)
    """

    id: Optional[str]
    organization_id: str
    sla_config_id: Optional[str]
    issue_id: str
    status: SLAStatus
    started_at: datetime
    target_ms: int
    elapsed_ms: int
    remaining_ms: int
    breach_time: datetime
    paused_at: Optional[datetime] = None
    resumed_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    version: int = 1

    @classmethod
    def start(
        cls,
        organization_id: str,
        config: SLAConfig,
        issue_id: str,
        now: datetime,
        calendar: BusinessCalendar
    ) -> "SLAInstance":
        """Open a new active instance with the full target budget."""
        now = ensure_utc(now)
        if not config.is_active:
            raise ValidationException(
                "SLA config is inactive; new instances cannot be started",
                code="SLA_CONFIG_INACTIVE",
                details={"sla_config_id": config.id}
            )

        target_ms = config.target_duration_ms
        return cls(
            id=None,
            organization_id=organization_id,
            sla_config_id=config.id,
            issue_id=issue_id,
            status=SLAStatus.ACTIVE,
            started_at=now,
            target_ms=target_ms,
            elapsed_ms=0,
            remaining_ms=target_ms,
            breach_time=BusinessHoursCalculator.add_business_ms(now, target_ms, calendar),
        )

    @property
    def is_terminal(self) -> bool:
        return self.status.is_terminal

    @property
    def active_since(self) -> datetime:
        """Start of the current (or most recent) active period."""
        return self.resumed_at or self.started_at

    def _require(self, target: SLAStatus, message: str, code: str) -> None:
        if target not in ALLOWED_TRANSITIONS[self.status]:
            raise ValidationException(
                message,
                code=code,
                details={"instance_id": self.id, "current_status": self.status.value}
            )

    def pause(self, now: datetime, calendar: BusinessCalendar) -> None:
        """Freeze the clock, banking business time of the active period."""
        now = ensure_utc(now)
        self._require(SLAStatus.PAUSED, "SLA instance must be active to pause", "SLA_NOT_ACTIVE")

        self.elapsed_ms += BusinessHoursCalculator.calculate_business_ms(
            self.active_since, now, calendar
        )
        self.status = SLAStatus.PAUSED
        self.paused_at = now

    def resume(self, now: datetime, calendar: BusinessCalendar) -> None:
        """
        Restart the clock and recompute the deadline from now.

        The paused interval contributes no business time, whether or not it
        overlapped working hours.
        """
        now = ensure_utc(now)
        self._require(SLAStatus.ACTIVE, "SLA instance must be paused to resume", "SLA_NOT_PAUSED")

        # Overrun shows up as a negative budget; the deadline saturates to now
        self.remaining_ms = self.target_ms - self.elapsed_ms
        self.breach_time = BusinessHoursCalculator.add_business_ms(
            now, self.remaining_ms, calendar
        )
        self.status = SLAStatus.ACTIVE
        self.paused_at = None
        self.resumed_at = now

    def complete(self, now: datetime) -> None:
        """
        Finalize as met or breached against the stored breach_time.

        The deadline is not recomputed: a paused instance accrues nothing, so
        its breach_time frozen at the last start/resume is still the deadline.
        """
        now = ensure_utc(now)
        self._require(
            SLAStatus.MET,
            "SLA instance must be active or paused to complete",
            "SLA_CANNOT_COMPLETE"
        )

        self.status = SLAStatus.MET if now <= self.breach_time else SLAStatus.BREACHED
        self.completed_at = now
