"""
SLA Application Services
=========================

Application services orchestrate business logic and coordinate between
domain entities and repositories.

Following SOLID principles:
- Single Responsibility: Each service has one clear purpose
- Dependency Inversion: Depend on abstractions (repositories), not concrete implementations

Concurrency is pushed to the store: every state transition is written with
`ISLAInstanceRepository.update`, a conditional write guarded on the status
and version the instance was read at.
"""

from abc import ABC, abstractmethod
from contextlib import nullcontext
from dataclasses import replace
from datetime import datetime
from typing import AsyncContextManager, Callable, List, Optional

from src.config import SLAMetric, SLAStatus
from src.core import ResourceNotFoundException, ValidationException
from src.shared.infrastructure.clock import Clock, ensure_utc, utc_now
from src.shared.infrastructure.logging import get_context_logger, get_logger
from src.sla.application.dto import (
    BreachScanResponse,
    SLAConfigCreateDTO,
    SLAConfigQueryDTO,
    SLAConfigUpdateDTO,
)
from src.sla.domain import BusinessCalendar, SLAConfig, SLAInstance

logger = get_logger(__name__)


# ========== Repository Interfaces (Dependency Inversion) ==========

class ISLAConfigRepository(ABC):
    """Interface for SLA configuration data access."""

    @abstractmethod
    async def get_by_id(self, organization_id: str, config_id: str) -> Optional[SLAConfig]:
        """Get config by ID within an organization."""

    @abstractmethod
    async def create(self, config: SLAConfig) -> SLAConfig:
        """Persist a new config and return it with its ID."""

    @abstractmethod
    async def save(self, config: SLAConfig) -> SLAConfig:
        """Overwrite an existing config."""

    @abstractmethod
    async def list(
        self,
        organization_id: str,
        is_active: Optional[bool] = None,
        project_id: Optional[str] = None
    ) -> List[SLAConfig]:
        """List configs, newest first."""

    @abstractmethod
    async def delete(self, organization_id: str, config_id: str) -> bool:
        """Delete a config, orphaning its instances. False if absent."""


class ISLAInstanceRepository(ABC):
    """Interface for SLA instance data access."""

    @abstractmethod
    async def get_by_id(self, organization_id: str, instance_id: str) -> Optional[SLAInstance]:
        """Get instance by ID within an organization."""

    @abstractmethod
    async def create(self, instance: SLAInstance) -> SLAInstance:
        """Persist a new instance and return it with its ID."""

    @abstractmethod
    async def update(
        self,
        instance: SLAInstance,
        expected_status: SLAStatus
    ) -> Optional[SLAInstance]:
        """
        Conditionally write a transitioned instance.

        Succeeds only if the stored row still has `expected_status` and
        `instance.version`. Returns the stored instance, or None when the
        guard fails.
        """

    @abstractmethod
    async def list(
        self,
        organization_id: str,
        issue_id: str,
        status: Optional[SLAStatus] = None
    ) -> List[SLAInstance]:
        """List an issue's instances, newest first."""

    @abstractmethod
    async def list_overdue(self, now: datetime, limit: int = 500) -> List[SLAInstance]:
        """Active instances whose breach_time has passed, across organizations."""


class ICalendarProvider(ABC):
    """Interface for the default business calendar."""

    @abstractmethod
    def get_calendar(self) -> BusinessCalendar:
        """Get the current default calendar."""


# ========== Application Services ==========

class SLAConfigService:
    """
    Administrative management of SLA configurations.

    Deleting a config never touches its instances beyond clearing their
    config pointer.
    """

    def __init__(
        self,
        config_repository: ISLAConfigRepository,
        clock: Clock = utc_now
    ):
        self._config_repo = config_repository
        self._clock = clock

    def _now(self) -> datetime:
        return ensure_utc(self._clock())

    async def create_config(
        self,
        organization_id: str,
        data: SLAConfigCreateDTO
    ) -> SLAConfig:
        now = self._now()
        config = SLAConfig(
            id=None,
            organization_id=organization_id,
            name=data.name,
            metric=SLAMetric(data.metric),
            target_duration=data.target_duration,
            start_condition=data.start_condition,
            stop_condition=data.stop_condition,
            pause_conditions=data.pause_conditions,
            escalation_rules=data.escalation_rules,
            calendar=data.calendar,
            project_id=data.project_id,
            is_active=data.is_active,
            created_at=now,
            updated_at=now
        )
        config = await self._config_repo.create(config)

        logger.info(
            "SLA config created",
            extra={
                "organization_id": organization_id,
                "sla_config_id": config.id,
                "metric": config.metric.value,
                "target_duration": config.target_duration
            }
        )
        return config

    async def get_config(self, organization_id: str, config_id: str) -> SLAConfig:
        config = await self._config_repo.get_by_id(organization_id, config_id)
        if config is None:
            raise ResourceNotFoundException("SLAConfig", config_id)
        return config

    async def update_config(
        self,
        organization_id: str,
        config_id: str,
        data: SLAConfigUpdateDTO
    ) -> SLAConfig:
        """Apply only the fields the caller explicitly set."""
        config = await self.get_config(organization_id, config_id)

        changes = {name: getattr(data, name) for name in data.model_fields_set}
        if "metric" in changes and changes["metric"] is not None:
            changes["metric"] = SLAMetric(changes["metric"])
        # Explicit null is only meaningful for nullable fields
        for required in ("name", "metric", "target_duration", "start_condition",
                         "stop_condition", "pause_conditions", "escalation_rules", "is_active"):
            if changes.get(required, "") is None:
                del changes[required]

        updated = replace(config, **changes, updated_at=self._now())
        updated = await self._config_repo.save(updated)

        logger.info(
            "SLA config updated",
            extra={
                "organization_id": organization_id,
                "sla_config_id": config_id,
                "fields": sorted(changes)
            }
        )
        return updated

    async def list_configs(
        self,
        organization_id: str,
        query: Optional[SLAConfigQueryDTO] = None
    ) -> List[SLAConfig]:
        query = query or SLAConfigQueryDTO()
        return await self._config_repo.list(
            organization_id,
            is_active=query.is_active,
            project_id=query.project_id
        )

    async def delete_config(self, organization_id: str, config_id: str) -> None:
        deleted = await self._config_repo.delete(organization_id, config_id)
        if not deleted:
            raise ResourceNotFoundException("SLAConfig", config_id)

        logger.info(
            "SLA config deleted",
            extra={"organization_id": organization_id, "sla_config_id": config_id}
        )


class SLAService:
    """
    SLA instance lifecycle manager.

    Drives instances through active -> paused -> active -> met/breached,
    using the business calendar for deadlines and elapsed time, and the
    instance store for persistence.
    """

    def __init__(
        self,
        config_repository: ISLAConfigRepository,
        instance_repository: ISLAInstanceRepository,
        calendar_provider: ICalendarProvider,
        clock: Clock = utc_now
    ):
        self._config_repo = config_repository
        self._instance_repo = instance_repository
        self._calendar_provider = calendar_provider
        self._clock = clock

    def _now(self) -> datetime:
        return ensure_utc(self._clock())

    async def start_sla(
        self,
        organization_id: str,
        sla_config_id: str,
        issue_id: str
    ) -> SLAInstance:
        """
        Start tracking an issue against a config.

        Raises:
            ResourceNotFoundException: config does not exist in the organization
            ValidationException: config is inactive
        """
        config = await self._config_repo.get_by_id(organization_id, sla_config_id)
        if config is None:
            raise ResourceNotFoundException("SLAConfig", sla_config_id)

        now = self._now()
        instance = SLAInstance.start(
            organization_id, config, issue_id, now, self._calendar_for(config)
        )
        instance = await self._instance_repo.create(instance)

        self._log(organization_id, instance).info(
            "SLA instance started",
            extra={
                "sla_config_id": sla_config_id,
                "issue_id": issue_id,
                "target_ms": instance.target_ms,
                "breach_time": instance.breach_time.isoformat()
            }
        )
        return instance

    async def pause_sla(self, organization_id: str, instance_id: str) -> SLAInstance:
        """Pause an active instance, banking the business time it consumed."""
        instance = await self._get_instance(organization_id, instance_id)
        calendar = await self._calendar_for_instance(instance)
        expected = instance.status

        self._transition(instance, "pause", lambda: instance.pause(self._now(), calendar))
        instance = await self._write(instance, expected)

        self._log(organization_id, instance).info(
            "SLA instance paused",
            extra={"elapsed_ms": instance.elapsed_ms}
        )
        return instance

    async def resume_sla(self, organization_id: str, instance_id: str) -> SLAInstance:
        """Resume a paused instance and recompute its deadline from now."""
        instance = await self._get_instance(organization_id, instance_id)
        calendar = await self._calendar_for_instance(instance)
        expected = instance.status

        self._transition(instance, "resume", lambda: instance.resume(self._now(), calendar))
        instance = await self._write(instance, expected)

        self._log(organization_id, instance).info(
            "SLA instance resumed",
            extra={
                "remaining_ms": instance.remaining_ms,
                "breach_time": instance.breach_time.isoformat()
            }
        )
        return instance

    async def complete_sla(self, organization_id: str, instance_id: str) -> SLAInstance:
        """Finalize an active or paused instance as met or breached."""
        instance = await self._get_instance(organization_id, instance_id)
        expected = instance.status

        self._transition(instance, "complete", lambda: instance.complete(self._now()))
        instance = await self._write(instance, expected)

        self._log(organization_id, instance).info(
            "SLA instance completed",
            extra={
                "status": instance.status.value,
                "breach_time": instance.breach_time.isoformat()
            }
        )
        return instance

    async def get_sla_instances(
        self,
        organization_id: str,
        issue_id: str,
        status: Optional[SLAStatus] = None
    ) -> List[SLAInstance]:
        """Read-only listing of an issue's instances."""
        return await self._instance_repo.list(organization_id, issue_id, status)

    # ========== Helpers ==========

    async def _get_instance(self, organization_id: str, instance_id: str) -> SLAInstance:
        instance = await self._instance_repo.get_by_id(organization_id, instance_id)
        if instance is None:
            raise ResourceNotFoundException("SLAInstance", instance_id)
        return instance

    def _calendar_for(self, config: Optional[SLAConfig]) -> BusinessCalendar:
        if config is not None and config.calendar is not None:
            return config.calendar
        return self._calendar_provider.get_calendar()

    async def _calendar_for_instance(self, instance: SLAInstance) -> BusinessCalendar:
        config = None
        if instance.sla_config_id is not None:
            config = await self._config_repo.get_by_id(
                instance.organization_id, instance.sla_config_id
            )
        return self._calendar_for(config)

    def _transition(self, instance: SLAInstance, action: str, apply) -> None:
        try:
            apply()
        except ValidationException as exc:
            self._log(instance.organization_id, instance).warning(
                f"SLA {action} rejected",
                extra={"code": exc.code, "current_status": instance.status.value}
            )
            raise

    async def _write(self, instance: SLAInstance, expected: SLAStatus) -> SLAInstance:
        stored = await self._instance_repo.update(instance, expected)
        if stored is None:
            self._log(instance.organization_id, instance).warning(
                "SLA instance changed concurrently",
                extra={"expected_status": expected.value}
            )
            raise ValidationException(
                "SLA instance was modified concurrently; reload and retry",
                code="SLA_CONCURRENT_MODIFICATION",
                details={"instance_id": instance.id, "expected_status": expected.value}
            )
        return stored

    @staticmethod
    def _log(organization_id: str, instance: SLAInstance):
        return get_context_logger(
            __name__, organization_id=organization_id, instance_id=instance.id
        )


class SLABreachScanService:
    """
    Completes active instances whose deadline has passed.

    Run periodically. Each completion goes through `SLAService.complete_sla`,
    so an instance finished concurrently is skipped, never double-completed.

    Each completion runs inside its own `unit_of_work` (a savepoint in
    production), so a store error on one instance rolls back only that
    instance and the pass continues.
    """

    def __init__(
        self,
        instance_repository: ISLAInstanceRepository,
        sla_service: SLAService,
        clock: Clock = utc_now,
        batch_size: int = 500,
        unit_of_work: Optional[Callable[[], AsyncContextManager]] = None
    ):
        self._instance_repo = instance_repository
        self._sla_service = sla_service
        self._clock = clock
        self._batch_size = batch_size
        self._unit_of_work = unit_of_work or nullcontext

    async def scan(self) -> BreachScanResponse:
        overdue = await self._instance_repo.list_overdue(
            ensure_utc(self._clock()), self._batch_size
        )

        breached = 0
        skipped = 0
        failed = 0
        for instance in overdue:
            try:
                async with self._unit_of_work():
                    result = await self._sla_service.complete_sla(
                        instance.organization_id, instance.id
                    )
            except (ValidationException, ResourceNotFoundException) as exc:
                skipped += 1
                logger.warning(
                    "Skipped overdue SLA instance",
                    extra={"instance_id": instance.id, "reason": exc.message}
                )
                continue
            except Exception:
                failed += 1
                logger.exception(
                    "Failed to complete overdue SLA instance",
                    extra={"instance_id": instance.id, "organization_id": instance.organization_id}
                )
                continue
            if result.status == SLAStatus.BREACHED:
                breached += 1

        summary = BreachScanResponse(
            scanned=len(overdue), breached=breached, skipped=skipped, failed=failed
        )
        logger.info("SLA breach scan finished", extra=summary.model_dump())
        return summary
