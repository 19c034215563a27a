"""
SLA Infrastructure Repositories
=================================

Concrete implementations of repository interfaces using SQLAlchemy.

This layer contains the data access logic - how we store and retrieve
entities from the database. Every query is scoped to an organization, and
instance transitions are written with a status/version-guarded UPDATE.
"""

from datetime import datetime
from typing import List, Optional
from uuid import UUID, uuid4

from sqlalchemy import and_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from src.config import SLAMetric, SLAStatus
from src.core import RepositoryException
from src.shared.infrastructure.clock import ensure_utc
from src.sla.application import ISLAConfigRepository, ISLAInstanceRepository
from src.sla.domain import BusinessCalendar, SLAConfig, SLAInstance
from src.sla.infrastructure.models import SLAConfigModel, SLAInstanceModel


def _parse_uuid(value: Optional[str]) -> Optional[UUID]:
    if value is None:
        return None
    try:
        return UUID(str(value))
    except ValueError:
        return None


def _optional_utc(value: Optional[datetime]) -> Optional[datetime]:
    return ensure_utc(value) if value is not None else None


class SQLAlchemySLAConfigRepository(ISLAConfigRepository):
    """
    SQLAlchemy implementation of the SLA config repository.
    """

    def __init__(self, session: AsyncSession):
        self._session = session

    @staticmethod
    def _to_domain(model: SLAConfigModel) -> SLAConfig:
        return SLAConfig(
            id=str(model.id),
            organization_id=model.organization_id,
            name=model.name,
            metric=SLAMetric(model.metric),
            target_duration=model.target_duration,
            start_condition=model.start_condition or {},
            stop_condition=model.stop_condition or {},
            pause_conditions=model.pause_conditions or [],
            escalation_rules=model.escalation_rules or [],
            calendar=BusinessCalendar.model_validate(model.calendar) if model.calendar else None,
            project_id=model.project_id,
            is_active=model.is_active,
            created_at=ensure_utc(model.created_at),
            updated_at=ensure_utc(model.updated_at)
        )

    @staticmethod
    def _apply(model: SLAConfigModel, config: SLAConfig) -> None:
        model.name = config.name
        model.metric = config.metric.value
        model.target_duration = config.target_duration
        model.start_condition = config.start_condition
        model.stop_condition = config.stop_condition
        model.pause_conditions = config.pause_conditions
        model.escalation_rules = config.escalation_rules
        model.calendar = config.calendar.model_dump(mode="json") if config.calendar else None
        model.project_id = config.project_id
        model.is_active = config.is_active
        model.updated_at = config.updated_at

    async def _get_model(self, organization_id: str, config_id: str) -> Optional[SLAConfigModel]:
        config_uuid = _parse_uuid(config_id)
        if config_uuid is None:
            return None

        stmt = select(SLAConfigModel).where(and_(
            SLAConfigModel.id == config_uuid,
            SLAConfigModel.organization_id == organization_id
        ))
        result = await self._session.execute(stmt)
        return result.scalar_one_or_none()

    async def get_by_id(self, organization_id: str, config_id: str) -> Optional[SLAConfig]:
        model = await self._get_model(organization_id, config_id)
        return self._to_domain(model) if model else None

    async def create(self, config: SLAConfig) -> SLAConfig:
        model = SLAConfigModel(
            id=uuid4(),
            organization_id=config.organization_id,
            created_at=config.created_at
        )
        self._apply(model, config)

        self._session.add(model)
        await self._session.flush()

        return self._to_domain(model)

    async def save(self, config: SLAConfig) -> SLAConfig:
        model = await self._get_model(config.organization_id, config.id)
        if model is None:
            raise RepositoryException(f"SLAConfig {config.id} not found")

        self._apply(model, config)
        await self._session.flush()

        return self._to_domain(model)

    async def list(
        self,
        organization_id: str,
        is_active: Optional[bool] = None,
        project_id: Optional[str] = None
    ) -> List[SLAConfig]:
        conditions = [SLAConfigModel.organization_id == organization_id]
        if is_active is not None:
            conditions.append(SLAConfigModel.is_active == is_active)
        if project_id is not None:
            conditions.append(SLAConfigModel.project_id == project_id)

        stmt = (
            select(SLAConfigModel)
            .where(and_(*conditions))
            .order_by(SLAConfigModel.created_at.desc())
        )
        result = await self._session.execute(stmt)
        return [self._to_domain(model) for model in result.scalars().all()]

    async def delete(self, organization_id: str, config_id: str) -> bool:
        model = await self._get_model(organization_id, config_id)
        if model is None:
            return False

        # Orphan, don't cascade: instances are kept for audit
        await self._session.execute(
            update(SLAInstanceModel)
            .where(SLAInstanceModel.sla_config_id == model.id)
            .values(sla_config_id=None)
            .execution_options(synchronize_session="fetch")
        )
        await self._session.delete(model)
        await self._session.flush()
        return True


class SQLAlchemySLAInstanceRepository(ISLAInstanceRepository):
    """
    SQLAlchemy implementation of the SLA instance repository.

    `update` is the conditional-write primitive: one UPDATE guarded on
    (id, status, version), so two racing transitions cannot both succeed
    from the same read.
    """

    def __init__(self, session: AsyncSession):
        self._session = session

    @staticmethod
    def _to_domain(model: SLAInstanceModel) -> SLAInstance:
        return SLAInstance(
            id=str(model.id),
            organization_id=model.organization_id,
            sla_config_id=str(model.sla_config_id) if model.sla_config_id else None,
            issue_id=model.issue_id,
            status=SLAStatus(model.status),
            started_at=ensure_utc(model.started_at),
            target_ms=model.target_ms,
            elapsed_ms=model.elapsed_ms,
            remaining_ms=model.remaining_ms,
            breach_time=ensure_utc(model.breach_time),
            paused_at=_optional_utc(model.paused_at),
            resumed_at=_optional_utc(model.resumed_at),
            completed_at=_optional_utc(model.completed_at),
            version=model.version
        )

    async def _select(self, instance_uuid: UUID, organization_id: str) -> Optional[SLAInstanceModel]:
        stmt = (
            select(SLAInstanceModel)
            .where(and_(
                SLAInstanceModel.id == instance_uuid,
                SLAInstanceModel.organization_id == organization_id
            ))
            .execution_options(populate_existing=True)
        )
        result = await self._session.execute(stmt)
        return result.scalar_one_or_none()

    async def get_by_id(self, organization_id: str, instance_id: str) -> Optional[SLAInstance]:
        instance_uuid = _parse_uuid(instance_id)
        if instance_uuid is None:
            return None

        model = await self._select(instance_uuid, organization_id)
        return self._to_domain(model) if model else None

    async def create(self, instance: SLAInstance) -> SLAInstance:
        model = SLAInstanceModel(
            id=uuid4(),
            organization_id=instance.organization_id,
            sla_config_id=_parse_uuid(instance.sla_config_id),
            issue_id=instance.issue_id,
            status=instance.status.value,
            target_ms=instance.target_ms,
            elapsed_ms=instance.elapsed_ms,
            remaining_ms=instance.remaining_ms,
            started_at=instance.started_at,
            resumed_at=instance.resumed_at,
            paused_at=instance.paused_at,
            breach_time=instance.breach_time,
            completed_at=instance.completed_at,
            version=instance.version
        )

        self._session.add(model)
        await self._session.flush()

        return self._to_domain(model)

    async def update(
        self,
        instance: SLAInstance,
        expected_status: SLAStatus
    ) -> Optional[SLAInstance]:
        instance_uuid = _parse_uuid(instance.id)
        if instance_uuid is None:
            raise RepositoryException(f"Invalid SLA instance ID: {instance.id}")

        stmt = (
            update(SLAInstanceModel)
            .where(and_(
                SLAInstanceModel.id == instance_uuid,
                SLAInstanceModel.organization_id == instance.organization_id,
                SLAInstanceModel.status == expected_status.value,
                SLAInstanceModel.version == instance.version
            ))
            .values(
                status=instance.status.value,
                elapsed_ms=instance.elapsed_ms,
                remaining_ms=instance.remaining_ms,
                resumed_at=instance.resumed_at,
                paused_at=instance.paused_at,
                breach_time=instance.breach_time,
                completed_at=instance.completed_at,
                version=instance.version + 1
            )
            .execution_options(synchronize_session=False)
        )
        result = await self._session.execute(stmt)
        if result.rowcount != 1:
            return None

        model = await self._select(instance_uuid, instance.organization_id)
        return self._to_domain(model) if model else None

    async def list(
        self,
        organization_id: str,
        issue_id: str,
        status: Optional[SLAStatus] = None
    ) -> List[SLAInstance]:
        conditions = [
            SLAInstanceModel.organization_id == organization_id,
            SLAInstanceModel.issue_id == issue_id
        ]
        if status is not None:
            conditions.append(SLAInstanceModel.status == SLAStatus(status).value)

        stmt = (
            select(SLAInstanceModel)
            .where(and_(*conditions))
            .order_by(SLAInstanceModel.started_at.desc())
            .execution_options(populate_existing=True)
        )
        result = await self._session.execute(stmt)
        return [self._to_domain(model) for model in result.scalars().all()]

    async def list_overdue(self, now: datetime, limit: int = 500) -> List[SLAInstance]:
        stmt = (
            select(SLAInstanceModel)
            .where(and_(
                SLAInstanceModel.status == SLAStatus.ACTIVE.value,
                SLAInstanceModel.breach_time < ensure_utc(now)
            ))
            .order_by(SLAInstanceModel.breach_time.asc())
            .limit(limit)
        )
        result = await self._session.execute(stmt)
        return [self._to_domain(model) for model in result.scalars().all()]
