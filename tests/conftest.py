"""Shared pytest fixtures for SLA tracker tests."""

from datetime import datetime, timedelta, timezone

import pytest
from sqlalchemy.ext.asyncio import create_async_engine
from sqlalchemy.pool import StaticPool

from src.infrastructure.database import Base, build_session_maker
from src.sla.application import (
    ICalendarProvider,
    SLABreachScanService,
    SLAConfigCreateDTO,
    SLAConfigService,
    SLAService,
)
from src.sla.domain import BusinessCalendar, WorkingHours
from src.sla.infrastructure import (
    SQLAlchemySLAConfigRepository,
    SQLAlchemySLAInstanceRepository,
)

ORG = "org-acme"
OTHER_ORG = "org-globex"


def utc(year: int, month: int, day: int, hour: int = 0, minute: int = 0) -> datetime:
    return datetime(year, month, day, hour, minute, tzinfo=timezone.utc)


# 2026-02-16 is a Monday
MONDAY = utc(2026, 2, 16)


class FrozenClock:
    """Clock that only moves when a test moves it."""

    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def set(self, moment: datetime) -> None:
        self.now = moment

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


class StaticCalendarProvider(ICalendarProvider):
    def __init__(self, calendar: BusinessCalendar):
        self.calendar = calendar

    def get_calendar(self) -> BusinessCalendar:
        return self.calendar


# ── Calendar ─────────────────────────────────────────────────────────────────


@pytest.fixture
def calendar() -> BusinessCalendar:
    """09:00-17:00 UTC, no holidays."""
    return BusinessCalendar(working_hours=WorkingHours(start=9, end=17))


@pytest.fixture
def calendar_provider(calendar: BusinessCalendar) -> StaticCalendarProvider:
    return StaticCalendarProvider(calendar)


@pytest.fixture
def clock() -> FrozenClock:
    return FrozenClock(MONDAY.replace(hour=9))


# ── Database ─────────────────────────────────────────────────────────────────


@pytest.fixture
async def engine():
    # Registers the tables on Base.metadata
    import src.sla.infrastructure.models  # noqa: F401

    engine = create_async_engine(
        "sqlite+aiosqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_maker(engine):
    return build_session_maker(engine)


@pytest.fixture
async def session(session_maker):
    async with session_maker() as session:
        yield session


@pytest.fixture
def config_repo(session) -> SQLAlchemySLAConfigRepository:
    return SQLAlchemySLAConfigRepository(session)


@pytest.fixture
def instance_repo(session) -> SQLAlchemySLAInstanceRepository:
    return SQLAlchemySLAInstanceRepository(session)


# ── Services ─────────────────────────────────────────────────────────────────


@pytest.fixture
def config_service(config_repo, clock) -> SLAConfigService:
    return SLAConfigService(config_repo, clock)


@pytest.fixture
def sla_service(config_repo, instance_repo, calendar_provider, clock) -> SLAService:
    return SLAService(config_repo, instance_repo, calendar_provider, clock)


@pytest.fixture
def breach_scanner(instance_repo, sla_service, clock) -> SLABreachScanService:
    return SLABreachScanService(instance_repo, sla_service, clock, batch_size=100)


def config_payload(**overrides) -> SLAConfigCreateDTO:
    data = {
        "name": "First response",
        "metric": "time_to_first_response",
        "target_duration": 60,
        "start_condition": {"type": "issue_created"},
        "stop_condition": {"type": "first_public_comment"},
    }
    data.update(overrides)
    return SLAConfigCreateDTO(**data)


@pytest.fixture
def make_config(config_service):
    """Create a config for ORG (or `organization_id`) and return it."""

    async def _make(organization_id: str = ORG, **overrides):
        return await config_service.create_config(organization_id, config_payload(**overrides))

    return _make
