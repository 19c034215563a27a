"""Tests for the SLA instance lifecycle service against a real (SQLite) store."""

import copy
from datetime import date, timedelta
from uuid import uuid4

import pytest

from conftest import FrozenClock, MONDAY, ORG, OTHER_ORG
from src.config import SLAStatus
from src.core import ResourceNotFoundException, ValidationException
from src.sla.application import SLAConfigUpdateDTO, SLAService
from src.sla.domain import MS_PER_HOUR, MS_PER_MINUTE

TUESDAY = MONDAY + timedelta(days=1)


# ── Lifecycle scenarios ──────────────────────────────────────────────────────


class TestLifecycleScenarios:
    async def test_on_time_completion(self, sla_service, make_config, clock):
        config = await make_config(target_duration=60)
        clock.set(MONDAY.replace(hour=10))

        instance = await sla_service.start_sla(ORG, config.id, "ISSUE-1")
        assert instance.breach_time == MONDAY.replace(hour=11)

        clock.set(MONDAY.replace(hour=10, minute=45))
        instance = await sla_service.complete_sla(ORG, instance.id)

        assert instance.status == SLAStatus.MET
        assert instance.completed_at == MONDAY.replace(hour=10, minute=45)

    async def test_breach_across_day_boundary(self, sla_service, make_config, clock):
        config = await make_config(target_duration=60)
        clock.set(MONDAY.replace(hour=16, minute=30))

        instance = await sla_service.start_sla(ORG, config.id, "ISSUE-1")
        assert instance.breach_time == TUESDAY.replace(hour=9, minute=30)

        clock.set(TUESDAY.replace(hour=10))
        instance = await sla_service.complete_sla(ORG, instance.id)

        assert instance.status == SLAStatus.BREACHED

    async def test_pause_resume_shifts_deadline(self, sla_service, make_config, clock):
        config = await make_config(target_duration=240)
        clock.set(MONDAY.replace(hour=9))
        instance = await sla_service.start_sla(ORG, config.id, "ISSUE-1")
        assert instance.breach_time == MONDAY.replace(hour=13)

        clock.set(MONDAY.replace(hour=10))
        instance = await sla_service.pause_sla(ORG, instance.id)
        assert instance.status == SLAStatus.PAUSED
        assert instance.elapsed_ms == 60 * MS_PER_MINUTE
        assert instance.paused_at == MONDAY.replace(hour=10)

        clock.set(MONDAY.replace(hour=14))
        instance = await sla_service.resume_sla(ORG, instance.id)
        assert instance.status == SLAStatus.ACTIVE
        assert instance.remaining_ms == 180 * MS_PER_MINUTE
        assert instance.breach_time == MONDAY.replace(hour=17)
        assert instance.paused_at is None

    async def test_elapsed_time_conserved_over_pause_cycles(self, sla_service, make_config, clock):
        config = await make_config(target_duration=240)
        instance = await sla_service.start_sla(ORG, config.id, "ISSUE-1")

        clock.set(MONDAY.replace(hour=10))
        await sla_service.pause_sla(ORG, instance.id)
        clock.set(MONDAY.replace(hour=12))
        await sla_service.resume_sla(ORG, instance.id)
        clock.set(MONDAY.replace(hour=13, minute=30))
        instance = await sla_service.pause_sla(ORG, instance.id)
        assert instance.elapsed_ms == 150 * MS_PER_MINUTE

        clock.set(TUESDAY.replace(hour=9))
        instance = await sla_service.resume_sla(ORG, instance.id)

        assert instance.remaining_ms == 90 * MS_PER_MINUTE
        assert instance.breach_time == TUESDAY.replace(hour=10, minute=30)
        assert instance.elapsed_ms + instance.remaining_ms == instance.target_ms

    async def test_every_write_bumps_version(self, sla_service, make_config, clock):
        config = await make_config()
        instance = await sla_service.start_sla(ORG, config.id, "ISSUE-1")
        assert instance.version == 1

        clock.advance(minutes=5)
        instance = await sla_service.pause_sla(ORG, instance.id)
        assert instance.version == 2

        clock.advance(minutes=5)
        instance = await sla_service.resume_sla(ORG, instance.id)
        assert instance.version == 3

    async def test_naive_clock_is_treated_as_utc(
        self, config_repo, instance_repo, calendar_provider, make_config
    ):
        naive = MONDAY.replace(tzinfo=None)
        clock = FrozenClock(naive.replace(hour=10))
        service = SLAService(config_repo, instance_repo, calendar_provider, clock)
        config = await make_config(target_duration=60)

        instance = await service.start_sla(ORG, config.id, "ISSUE-1")
        assert instance.started_at == MONDAY.replace(hour=10)

        clock.set(naive.replace(hour=10, minute=15))
        instance = await service.pause_sla(ORG, instance.id)
        clock.set(naive.replace(hour=10, minute=45))
        instance = await service.resume_sla(ORG, instance.id)
        assert instance.breach_time == MONDAY.replace(hour=11, minute=30)

        clock.set(naive.replace(hour=11, minute=20))
        instance = await service.complete_sla(ORG, instance.id)

        assert instance.status == SLAStatus.MET
        assert instance.elapsed_ms == 15 * MS_PER_MINUTE
        assert instance.completed_at == MONDAY.replace(hour=11, minute=20)
        assert instance.completed_at.utcoffset() == timedelta(0)


# ── Rejections ───────────────────────────────────────────────────────────────


class TestRejections:
    async def test_unknown_config(self, sla_service):
        with pytest.raises(ResourceNotFoundException) as exc_info:
            await sla_service.start_sla(ORG, str(uuid4()), "ISSUE-1")
        assert exc_info.value.resource_type == "SLAConfig"

    @pytest.mark.parametrize("instance_id", ["not-a-uuid", str(uuid4())])
    async def test_unknown_instance(self, sla_service, instance_id):
        for operation in (sla_service.pause_sla, sla_service.resume_sla, sla_service.complete_sla):
            with pytest.raises(ResourceNotFoundException) as exc_info:
                await operation(ORG, instance_id)
            assert exc_info.value.resource_type == "SLAInstance"

    async def test_inactive_config(self, sla_service, make_config):
        config = await make_config(is_active=False)
        with pytest.raises(ValidationException) as exc_info:
            await sla_service.start_sla(ORG, config.id, "ISSUE-1")
        assert exc_info.value.code == "SLA_CONFIG_INACTIVE"

    async def test_pause_paused_instance(self, sla_service, make_config, clock):
        config = await make_config()
        instance = await sla_service.start_sla(ORG, config.id, "ISSUE-1")
        clock.advance(minutes=10)
        paused = await sla_service.pause_sla(ORG, instance.id)

        clock.advance(minutes=10)
        with pytest.raises(ValidationException) as exc_info:
            await sla_service.pause_sla(ORG, instance.id)
        assert exc_info.value.code == "SLA_NOT_ACTIVE"

        [stored] = await sla_service.get_sla_instances(ORG, "ISSUE-1")
        assert stored.elapsed_ms == paused.elapsed_ms
        assert stored.version == paused.version

    async def test_resume_active_instance(self, sla_service, make_config):
        config = await make_config()
        instance = await sla_service.start_sla(ORG, config.id, "ISSUE-1")
        with pytest.raises(ValidationException) as exc_info:
            await sla_service.resume_sla(ORG, instance.id)
        assert exc_info.value.code == "SLA_NOT_PAUSED"

    async def test_completed_instance_is_final(self, sla_service, make_config, clock):
        config = await make_config()
        instance = await sla_service.start_sla(ORG, config.id, "ISSUE-1")
        clock.advance(minutes=30)
        await sla_service.complete_sla(ORG, instance.id)

        clock.advance(hours=2)
        with pytest.raises(ValidationException) as exc_info:
            await sla_service.complete_sla(ORG, instance.id)
        assert exc_info.value.code == "SLA_CANNOT_COMPLETE"

        with pytest.raises(ValidationException):
            await sla_service.pause_sla(ORG, instance.id)

        [stored] = await sla_service.get_sla_instances(ORG, "ISSUE-1")
        assert stored.status == SLAStatus.MET

    async def test_stale_read_loses_to_concurrent_write(
        self, sla_service, instance_repo, make_config, clock, monkeypatch
    ):
        config = await make_config()
        instance = await sla_service.start_sla(ORG, config.id, "ISSUE-1")
        stale = await instance_repo.get_by_id(ORG, instance.id)

        clock.advance(minutes=10)
        await sla_service.pause_sla(ORG, instance.id)

        async def stale_get_by_id(organization_id, instance_id):
            return copy.deepcopy(stale)

        monkeypatch.setattr(instance_repo, "get_by_id", stale_get_by_id)
        clock.advance(minutes=10)

        with pytest.raises(ValidationException) as exc_info:
            await sla_service.complete_sla(ORG, instance.id)
        assert exc_info.value.code == "SLA_CONCURRENT_MODIFICATION"

        [stored] = await sla_service.get_sla_instances(ORG, "ISSUE-1")
        assert stored.status == SLAStatus.PAUSED
        assert stored.elapsed_ms == 10 * MS_PER_MINUTE


# ── Tenancy ──────────────────────────────────────────────────────────────────


class TestTenancy:
    async def test_config_of_other_org_is_invisible(self, sla_service, make_config):
        config = await make_config(organization_id=OTHER_ORG)
        with pytest.raises(ResourceNotFoundException):
            await sla_service.start_sla(ORG, config.id, "ISSUE-1")

    async def test_instance_of_other_org_is_invisible(self, sla_service, make_config):
        config = await make_config()
        instance = await sla_service.start_sla(ORG, config.id, "ISSUE-1")

        with pytest.raises(ResourceNotFoundException):
            await sla_service.pause_sla(OTHER_ORG, instance.id)
        assert await sla_service.get_sla_instances(OTHER_ORG, "ISSUE-1") == []


# ── Listing ──────────────────────────────────────────────────────────────────


class TestGetSLAInstances:
    async def test_filters_by_issue_and_status(self, sla_service, make_config, clock):
        response = await make_config(name="Response")
        resolution = await make_config(name="Resolution", metric="time_to_resolution")

        first = await sla_service.start_sla(ORG, response.id, "ISSUE-1")
        clock.advance(minutes=1)
        second = await sla_service.start_sla(ORG, resolution.id, "ISSUE-1")
        await sla_service.start_sla(ORG, response.id, "ISSUE-2")

        clock.advance(minutes=5)
        await sla_service.complete_sla(ORG, first.id)

        all_instances = await sla_service.get_sla_instances(ORG, "ISSUE-1")
        assert [i.id for i in all_instances] == [second.id, first.id]

        active = await sla_service.get_sla_instances(ORG, "ISSUE-1", SLAStatus.ACTIVE)
        assert [i.id for i in active] == [second.id]

        met = await sla_service.get_sla_instances(ORG, "ISSUE-1", SLAStatus.MET)
        assert [i.id for i in met] == [first.id]

    async def test_no_uniqueness_per_issue(self, sla_service, make_config):
        config = await make_config()
        await sla_service.start_sla(ORG, config.id, "ISSUE-1")
        await sla_service.start_sla(ORG, config.id, "ISSUE-1")

        assert len(await sla_service.get_sla_instances(ORG, "ISSUE-1")) == 2


# ── Calendars and config changes ─────────────────────────────────────────────


class TestCalendarSelection:
    async def test_config_calendar_overrides_default(self, sla_service, make_config, clock):
        config = await make_config(calendar={"holidays": [TUESDAY.date().isoformat()]})
        clock.set(MONDAY.replace(hour=16, minute=30))

        instance = await sla_service.start_sla(ORG, config.id, "ISSUE-1")

        assert instance.breach_time == (MONDAY + timedelta(days=2)).replace(hour=9, minute=30)

    async def test_default_calendar_changes_apply_on_next_transition(
        self, sla_service, make_config, calendar_provider, clock
    ):
        config = await make_config(target_duration=120)
        clock.set(MONDAY.replace(hour=16))
        instance = await sla_service.start_sla(ORG, config.id, "ISSUE-1")
        assert instance.breach_time == TUESDAY.replace(hour=10)

        clock.set(MONDAY.replace(hour=16, minute=30))
        await sla_service.pause_sla(ORG, instance.id)
        calendar_provider.calendar = calendar_provider.calendar.model_copy(
            update={"holidays": frozenset({date(2026, 2, 17)})}
        )
        clock.set(MONDAY.replace(hour=16, minute=40))
        instance = await sla_service.resume_sla(ORG, instance.id)

        # 20 min left on Monday, 70 min on Wednesday
        assert instance.breach_time == (MONDAY + timedelta(days=2)).replace(hour=10, minute=10)

    async def test_target_is_fixed_at_start(self, sla_service, config_service, make_config, clock):
        config = await make_config(target_duration=60)
        instance = await sla_service.start_sla(ORG, config.id, "ISSUE-1")

        await config_service.update_config(ORG, config.id, SLAConfigUpdateDTO(target_duration=480))
        clock.advance(minutes=30)
        await sla_service.pause_sla(ORG, instance.id)
        clock.advance(minutes=30)
        instance = await sla_service.resume_sla(ORG, instance.id)

        assert instance.target_ms == MS_PER_HOUR
        assert instance.remaining_ms == 30 * MS_PER_MINUTE

    async def test_orphaned_instance_keeps_working(
        self, sla_service, config_service, make_config, clock
    ):
        config = await make_config()
        instance = await sla_service.start_sla(ORG, config.id, "ISSUE-1")

        await config_service.delete_config(ORG, config.id)

        [orphan] = await sla_service.get_sla_instances(ORG, "ISSUE-1")
        assert orphan.sla_config_id is None
        assert orphan.status == SLAStatus.ACTIVE

        clock.advance(minutes=15)
        paused = await sla_service.pause_sla(ORG, instance.id)
        assert paused.elapsed_ms == 15 * MS_PER_MINUTE

        clock.advance(minutes=15)
        resumed = await sla_service.resume_sla(ORG, instance.id)
        assert resumed.breach_time == clock.now + timedelta(minutes=45)
