"""Tests for the periodic breach scan."""

from contextlib import asynccontextmanager
from datetime import timedelta

from conftest import MONDAY, ORG, OTHER_ORG
from src.config import SLAStatus
from src.sla.application import SLABreachScanService


async def test_overdue_active_instances_are_breached(breach_scanner, sla_service, make_config, clock):
    short = await make_config(target_duration=30)
    long = await make_config(target_duration=480)
    overdue = await sla_service.start_sla(ORG, short.id, "ISSUE-1")
    on_time = await sla_service.start_sla(ORG, long.id, "ISSUE-1")

    clock.set(MONDAY.replace(hour=10))
    summary = await breach_scanner.scan()

    assert summary.scanned == 1
    assert summary.breached == 1
    assert summary.skipped == 0

    statuses = {i.id: i.status for i in await sla_service.get_sla_instances(ORG, "ISSUE-1")}
    assert statuses[overdue.id] == SLAStatus.BREACHED
    assert statuses[on_time.id] == SLAStatus.ACTIVE


async def test_paused_instances_are_not_scanned(breach_scanner, sla_service, make_config, clock):
    config = await make_config(target_duration=30)
    instance = await sla_service.start_sla(ORG, config.id, "ISSUE-1")
    clock.advance(minutes=10)
    await sla_service.pause_sla(ORG, instance.id)

    clock.set(MONDAY.replace(hour=12))
    summary = await breach_scanner.scan()

    assert summary.scanned == 0
    [stored] = await sla_service.get_sla_instances(ORG, "ISSUE-1")
    assert stored.status == SLAStatus.PAUSED


async def test_deadline_not_yet_passed_is_left_alone(breach_scanner, sla_service, make_config, clock):
    config = await make_config(target_duration=30)
    await sla_service.start_sla(ORG, config.id, "ISSUE-1")

    clock.set(MONDAY.replace(hour=9, minute=30))
    summary = await breach_scanner.scan()

    assert summary.scanned == 0


async def test_scan_covers_all_organizations(breach_scanner, sla_service, make_config, clock):
    ours = await make_config(target_duration=30)
    theirs = await make_config(organization_id=OTHER_ORG, target_duration=30)
    await sla_service.start_sla(ORG, ours.id, "ISSUE-1")
    await sla_service.start_sla(OTHER_ORG, theirs.id, "ISSUE-9")

    clock.set(MONDAY.replace(hour=11))
    summary = await breach_scanner.scan()

    assert summary.breached == 2
    [foreign] = await sla_service.get_sla_instances(OTHER_ORG, "ISSUE-9")
    assert foreign.status == SLAStatus.BREACHED


async def test_second_scan_finds_nothing(breach_scanner, sla_service, make_config, clock):
    config = await make_config(target_duration=30)
    await sla_service.start_sla(ORG, config.id, "ISSUE-1")

    clock.set(MONDAY.replace(hour=11))
    await breach_scanner.scan()
    clock.advance(minutes=1)
    summary = await breach_scanner.scan()

    assert summary.scanned == 0
    assert summary.breached == 0


async def test_batch_size_limits_one_pass(instance_repo, sla_service, make_config, clock):
    config = await make_config(target_duration=30)
    first = await sla_service.start_sla(ORG, config.id, "ISSUE-1")
    clock.advance(minutes=1)
    await sla_service.start_sla(ORG, config.id, "ISSUE-2")

    clock.set(MONDAY.replace(hour=11))
    scanner = SLABreachScanService(instance_repo, sla_service, clock, batch_size=1)
    summary = await scanner.scan()

    assert summary.scanned == 1
    # Oldest deadline first
    [stored] = await sla_service.get_sla_instances(ORG, "ISSUE-1")
    assert stored.id == first.id
    assert stored.status == SLAStatus.BREACHED
    assert stored.completed_at == MONDAY.replace(hour=11)


async def test_instance_finished_during_scan_is_skipped(
    breach_scanner, instance_repo, sla_service, make_config, clock, monkeypatch
):
    config = await make_config(target_duration=30)
    instance = await sla_service.start_sla(ORG, config.id, "ISSUE-1")
    clock.set(MONDAY.replace(hour=11))

    overdue = await instance_repo.list_overdue(clock(), 10)
    await sla_service.complete_sla(ORG, instance.id)

    async def list_overdue_snapshot(now, limit=500):
        return overdue

    monkeypatch.setattr(instance_repo, "list_overdue", list_overdue_snapshot)
    clock.advance(seconds=30)
    summary = await breach_scanner.scan()

    assert summary.scanned == 1
    assert summary.breached == 0
    assert summary.skipped == 1

    [stored] = await sla_service.get_sla_instances(ORG, "ISSUE-1")
    assert stored.completed_at == MONDAY.replace(hour=11)
    assert stored.completed_at - stored.started_at == timedelta(hours=2)


async def test_store_error_rolls_back_only_that_instance(
    session, instance_repo, sla_service, make_config, clock, monkeypatch
):
    config = await make_config(target_duration=30)
    failing = await sla_service.start_sla(ORG, config.id, "ISSUE-1")
    clock.advance(minutes=1)
    await sla_service.start_sla(ORG, config.id, "ISSUE-2")
    clock.set(MONDAY.replace(hour=11))

    complete_sla = sla_service.complete_sla

    async def complete_then_fail(organization_id, instance_id):
        result = await complete_sla(organization_id, instance_id)
        if instance_id == failing.id:
            raise RuntimeError("connection reset")
        return result

    monkeypatch.setattr(sla_service, "complete_sla", complete_then_fail)
    scanner = SLABreachScanService(
        instance_repo, sla_service, clock, unit_of_work=session.begin_nested
    )
    summary = await scanner.scan()

    assert summary.scanned == 2
    assert summary.breached == 1
    assert summary.failed == 1
    assert summary.skipped == 0

    [rolled_back] = await sla_service.get_sla_instances(ORG, "ISSUE-1")
    assert rolled_back.status == SLAStatus.ACTIVE
    assert rolled_back.version == 1
    assert rolled_back.completed_at is None

    [completed] = await sla_service.get_sla_instances(ORG, "ISSUE-2")
    assert completed.status == SLAStatus.BREACHED


async def test_each_completion_runs_in_its_own_unit_of_work(
    instance_repo, sla_service, make_config, clock
):
    config = await make_config(target_duration=30)
    await sla_service.start_sla(ORG, config.id, "ISSUE-1")
    await sla_service.start_sla(ORG, config.id, "ISSUE-2")
    clock.set(MONDAY.replace(hour=11))

    entered = []

    @asynccontextmanager
    async def unit_of_work():
        entered.append(1)
        yield

    scanner = SLABreachScanService(instance_repo, sla_service, clock, unit_of_work=unit_of_work)
    summary = await scanner.scan()

    assert summary.breached == 2
    assert len(entered) == 2
