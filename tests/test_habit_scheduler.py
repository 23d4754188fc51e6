import pytest

from habit.dispatcher import ReminderDispatcher
from habit.milestones import MilestoneNotifier
from habit.scheduler import HOURLY_JOB_ID, HabitScheduler

from helpers import MONDAY_MORNING, make_habit, make_user


async def test_trigger_tick_records_report(storage, sender):
    storage.upsert_user(make_user("u1"))
    storage.upsert_habit(make_habit("h1", windows=["any"]))
    scheduler = HabitScheduler(ReminderDispatcher(storage, sender), enabled=False)

    report = await scheduler.trigger_tick(MONDAY_MORNING)
    assert report.sent == 1
    status = scheduler.status()
    assert status["ticksRun"] == 1
    assert status["lastTick"]["sent"] == 1
    assert status["running"] is False
    assert status["nextRun"] is None


async def test_trigger_milestones_requires_notifier(storage, sender):
    scheduler = HabitScheduler(ReminderDispatcher(storage, sender), enabled=False)
    with pytest.raises(RuntimeError):
        await scheduler.trigger_milestones(MONDAY_MORNING)

    scheduler = HabitScheduler(ReminderDispatcher(storage, sender), MilestoneNotifier(storage, sender), enabled=False)
    report = await scheduler.trigger_milestones(MONDAY_MORNING)
    assert report.checked == 0
    assert scheduler.status()["lastMilestones"]["day"] == "2024-03-04"


async def test_disabled_scheduler_does_not_start(storage, sender):
    scheduler = HabitScheduler(ReminderDispatcher(storage, sender), enabled=False)
    scheduler.start()
    assert scheduler.running is False


async def test_start_registers_hourly_job(storage, sender):
    scheduler = HabitScheduler(ReminderDispatcher(storage, sender), timezone="Europe/Warsaw")
    scheduler.start()
    try:
        assert scheduler.running is True
        assert scheduler._scheduler.get_job(HOURLY_JOB_ID) is not None
        next_run = scheduler.next_run()
        assert next_run.minute == 0
        assert next_run.second == 0
        assert scheduler.status()["nextRun"] == next_run.isoformat()
    finally:
        await scheduler.stop()
    assert scheduler.running is False
    assert scheduler.status()["timezone"] == "Europe/Warsaw"


async def test_on_hour_runs_tick(storage, sender):
    storage.upsert_user(make_user("u1"))
    storage.upsert_habit(make_habit("h1", windows=["any"]))
    milestones = MilestoneNotifier(storage, sender)
    scheduler = HabitScheduler(ReminderDispatcher(storage, sender), milestones, milestone_hour=0)

    await scheduler.on_hour(MONDAY_MORNING)
    assert scheduler.ticks_run == 1
    assert len(sender.sent) == 1
    assert scheduler.last_milestones is None


async def test_on_hour_runs_milestones_at_configured_hour(storage, sender):
    milestones = MilestoneNotifier(storage, sender)
    scheduler = HabitScheduler(ReminderDispatcher(storage, sender), milestones, milestone_hour=MONDAY_MORNING.hour)

    await scheduler.on_hour(MONDAY_MORNING)
    assert scheduler.last_milestones is not None
    assert scheduler.last_milestones.checked == 0


async def test_on_hour_records_failure(storage, sender, monkeypatch):
    scheduler = HabitScheduler(ReminderDispatcher(storage, sender))

    async def broken(now):
        raise RuntimeError("boom")

    monkeypatch.setattr(scheduler.dispatcher, "run_tick", broken)
    await scheduler.on_hour(MONDAY_MORNING)
    assert scheduler.ticks_run == 0
    assert scheduler.status()["lastError"] == "RuntimeError: boom"
