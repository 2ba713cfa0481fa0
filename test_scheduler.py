"""Тесты перепланирования уведомлений."""
from bosstimer.alerts import (
    BOSS_TIMER_CHANNEL, GUILD_EVENTS_CHANNEL, BOSS_SPAWN_CHANNEL, build_plan, spawn_alert,
)
from bosstimer.clock import HOUR
from bosstimer.events import event_reminder
from bosstimer.scheduler import AlertScheduler

T = 1_700_000_000_000


def test_reschedule_installs_whole_plan(notifier):
    scheduler = AlertScheduler(notifier)
    plan = build_plan(T, T)

    result = scheduler.reschedule(plan, BOSS_TIMER_CHANNEL)

    assert result.scheduled == 16 and result.failed == 0 and result.ok
    assert scheduler.pending(BOSS_TIMER_CHANNEL) == plan


def test_reschedule_twice_is_idempotent(notifier):
    scheduler = AlertScheduler(notifier)
    plan = build_plan(T, T + 2 * HOUR)

    scheduler.reschedule(plan, BOSS_TIMER_CHANNEL)
    once = scheduler.pending(BOSS_TIMER_CHANNEL)
    scheduler.reschedule(plan, BOSS_TIMER_CHANNEL)

    assert scheduler.pending(BOSS_TIMER_CHANNEL) == once


def test_new_anchor_replaces_previous_plan(notifier):
    scheduler = AlertScheduler(notifier)
    scheduler.reschedule(build_plan(T, T), BOSS_TIMER_CHANNEL)

    later = T + 5 * HOUR
    scheduler.reschedule(build_plan(later, later), BOSS_TIMER_CHANNEL)

    pending = scheduler.pending(BOSS_TIMER_CHANNEL)
    assert len(pending) == 16
    assert min(a.fire_at for a in pending) == later + 12 * HOUR


def test_failed_entry_is_skipped(notifier):
    scheduler = AlertScheduler(notifier)
    plan = build_plan(T, T)
    notifier.fail_at = {plan[0].fire_at, plan[5].fire_at}

    result = scheduler.reschedule(plan, BOSS_TIMER_CHANNEL)

    assert result.failed == 2
    assert result.scheduled == 14
    assert not result.ok
    assert plan[-1] in scheduler.pending(BOSS_TIMER_CHANNEL)


def test_reschedule_does_not_touch_other_channels(notifier):
    scheduler = AlertScheduler(notifier)
    reminder = event_reminder("Raid", T + 48 * HOUR)
    scheduler.reschedule([reminder], GUILD_EVENTS_CHANNEL)

    scheduler.reschedule(build_plan(T, T), BOSS_TIMER_CHANNEL)
    scheduler.reschedule([], BOSS_TIMER_CHANNEL)

    assert scheduler.pending(GUILD_EVENTS_CHANNEL) == [reminder]
    assert scheduler.pending(BOSS_TIMER_CHANNEL) == []


def test_cancel_without_channel_removes_everything(notifier):
    scheduler = AlertScheduler(notifier)
    scheduler.reschedule([event_reminder("Raid", T + 48 * HOUR)], GUILD_EVENTS_CHANNEL)
    scheduler.reschedule(build_plan(T, T), BOSS_TIMER_CHANNEL)

    assert scheduler.cancel() == 17
    assert scheduler.pending() == []


def test_notify_now(notifier):
    scheduler = AlertScheduler(notifier)
    assert scheduler.notify_now(spawn_alert(T), BOSS_SPAWN_CHANNEL)
    assert notifier.sent == [(BOSS_SPAWN_CHANNEL, spawn_alert(T))]

    notifier.fail_now = True
    assert not scheduler.notify_now(spawn_alert(T), BOSS_SPAWN_CHANNEL)
