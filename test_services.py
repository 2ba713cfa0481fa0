"""Тесты связки anchor -> план -> планировщик и напоминаний о событиях гильдии."""
from unittest.mock import MagicMock

import pytest

from bosstimer.alerts import BOSS_SPAWN_CHANNEL, BOSS_TIMER_CHANNEL, GUILD_EVENTS_CHANNEL
from bosstimer.clock import HOUR, MINUTE
from bosstimer.events import GuildEvents, build_event_plan, event_reminder
from bosstimer.preferences import GUILD_EVENTS, REMINDER, NotificationPreferences
from bosstimer.records import RecordStoreError, SqlRecordStore
from bosstimer.scheduler import AlertScheduler
from bosstimer.services import TimerService
from bosstimer.state import ANCHOR_KEY, SpawnStateStore


@pytest.fixture
def events(remote_session, clock):
    return GuildEvents(SqlRecordStore(remote_session), clock)


@pytest.fixture
def service(kv, notifier, events, clock):
    return TimerService(SpawnStateStore(kv), AlertScheduler(notifier), NotificationPreferences(kv),
                        events, kv, clock)


class TestGuildEvents:
    def test_reminder_text(self):
        alert = event_reminder("Castle Siege", 10 * HOUR)
        assert alert.fire_at == 9 * HOUR
        assert alert.title == "Guild Event Reminder"
        assert alert.body == '"Castle Siege" starts in 1 hour!'

    def test_plan_skips_reminders_in_the_past(self):
        now = 100 * HOUR
        events = [
            {"event_name": "late", "event_date_time": now + 5 * HOUR},
            {"event_name": "soon", "event_date_time": now + 30 * MINUTE},
            {"event_name": "early", "event_date_time": now + 2 * HOUR},
        ]
        assert [a.body for a in build_event_plan(events, now)] == [
            '"early" starts in 1 hour!', '"late" starts in 1 hour!',
        ]

    def test_add_rejects_past_and_empty(self, events, clock):
        with pytest.raises(ValueError):
            events.add("Siege", clock.now)
        with pytest.raises(ValueError):
            events.add("   ", clock.now + HOUR)

    def test_upcoming(self, events, clock):
        events.add("Siege", clock.now + 3 * HOUR)
        events.add("Raid", clock.now + 2 * HOUR)
        clock.advance(150 * MINUTE)
        assert [e["event_name"] for e in events.upcoming()] == ["Siege"]

    def test_delete(self, events, clock):
        event = events.add("Siege", clock.now + 3 * HOUR)
        events.delete(event["id"])
        assert events.upcoming() == []
        with pytest.raises(RecordStoreError):
            events.delete(event["id"])


class TestTimerService:
    def test_refresh_without_anchor_clears_plan(self, service, notifier, clock):
        service.state.set(clock.now)
        service.refresh_spawn_alerts()
        service.state.clear()

        result = service.refresh_spawn_alerts()

        assert result.scheduled == 0
        assert notifier.list_scheduled(BOSS_TIMER_CHANNEL) == []

    def test_remaining(self, service, clock):
        assert service.remaining() is None
        service.state.set(clock.now - 5 * HOUR)
        assert service.remaining().hours == 7

    def test_reminder_toggle(self, service, notifier, clock):
        service.state.set(clock.now)
        service.refresh_spawn_alerts()

        service.set_preference(REMINDER, False)
        assert notifier.list_scheduled(BOSS_TIMER_CHANNEL) == []

        service.set_preference(REMINDER, True)
        assert len(notifier.list_scheduled(BOSS_TIMER_CHANNEL)) == 16

    def test_event_alerts(self, service, events, notifier, clock):
        events.add("Siege", clock.now + 3 * HOUR)
        events.add("Soon", clock.now + 30 * MINUTE)

        result = service.refresh_event_alerts()

        assert result.scheduled == 1
        assert notifier.list_scheduled(GUILD_EVENTS_CHANNEL)[0].fire_at == clock.now + 2 * HOUR

        service.set_preference(GUILD_EVENTS, False)
        assert notifier.list_scheduled(GUILD_EVENTS_CHANNEL) == []

    def test_event_alerts_survive_timer_reschedule(self, service, events, notifier, clock):
        events.add("Siege", clock.now + 3 * HOUR)
        service.refresh_event_alerts()
        service.state.set(clock.now)

        service.refresh_spawn_alerts()

        assert len(notifier.list_scheduled(GUILD_EVENTS_CHANNEL)) == 1

    def test_event_store_failure(self, service, notifier):
        service.events = MagicMock()
        service.events.upcoming.side_effect = RecordStoreError("offline")
        assert service.refresh_event_alerts().scheduled == 0

    def test_pending_counts(self, service, notifier, clock):
        service.state.set(clock.now)
        service.refresh_spawn_alerts()
        service.announce_spawn(clock.now)
        assert service.pending_counts() == {BOSS_TIMER_CHANNEL: 16, BOSS_SPAWN_CHANNEL: 0, GUILD_EVENTS_CHANNEL: 0}

    def test_reset(self, service, kv, notifier, events, clock):
        service.state.set(clock.now)
        service.preferences.set_enabled(REMINDER, True)
        service.refresh_spawn_alerts()
        events.add("Siege", clock.now + 3 * HOUR)
        service.refresh_event_alerts()

        service.reset()

        assert service.state.anchor is None
        assert kv.get(ANCHOR_KEY) is None
        assert service.preferences.as_dict() == {"reminder": True, "spawn": True, "events": True}
        assert notifier.list_scheduled() == []
        assert kv.get("reminder_notifications_enabled") is None
