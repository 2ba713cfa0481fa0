"""Тесты хранилища anchor, key-value и настроек уведомлений."""
from unittest.mock import MagicMock

from sqlalchemy.exc import OperationalError

from bosstimer.kv import PersistenceError, SqlKeyValueStore
from bosstimer.preferences import GUILD_EVENTS, REMINDER, SPAWN_BROADCAST, NotificationPreferences
from bosstimer.state import ANCHOR_KEY, SpawnStateStore, parse_anchor
from bosstimer.subscribers import SubscriberRegistry

T = 1_700_000_000_000


def broken_kv():
    kv = MagicMock()
    kv.get.side_effect = PersistenceError("disk")
    kv.set.side_effect = PersistenceError("disk")
    kv.remove.side_effect = PersistenceError("disk")
    return kv


class TestKeyValueStore:
    def test_get_set_remove(self, kv):
        assert kv.get("a") is None
        kv.set("a", "1")
        kv.set("a", "2")
        assert kv.get("a") == "2"
        kv.remove("a")
        assert kv.get("a") is None
        kv.remove("a")

    def test_clear(self, kv):
        kv.set("a", "1")
        kv.set("b", "2")
        kv.clear()
        assert kv.get("a") is None and kv.get("b") is None

    def test_values_survive_new_store(self, local_session):
        first = SqlKeyValueStore(local_session)
        first.set("k", "v")
        assert SqlKeyValueStore(local_session).get("k") == "v"


class TestSpawnStateStore:
    def test_parse_anchor(self):
        assert parse_anchor(None) is None
        assert parse_anchor("1700000000000") == T
        assert parse_anchor("abc") is None
        assert parse_anchor("") is None

    def test_load_absent(self, kv):
        assert SpawnStateStore(kv).load() is None

    def test_load_persisted(self, kv):
        kv.set(ANCHOR_KEY, str(T))
        store = SpawnStateStore(kv)
        assert store.load() == T
        assert store.anchor == T

    def test_load_malformed_is_absent(self, kv):
        kv.set(ANCHOR_KEY, "yesterday")
        assert SpawnStateStore(kv).load() is None

    def test_set_persists_and_notifies(self, kv):
        store = SpawnStateStore(kv)
        seen = []
        store.subscribe(seen.append)

        store.set(T)

        assert store.anchor == T
        assert kv.get(ANCHOR_KEY) == str(T)
        assert seen == [T]
        assert SpawnStateStore(kv).load() == T

    def test_clear(self, kv):
        store = SpawnStateStore(kv)
        seen = []
        store.set(T)
        store.subscribe(seen.append)

        store.clear()

        assert store.anchor is None
        assert kv.get(ANCHOR_KEY) is None
        assert seen == [None]

    def test_adopt_newest_wins(self, kv):
        store = SpawnStateStore(kv)
        assert store.adopt(T)
        assert not store.adopt(T - 1)
        assert not store.adopt(T)
        assert store.anchor == T
        assert store.adopt(T + 1)
        assert store.anchor == T + 1

    def test_unsubscribe(self, kv):
        store = SpawnStateStore(kv)
        seen = []
        unsubscribe = store.subscribe(seen.append)
        unsubscribe()
        store.set(T)
        assert seen == []

    def test_failing_listener_does_not_block_others(self, kv):
        store = SpawnStateStore(kv)
        seen = []
        store.subscribe(MagicMock(side_effect=RuntimeError("boom")))
        store.subscribe(seen.append)
        store.set(T)
        assert seen == [T]

    def test_persistence_failure_keeps_memory(self):
        store = SpawnStateStore(broken_kv())
        seen = []
        store.subscribe(seen.append)

        assert store.load() is None
        store.set(T)
        assert store.anchor == T
        assert seen == [T]
        store.clear()
        assert store.anchor is None


class TestNotificationPreferences:
    def test_defaults_to_enabled(self, kv):
        prefs = NotificationPreferences(kv)
        assert prefs.as_dict() == {REMINDER: True, SPAWN_BROADCAST: True, GUILD_EVENTS: True}

    def test_toggles_are_independent(self, kv):
        prefs = NotificationPreferences(kv)
        prefs.set_enabled(SPAWN_BROADCAST, False)
        assert not prefs.is_enabled(SPAWN_BROADCAST)
        assert prefs.is_enabled(REMINDER)
        prefs.set_enabled(SPAWN_BROADCAST, True)
        assert prefs.is_enabled(SPAWN_BROADCAST)

    def test_read_failure_means_enabled(self):
        prefs = NotificationPreferences(broken_kv())
        assert prefs.is_enabled(REMINDER)
        prefs.set_enabled(REMINDER, False)


class TestSubscriberRegistry:
    def test_add_remove(self, local_session):
        registry = SubscriberRegistry(local_session)
        assert registry.add(42)
        assert not registry.add(42)
        assert registry.add(7)
        assert registry.all() == [7, 42]
        assert registry.remove(42)
        assert not registry.remove(42)
        assert registry.all() == [7]

    def test_add_database_error_is_logged(self):
        session = MagicMock()
        session.get.return_value = None
        session.commit.side_effect = OperationalError("INSERT", {}, Exception("database is locked"))

        assert SubscriberRegistry(lambda: session).add(42) is False
        session.rollback.assert_called_once()
        session.close.assert_called_once()
