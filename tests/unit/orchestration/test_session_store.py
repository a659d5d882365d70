"""Tests for the per-session record store."""

import threading
from concurrent.futures import ThreadPoolExecutor

from fraud_sentinel.core.types import ControlState, Language, RiskLevel, RiskSnapshot, SessionMeta
from fraud_sentinel.orchestration.session_store import SessionStore


class TestSessionStore:

    def test_get_or_create_is_idempotent(self):
        store = SessionStore()

        first = store.get_or_create("s1")
        second = store.get_or_create("s1")

        assert first is second
        assert first.state.session_id == "s1"
        assert first.state.session_ref == "s1#0"
        assert len(store) == 1

    def test_get_unknown_returns_none(self):
        store = SessionStore()
        assert store.get("missing") is None
        assert "missing" not in store

    def test_first_meta_wins(self):
        store = SessionStore()
        record = store.get_or_create("s1")

        assert store.remember_meta(record, None) == SessionMeta()
        store.remember_meta(record, SessionMeta(phone="+911111111111", language=Language.HINDI))
        kept = store.remember_meta(record, SessionMeta(phone="+912222222222"))

        assert kept.phone == "+911111111111"
        assert kept.language == Language.HINDI

    def test_concurrent_creation_yields_one_record(self):
        store = SessionStore()

        with ThreadPoolExecutor(max_workers=8) as pool:
            records = list(pool.map(lambda _: store.get_or_create("shared"), range(50)))

        assert all(r is records[0] for r in records)
        assert store.session_ids() == ["shared"]


class FakeClock:
    def __init__(self, now=1000.0):
        self.now = now

    def __call__(self):
        return self.now


class TestSnapshot:

    def test_starts_at_zero(self):
        record = SessionStore().get_or_create("s1")
        assert record.snapshot() == RiskSnapshot()

    def test_readable_while_turn_lock_held(self):
        store = SessionStore()
        record = store.get_or_create("s1")
        published = RiskSnapshot(score=80, level=RiskLevel.HIGH, control_state=ControlState.ESCALATED_BLOCKED)
        seen = []

        with record.lock:
            record.publish(published)
            reader = threading.Thread(target=lambda: seen.append(record.snapshot()))
            reader.start()
            reader.join(timeout=2.0)

        assert seen == [published]


class TestEviction:

    def test_evict_removes_and_notifies(self):
        evicted = []
        store = SessionStore(on_evict=evicted.append)
        record = store.get_or_create("s1")

        assert store.evict("s1") is record
        assert record.evicted
        assert "s1" not in store
        assert evicted == ["s1"]

    def test_evict_unknown(self):
        evicted = []
        store = SessionStore(on_evict=evicted.append)

        assert store.evict("missing") is None
        assert evicted == []

    def test_recreated_after_evict_is_fresh(self):
        store = SessionStore()
        old = store.get_or_create("s1")
        old.state.score = 50
        store.evict("s1")

        new = store.get_or_create("s1")
        assert new is not old
        assert new.state.score == 0
        assert new.state.session_ref == "s1#0"

    def test_evict_idle_uses_last_seen(self):
        clock = FakeClock()
        store = SessionStore(clock=clock)
        store.get_or_create("old")
        clock.now += 100
        store.get_or_create("new")

        assert store.evict_idle(max_idle=50) == ["old"]
        assert store.session_ids() == ["new"]

    def test_lookup_refreshes_last_seen(self):
        clock = FakeClock()
        store = SessionStore(clock=clock)
        store.get_or_create("s1")
        clock.now += 100
        store.get_or_create("s1")

        assert store.evict_idle(max_idle=50) == []

    def test_running_turn_is_not_evicted(self):
        clock = FakeClock()
        store = SessionStore(clock=clock)
        record = store.get_or_create("s1")
        clock.now += 100
        acquired = threading.Event()
        done = threading.Event()

        def hold():
            with record.lock:
                acquired.set()
                done.wait(timeout=5.0)

        holder = threading.Thread(target=hold)
        holder.start()
        try:
            assert acquired.wait(timeout=5.0)
            assert store.evict_idle(max_idle=50) == []
        finally:
            done.set()
            holder.join(timeout=5.0)

        assert store.evict_idle(max_idle=50) == ["s1"]

    def test_no_ttl_means_no_sweep(self):
        clock = FakeClock()
        store = SessionStore(clock=clock)
        store.get_or_create("s1")
        clock.now += 10 ** 6

        store.get_or_create("s2")
        assert store.evict_idle() == []
        assert len(store) == 2

    def test_sweep_on_lookup_after_ttl(self):
        clock = FakeClock()
        evicted = []
        store = SessionStore(idle_ttl=60, on_evict=evicted.append, clock=clock)
        store.get_or_create("stale")
        clock.now += 120

        store.get_or_create("fresh")

        assert evicted == ["stale"]
        assert store.session_ids() == ["fresh"]

    def test_callback_failure_does_not_propagate(self):
        def boom(session_id):
            raise RuntimeError("release failed")

        store = SessionStore(on_evict=boom)
        store.get_or_create("s1")

        assert store.evict("s1") is not None
        assert "s1" not in store
