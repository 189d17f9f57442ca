"""Tests for the per-client state store (identity, admin keys, recent challenges)."""

from datetime import date, datetime, timedelta, timezone

from agora.core import cache
from agora.core.cache import DummyRedis, MemoryStateBackend, RedisStateBackend
from agora.core.config import settings
from agora.models.challenge import Challenge, Participant
from agora.services.client_state import ClientStateStore

CLIENT = "client-1"
VISITED = datetime(2025, 3, 10, 9, 0, tzinfo=timezone.utc)


def _challenge(n: int) -> Challenge:
    return Challenge(
        id=f"c{n}",
        name=f"Challenge {n}",
        start_date=date(2025, 3, 1),
        end_date=date(2025, 3, 31),
        share_token=f"share{n}",
        admin_token=f"admin{n}",
    )


def _participant(challenge_id="c1") -> Participant:
    return Participant(id="p1", challenge_id=challenge_id, name="Ann", avatar_emoji="🔥")


def _store(limit: int = 20) -> ClientStateStore:
    return ClientStateStore(MemoryStateBackend(), recent_limit=limit)


def test_identity_round_trip():
    store = _store()
    assert store.get_identity(CLIENT, "c1") is None

    store.set_identity(CLIENT, _participant())
    identity = store.get_identity(CLIENT, "c1")
    assert identity.id == "p1"
    assert identity.avatar_emoji == "🔥"


def test_identity_is_per_challenge_and_client():
    store = _store()
    store.set_identity(CLIENT, _participant("c1"))
    assert store.get_identity(CLIENT, "c2") is None
    assert store.get_identity("client-2", "c1") is None


def test_clear_identity():
    store = _store()
    store.set_identity(CLIENT, _participant())
    store.clear_identity(CLIENT, "c1")
    assert store.get_identity(CLIENT, "c1") is None


def test_corrupt_identity_is_discarded():
    store = _store()
    key = f"agora:{CLIENT}:participant:c1"
    store.backend.set(key, "{not json")
    assert store.get_identity(CLIENT, "c1") is None
    assert store.backend.get(key) is None


def test_identity_with_wrong_shape_is_discarded():
    store = _store()
    key = f"agora:{CLIENT}:participant:c1"
    store.backend.set(key, '{"id": "p1"}')
    assert store.get_identity(CLIENT, "c1") is None
    assert store.backend.get(key) is None


def test_admin_token_remembered():
    store = _store()
    assert store.get_admin_token(CLIENT, "c1") is None
    store.remember_admin_token(CLIENT, "c1", "secret")
    assert store.get_admin_token(CLIENT, "c1") == "secret"


def test_record_visit_puts_newest_first():
    store = _store()
    store.record_visit(CLIENT, _challenge(1), VISITED)
    store.record_visit(CLIENT, _challenge(2), VISITED + timedelta(minutes=1))
    assert [item.id for item in store.recent_challenges(CLIENT)] == ["c2", "c1"]


def test_revisit_moves_challenge_to_front_without_duplicates():
    store = _store()
    store.record_visit(CLIENT, _challenge(1), VISITED)
    store.record_visit(CLIENT, _challenge(2), VISITED + timedelta(minutes=1))
    history = store.record_visit(CLIENT, _challenge(1), VISITED + timedelta(minutes=2))
    assert [item.id for item in history] == ["c1", "c2"]
    assert [item.id for item in store.recent_challenges(CLIENT)] == ["c1", "c2"]


def test_recent_history_is_capped():
    store = _store(limit=3)
    for n in range(5):
        store.record_visit(CLIENT, _challenge(n), VISITED + timedelta(minutes=n))
    assert [item.id for item in store.recent_challenges(CLIENT)] == ["c4", "c3", "c2"]


def test_recent_history_skips_invalid_items():
    store = _store()
    store.backend.set(
        f"agora:{CLIENT}:recent_challenges",
        '[{"id": "broken"}, {"id": "c1", "name": "One", "share_token": "s1", '
        '"start_date": "2025-03-01", "end_date": "2025-03-31", '
        '"visited_at": "2025-03-10T09:00:00+00:00"}]',
    )
    assert [item.id for item in store.recent_challenges(CLIENT)] == ["c1"]


def test_recent_history_not_a_list_is_empty():
    store = _store()
    store.backend.set(f"agora:{CLIENT}:recent_challenges", '{"id": "c1"}')
    assert store.recent_challenges(CLIENT) == []


def test_redis_backend_with_unreachable_redis_forgets_everything():
    """The no-op client keeps the API working; nothing is persisted."""
    store = ClientStateStore(RedisStateBackend(DummyRedis()))
    store.set_identity(CLIENT, _participant())
    assert store.get_identity(CLIENT, "c1") is None
    assert store.recent_challenges(CLIENT) == []


def test_state_backend_without_redis_is_memory(monkeypatch):
    monkeypatch.setattr(cache, "_redis_client", None)
    monkeypatch.setattr(settings, "REDIS_URL", "")
    assert isinstance(cache.get_state_backend(), MemoryStateBackend)


def test_explicit_zero_limit_keeps_no_history():
    store = ClientStateStore(MemoryStateBackend(), recent_limit=0)
    assert store.recent_limit == 0
    assert store.record_visit(CLIENT, _challenge(1), VISITED) == []
    assert store.recent_challenges(CLIENT) == []


def test_default_limit_comes_from_settings():
    store = ClientStateStore(MemoryStateBackend())
    assert store.recent_limit == settings.RECENT_CHALLENGES_LIMIT


def test_older_visit_returns_same_order_as_stored():
    store = _store()
    store.record_visit(CLIENT, _challenge(1), VISITED)
    returned = store.record_visit(CLIENT, _challenge(2), VISITED - timedelta(hours=1))
    assert [item.id for item in returned] == ["c1", "c2"]
    assert [item.id for item in store.recent_challenges(CLIENT)] == ["c1", "c2"]


def test_older_visit_falls_off_a_full_history():
    store = _store(limit=2)
    store.record_visit(CLIENT, _challenge(1), VISITED)
    store.record_visit(CLIENT, _challenge(2), VISITED + timedelta(minutes=1))
    returned = store.record_visit(CLIENT, _challenge(3), VISITED - timedelta(hours=1))
    assert [item.id for item in returned] == ["c2", "c1"]
    assert [item.id for item in store.recent_challenges(CLIENT)] == ["c2", "c1"]
