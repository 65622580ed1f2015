import threading
from datetime import timedelta

from message_store import MessageStore
from schemas import Position

HERE = Position(latitude=40.0, longitude=-73.0)
NEAR = Position(latitude=40.01, longitude=-73.0)  # ~0.69 mi
FAR = Position(latitude=41.0, longitude=-73.0)  # ~69 mi


def make_store(clock):
    return MessageStore(retention=timedelta(hours=24), clock=clock)


def test_create_sets_expiry(clock):
    store = make_store(clock)
    message = store.create("u1", "CoolPanda", "hello", HERE, 2)
    assert message.created_at == clock.now
    assert message.expires_at == clock.now + timedelta(hours=24)
    assert message.position == HERE


def test_created_message_is_immediately_queryable(clock):
    store = make_store(clock)
    message = store.create("u1", "CoolPanda", "hello", HERE, 2)
    assert [m.id for m in store.query(HERE, 2)] == [message.id]


def test_message_hidden_once_expired(clock):
    store = make_store(clock)
    store.create("u1", "CoolPanda", "hello", HERE, 2)

    clock.advance(hours=23, minutes=59)
    assert len(store.query(HERE, 2)) == 1

    clock.advance(minutes=1)
    assert store.query(HERE, 2) == []


def test_query_uses_larger_of_both_radii(clock):
    store = make_store(clock)
    store.create("u1", "WarmWolf", "wide", HERE, 100)
    store.create("u2", "SwiftEagle", "narrow", HERE, 0.1)

    # Querier's own radius is tiny, but the wide message reaches it
    found = store.query(FAR, 0.1)
    assert [m.content for m in found] == ["wide"]

    found = store.query(NEAR, 1)
    assert {m.content for m in found} == {"wide", "narrow"}


def test_query_is_newest_first_and_limited(clock):
    store = make_store(clock)
    for i in range(5):
        store.create("u1", "CoolPanda", f"m{i}", HERE, 2)
        clock.advance(minutes=1)

    found = store.query(HERE, 2, limit=3)
    assert [m.content for m in found] == ["m4", "m3", "m2"]


def test_query_returns_fresh_list(clock):
    store = make_store(clock)
    store.create("u1", "CoolPanda", "hello", HERE, 2)
    first = store.query(HERE, 2)
    first.clear()
    assert len(store.query(HERE, 2)) == 1


def test_evict_expired_is_idempotent(clock):
    store = make_store(clock)
    store.create("u1", "CoolPanda", "old", HERE, 2)
    clock.advance(hours=25)
    store.create("u1", "CoolPanda", "new", HERE, 2)

    assert store.evict_expired() == 1
    assert store.evict_expired() == 0
    assert len(store) == 1
    assert [m.content for m in store.query(HERE, 2)] == ["new"]


def test_evict_keeps_messages_created_after_cutoff(clock):
    store = make_store(clock)
    store.create("u1", "CoolPanda", "a", HERE, 2)
    clock.advance(hours=24)
    # Expires exactly now: evicted. Created now: kept.
    store.create("u2", "BrightFox", "b", HERE, 2)
    assert store.evict_expired() == 1
    assert [m.content for m in store.query(HERE, 2)] == ["b"]


def test_eviction_runs_alongside_writers(clock):
    store = make_store(clock)
    errors = []

    def writer(n):
        try:
            for i in range(200):
                store.create(f"u{n}", "User", f"{n}-{i}", HERE, 2)
        except Exception as e:
            errors.append(e)

    def evictor():
        try:
            for _ in range(200):
                store.evict_expired()
                store.query(HERE, 2)
        except Exception as e:
            errors.append(e)

    threads = [threading.Thread(target=writer, args=(n,)) for n in range(4)]
    threads.append(threading.Thread(target=evictor))
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert errors == []
    # Nothing had expired, so nothing may be lost
    assert len(store) == 800
