"""Tests for the in-memory lease store."""

import threading

import pytest

from service_discovery.registry.lease_store import MIN_TTL_SECONDS, LeaseStore


def test_upsert_then_query_returns_single_lease(store, clock):
    expires_at = store.upsert("my-service", "10.0.0.5", 8080, 30)

    assert expires_at == clock.now + 30
    leases = store.query("my-service")
    assert len(leases) == 1
    assert (leases[0].ip, leases[0].port) == ("10.0.0.5", 8080)
    assert 0 < leases[0].ttl_seconds <= 30


def test_ttl_is_clamped_to_floor(store, clock):
    expires_at = store.upsert("svc", "10.0.0.5", 8080, 1)

    assert expires_at == clock.now + MIN_TTL_SECONDS
    assert store.query("svc")[0].ttl_seconds == MIN_TTL_SECONDS


def test_upsert_same_identity_replaces(store, clock):
    store.upsert("svc", "10.0.0.5", 8080, 10, {"version": "1.0"})
    clock.advance(3)
    store.upsert("svc", "10.0.0.5", 8080, 20, {"version": "2.0"})

    leases = store.query("svc")
    assert len(leases) == 1
    assert leases[0].ttl_seconds == 20
    assert leases[0].meta == {"version": "2.0"}
    assert len(store) == 1


def test_distinct_endpoints_kept_in_insertion_order(store):
    store.upsert("svc", "10.0.0.1", 80, 30)
    store.upsert("svc", "10.0.0.2", 80, 30)
    store.upsert("svc", "10.0.0.1", 81, 30)

    assert [(l.ip, l.port) for l in store.query("svc")] == [
        ("10.0.0.1", 80),
        ("10.0.0.2", 80),
        ("10.0.0.1", 81),
    ]


def test_refresh_moves_lease_to_end(store):
    store.upsert("svc", "10.0.0.1", 80, 30)
    store.upsert("svc", "10.0.0.2", 80, 30)
    store.upsert("svc", "10.0.0.1", 80, 30)

    assert [l.ip for l in store.query("svc")] == ["10.0.0.2", "10.0.0.1"]


def test_service_names_are_case_sensitive(store):
    store.upsert("Svc", "10.0.0.1", 80, 30)

    assert store.query("svc") == []
    assert len(store.query("Svc")) == 1


def test_empty_service_name_rejected(store):
    with pytest.raises(ValueError):
        store.upsert("", "10.0.0.1", 80, 30)


def test_query_unknown_service_returns_empty_list(store):
    assert store.query("nope") == []


def test_query_hides_expired_leases_before_sweep(store, clock):
    store.upsert("svc", "10.0.0.1", 80, 10)
    store.upsert("svc", "10.0.0.2", 80, 60)

    clock.advance(10)  # expires_at == now is expired

    assert [l.ip for l in store.query("svc")] == ["10.0.0.2"]
    assert len(store) == 2


def test_remaining_ttl_is_floored(store, clock):
    store.upsert("svc", "10.0.0.1", 80, 30)
    clock.advance(0.4)

    assert store.query("svc")[0].ttl_seconds == 29


def test_query_with_explicit_now(store, clock):
    store.upsert("svc", "10.0.0.1", 80, 30)

    assert store.query("svc", now=clock.now + 29.5)[0].ttl_seconds == 0
    assert store.query("svc", now=clock.now + 30) == []


def test_meta_is_copied(store):
    meta = {"version": "1.0"}
    store.upsert("svc", "10.0.0.1", 80, 30, meta)
    meta["version"] = "tampered"

    result = store.query("svc")[0].meta
    result["version"] = "also tampered"

    assert store.query("svc")[0].meta == {"version": "1.0"}


def test_remove_drops_lease_and_empty_bucket(store):
    store.upsert("svc", "10.0.0.1", 80, 30)
    store.upsert("svc", "10.0.0.2", 80, 30)

    assert store.remove("svc", "10.0.0.1", 80) is True
    assert "svc" in store
    assert store.remove("svc", "10.0.0.2", 80) is True
    assert "svc" not in store
    assert store.services() == []


def test_remove_missing_is_noop(store):
    store.upsert("svc", "10.0.0.1", 80, 30)

    assert store.remove("svc", "10.0.0.1", 81) is False
    assert store.remove("other", "10.0.0.1", 80) is False
    assert len(store) == 1


def test_sweep_removes_expired_and_empty_buckets(store, clock):
    store.upsert("a", "10.0.0.1", 80, 10)
    store.upsert("b", "10.0.0.2", 80, 10)
    store.upsert("b", "10.0.0.3", 80, 60)

    clock.advance(10)
    removed = store.sweep()

    assert removed == 2
    assert "a" not in store
    assert [l.ip for l in store.query("b")] == ["10.0.0.3"]


def test_scenario_register_query_expire(store, clock):
    store.upsert("my-service", "10.0.0.5", 8080, 30)

    clock.advance(4)
    leases = store.query("my-service")
    assert len(leases) == 1
    assert 25 <= leases[0].ttl_seconds <= 30

    clock.advance(27)
    store.sweep()
    assert store.query("my-service") == []
    assert "my-service" not in store


def test_concurrent_upserts_on_same_service_are_not_lost():
    store = LeaseStore()
    threads_count = 8
    per_thread = 200
    barrier = threading.Barrier(threads_count)

    def register(worker: int):
        barrier.wait()
        for i in range(per_thread):
            store.upsert("svc", f"10.0.{worker}.1", 1000 + i, 60)

    threads = [threading.Thread(target=register, args=(w,)) for w in range(threads_count)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert len(store.query("svc")) == threads_count * per_thread


def test_concurrent_upsert_and_sweep_keep_store_consistent(clock):
    store = LeaseStore(clock=clock)
    stop = threading.Event()

    def sweeper():
        while not stop.is_set():
            store.sweep()

    t = threading.Thread(target=sweeper)
    t.start()
    try:
        for i in range(500):
            store.upsert("svc", "10.0.0.1", 2000 + i, 60)
    finally:
        stop.set()
        t.join()

    assert len(store.query("svc")) == 500


def test_empty_meta_is_kept_distinct_from_none(store):
    store.upsert("svc", "10.0.0.1", 80, 30, {})
    store.upsert("svc", "10.0.0.2", 80, 30)

    first, second = store.query("svc")

    assert first.meta == {}
    assert second.meta is None
