import threading

import pytest

from apiexec import ClientPool


def test_one_client_per_endpoint():
    created = []
    pool = ClientPool(lambda ep: created.append(ep) or object())
    a = pool.get("https://a.test/")
    assert pool.get("https://A.test") is a
    assert pool.get("https://b.test") is not a
    assert created == ["https://a.test", "https://b.test"]
    assert len(pool) == 2  # noqa: PLR2004
    assert "https://a.test/" in pool


def test_empty_endpoint_rejected():
    pool = ClientPool(lambda ep: object())
    with pytest.raises(ValueError):
        pool.get("  ")


def test_drain_closes_pool():
    pool = ClientPool(lambda ep: ep)
    pool.get("https://a.test")
    assert pool.drain() == ["https://a.test"]
    assert len(pool) == 0
    with pytest.raises(RuntimeError):
        pool.get("https://a.test")


def test_concurrent_get_creates_once():
    created = []
    barrier = threading.Barrier(8)

    def factory(ep):
        created.append(ep)
        return object()

    pool = ClientPool(factory)
    results = []

    def worker():
        barrier.wait()
        results.append(pool.get("https://a.test"))

    threads = [threading.Thread(target=worker) for _ in range(8)]
    for th in threads:
        th.start()
    for th in threads:
        th.join()
    assert len(created) == 1
    assert all(r is results[0] for r in results)
