"""Store lock: shared reads, exclusive writes, timeouts."""

import threading
import time

import pytest

from poolmarket.storage.errors import LockTimeout, StoreError
from poolmarket.storage.lock import RWLock


def test_readers_share_the_lock():
    lock = RWLock()
    with lock.read(0.1):
        with lock.read(0.1):
            assert lock.reader_count == 2
    assert lock.reader_count == 0


def test_writer_excludes_readers_and_writers():
    lock = RWLock()
    with lock.write(0.1):
        assert lock.locked_for_write
        with pytest.raises(LockTimeout):
            with lock.read(0.05):
                pass
        with pytest.raises(LockTimeout) as exc:
            with lock.write(0.05):
                pass
        assert exc.value.mode == "write"
    assert not lock.locked_for_write


def test_writer_waits_for_readers():
    lock = RWLock()
    lock.acquire_read()
    assert lock.acquire_write(timeout=0.05) is False
    lock.release_read()
    assert lock.acquire_write(timeout=0.05) is True
    lock.release_write()


def test_waiting_writer_blocks_new_readers():
    lock = RWLock()
    lock.acquire_read()
    acquired = threading.Event()

    def writer():
        if lock.acquire_write(timeout=2.0):
            acquired.set()
            lock.release_write()

    t = threading.Thread(target=writer)
    t.start()
    # Give the writer time to queue up
    for _ in range(100):
        if lock._writers_waiting:
            break
        time.sleep(0.01)
    assert lock.acquire_read(timeout=0.05) is False
    lock.release_read()
    t.join(timeout=2.0)
    assert acquired.is_set()


def test_lock_released_on_error():
    lock = RWLock()
    with pytest.raises(ValueError):
        with lock.write(0.1):
            raise ValueError("boom")
    with lock.write(0.1):
        pass


def test_lock_timeout_is_a_store_error():
    assert issubclass(LockTimeout, StoreError)


def test_store_write_times_out_while_reading(store):
    store.lock_timeout_sec = 0.05
    with store.reading():
        with pytest.raises(LockTimeout):
            with store.writing():
                pass


def _wait_until(predicate, limit=2.0):
    deadline = time.monotonic() + limit
    while not predicate():
        assert time.monotonic() < deadline
        time.sleep(0.005)


def test_released_writer_hands_off_to_queued_readers():
    lock = RWLock()
    order = []
    lock.acquire_write()

    def next_writer():
        assert lock.acquire_write(timeout=2.0)
        order.append("writer")
        lock.release_write()

    def reader():
        assert lock.acquire_read(timeout=2.0)
        order.append("reader")
        time.sleep(0.02)
        lock.release_read()

    w = threading.Thread(target=next_writer)
    w.start()
    _wait_until(lambda: lock._writers_waiting == 1)
    r = threading.Thread(target=reader)
    r.start()
    _wait_until(lambda: lock._readers_waiting == 1)

    lock.release_write()
    w.join(timeout=2.0)
    r.join(timeout=2.0)
    assert order == ["reader", "writer"]


def test_reader_gets_through_sustained_writers():
    lock = RWLock()
    stop = threading.Event()

    def writer():
        while not stop.is_set():
            with lock.write(2.0):
                time.sleep(0.001)

    writers = [threading.Thread(target=writer) for _ in range(6)]
    for t in writers:
        t.start()
    try:
        for _ in range(50):
            with lock.read(1.0):
                pass
    finally:
        stop.set()
        for t in writers:
            t.join(timeout=2.0)
