import threading
import time

import pytest

from prehnite.commitqueue import CommitQueue


class Recorder:
    """Collects the batches written and published by a queue."""

    def __init__(self):
        self.lock = threading.Lock()
        self.written = []
        self.published = []

    def write(self, batch):
        with self.lock:
            self.written.append(list(batch))

    def publish(self, batch):
        self.published.extend(batch)


def test_single_append_writes_and_publishes():
    rec = Recorder()
    q = CommitQueue(rec.write, rec.publish)
    q.append((1, "committed"))
    assert rec.written == [[(1, "committed")]]
    assert rec.published == [(1, "committed")]


def test_sequential_appends_each_flush_once():
    rec = Recorder()
    q = CommitQueue(rec.write, rec.publish)
    for i in range(1, 11):
        q.append(i)
    assert rec.written == [[i] for i in range(1, 11)]
    assert rec.published == list(range(1, 11))


def test_record_is_published_only_after_write_returns():
    published = []
    seen_at_write = []

    def write(batch):
        seen_at_write.append(list(published))

    q = CommitQueue(write, published.extend)
    q.append("a")
    q.append("b")
    assert seen_at_write == [[], ["a"]]
    assert published == ["a", "b"]


def test_concurrent_appenders_all_succeed():
    rec = Recorder()
    q = CommitQueue(rec.write, rec.publish)
    threads_n, per_thread = 32, 50

    def worker(t):
        for i in range(per_thread):
            q.append(t * per_thread + i + 1)

    threads = [threading.Thread(target=worker, args=(t,)) for t in range(threads_n)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    expected = set(range(1, threads_n * per_thread + 1))
    assert sorted(rec.published) == sorted(expected)
    written = [r for batch in rec.written for r in batch]
    assert sorted(written) == sorted(expected)
    assert len(rec.written) <= len(expected)


def test_records_queued_during_exclusive_are_flushed_as_one_batch():
    rec = Recorder()
    q = CommitQueue(rec.write, rec.publish)
    threads = []
    with q.exclusive():
        for i in range(1, 4):
            t = threading.Thread(target=q.append, args=(i,))
            t.start()
            threads.append(t)
        time.sleep(0.3)
        assert rec.written == []
    for t in threads:
        t.join(timeout=5)
    assert not any(t.is_alive() for t in threads)
    assert len(rec.written) == 1
    assert sorted(rec.written[0]) == [1, 2, 3]
    assert sorted(rec.published) == [1, 2, 3]


def test_followers_wake_when_leader_finishes():
    release = threading.Event()
    entered = threading.Event()
    written = []

    def write(batch):
        entered.set()
        release.wait(timeout=5)
        written.append(list(batch))

    published = []
    q = CommitQueue(write, published.extend)
    leader = threading.Thread(target=q.append, args=(1,))
    leader.start()
    assert entered.wait(timeout=5)
    follower = threading.Thread(target=q.append, args=(2,))
    follower.start()
    time.sleep(0.1)
    assert follower.is_alive()
    release.set()
    leader.join(timeout=5)
    follower.join(timeout=5)
    assert not leader.is_alive() and not follower.is_alive()
    assert written == [[1], [2]]
    assert published == [1, 2]


def test_write_error_propagates_and_batch_is_not_published():
    fail = [True]
    published = []

    def write(batch):
        if fail[0]:
            raise OSError("disk full")

    q = CommitQueue(write, published.extend)
    with pytest.raises(OSError, match="disk full"):
        q.append("lost")
    assert published == []

    fail[0] = False
    q.append("kept")
    assert published == ["kept"]


def test_exclusive_blocks_appends_until_released():
    rec = Recorder()
    q = CommitQueue(rec.write, rec.publish)
    done = threading.Event()

    def appender():
        q.append("x")
        done.set()

    with q.exclusive():
        t = threading.Thread(target=appender)
        t.start()
        time.sleep(0.1)
        assert not done.is_set()
        assert rec.published == []
    t.join(timeout=5)
    assert done.is_set()
    assert rec.published == ["x"]


def test_exclusive_waits_for_in_flight_flush():
    release = threading.Event()
    entered_write = threading.Event()
    entered_exclusive = threading.Event()
    published = []
    published_at_exclusive = []

    def write(batch):
        entered_write.set()
        release.wait(timeout=5)

    q = CommitQueue(write, published.extend)
    leader = threading.Thread(target=q.append, args=(1,))
    leader.start()
    assert entered_write.wait(timeout=5)

    def take_slot():
        with q.exclusive():
            published_at_exclusive.extend(published)
            entered_exclusive.set()

    taker = threading.Thread(target=take_slot)
    taker.start()
    time.sleep(0.1)
    assert not entered_exclusive.is_set()
    release.set()
    leader.join(timeout=5)
    taker.join(timeout=5)
    assert entered_exclusive.is_set()
    assert published_at_exclusive == [1]
    assert published == [1]


def test_exclusive_releases_slot_after_exception():
    rec = Recorder()
    q = CommitQueue(rec.write, rec.publish)
    with pytest.raises(RuntimeError, match="boom"):
        with q.exclusive():
            raise RuntimeError("boom")
    q.append(7)
    assert rec.written == [[7]]
    assert rec.published == [7]