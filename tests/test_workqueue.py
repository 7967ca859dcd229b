import threading

from gateway_auto_listener.workqueue import WorkQueue


class FakeClock:
    def __init__(self) -> None:
        self.now = 1000.0

    def __call__(self) -> float:
        return self.now


def test_add_dedupes():
    queue = WorkQueue()

    queue.add("a")
    queue.add("b")
    queue.add("a")

    assert len(queue) == 2
    assert queue.get(timeout=0) == "a"
    assert queue.get(timeout=0) == "b"
    assert queue.get(timeout=0) is None


def test_key_added_while_processing_comes_back_after_done():
    queue = WorkQueue()

    queue.add("a")
    key = queue.get(timeout=0)

    # Not handed out twice while a worker holds it.
    queue.add("a")
    assert len(queue) == 0
    assert queue.get(timeout=0) is None

    queue.done(key)

    assert queue.get(timeout=0) == "a"


def test_done_without_new_add_drops_key():
    queue = WorkQueue()

    queue.add("a")
    queue.done(queue.get(timeout=0))

    assert queue.get(timeout=0) is None


def test_backoff_grows_and_caps():
    queue = WorkQueue(base_delay=0.5, max_delay=4.0, clock=FakeClock())

    delays = [queue.add_rate_limited("a") for _ in range(6)]

    assert delays == [0.5, 1.0, 2.0, 4.0, 4.0, 4.0]
    assert queue.retries("a") == 6


def test_forget_resets_backoff():
    queue = WorkQueue(clock=FakeClock())

    queue.add_rate_limited("a")
    queue.add_rate_limited("a")
    queue.forget("a")

    assert queue.retries("a") == 0
    assert queue.backoff("a") == 0.0
    assert queue.add_rate_limited("a") == 0.5


def test_backoff_is_per_key():
    queue = WorkQueue(clock=FakeClock())

    queue.add_rate_limited("a")
    queue.add_rate_limited("a")

    assert queue.add_rate_limited("b") == 0.5


def test_delayed_key_waits_for_clock():
    clock = FakeClock()
    queue = WorkQueue(clock=clock)

    queue.add_after("a", 10)

    assert queue.get(timeout=0) is None

    clock.now += 9.5
    assert queue.get(timeout=0) is None

    clock.now += 1
    assert queue.get(timeout=0) == "a"


def test_add_after_keeps_earliest_due_time():
    clock = FakeClock()
    queue = WorkQueue(clock=clock)

    queue.add_after("a", 5)
    queue.add_after("a", 60)

    clock.now += 5
    assert queue.get(timeout=0) == "a"


def test_add_after_zero_is_immediate():
    queue = WorkQueue(clock=FakeClock())

    queue.add_after("a", 0)

    assert queue.get(timeout=0) == "a"


def test_shutdown_wakes_waiting_worker():
    queue = WorkQueue()
    got = []

    worker = threading.Thread(target=lambda: got.append(queue.get()))
    worker.start()

    queue.shutdown()
    worker.join(timeout=5)

    assert not worker.is_alive()
    assert got == [None]


def test_shutdown_ignores_new_keys():
    queue = WorkQueue()

    queue.shutdown()
    queue.add("a")
    queue.add_after("b", 1)

    assert queue.get(timeout=0) is None


def test_get_times_out():
    queue = WorkQueue()

    assert queue.get(timeout=0.05) is None
