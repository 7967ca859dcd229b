from typing import Callable, Dict, Hashable, List, Optional, Set

import threading
import time


class WorkQueue:
    """
    A de-duplicating work queue of object keys, shared by the watch threads
    (which add keys) and the worker threads (which process them).

    - A key waiting in the queue is only queued once, however often it is
      added.
    - A key is never handed to two workers at once. Adding a key that is
      being processed marks it dirty, and done() puts it back.
    - add_rate_limited() delays a key by an exponential backoff that grows
      with each consecutive failure until forget() resets it.
    """

    def __init__(self, base_delay: float = 0.5, max_delay: float = 300.0,
                 clock: Callable[[], float] = time.monotonic) -> None:
        self.base_delay = base_delay
        self.max_delay = max_delay
        self.clock = clock

        self._cond = threading.Condition()
        self._queue: List[Hashable] = []
        self._dirty: Set[Hashable] = set()
        self._processing: Set[Hashable] = set()
        self._delayed: Dict[Hashable, float] = {}
        self._failures: Dict[Hashable, int] = {}
        self._shutting_down = False

    def __len__(self) -> int:
        with self._cond:
            return len(self._queue)

    def _add(self, key: Hashable) -> None:
        if key in self._dirty:
            return

        self._dirty.add(key)

        if key in self._processing:
            return

        self._queue.append(key)
        self._cond.notify()

    def _promote(self) -> Optional[float]:
        # Move every delayed key that is due into the queue; return how long
        # until the next one is.
        now = self.clock()
        wait: Optional[float] = None

        for key, due in list(self._delayed.items()):
            if due <= now:
                del self._delayed[key]
                self._add(key)
            elif wait is None or (due - now) < wait:
                wait = due - now

        return wait

    def add(self, key: Hashable) -> None:
        with self._cond:
            if self._shutting_down:
                return

            self._add(key)

    def add_after(self, key: Hashable, delay: float) -> None:
        if delay <= 0:
            self.add(key)
            return

        with self._cond:
            if self._shutting_down:
                return

            due = self.clock() + delay
            self._delayed[key] = min(due, self._delayed.get(key, due))
            self._cond.notify()

    def backoff(self, key: Hashable) -> float:
        failures = self._failures.get(key, 0)

        if failures == 0:
            return 0.0

        return min(self.base_delay * (2 ** (failures - 1)), self.max_delay)

    def add_rate_limited(self, key: Hashable) -> float:
        with self._cond:
            self._failures[key] = self._failures.get(key, 0) + 1
            delay = self.backoff(key)

        self.add_after(key, delay)

        return delay

    def forget(self, key: Hashable) -> None:
        with self._cond:
            self._failures.pop(key, None)

    def retries(self, key: Hashable) -> int:
        with self._cond:
            return self._failures.get(key, 0)

    def get(self, timeout: Optional[float] = None) -> Optional[Hashable]:
        """
        Block until a key is ready and hand it out, or return None on
        shutdown (or when the timeout runs out). Every key returned must be
        passed back to done().
        """

        deadline = None if timeout is None else time.monotonic() + timeout

        with self._cond:
            while True:
                wait = self._promote()

                if self._queue:
                    key = self._queue.pop(0)
                    self._dirty.discard(key)
                    self._processing.add(key)

                    return key

                if self._shutting_down:
                    return None

                if deadline is not None:
                    remaining = deadline - time.monotonic()

                    if remaining <= 0:
                        return None

                    wait = remaining if wait is None else min(wait, remaining)

                self._cond.wait(wait)

    def done(self, key: Hashable) -> None:
        with self._cond:
            self._processing.discard(key)

            if key in self._dirty:
                self._queue.append(key)
                self._cond.notify()

    def shutdown(self) -> None:
        with self._cond:
            self._shutting_down = True
            self._cond.notify_all()
