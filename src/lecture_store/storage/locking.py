"""Reader/writer lock guarding the metadata index.

Any number of threads may hold the lock in shared mode; one thread at a time
may hold it exclusively, and only while no shared holders remain. Waiting
threads are queued and the releasing thread hands the lock over directly, so
neither readers nor writers can starve:

- when a writer releases, every queued reader is admitted at once, otherwise
  the next queued writer gets the lock;
- when the last reader releases, the next queued writer gets the lock;
- a new reader that arrives while a writer is queued waits behind it.

A thread may re-acquire a mode it already holds. Upgrading (shared to
exclusive) or downgrading raises LockingError instead of deadlocking.
"""
from contextlib import contextmanager
from threading import Condition, Lock, Thread, current_thread
from typing import Dict, Iterator, List, Optional, Tuple


class LockingError(RuntimeError):
    """Raised on lock misuse (upgrade, downgrade, release of an unheld lock)."""


class SharedLock:
    """Multiple-readers / single-writer lock with direct hand-off."""

    def __init__(self) -> None:
        self._lock = Lock()
        # Shared holders: total count and per-thread counts
        self._shared_count = 0
        self._shared_owners: Dict[Thread, int] = {}
        # Exclusive holder: re-entry depth and owning thread
        self._exclusive_count = 0
        self._exclusive_owner: Optional[Thread] = None
        # Threads waiting for the lock, each with its own wake-up condition
        self._shared_queue: List[Tuple[Thread, Condition]] = []
        self._exclusive_queue: List[Tuple[Thread, Condition]] = []

    @property
    def is_shared(self) -> bool:
        """True while at least one reader holds the lock."""
        with self._lock:
            return self._shared_count > 0

    @property
    def is_exclusive(self) -> bool:
        """True while a writer holds the lock."""
        with self._lock:
            return self._exclusive_count > 0

    def acquire_shared(self, blocking: bool = True) -> bool:
        """Acquire the lock in shared mode.

        Returns:
            True once acquired; False only when blocking is False and the
            lock is unavailable.
        """
        me = current_thread()
        with self._lock:
            if me in self._shared_owners:
                self._shared_count += 1
                self._shared_owners[me] += 1
                return True
            if self._exclusive_owner is me:
                raise LockingError("cannot take a shared lock while holding it exclusively")
            if self._exclusive_count or self._exclusive_queue:
                if not blocking:
                    return False
                waiter = Condition(self._lock)
                self._shared_queue.append((me, waiter))
                # The releasing writer registers us as an owner before notifying
                while me not in self._shared_owners:
                    waiter.wait()
                return True
            self._shared_count += 1
            self._shared_owners[me] = 1
            return True

    def acquire_exclusive(self, blocking: bool = True) -> bool:
        """Acquire the lock in exclusive mode.

        Returns:
            True once acquired; False only when blocking is False and the
            lock is unavailable.
        """
        me = current_thread()
        with self._lock:
            if self._exclusive_owner is me:
                self._exclusive_count += 1
                return True
            if me in self._shared_owners:
                raise LockingError("cannot upgrade a shared lock to exclusive")
            if self._shared_count or self._exclusive_count:
                if not blocking:
                    return False
                waiter = Condition(self._lock)
                self._exclusive_queue.append((me, waiter))
                while self._exclusive_owner is not me:
                    waiter.wait()
                return True
            self._exclusive_owner = me
            self._exclusive_count = 1
            return True

    def release(self) -> None:
        """Release one level of whichever mode the calling thread holds."""
        me = current_thread()
        with self._lock:
            if self._exclusive_count:
                if self._exclusive_owner is not me:
                    raise LockingError("release() called on unheld lock")
                self._exclusive_count -= 1
                if not self._exclusive_count:
                    self._exclusive_owner = None
                    self._hand_off(prefer_shared=True)
            elif me in self._shared_owners:
                self._shared_owners[me] -= 1
                if not self._shared_owners[me]:
                    del self._shared_owners[me]
                self._shared_count -= 1
                if not self._shared_count:
                    self._hand_off(prefer_shared=False)
            else:
                raise LockingError("release() called on unheld lock")

    def _hand_off(self, prefer_shared: bool) -> None:
        # Caller holds self._lock and the lock is completely free.
        if self._shared_queue and (prefer_shared or not self._exclusive_queue):
            for thread, waiter in self._shared_queue:
                self._shared_count += 1
                self._shared_owners[thread] = 1
                waiter.notify()
            del self._shared_queue[:]
        elif self._exclusive_queue:
            thread, waiter = self._exclusive_queue.pop(0)
            self._exclusive_owner = thread
            self._exclusive_count = 1
            waiter.notify()

    @contextmanager
    def read_lock(self) -> Iterator[None]:
        """Hold the lock in shared mode for the duration of the block."""
        self.acquire_shared()
        try:
            yield
        finally:
            self.release()

    @contextmanager
    def write_lock(self) -> Iterator[None]:
        """Hold the lock exclusively for the duration of the block."""
        self.acquire_exclusive()
        try:
            yield
        finally:
            self.release()
