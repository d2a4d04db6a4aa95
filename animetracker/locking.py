import threading
from contextlib import contextmanager


class SerialLock:
    """
    Mutex that grants the lock in arrival order.

    Every mutating store operation takes this lock around its whole
    read-modify-write, so back-to-back commands cannot clobber each other and
    are applied in the order they were issued.
    """

    def __init__(self):
        self._cond = threading.Condition()
        self._next_ticket = 0
        self._serving = 0

    @contextmanager
    def hold(self):
        with self._cond:
            ticket = self._next_ticket
            self._next_ticket += 1
            while ticket != self._serving:
                self._cond.wait()
        try:
            yield
        finally:
            with self._cond:
                self._serving += 1
                self._cond.notify_all()

    def pending(self) -> int:
        """Number of holders plus waiters."""
        with self._cond:
            return self._next_ticket - self._serving
