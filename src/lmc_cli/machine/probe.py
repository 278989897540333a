"""Machine Probe

Fan-out of engine events to any number of observers, and the in-memory
recorder that is always one of them.
"""

import logging
import threading
from typing import List

from .events import Event, Observer, OutputProduced

LOG = logging.getLogger(__name__)


class Probe:
    """Records every event of a run, in order.

    Written from the run thread and read from the caller's thread, so the
    buffer is only touched under the lock.
    """

    def __init__(self):
        self._events = []
        self._lock = threading.Lock()

    def __call__(self, event: Event):
        with self._lock:
            self._events.append(event)

    def events(self) -> List[Event]:
        with self._lock:
            return list(self._events)

    def outputs(self) -> List[int]:
        return [e.value for e in self.events() if isinstance(e, OutputProduced)]

    def clear(self):
        with self._lock:
            self._events.clear()

    def __len__(self):
        with self._lock:
            return len(self._events)


def compose(*observers: Observer) -> Observer:
    """Combine observers into one.

    Each event goes to every observer, in the given order. An observer that
    raises is logged and skipped for that event only.
    """
    targets = [o for o in observers if o is not None]

    def _composed(event: Event):
        for observer in targets:
            try:
                observer(event)
            except Exception:
                LOG.exception("Observer %r failed on %s", observer, event.kind)

    return _composed
