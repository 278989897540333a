"""Live machine states, from the run thread to one consumer

The queue is bounded. When it is full, the run thread waits for the consumer
(nothing is dropped) but gives up if the run is cancelled, if the consumer
abandons the stream, or if the consumer stalls for longer than stall_timeout.
Abandoning only stops the stream; the run carries on.
"""

import logging
import queue
import threading
import time

from ..machine.types import MachineState

LOG = logging.getLogger(__name__)


class StateStream:
    def __init__(self, maxsize=64, stall_timeout=5.0, poll=0.05):
        self._queue = queue.Queue(maxsize=max(1, maxsize))
        self._closed = threading.Event()
        self._abandoned = threading.Event()
        self.stall_timeout = stall_timeout
        self.poll = poll

    @property
    def closed(self) -> bool:
        return self._closed.is_set()

    @property
    def abandoned(self) -> bool:
        return self._abandoned.is_set()

    def put(self, state: MachineState, token=None) -> bool:
        """Queue a copy of STATE. Return False if it was not queued."""
        if self.abandoned or self.closed:
            return False
        snapshot = state.copy()
        start = time.monotonic()
        while True:
            try:
                self._queue.put(snapshot, timeout=self.poll)
                return True
            except queue.Full:
                if self.abandoned:
                    return False
                if token is not None and token.cancelled:
                    return False
                if time.monotonic() - start > self.stall_timeout:
                    LOG.warning(
                        "Live state consumer stalled for %.1fs, abandoning the stream",
                        self.stall_timeout,
                    )
                    self.abandon()
                    return False

    def close(self):
        """No more states will be put"""
        self._closed.set()

    def abandon(self):
        """The consumer has gone away"""
        if not self.abandoned:
            LOG.debug("Live state stream abandoned")
        self._abandoned.set()
        while True:
            try:
                self._queue.get_nowait()
            except queue.Empty:
                break

    def __iter__(self):
        finished = False
        try:
            while not self.abandoned:
                try:
                    yield self._queue.get(timeout=self.poll)
                except queue.Empty:
                    if self.closed and self._queue.empty():
                        finished = True
                        return
        finally:
            if not finished:
                self.abandon()
