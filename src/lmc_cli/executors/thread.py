"""Run machines on their own thread"""

import logging
import threading

LOG = logging.getLogger(__name__)


class CancelToken:
    """Cooperative cancellation, checked by the run at cycle boundaries"""

    def __init__(self):
        self._event = threading.Event()

    def cancel(self):
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def wait(self, timeout: float) -> bool:
        """Sleep up to TIMEOUT seconds, waking early on cancel

        Returns True if cancelled.
        """
        return self._event.wait(timeout)


class RunHandle:
    """A run in progress on another thread"""

    def __init__(self, target, token: CancelToken, stream=None):
        self.token = token
        self.stream = stream
        self._target = target
        self._result = None
        self._exception = None
        self._thread = threading.Thread(target=self._run, name="lmc-run", daemon=True)

    def _run(self):
        try:
            self._result = self._target(self.token)
        except BaseException as exc:
            LOG.info("Run thread raised %r", exc)
            self._exception = exc
        finally:
            if self.stream is not None:
                self.stream.close()

    def start(self) -> "RunHandle":
        LOG.info("New thread: %s", self._thread.name)
        self._thread.start()
        return self

    def cancel(self):
        self.token.cancel()

    def done(self) -> bool:
        return not self._thread.is_alive()

    def wait(self, timeout=None):
        """Wait for the outcome. Raises TimeoutError if TIMEOUT expires."""
        self._thread.join(timeout)
        if self._thread.is_alive():
            raise TimeoutError(f"Run still in progress after {timeout}s")
        if self._exception is not None:
            raise self._exception
        return self._result

    def states(self):
        """Iterate over live states (only for runs started with live=True)"""
        if self.stream is None:
            raise ValueError("This run was not started with live=True")
        return iter(self.stream)
