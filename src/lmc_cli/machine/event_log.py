"""JSON-lines log of execution events and states"""

import json
import logging
import threading
from pathlib import Path

from ..exceptions import IOFailure
from .events import Event
from .serialisable import now_str
from .types import MachineState

LOG = logging.getLogger(__name__)


class EventJSONLogger:
    """Durable observer: one JSON object per line.

    Lines are either {"category": "event", ...} or {"category": "state", ...}.
    The file is truncated when the logger is created.
    """

    def __init__(self, path):
        self.path = Path(path).expanduser()
        self._lock = threading.Lock()
        try:
            if self.path.parent != Path("."):
                self.path.parent.mkdir(parents=True, exist_ok=True)
            self._handle = open(self.path, "w", encoding="utf-8")
        except OSError as exc:
            raise IOFailure(self.path, exc) from exc
        LOG.info("Logging events to %s", self.path)

    def __call__(self, event: Event):
        self._write(
            dict(
                category="event",
                timestamp=now_str(),
                kind=event.kind,
                data=event.serialise()["data"],
            )
        )

    def log_state(self, state: MachineState):
        self._write(dict(category="state", timestamp=now_str(), snapshot=state.serialise()))

    def _write(self, obj: dict):
        line = json.dumps(obj, sort_keys=True) + "\n"
        with self._lock:
            if self._handle.closed:
                LOG.debug("Dropping log line, %s is closed", self.path)
                return
            try:
                self._handle.write(line)
            except OSError as exc:
                raise IOFailure(self.path, exc) from exc

    def close(self):
        with self._lock:
            if not self._handle.closed:
                self._handle.flush()
                self._handle.close()

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        self.close()


def read_log(path) -> list:
    """Read back a log written by EventJSONLogger"""
    with open(path, encoding="utf-8") as f:
        return [json.loads(line) for line in f if line.strip()]
