"""CLI related utilities"""
import logging
import re
import signal
import sys
import threading
from contextlib import contextmanager
from typing import List

from ..exceptions import ValidationError

LOG = logging.getLogger(__name__)

SEPARATORS = re.compile(r"[,\s]+")


def parse_values(raw: str) -> List[int]:
    """Parse comma or whitespace separated integers"""
    values = []
    for token in SEPARATORS.split(raw.strip()):
        if not token:
            continue
        try:
            values.append(int(token))
        except ValueError:
            raise ValidationError(f"Invalid numeric value: {token}", "")
    return values


def parse_inbox(raw) -> List[int]:
    """Inbox values from the command line, or from stdin when RAW is `stdin'"""
    if raw is None:
        return []
    if raw.lower() == "stdin":
        LOG.info("Reading inbox from stdin")
        return parse_values(sys.stdin.read())
    return parse_values(raw)


def parse_addresses(raw: List[str]) -> List[int]:
    """Mailbox addresses given as separate (or comma separated) arguments"""
    return parse_values(" ".join(raw or []))


def inline_source(text: str) -> str:
    """Source typed on one line, with `;' between instructions"""
    return "\n".join(part.strip() for part in text.split(";"))


def parse_int(raw, what: str):
    if raw is None:
        return None
    try:
        return int(raw)
    except ValueError:
        raise ValidationError(f"Invalid {what}: {raw}", f"The {what} must be an integer.")


def parse_float(raw, what: str):
    if raw is None:
        return None
    try:
        return float(raw)
    except ValueError:
        raise ValidationError(f"Invalid {what}: {raw}", f"The {what} must be a number.")


## Waiting for runs


@contextmanager
def cancel_on_interrupt(handle):
    """Make SIGINT (Ctrl-C) cancel the run behind HANDLE"""
    if threading.current_thread() is not threading.main_thread():
        yield handle
        return
    previous = signal.signal(signal.SIGINT, lambda *_: handle.cancel())
    try:
        yield handle
    finally:
        signal.signal(signal.SIGINT, previous or signal.default_int_handler)


def wait_for(handle, poll: float = 0.1):
    """Wait for the outcome of HANDLE, staying responsive to SIGINT"""
    while True:
        try:
            return handle.wait(timeout=poll)
        except TimeoutError:
            continue
        except KeyboardInterrupt:
            LOG.info("Interrupted, cancelling the run")
            handle.cancel()
