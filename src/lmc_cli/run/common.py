"""The cycle loop shared by every way of running a machine"""

import enum
import logging
import math
from dataclasses import dataclass
from typing import FrozenSet, List, Optional, Sequence, Union

from ..exceptions import InvalidSpeed, ValidationError
from ..machine.engine import Engine, EngineError
from ..machine.events import BreakpointHit, EngineFailure, Event, Observer
from ..machine.probe import Probe
from ..machine.types import MachineState, Program

LOG = logging.getLogger(__name__)


@dataclass
class RunRequest:
    """What to run, and how

    program is a stored name, a file path or a Program. A rate (cycles per
    second) selects the hertz schedule; without one the run goes as fast as
    it can. auto_load_breakpoints=None means "use the configured default".

    resume_from_breakpoint is the breakpoint the state was paused at, if any.
    The run steps past that one breakpoint on its first cycle.
    """

    program: Union[str, Program]
    inbox: Sequence[int] = ()
    rate: Optional[float] = None
    max_cycles: Optional[int] = None
    breakpoints: Sequence[int] = ()
    initial_state: Optional[MachineState] = None
    auto_load_breakpoints: Optional[bool] = None
    emit_initial: bool = True
    resume_from_breakpoint: Optional[int] = None


class Termination(enum.Enum):
    HALTED = "halted"
    LIMIT_REACHED = "limit reached"
    BREAKPOINT = "breakpoint"
    CANCELLED = "cancelled"
    ERRORED = "errored"


@dataclass
class RunOutcome:
    state: MachineState
    events: List[Event]
    termination: Termination
    breakpoint: Optional[int] = None
    error: Optional[EngineError] = None
    cycles: int = 0
    program: Optional[Program] = None

    @property
    def halted(self) -> bool:
        """True only if the program ran a halt instruction"""
        return self.termination == Termination.HALTED

    @property
    def cancelled(self) -> bool:
        return self.termination == Termination.CANCELLED

    @property
    def errored(self) -> bool:
        return self.termination == Termination.ERRORED


@dataclass
class PreparedRun:
    program: Program
    state: MachineState
    breakpoints: FrozenSet[int]
    probe: Probe
    observer: Observer
    program_hash: str
    name: Optional[str] = None
    rate: Optional[float] = None
    max_cycles: Optional[int] = None
    resume_from: Optional[int] = None
    emit_initial: bool = True


def check_rate(rate) -> Optional[float]:
    if rate is None:
        return None
    try:
        value = float(rate)
    except (TypeError, ValueError):
        raise InvalidSpeed(rate)
    if isinstance(rate, bool) or not value > 0 or math.isinf(value):
        raise InvalidSpeed(rate)
    return value


def check_max_cycles(max_cycles) -> Optional[int]:
    if max_cycles is None:
        return None
    if isinstance(max_cycles, bool) or not isinstance(max_cycles, int) or max_cycles < 0:
        raise ValidationError(
            f"Invalid cycle limit: {max_cycles}", "The limit must be zero or more."
        )
    return max_cycles


def drive(engine: Engine, prepared: PreparedRun, token, stream=None) -> RunOutcome:
    """Run PREPARED one cycle at a time until something stops it

    Checked before every cycle, in order: halt, cancellation, cycle limit,
    breakpoint. A run resumed from the breakpoint it was paused at does not
    stop there again on its very first cycle.

    Each cycle runs on a copy of the committed state; if the engine fails, the
    committed state is what the outcome reports.
    """
    state = prepared.state
    observer = prepared.observer
    cycles = 0
    hit = None
    error = None
    interval = 1.0 / prepared.rate if prepared.rate else None

    LOG.info(
        "Running %s (rate=%s, limit=%s, breakpoints=%s)",
        prepared.name or prepared.program_hash[:12],
        prepared.rate,
        prepared.max_cycles,
        sorted(prepared.breakpoints),
    )

    if stream is not None and prepared.emit_initial:
        stream.put(state, token)

    while True:
        if state.halted:
            termination = Termination.HALTED
            break
        if token.cancelled:
            termination = Termination.CANCELLED
            break
        if prepared.max_cycles is not None and cycles >= prepared.max_cycles:
            termination = Termination.LIMIT_REACHED
            break
        skip = cycles == 0 and state.counter == prepared.resume_from
        if state.counter in prepared.breakpoints and not skip:
            hit = state.counter
            observer(BreakpointHit(address=hit))
            termination = Termination.BREAKPOINT
            break
        if interval and cycles > 0 and token.wait(interval):
            termination = Termination.CANCELLED
            break

        working = state.copy()
        try:
            engine.step(prepared.program, working, observer)
        except EngineError as exc:
            LOG.info("Engine error after %d cycles: %s", cycles, exc)
            error = exc
            observer(EngineFailure(message=str(exc)))
            termination = Termination.ERRORED
            break

        state = working
        cycles += 1
        if stream is not None:
            stream.put(state, token)

    LOG.info("DONE (%s) after %d cycles: %s", termination.value, cycles, state)
    return RunOutcome(
        state=state,
        events=prepared.probe.events(),
        termination=termination,
        breakpoint=hit,
        error=error,
        cycles=cycles,
        program=prepared.program,
    )
