"""Execution events

One dataclass per kind of event. Engines emit these during a cycle; the
orchestrator emits BreakpointHit and EngineFailure itself.
"""

from dataclasses import asdict, dataclass
from typing import Callable, ClassVar, Dict, Type

from ..exceptions import MalformedData
from .serialisable import Serialisable


@dataclass(frozen=True)
class Event(Serialisable):
    kind: ClassVar[str] = "event"

    def serialise(self) -> dict:
        return dict(kind=self.kind, data=asdict(self))


@dataclass(frozen=True)
class CycleStarted(Event):
    kind: ClassVar[str] = "cycleStarted"
    cycle: int
    counter: int


@dataclass(frozen=True)
class InstructionDecoded(Event):
    kind: ClassVar[str] = "instructionDecoded"
    counter: int
    word: int
    mnemonic: str


@dataclass(frozen=True)
class InstructionExecuted(Event):
    kind: ClassVar[str] = "instructionExecuted"
    cycle: int
    counter: int
    mnemonic: str
    accumulator: int


@dataclass(frozen=True)
class CycleCompleted(Event):
    kind: ClassVar[str] = "cycleCompleted"
    cycle: int
    counter: int
    accumulator: int


@dataclass(frozen=True)
class InputRequested(Event):
    kind: ClassVar[str] = "inputRequested"


@dataclass(frozen=True)
class OutputProduced(Event):
    kind: ClassVar[str] = "outputProduced"
    value: int


@dataclass(frozen=True)
class BreakpointHit(Event):
    kind: ClassVar[str] = "breakpointHit"
    address: int


@dataclass(frozen=True)
class Halted(Event):
    kind: ClassVar[str] = "halted"
    cycle: int


@dataclass(frozen=True)
class EngineFailure(Event):
    kind: ClassVar[str] = "error"
    message: str


EVENT_TYPES: Dict[str, Type[Event]] = {
    cls.kind: cls
    for cls in (
        CycleStarted,
        InstructionDecoded,
        InstructionExecuted,
        CycleCompleted,
        InputRequested,
        OutputProduced,
        BreakpointHit,
        Halted,
        EngineFailure,
    )
}

# Anything that takes one event
Observer = Callable[[Event], None]


def deserialise_event(obj: dict) -> Event:
    """Inverse of Event.serialise"""
    try:
        cls = EVENT_TYPES[obj["kind"]]
        return cls(**obj.get("data", {}))
    except (KeyError, TypeError) as exc:
        raise MalformedData(f"Not an execution event: {obj}", "") from exc
