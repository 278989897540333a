"""Programs and machine states

Requirement: everything here must be trivially JSON serialisable, because
programs and states are persisted, exported and logged.

The engine owns the meaning of the words. This layer only stores them, hashes
them and hands them back.
"""

import copy
from dataclasses import dataclass, field
from typing import ClassVar, Dict, List, Optional, Tuple

from ..exceptions import InvalidAddress, MalformedData
from .serialisable import Serialisable, now_str

MEMORY_SIZE = 100
PROGRAM_SCHEMA_VERSION = 1


def check_address(address) -> int:
    """Return ADDRESS as an int, or raise InvalidAddress"""
    if isinstance(address, bool) or not isinstance(address, int):
        raise InvalidAddress(address)
    if not 0 <= address < MEMORY_SIZE:
        raise InvalidAddress(address)
    return address


def pad_image(words) -> Tuple[int, ...]:
    """Zero-pad a memory image to MEMORY_SIZE words"""
    words = [int(w) for w in words]
    if len(words) > MEMORY_SIZE:
        raise MalformedData(
            f"Memory image has {len(words)} words",
            f"At most {MEMORY_SIZE} mailboxes are available.",
        )
    return tuple(words + [0] * (MEMORY_SIZE - len(words)))


@dataclass(frozen=True)
class ProgramMetadata(Serialisable):
    schema_version: int = PROGRAM_SCHEMA_VERSION
    created_at: str = None
    generator: Optional[str] = None
    name: Optional[str] = None

    def __post_init__(self):
        if self.created_at is None:
            object.__setattr__(self, "created_at", now_str())


@dataclass(frozen=True)
class Program(Serialisable):
    """An assembled program: a memory image plus symbols"""

    words: Tuple[int, ...]
    labels: Dict[str, int] = field(default_factory=dict)
    metadata: ProgramMetadata = field(default_factory=ProgramMetadata)
    version: int = PROGRAM_SCHEMA_VERSION

    def __post_init__(self):
        object.__setattr__(self, "words", pad_image(self.words))
        for label, address in self.labels.items():
            check_address(address)

    def memory_image(self) -> List[int]:
        return list(self.words)

    def symbol_table(self) -> Dict[str, int]:
        return dict(self.labels)

    def label_at(self, address: int) -> Optional[str]:
        return next((k for k, v in self.labels.items() if v == address), None)

    def renamed(self, name: str) -> "Program":
        """A copy of this program carrying a different display name"""
        meta = ProgramMetadata(
            schema_version=self.metadata.schema_version,
            created_at=self.metadata.created_at,
            generator=self.metadata.generator,
            name=name,
        )
        return Program(self.words, dict(self.labels), meta, self.version)

    def serialise(self) -> dict:
        return dict(
            version=self.version,
            metadata=self.metadata.serialise(),
            words=list(self.words),
            labels=dict(self.labels),
        )

    @classmethod
    def deserialise(cls, data: dict):
        try:
            return cls(
                words=data["words"],
                labels={str(k): int(v) for k, v in data.get("labels", {}).items()},
                metadata=ProgramMetadata.deserialise(data.get("metadata", {})),
                version=int(data.get("version", PROGRAM_SCHEMA_VERSION)),
            )
        except (KeyError, TypeError, ValueError, AttributeError) as exc:
            raise MalformedData(f"Not a program snapshot ({exc!r})", "") from exc
        except InvalidAddress as exc:
            raise MalformedData(f"Label address {exc.address} out of range", "")


@dataclass
class TraceEntry(Serialisable):
    cycle: int
    counter: int
    word: int
    accumulator: int


@dataclass
class MachineState(Serialisable):
    """Registers, queues and memory of one machine

    Only the engine mutates this during a run. The orchestration layer creates
    initial states and reads the results.
    """

    TRACE_LIMIT: ClassVar[int] = 100

    counter: int = 0
    accumulator: int = 0
    halted: bool = False
    cycles: int = 0
    inbox: List[int] = field(default_factory=list)
    outbox: List[int] = field(default_factory=list)
    trace: List[TraceEntry] = field(default_factory=list)
    memory: List[int] = field(default_factory=list)

    @classmethod
    def fresh(cls, program: Program, inbox=()) -> "MachineState":
        state = cls(inbox=list(inbox))
        state.ensure_memory_initialized(program.memory_image())
        return state

    def enqueue_inbox(self, values):
        self.inbox.extend(int(v) for v in values)

    def next_input(self) -> Optional[int]:
        """Pop the front of the inbox (None if empty)"""
        return self.inbox.pop(0) if self.inbox else None

    def ensure_memory_initialized(self, image):
        if not self.memory:
            self.memory = list(pad_image(image))

    def record_trace(self, entry: TraceEntry):
        self.trace.append(entry)
        if len(self.trace) > self.TRACE_LIMIT:
            del self.trace[: len(self.trace) - self.TRACE_LIMIT]

    def copy(self) -> "MachineState":
        return copy.deepcopy(self)

    def __str__(self):
        return f"<MachineState counter={self.counter} acc={self.accumulator} cycles={self.cycles}>"

    @classmethod
    def deserialise(cls, data: dict):
        if not isinstance(data, dict):
            raise MalformedData(f"Not a machine state: {data!r}", "")
        try:
            memory = list(data.get("memory", []))
            return cls(
                counter=check_address(int(data["counter"])),
                accumulator=int(data["accumulator"]),
                halted=bool(data.get("halted", False)),
                cycles=int(data.get("cycles", 0)),
                inbox=[int(v) for v in data.get("inbox", [])],
                outbox=[int(v) for v in data.get("outbox", [])],
                trace=[TraceEntry(**t) for t in data.get("trace", [])],
                memory=list(pad_image(memory)) if memory else [],
            )
        except (KeyError, TypeError, ValueError, AttributeError) as exc:
            raise MalformedData(f"Not a machine state ({exc!r})", "") from exc
        except InvalidAddress as exc:
            raise MalformedData(f"Counter {exc.address} out of range", "")
