"""The simulator engine contract, and loading an engine module

The fetch-decode-execute engine is not part of this package. Any importable
module can serve as the engine if it provides:

    assemble(source: str) -> Program
        Raise AssemblyError on bad source.

    disassemble(program: Program) -> str

    step(program: Program, state: MachineState, observer) -> None
        Execute exactly one cycle, mutating STATE (including its cycle count
        and trace) and emitting the cycle's events (CycleStarted, ...,
        Halted) to OBSERVER. Raise an EngineError subclass on failure,
        without emitting an error event.

Schedules, cycle limits, breakpoints and cancellation are handled by the
orchestrator (see lmc_cli.run), which only ever asks for one cycle at a time.
"""

import importlib
import logging
import sys
import traceback

from ..exceptions import LmcError, UserResolvableError
from .events import Observer
from .types import MachineState, Program

LOG = logging.getLogger(__name__)

REQUIRED = ("assemble", "disassemble", "step")


class EngineImportError(UserResolvableError):
    """Error importing the simulator engine"""


class AssemblyError(UserResolvableError):
    """Assembly failed"""

    def __init__(self, msg, line=None):
        self.line = line
        where = f"Line {line}: " if line is not None else ""
        super().__init__(where + msg, "")


class EngineError(LmcError):
    """An error raised by the engine while executing a cycle"""


class MailboxOutOfBounds(EngineError):
    def __init__(self, address):
        self.address = address
        super().__init__(f"Mailbox {address} is out of bounds.")


class InvalidInstruction(EngineError):
    def __init__(self, word):
        self.word = word
        super().__init__(f"Invalid instruction word: {word}.")


class NumericError(EngineError):
    def __init__(self, detail):
        self.detail = detail
        super().__init__(f"Numeric error: {detail}.")


class AwaitingInput(EngineError):
    def __init__(self):
        super().__init__("Program is awaiting additional inbox input.")


class Engine:
    """Thin wrapper around an engine module"""

    def __init__(self, module):
        missing = [name for name in REQUIRED if not callable(getattr(module, name, None))]
        if missing:
            raise EngineImportError(
                f"Engine module `{module.__name__}' does not provide {', '.join(missing)}",
                f"An engine must define: {', '.join(REQUIRED)}.",
            )
        self.module = module
        self.name = module.__name__

    def assemble(self, source: str) -> Program:
        return self.module.assemble(source)

    def disassemble(self, program: Program) -> str:
        return self.module.disassemble(program)

    def step(self, program: Program, state: MachineState, observer: Observer):
        self.module.step(program, state, observer)

    def __repr__(self):
        return f"<Engine {self.name}>"


def load_engine(modname: str) -> Engine:
    """Import the engine module MODNAME

    PYTHONPATH must be set up already.
    """
    if not modname:
        raise EngineImportError(
            "No simulator engine configured.",
            "Set `module' in the [engine] section of lmc.toml, "
            "export LMC_ENGINE, or pass --engine=MODULE.",
        )
    LOG.info("Loading engine %s", modname)
    try:
        module = importlib.import_module(modname)
    except ModuleNotFoundError as exc:
        raise EngineImportError(f"Cannot find engine module `{modname}'", "") from exc
    except Exception as exc:
        tb = "".join(traceback.format_exception(*sys.exc_info()))
        raise EngineImportError(f"Could not load engine module `{modname}'.", tb) from exc
    return Engine(module)
