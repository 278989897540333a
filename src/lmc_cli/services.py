"""Everything a command needs, built from one Config"""

import logging
from pathlib import Path
from typing import List

from .config import Config
from .controllers.artifacts import ArtifactStore
from .controllers.breakpoints import BreakpointEntry, BreakpointStore
from .hashing import program_address
from .machine.engine import Engine, load_engine
from .machine.serialisable import now_str
from .machine.types import Program
from .run.local import Orchestrator

LOG = logging.getLogger(__name__)


class Services:
    """Stores, engine and orchestrator for one workspace

    The engine is only imported when something needs it, so that commands
    which never execute anything work without one.
    """

    def __init__(self, config: Config, engine: Engine = None, clock=now_str):
        self.config = config
        self.breakpoints = BreakpointStore(config.workspace, clock=clock)
        self.artifacts = ArtifactStore(config.workspace, self.breakpoints, clock=clock)
        self._engine = engine
        self._orchestrator = None

    @property
    def engine(self) -> Engine:
        if self._engine is None:
            self._engine = load_engine(self.config.engine.module)
        return self._engine

    @property
    def orchestrator(self) -> Orchestrator:
        if self._orchestrator is None:
            self._orchestrator = Orchestrator(
                self.engine, self.artifacts, self.breakpoints, self.config.run
            )
        return self._orchestrator

    ## Engine

    def assemble(self, source: str, name: str = None) -> Program:
        """Assemble SOURCE, naming the program NAME"""
        program = self.engine.assemble(source)
        if name is not None:
            program = program.renamed(name)
        LOG.info("Assembled %s (%s)", name or "<unnamed>", program_address(program)[:12])
        return program

    def disassemble(self, reference: str) -> str:
        program = self.load_program(reference)
        return self.engine.disassemble(program)

    ## Programs by reference

    def load_program(self, reference: str) -> Program:
        return self.artifacts.load_program(self.artifacts.resolve(reference))

    def program_hash(self, reference: str) -> str:
        return program_address(self.load_program(reference))

    ## Breakpoints by reference

    def _display_name(self, reference: str) -> str:
        return Path(self.artifacts.resolve(reference)).stem

    def add_breakpoints(self, reference: str, addresses: List[int]):
        program = self.load_program(reference)
        self.breakpoints.add(
            addresses, program_address(program), self._display_name(reference)
        )

    def remove_breakpoints(self, reference: str, addresses: List[int]):
        self.breakpoints.remove(addresses, self.program_hash(reference))

    def clear_breakpoints(self, reference: str):
        self.breakpoints.clear(self.program_hash(reference))

    def list_breakpoints(self, reference: str) -> List[int]:
        return self.breakpoints.get(self.program_hash(reference))

    def list_all_breakpoints(self) -> List[BreakpointEntry]:
        return self.breakpoints.list_all()
