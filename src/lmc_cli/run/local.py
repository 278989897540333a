"""Run programs locally, in this thread or on a new one"""

import logging
from dataclasses import replace
from typing import Sequence

from ..config_classes import RunConfig
from ..controllers.artifacts import ArtifactStore
from ..controllers.breakpoints import BreakpointStore
from ..exceptions import NotFound, ValidationError
from ..executors.thread import CancelToken, RunHandle
from ..hashing import program_address
from ..machine.engine import Engine
from ..machine.probe import Probe, compose
from ..machine.types import MachineState, Program, check_address
from .common import (
    PreparedRun,
    RunOutcome,
    RunRequest,
    check_max_cycles,
    check_rate,
    drive,
)
from .stream import StateStream

LOG = logging.getLogger(__name__)


class Orchestrator:
    def __init__(
        self,
        engine: Engine,
        artifacts: ArtifactStore,
        breakpoints: BreakpointStore,
        run_config: RunConfig = None,
    ):
        self.engine = engine
        self.artifacts = artifacts
        self.breakpoints = breakpoints
        self.run_config = run_config or RunConfig()

    def prepare(self, request: RunRequest, observers: Sequence = ()) -> PreparedRun:
        """Validate REQUEST and build everything the run needs

        Nothing executes here, so every validation error surfaces before the
        first cycle.
        """
        rate = check_rate(request.rate)
        max_cycles = check_max_cycles(request.max_cycles)
        explicit = {check_address(a) for a in request.breakpoints}

        stored_state = None
        stored_breakpoint = None
        if isinstance(request.program, Program):
            program = request.program
            name = program.metadata.name
        else:
            location = self.artifacts.resolve(request.program)
            artifact = self.artifacts.load(location)
            if artifact.program is None:
                raise NotFound(
                    f"program for state `{request.program}'",
                    "Store the state together with its program.",
                )
            program = artifact.program
            stored_state = artifact.state
            stored_breakpoint = artifact.breakpoint
            name = artifact.name

        # a stored state remembers the breakpoint it was paused at
        if request.initial_state is not None:
            base, resume_from = request.initial_state, None
        else:
            base, resume_from = stored_state, stored_breakpoint
        if request.resume_from_breakpoint is not None:
            resume_from = check_address(request.resume_from_breakpoint)

        if base is not None:
            state = base.copy()
            state.enqueue_inbox(request.inbox)
            state.ensure_memory_initialized(program.memory_image())
        else:
            state = MachineState.fresh(program, request.inbox)

        program_hash = program_address(program)
        auto_load = request.auto_load_breakpoints
        if auto_load is None:
            auto_load = self.run_config.auto_load_breakpoints
        persisted = self.breakpoints.get(program_hash) if auto_load else []
        if persisted:
            LOG.info("Loaded breakpoints %s for %s", persisted, program_hash[:12])

        probe = Probe()
        return PreparedRun(
            program=program,
            state=state,
            breakpoints=frozenset(explicit | set(persisted)),
            probe=probe,
            observer=compose(probe, *observers),
            program_hash=program_hash,
            name=name,
            rate=rate,
            max_cycles=max_cycles,
            resume_from=resume_from if base is not None else None,
            emit_initial=request.emit_initial,
        )

    def run(
        self, request: RunRequest, observers: Sequence = (), token: CancelToken = None
    ) -> RunOutcome:
        """Run in this thread"""
        prepared = self.prepare(request, observers)
        return drive(self.engine, prepared, token or CancelToken())

    def start(
        self, request: RunRequest, observers: Sequence = (), live: bool = False
    ) -> RunHandle:
        """Run on a new thread

        With LIVE, the handle's states() yields a snapshot at every cycle
        boundary until the run ends.
        """
        prepared = self.prepare(request, observers)
        stream = None
        if live:
            stream = StateStream(
                maxsize=self.run_config.live_queue_size,
                stall_timeout=self.run_config.stall_timeout,
            )
        handle = RunHandle(
            lambda token: drive(self.engine, prepared, token, stream),
            CancelToken(),
            stream,
        )
        return handle.start()

    def step(
        self,
        request: RunRequest,
        count: int = 1,
        observers: Sequence = (),
        token: CancelToken = None,
    ) -> RunOutcome:
        """Run at most COUNT cycles"""
        if isinstance(count, bool) or not isinstance(count, int) or count < 1:
            raise ValidationError(f"Invalid step count: {count}", "Step at least once.")
        return self.run(replace(request, max_cycles=count), observers, token)

    def break_until(
        self,
        request: RunRequest,
        addresses: Sequence[int],
        observers: Sequence = (),
        token: CancelToken = None,
    ) -> RunOutcome:
        """Run until one of ADDRESSES (or anything else) stops the run"""
        if not addresses:
            raise ValidationError(
                "No breakpoint address given", "Give at least one mailbox address."
            )
        request = replace(
            request, breakpoints=tuple(request.breakpoints) + tuple(addresses)
        )
        return self.run(request, observers, token)
