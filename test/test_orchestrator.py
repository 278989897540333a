"""Test running programs: limits, breakpoints, schedules, errors and streams"""
import math
import time

import pytest
from lmc_programs import COUNTDOWN, ECHO_OUT_ADDRESS, FOREVER, INVALID, OVERFLOW

from lmc_cli.config_classes import RunConfig
from lmc_cli.exceptions import InvalidAddress, InvalidSpeed, NotFound, ValidationError
from lmc_cli.executors.thread import CancelToken
from lmc_cli.hashing import program_address
from lmc_cli.machine.engine import AwaitingInput, InvalidInstruction, NumericError
from lmc_cli.run import Orchestrator, RunRequest, Termination


@pytest.fixture
def orch(services):
    return services.orchestrator


@pytest.fixture
def countdown(services):
    return services.assemble(COUNTDOWN, "countdown")


@pytest.fixture
def forever(services):
    return services.assemble(FOREVER, "forever")


def test_echo(orch, echo):
    outcome = orch.run(RunRequest(program="echo", inbox=[42]))
    assert outcome.halted
    assert outcome.termination == Termination.HALTED
    assert outcome.state.outbox == [42]
    assert outcome.breakpoint is None
    assert outcome.cycles == 3
    assert outcome.program == echo


def test_run_program_object(orch, countdown):
    outcome = orch.run(RunRequest(program=countdown, inbox=[3]))
    assert outcome.halted
    assert outcome.state.outbox == [3, 2, 1, 0]
    assert outcome.state.cycles == 14


def test_observers_see_events(orch, echo):
    seen = []
    outcome = orch.run(RunRequest(program=echo, inbox=[1]), observers=[seen.append])
    assert seen == outcome.events
    assert seen[0].kind == "cycleStarted"
    assert seen[-1].kind == "halted"
    assert [e.value for e in seen if e.kind == "outputProduced"] == [1]


def test_persisted_breakpoint(orch, services, echo):
    services.add_breakpoints("echo", [ECHO_OUT_ADDRESS])
    outcome = orch.run(RunRequest(program="echo", inbox=[42]))
    assert outcome.termination == Termination.BREAKPOINT
    assert outcome.breakpoint == ECHO_OUT_ADDRESS
    assert not outcome.halted
    assert outcome.state.outbox == []
    assert outcome.events[-1].kind == "breakpointHit"


def test_persisted_breakpoint_follows_content(orch, services, echo):
    # stored under another name, same words
    services.artifacts.store_program("copy", echo.renamed("copy"))
    services.add_breakpoints("echo", [ECHO_OUT_ADDRESS])
    outcome = orch.run(RunRequest(program="copy", inbox=[1]))
    assert outcome.breakpoint == ECHO_OUT_ADDRESS


def test_auto_load_disabled(orch, services, echo):
    services.add_breakpoints("echo", [ECHO_OUT_ADDRESS])
    request = RunRequest(program="echo", inbox=[42], auto_load_breakpoints=False)
    outcome = orch.run(request)
    assert outcome.halted
    assert outcome.state.outbox == [42]


def test_auto_load_config_default(services, echo):
    services.add_breakpoints("echo", [ECHO_OUT_ADDRESS])
    orch = Orchestrator(
        services.engine,
        services.artifacts,
        services.breakpoints,
        RunConfig(auto_load_breakpoints=False),
    )
    assert orch.run(RunRequest(program="echo", inbox=[1])).halted
    request = RunRequest(program="echo", inbox=[1], auto_load_breakpoints=True)
    assert orch.run(request).breakpoint == ECHO_OUT_ADDRESS


def test_explicit_breakpoints(orch, echo):
    outcome = orch.run(RunRequest(program=echo, inbox=[1], breakpoints=[2]))
    assert outcome.breakpoint == 2
    assert outcome.state.outbox == [1]


def test_breakpoint_at_start(orch, echo):
    outcome = orch.run(RunRequest(program=echo, inbox=[1], breakpoints=[0]))
    assert outcome.breakpoint == 0
    assert outcome.cycles == 0


def test_resume_past_breakpoint(orch, echo):
    first = orch.run(RunRequest(program=echo, inbox=[42], breakpoints=[1]))
    assert first.breakpoint == 1
    second = orch.run(
        RunRequest(
            program=echo,
            breakpoints=[1],
            initial_state=first.state,
            resume_from_breakpoint=first.breakpoint,
        )
    )
    assert second.halted
    assert second.state.outbox == [42]


def test_resume_is_equivalent(orch, countdown):
    whole = orch.run(RunRequest(program=countdown, inbox=[3]))
    part = orch.run(RunRequest(program=countdown, inbox=[3], max_cycles=5))
    assert part.termination == Termination.LIMIT_REACHED
    rest = orch.run(RunRequest(program=countdown, initial_state=part.state))
    assert rest.halted
    assert rest.state.outbox == whole.state.outbox
    assert rest.state.cycles == whole.state.cycles
    assert rest.state.accumulator == whole.state.accumulator


def test_initial_state_is_not_mutated(orch, countdown):
    part = orch.run(RunRequest(program=countdown, inbox=[3], max_cycles=2))
    before = part.state.copy()
    orch.run(RunRequest(program=countdown, initial_state=part.state))
    assert part.state == before


def test_resume_from_stored_state(orch, services, echo):
    paused = orch.run(RunRequest(program=echo, inbox=[8], breakpoints=[1]))
    services.artifacts.store_state("paused", paused.state, echo, paused.breakpoint)
    outcome = orch.run(RunRequest(program="paused", breakpoints=[1]))
    assert outcome.halted
    assert outcome.state.outbox == [8]


def test_limit_then_resume_stops_at_breakpoint(orch, services, echo):
    services.add_breakpoints("echo", [ECHO_OUT_ADDRESS])
    whole = orch.run(RunRequest(program="echo", inbox=[42]))
    assert whole.breakpoint == ECHO_OUT_ADDRESS
    part = orch.run(RunRequest(program="echo", inbox=[42], max_cycles=1))
    assert part.termination == Termination.LIMIT_REACHED
    assert part.state.counter == ECHO_OUT_ADDRESS
    rest = orch.run(RunRequest(program="echo", initial_state=part.state))
    assert rest.termination == Termination.BREAKPOINT
    assert rest.breakpoint == whole.breakpoint
    assert rest.cycles == 0


def test_stored_limit_state_stops_at_breakpoint(orch, services, echo):
    services.add_breakpoints("echo", [ECHO_OUT_ADDRESS])
    part = orch.run(RunRequest(program="echo", inbox=[3], max_cycles=1))
    services.artifacts.store_state("part", part.state, echo, part.breakpoint)
    outcome = orch.run(RunRequest(program="part"))
    assert outcome.breakpoint == ECHO_OUT_ADDRESS
    assert outcome.state.outbox == []


def test_resume_skips_only_the_paused_breakpoint(orch, countdown):
    # breakpoints on both the OUT and the SUB
    first = orch.run(RunRequest(program=countdown, inbox=[1], breakpoints=[1, 2]))
    assert first.breakpoint == 1
    second = orch.run(
        RunRequest(
            program=countdown,
            breakpoints=[1, 2],
            initial_state=first.state,
            resume_from_breakpoint=first.breakpoint,
        )
    )
    assert second.breakpoint == 2
    assert second.cycles == 1
    assert second.state.outbox == [1]


def test_already_halted(orch, echo):
    done = orch.run(RunRequest(program=echo, inbox=[1]))
    again = orch.run(RunRequest(program=echo, initial_state=done.state))
    assert again.halted
    assert again.cycles == 0


@pytest.mark.parametrize("rate", [0, -1, math.nan, math.inf, "fast", True])
def test_invalid_speed(orch, echo, rate):
    seen = []
    with pytest.raises(InvalidSpeed):
        orch.run(RunRequest(program=echo, inbox=[1], rate=rate), observers=[seen.append])
    assert seen == []


def test_invalid_breakpoint(orch, echo):
    with pytest.raises(InvalidAddress):
        orch.run(RunRequest(program=echo, breakpoints=[100]))


@pytest.mark.parametrize("limit", [-1, 1.5, "10"])
def test_invalid_limit(orch, echo, limit):
    with pytest.raises(ValidationError):
        orch.run(RunRequest(program=echo, max_cycles=limit))


def test_missing_program(orch):
    with pytest.raises(NotFound):
        orch.run(RunRequest(program="missing"))


def test_cycle_limit(orch, forever):
    outcome = orch.run(RunRequest(program=forever, max_cycles=10))
    assert outcome.termination == Termination.LIMIT_REACHED
    assert outcome.cycles == 10
    assert outcome.state.cycles == 10
    assert not outcome.halted


def test_zero_limit(orch, forever):
    outcome = orch.run(RunRequest(program=forever, max_cycles=0))
    assert outcome.termination == Termination.LIMIT_REACHED
    assert outcome.cycles == 0


def test_hertz_schedule(orch, echo):
    start = time.monotonic()
    outcome = orch.run(RunRequest(program=echo, inbox=[4], rate=50))
    elapsed = time.monotonic() - start
    assert outcome.halted
    assert outcome.state.outbox == [4]
    # two waits between three cycles
    assert elapsed >= 0.03


def test_cancel_before_start(orch, forever):
    token = CancelToken()
    token.cancel()
    outcome = orch.run(RunRequest(program=forever), token=token)
    assert outcome.cancelled
    assert outcome.cycles == 0


def test_cancel_hertz_run_promptly(orch, forever):
    handle = orch.start(RunRequest(program=forever, rate=2))
    time.sleep(0.1)
    start = time.monotonic()
    handle.cancel()
    outcome = handle.wait(timeout=2)
    assert time.monotonic() - start < 0.4
    assert outcome.cancelled
    assert outcome.termination == Termination.CANCELLED


def test_cancel_fast_run(orch, forever):
    handle = orch.start(RunRequest(program=forever))
    time.sleep(0.05)
    handle.cancel()
    outcome = handle.wait(timeout=5)
    assert outcome.cancelled
    assert outcome.cycles > 0
    assert handle.done()


def test_wait_timeout(orch, forever):
    handle = orch.start(RunRequest(program=forever, rate=1))
    with pytest.raises(TimeoutError):
        handle.wait(timeout=0.05)
    handle.cancel()
    assert handle.wait(timeout=2).cancelled


def test_awaiting_input(orch, echo):
    outcome = orch.run(RunRequest(program=echo))
    assert outcome.errored
    assert isinstance(outcome.error, AwaitingInput)
    assert outcome.cycles == 0
    assert outcome.state.counter == 0
    assert outcome.state.cycles == 0
    assert outcome.events[-1].kind == "error"
    assert outcome.events[-1].message == str(outcome.error)


def test_invalid_instruction(services, orch):
    program = services.assemble(INVALID)
    outcome = orch.run(RunRequest(program=program))
    assert outcome.errored
    assert isinstance(outcome.error, InvalidInstruction)


def test_numeric_error_keeps_committed_state(services, orch):
    program = services.assemble(OVERFLOW)
    outcome = orch.run(RunRequest(program=program))
    assert isinstance(outcome.error, NumericError)
    assert outcome.cycles == 1
    assert outcome.state.accumulator == 999
    assert outcome.state.counter == 1


def test_step(orch, echo):
    outcome = orch.step(RunRequest(program=echo, inbox=[5]), count=2)
    assert outcome.termination == Termination.LIMIT_REACHED
    assert outcome.cycles == 2
    assert outcome.state.outbox == [5]


def test_step_stops_at_halt(orch, echo):
    outcome = orch.step(RunRequest(program=echo, inbox=[5]), count=50)
    assert outcome.halted
    assert outcome.cycles == 3


@pytest.mark.parametrize("count", [0, -3, 1.0])
def test_step_count_validation(orch, echo, count):
    with pytest.raises(ValidationError):
        orch.step(RunRequest(program=echo, inbox=[5]), count=count)


def test_break_until(orch, echo):
    outcome = orch.break_until(RunRequest(program=echo, inbox=[5]), [2])
    assert outcome.breakpoint == 2
    assert outcome.state.outbox == [5]


def test_break_until_halts_first(orch, echo):
    outcome = orch.break_until(RunRequest(program=echo, inbox=[5]), [50])
    assert outcome.halted
    assert outcome.breakpoint is None


def test_break_until_needs_addresses(orch, echo):
    with pytest.raises(ValidationError):
        orch.break_until(RunRequest(program=echo, inbox=[5]), [])


def test_live_states(orch, countdown):
    handle = orch.start(RunRequest(program=countdown, inbox=[2]), live=True)
    states = list(handle.states())
    outcome = handle.wait(timeout=5)
    assert outcome.halted
    assert len(states) == outcome.cycles + 1
    assert states[0].cycles == 0
    assert [s.cycles for s in states] == list(range(outcome.cycles + 1))
    assert states[-1].halted
    assert states[-1].outbox == [2, 1, 0]


def test_live_without_initial_state(orch, echo):
    request = RunRequest(program=echo, inbox=[1], emit_initial=False)
    handle = orch.start(request, live=True)
    states = list(handle.states())
    assert [s.cycles for s in states] == [1, 2, 3]
    handle.wait(timeout=5)


def test_states_need_live(orch, echo):
    handle = orch.start(RunRequest(program=echo, inbox=[1]))
    assert handle.wait(timeout=5).halted
    with pytest.raises(ValueError):
        handle.states()


def test_abandoned_stream_does_not_block(services, forever):
    orch = Orchestrator(
        services.engine,
        services.artifacts,
        services.breakpoints,
        RunConfig(live_queue_size=1, stall_timeout=30),
    )
    handle = orch.start(RunRequest(program=forever, max_cycles=200), live=True)
    handle.stream.abandon()
    outcome = handle.wait(timeout=5)
    assert outcome.termination == Termination.LIMIT_REACHED
    assert outcome.cycles == 200


def test_stalled_consumer_is_dropped(services, forever):
    orch = Orchestrator(
        services.engine,
        services.artifacts,
        services.breakpoints,
        RunConfig(live_queue_size=1, stall_timeout=0.1),
    )
    handle = orch.start(RunRequest(program=forever, max_cycles=100), live=True)
    outcome = handle.wait(timeout=5)
    assert outcome.cycles == 100
    assert handle.stream.abandoned


def test_stopping_iteration_abandons(orch, forever):
    handle = orch.start(RunRequest(program=forever, max_cycles=1000), live=True)
    states = handle.states()
    for state in states:
        if state.cycles >= 3:
            break
    states.close()
    outcome = handle.wait(timeout=5)
    assert outcome.cycles == 1000


def test_prepare(orch, echo):
    prepared = orch.prepare(RunRequest(program=echo, inbox=[1]))
    assert prepared.program_hash == program_address(echo)
    assert prepared.state.inbox == [1]
    assert prepared.resume_from is None
