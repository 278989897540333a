"""Test events, the probe and the JSON-lines event log"""
import threading

import pytest

from lmc_cli.exceptions import MalformedData
from lmc_cli.machine.event_log import EventJSONLogger, read_log
from lmc_cli.machine.events import (
    EVENT_TYPES,
    BreakpointHit,
    CycleStarted,
    InputRequested,
    OutputProduced,
    deserialise_event,
)
from lmc_cli.machine.probe import Probe, compose
from lmc_cli.machine.types import MachineState


def test_event_serialisation():
    event = CycleStarted(cycle=3, counter=7)
    assert event.serialise() == {"kind": "cycleStarted", "data": {"cycle": 3, "counter": 7}}
    assert deserialise_event(event.serialise()) == event
    assert InputRequested().serialise() == {"kind": "inputRequested", "data": {}}


def test_every_kind_is_registered():
    assert set(EVENT_TYPES) == {
        "cycleStarted",
        "instructionDecoded",
        "instructionExecuted",
        "cycleCompleted",
        "inputRequested",
        "outputProduced",
        "breakpointHit",
        "halted",
        "error",
    }


@pytest.mark.parametrize(
    "obj", [{}, {"kind": "nope"}, {"kind": "halted", "data": {"wrong": 1}}]
)
def test_bad_event(obj):
    with pytest.raises(MalformedData):
        deserialise_event(obj)


def test_probe_records_in_order():
    probe = Probe()
    probe(OutputProduced(value=1))
    probe(BreakpointHit(address=4))
    probe(OutputProduced(value=2))
    assert len(probe) == 3
    assert probe.outputs() == [1, 2]
    assert [e.kind for e in probe.events()] == [
        "outputProduced",
        "breakpointHit",
        "outputProduced",
    ]
    probe.clear()
    assert probe.events() == []


def test_compose_isolates_failing_observer():
    seen = []

    def broken(event):
        raise RuntimeError("observer bug")

    observer = compose(seen.append, broken, None, seen.append)
    observer(OutputProduced(value=5))
    assert seen == [OutputProduced(value=5), OutputProduced(value=5)]


def test_logger_writes_lines(tmp_path):
    path = tmp_path / "logs" / "run.jsonl"
    with EventJSONLogger(path) as logger:
        logger(OutputProduced(value=12))
        logger.log_state(MachineState(counter=3, accumulator=12))
    lines = read_log(path)
    assert [line["category"] for line in lines] == ["event", "state"]
    assert lines[0]["kind"] == "outputProduced"
    assert lines[0]["data"] == {"value": 12}
    assert lines[1]["snapshot"]["counter"] == 3
    assert all("timestamp" in line for line in lines)


def test_logger_truncates(tmp_path):
    path = tmp_path / "run.jsonl"
    path.write_text("old\n")
    EventJSONLogger(path).close()
    assert read_log(path) == []


def test_logger_ignores_writes_after_close(tmp_path):
    path = tmp_path / "run.jsonl"
    logger = EventJSONLogger(path)
    logger.close()
    logger(OutputProduced(value=1))
    assert read_log(path) == []


def test_logger_concurrent_writes(tmp_path):
    path = tmp_path / "run.jsonl"
    logger = EventJSONLogger(path)

    def write(value):
        for _ in range(50):
            logger(OutputProduced(value=value))

    threads = [threading.Thread(target=write, args=(i,)) for i in range(4)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()
    logger.close()

    lines = read_log(path)
    assert len(lines) == 200
    assert sorted({line["data"]["value"] for line in lines}) == [0, 1, 2, 3]
