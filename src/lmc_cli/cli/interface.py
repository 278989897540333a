"""CLI UI related functions"""

import logging
import sys
from traceback import format_exception, format_tb

import colorful as cf
from prompt_toolkit.shortcuts import confirm
from texttable import Texttable

from ..machine import events as ev
from ..machine.types import MEMORY_SIZE, MachineState, Program

TICK = "✔"
CROSS = "✘"

UI_COLORS = {
    # --
    "teal": "#027777",
    "grey": "#777777",
    "magenta": "#9510ED",
    "red": "#991010",
    "amber": "#B07A00",
}

cf.update_palette(UI_COLORS)

# Exit codes
EXIT_OK = 0
EXIT_ASSEMBLY = 1
EXIT_RUNTIME = 2
EXIT_IO = 3
EXIT_USAGE = 64

# Flags that modify interface displays
QUIET = False
VERBOSE = False


def init(args):
    """Initialise the UI, including logging"""

    if args["--vverbose"]:
        level = "DEBUG"
    elif args["--verbose"]:
        level = "INFO"
    else:
        level = None

    global QUIET
    global VERBOSE
    QUIET = args["--quiet"]
    VERBOSE = args["--verbose"] or args["--vverbose"]

    root_logger = logging.getLogger("lmc_cli")

    if not args["--no-colours"]:
        import coloredlogs

        cf.use_true_colors()
        cf.use_palette(UI_COLORS)
        cf.update_palette(UI_COLORS)
        if level:
            coloredlogs.install(
                fmt="[%(asctime)s.%(msecs)03d] %(name)-25s %(message)s",
                datefmt="%H:%M:%S",
                level=level,
                logger=root_logger,
                stream=sys.stderr,
            )
    else:
        cf.disable()
        if level:
            logging.basicConfig(level=level, stream=sys.stderr)
            root_logger.setLevel(level)


## String colour modifiers


def dim(string):
    return cf.grey(string)


def good(string):
    return cf.bold_teal(string)


def bad(string):
    return cf.bold_red(string)


def warn(string):
    return cf.bold_amber(string)


def primary(string):
    return cf.teal(string)


def secondary(string):
    return cf.magenta(string)


def neutral(string):
    return cf.bold(string)


## And printing messages


def info(msg):
    if not QUIET:
        print(msg)


def notice(msg):
    """Something the user should see even when stdout is redirected"""
    sys.stderr.write(str(msg) + "\n")


## graceful exits


def exit_problem(problem: str, suggested_fix: str, code: int = EXIT_USAGE):
    """Exit because of a user-correctable problem"""
    sys.stderr.write("\n" + str(bad(problem)) + "\n")
    if suggested_fix:
        sys.stderr.write(suggested_fix + "\n")
    sys.exit(code)


def exit_bug(msg, *, data=None, code: int = EXIT_IO):
    """Something broke unexpectedly while running"""
    sys.stderr.write(str(bad("\nUnexpected error 💔.\n" + str(msg))) + "\n")

    exc_type, exc_value, exc_traceback = sys.exc_info()

    if exc_type and VERBOSE:
        sys.stderr.write("\n" + "".join(format_exception(exc_type, exc_value, exc_traceback)))
    elif exc_type:
        sys.stderr.write(str(dim("".join(format_tb(exc_traceback, limit=4)))))

    if data:
        sys.stderr.write(f"Associated Data:\n{data}\n")

    sys.exit(code)


## UI elements


def check(question: str, default=False) -> bool:
    """Check whether the user wants to proceed"""
    if not sys.stdin.isatty():
        return default
    return confirm(question)


def make_table(header, alignment) -> Texttable:
    table = Texttable(max_width=100)
    table.set_cols_align(alignment)
    table.set_cols_dtype(["t"] * len(alignment))
    table.set_header_align(alignment)
    table.header(header)
    table.set_deco(Texttable.HEADER)
    return table


def format_word(word: int) -> str:
    return f"{word:03d}" if word >= 0 else f"-{-word:03d}"


def render_state(
    state: MachineState, program: Program = None, highlight=None, labels=True
):
    """Print registers, queues and the mailbox grid"""
    status = good("halted") if state.halted else primary("ready")
    print(
        f"Counter {neutral(format_word(state.counter))}  "
        f"Accumulator {neutral(format_word(state.accumulator))}  "
        f"Cycles {state.cycles}  [{status}]"
    )
    print(f"Inbox  {state.inbox}")
    print(f"Outbox {state.outbox}")

    memory = state.memory or (program.memory_image() if program else [0] * MEMORY_SIZE)
    table = Texttable(max_width=100)
    table.set_deco(Texttable.HEADER | Texttable.VLINES)
    table.set_cols_align(["r"] * 11)
    table.set_cols_dtype(["t"] * 11)
    table.header([""] + [str(col) for col in range(10)])
    for row in range(10):
        cells = [f"{row * 10:02d}"]
        for col in range(10):
            address = row * 10 + col
            text = format_word(memory[address])
            if address == highlight:
                text = f">{text}"
            cells.append(text)
        table.add_row(cells)
    print("\n" + table.draw() + "\n")

    if labels and program and program.labels:
        items = sorted(program.labels.items(), key=lambda kv: kv[1])
        print(dim("Labels: " + ", ".join(f"{k}={v:02d}" for k, v in items)))


def print_trace(state: MachineState, limit: int = 10):
    entries = state.trace[-limit:] if limit > 0 else []
    if not entries:
        return
    table = make_table(["Cycle", "Counter", "Word", "Accumulator"], ["r", "r", "r", "r"])
    for e in entries:
        table.add_row(
            [e.cycle, f"{e.counter:02d}", format_word(e.word), format_word(e.accumulator)]
        )
    print(neutral("Trace:"))
    print(table.draw() + "\n")


def print_events(events, limit: int = 10):
    """Print the last LIMIT events of a run"""
    shown = events[-limit:]
    if not shown:
        return
    table = make_table(["#", "Event", "Data"], ["r", "l", "l"])
    offset = len(events) - len(shown)
    for idx, event in enumerate(shown):
        data = event.serialise()["data"]
        table.add_row([offset + idx, event.kind, ", ".join(f"{k}={v}" for k, v in data.items())])
    print(neutral("Events:"))
    print(table.draw() + "\n")


def print_outcome(outcome):
    """One line about how a run ended"""
    if outcome.breakpoint is not None:
        notice(warn(f"Breakpoint hit at mailbox {outcome.breakpoint:02d}"))
    elif outcome.cancelled:
        notice(warn("Execution interrupted."))
    elif outcome.errored:
        notice(bad(str(outcome.error)))
    elif not outcome.halted:
        notice(dim(f"Stopped after {outcome.cycles} cycles (limit reached)."))


class LiveEventPrinter:
    """Observer printing the interesting events as they happen"""

    def __init__(self, stream=None):
        self.stream = stream

    def _write(self, text):
        print(text, file=self.stream or sys.stdout, flush=True)

    def __call__(self, event: ev.Event):
        if isinstance(event, ev.OutputProduced):
            self._write(f"{primary('Output:')} {event.value}")
        elif isinstance(event, ev.InputRequested):
            self._write(dim("Input requested"))
        elif isinstance(event, ev.BreakpointHit):
            self._write(warn(f"Breakpoint hit at mailbox {event.address:02d}"))
        elif isinstance(event, ev.EngineFailure):
            self._write(bad(f"Error: {event.message}"))
