"""LMC.

Usage:
  lmc [options] assemble SOURCE [--name=NAME] [--output=FILE]
  lmc [options] disassemble PROGRAM
  lmc [options] run PROGRAM [--input=VALUES] [--speed=HZ] [--max-cycles=N] [--break=ADDR...] [--no-auto-breakpoints] [--log=FILE] [--live] [--save-state=NAME]
  lmc [options] step PROGRAM [--input=VALUES] [--count=N] [--break=ADDR...] [--save-state=NAME]
  lmc [options] break-until PROGRAM ADDR... [--input=VALUES] [--max-cycles=N] [--save-state=NAME]
  lmc [options] exec CODE... [--input=VALUES] [--speed=HZ] [--max-cycles=N]
  lmc [options] state REFERENCE [--json] [--trace=N] [--mailbox=ADDR]
  lmc [options] snapshot store NAME [SOURCE]
  lmc [options] snapshot list
  lmc [options] snapshot remove SNAPSHOT... [--force]
  lmc [options] export PROGRAM [--output=FILE] [--include-state] [--description=TEXT]
  lmc [options] import BUNDLE [--name=NAME]
  lmc [options] breakpoint add PROGRAM ADDR...
  lmc [options] breakpoint remove PROGRAM ADDR...
  lmc [options] breakpoint clear PROGRAM
  lmc [options] breakpoint list [PROGRAM]
  lmc [options] repl [PROGRAM] [--script=FILE]
  lmc --version
  lmc -h | --help

Commands:
  assemble     Assemble a source file (- for stdin). Store it with --name.
  disassemble  Print the source listing of a program.
  run          Run a program (or resume a stored state).
  step         Run a few cycles.
  break-until  Run until reaching one of the given mailboxes.
  exec         Assemble inline source (`;' between lines) and run it.
  state        Show a stored state or program.
  snapshot     Store, list and remove programs in the workspace.
  export       Export a stored program as a portable bundle.
  import       Import a bundle (- for stdin).
  breakpoint   Manage persistent breakpoints.
  repl         Interactive session.

Options:
  --version       Show version.
  -h, --help      Show this screen.
  -q, --quiet     Be quiet.
  -v, --verbose   Be verbose.
  -V, --vverbose  Be very verbose.
  --no-colours    Disable colours in CLI output.
  --workspace=DIR  Workspace directory (default: ~/.lmc)
  --config=FILE    Config file (default: <workspace>/lmc.toml)
  --engine=MODULE  Simulator engine module

Run options:
  --input=VALUES        Inbox values, comma separated, or `stdin'
  --speed=HZ            Cycles per second (default: as fast as possible)
  --max-cycles=N        Stop after N cycles
  --break=ADDR          Break at mailbox ADDR (repeatable)
  --no-auto-breakpoints  Ignore breakpoints stored for the program
  --log=FILE            Write a JSON-lines event and state log
  --live                Show the machine state as it runs
  --save-state=NAME     Store the final state as NAME
  --count=N             Cycles to step  [default: 1]

Other options:
  --name=NAME           Artifact name
  --output=FILE         Write to FILE instead of stdout
  --json                Print as JSON
  --trace=N             Trace entries to show
  --mailbox=ADDR        Mailbox to highlight
  --force               Don't ask for confirmation
  --include-state       Include the program's state companion
  --description=TEXT    Free text stored in the bundle
  --script=FILE         Run REPL commands from FILE, then exit
"""

# http://try.docopt.org/

import logging
import sys
from dataclasses import replace
from pathlib import Path

from docopt import docopt

from .. import __version__, config
from ..config import ConfigError
from ..controllers import files
from ..exceptions import UnexpectedError, UserResolvableError, ValidationError
from ..machine.engine import AssemblyError, EngineError, EngineImportError
from ..machine.event_log import EventJSONLogger
from ..machine.types import MachineState, check_address
from ..run import RunRequest
from ..services import Services
from . import interface as ui
from . import utils
from .interface import (
    EXIT_ASSEMBLY,
    EXIT_IO,
    EXIT_RUNTIME,
    EXIT_USAGE,
    TICK,
    dim,
    exit_bug,
    exit_problem,
    good,
    init,
)

LOG = logging.getLogger(__name__)


def _read_source(path: str) -> str:
    if path == "-":
        return sys.stdin.read()
    return files.read_text(Path(path).expanduser())


def _request(args, cfg) -> RunRequest:
    return RunRequest(
        program=args["PROGRAM"],
        inbox=utils.parse_inbox(args["--input"]),
        rate=utils.parse_float(args["--speed"], "speed"),
        max_cycles=utils.parse_int(args["--max-cycles"], "cycle limit"),
        breakpoints=utils.parse_addresses(args["--break"]),
        auto_load_breakpoints=False if args["--no-auto-breakpoints"] else None,
    )


def _report(args, cfg, services, outcome, rendered=False, trace_limit=None):
    """Print the result of a run, and store its state if asked to"""
    ui.print_outcome(outcome)
    if not rendered and not ui.QUIET:
        ui.render_state(outcome.state, outcome.program, highlight=outcome.state.counter)
    if not ui.QUIET:
        limit = cfg.run.trace_tail if trace_limit is None else trace_limit
        ui.print_trace(outcome.state, limit)
    if ui.VERBOSE:
        ui.print_events(outcome.events)

    if args["--save-state"]:
        path = services.artifacts.store_state(
            args["--save-state"], outcome.state, outcome.program, outcome.breakpoint
        )
        ui.info(TICK + " Stored state " + str(good(path)))

    if outcome.errored:
        sys.exit(EXIT_RUNTIME)


def _live_render(state: MachineState, program):
    if sys.stdout.isatty():
        sys.stdout.write("\x1b[2J\x1b[H")
    ui.render_state(state, program, highlight=state.counter)


def _run(args, cfg, services):
    request = _request(args, cfg)
    live = args["--live"]

    observers = []
    if live:
        observers.append(ui.LiveEventPrinter())
    logger = EventJSONLogger(args["--log"]) if args["--log"] else None
    if logger:
        observers.append(logger)

    try:
        handle = services.orchestrator.start(
            request, observers, live=bool(live or logger)
        )
        with utils.cancel_on_interrupt(handle):
            if handle.stream is not None:
                program = None
                for state in handle.states():
                    if logger:
                        logger.log_state(state)
                    if live:
                        if program is None:
                            program = services.load_program(request.program)
                        _live_render(state, program)
            outcome = utils.wait_for(handle)
    finally:
        if logger:
            logger.close()

    _report(args, cfg, services, outcome, rendered=live)


def _step(args, cfg, services):
    request = _request(args, cfg)
    count = utils.parse_int(args["--count"], "step count")
    outcome = services.orchestrator.step(request, count)
    _report(args, cfg, services, outcome, trace_limit=min(count, cfg.run.trace_tail))


def _break_until(args, cfg, services):
    request = _request(args, cfg)
    addresses = utils.parse_addresses(args["ADDR"])
    outcome = services.orchestrator.break_until(request, addresses)
    if outcome.halted:
        ui.notice(dim("Program halted before hitting a breakpoint."))
    _report(args, cfg, services, outcome)


def _exec(args, cfg, services):
    text = " ".join(args["CODE"])
    if not text.strip():
        raise ValidationError("No source given", "Provide inline source to execute.")
    program = services.assemble(utils.inline_source(text), "inline")

    request = replace(_request(args, cfg), program=program, auto_load_breakpoints=False)
    handle = services.orchestrator.start(request)
    with utils.cancel_on_interrupt(handle):
        outcome = utils.wait_for(handle)
    _report(args, cfg, services, outcome)


def _assemble(args, cfg, services):
    source = _read_source(args["SOURCE"])
    name = args["--name"]
    program = services.assemble(source, name)

    if name:
        path = services.artifacts.store_program(name, program, source)
        ui.info(TICK + " Stored program " + str(good(path)))
    if args["--output"]:
        files.atomic_write(Path(args["--output"]), files.dumps(program.serialise()))
        ui.info(TICK + " Wrote " + str(good(args["--output"])))
    elif not name:
        sys.stdout.write(files.dumps(program.serialise()))


def _disassemble(args, cfg, services):
    print(services.disassemble(args["PROGRAM"]))


def _state(args, cfg, services):
    artifact = services.artifacts.load(services.artifacts.resolve(args["REFERENCE"]))
    state = artifact.state or MachineState.fresh(artifact.program)

    if args["--json"]:
        sys.stdout.write(files.dumps(state.serialise()))
        return

    highlight = utils.parse_int(args["--mailbox"], "mailbox")
    if highlight is not None:
        check_address(highlight)
    ui.render_state(state, artifact.program, highlight=highlight)
    trace = utils.parse_int(args["--trace"], "trace length")
    ui.print_trace(state, cfg.run.trace_tail if trace is None else trace)


def _snapshot(args, cfg, services):
    artifacts = services.artifacts

    if args["store"]:
        source = _read_source(args["SOURCE"] or "-")
        program = services.assemble(source, args["NAME"])
        path = artifacts.store_program(args["NAME"], program, source)
        print(f"Stored snapshot {args['NAME']} at {path}")

    elif args["list"]:
        entries = artifacts.list()
        if not entries:
            print(f"No snapshots stored in {cfg.workspace.root}")
            return
        table = ui.make_table(["Name", "Created", "Generator"], ["l", "l", "l"])
        for entry in entries:
            table.add_row(
                [entry.name, entry.metadata.created_at, entry.metadata.generator or ""]
            )
        print(table.draw())

    elif args["remove"]:
        names = args["SNAPSHOT"]
        if not args["--force"]:
            question = f"Remove {len(names)} snapshot(s): {', '.join(names)}?"
            if not ui.check(question):
                print("Aborted")
                return
        artifacts.remove(names)
        print(f"Removed {len(names)} snapshot(s).")


def _export(args, cfg, services):
    data = services.artifacts.export_bundle(
        args["PROGRAM"],
        include_state=args["--include-state"],
        description=args["--description"],
    )
    if args["--output"]:
        files.atomic_write(Path(args["--output"]).expanduser(), data.decode("utf-8"))
        ui.info(TICK + " Exported to " + str(good(args["--output"])))
    else:
        sys.stdout.write(data.decode("utf-8"))


def _import(args, cfg, services):
    if args["BUNDLE"] == "-":
        data = sys.stdin.buffer.read()
    else:
        data = files.read_text(Path(args["BUNDLE"]).expanduser()).encode("utf-8")
    program_path, state_path = services.artifacts.import_bundle(data, args["--name"])
    print(f"Imported program to {program_path}")
    if state_path:
        print(f"Imported state to {state_path}")


def _breakpoint(args, cfg, services):
    program = args["PROGRAM"]

    if args["add"]:
        addresses = utils.parse_addresses(args["ADDR"])
        services.add_breakpoints(program, addresses)
        print("Added breakpoints: " + ", ".join(f"{a:02d}" for a in addresses))

    elif args["remove"]:
        addresses = utils.parse_addresses(args["ADDR"])
        services.remove_breakpoints(program, addresses)
        print("Removed breakpoints: " + ", ".join(f"{a:02d}" for a in addresses))

    elif args["clear"]:
        services.clear_breakpoints(program)
        print(f"Cleared all breakpoints for {program}")

    elif args["list"] and program:
        addresses = services.list_breakpoints(program)
        if not addresses:
            print(f"No breakpoints set for {program}")
        for a in addresses:
            print(f"{a:02d}")

    else:
        entries = services.list_all_breakpoints()
        if not entries:
            print("No breakpoints stored")
            return
        table = ui.make_table(["Program", "Hash", "Breakpoints"], ["l", "l", "l"])
        for e in entries:
            table.add_row(
                [
                    e.program_name or "",
                    e.program_hash[:12],
                    ", ".join(f"{a:02d}" for a in e.addresses),
                ]
            )
        print(table.draw())


def _repl(args, cfg, services):
    from .repl import REPLSession

    session = REPLSession(services)
    if args["PROGRAM"]:
        session.handle(f"load {args['PROGRAM']}")
    if args["--script"]:
        session.run_script(Path(args["--script"]).expanduser())
    else:
        session.run()


def dispatch(args):
    cfg = config.load(args)
    services = Services(cfg)

    if args["assemble"]:
        _assemble(args, cfg, services)
    elif args["disassemble"]:
        _disassemble(args, cfg, services)
    elif args["run"]:
        _run(args, cfg, services)
    elif args["step"]:
        _step(args, cfg, services)
    elif args["break-until"]:
        _break_until(args, cfg, services)
    elif args["exec"]:
        _exec(args, cfg, services)
    elif args["state"]:
        _state(args, cfg, services)
    elif args["snapshot"]:
        _snapshot(args, cfg, services)
    elif args["export"]:
        _export(args, cfg, services)
    elif args["import"]:
        _import(args, cfg, services)
    elif args["breakpoint"]:
        _breakpoint(args, cfg, services)
    elif args["repl"]:
        _repl(args, cfg, services)
    else:
        exit_problem("Invalid command line.", __doc__)


def _problem(exc: UserResolvableError) -> str:
    if type(exc) is UserResolvableError:
        return exc.msg
    return f"{exc.__doc__}: {exc.msg}"


def main():
    try:
        args = docopt(__doc__, version=__version__)
    except SystemExit as exc:
        # docopt exits with the usage text on a bad command line
        if exc.code:
            sys.stderr.write(str(exc.code) + "\n")
            sys.exit(EXIT_USAGE)
        raise
    init(args)
    LOG.debug("CLI args: %s", args)

    try:
        dispatch(args)
    except AssemblyError as exc:
        exit_problem(_problem(exc), exc.suggested_fix, EXIT_ASSEMBLY)
    except (ValidationError, ConfigError, EngineImportError) as exc:
        exit_problem(_problem(exc), exc.suggested_fix, EXIT_USAGE)
    except UserResolvableError as exc:
        exit_problem(_problem(exc), exc.suggested_fix, EXIT_IO)
    except EngineError as exc:
        exit_problem(str(exc), "", EXIT_RUNTIME)
    except UnexpectedError as exc:
        exit_bug(str(exc), code=EXIT_IO)


if __name__ == "__main__":
    main()
