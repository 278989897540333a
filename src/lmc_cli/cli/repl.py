"""Interactive LMC session"""

import logging
import shlex
from dataclasses import replace
from pathlib import Path

from prompt_toolkit import PromptSession
from prompt_toolkit.history import FileHistory, History, InMemoryHistory
from prompt_toolkit.patch_stdout import patch_stdout

from ..controllers import files
from ..controllers.artifacts import state_companion
from ..exceptions import LmcError, UserResolvableError
from ..hashing import program_address
from ..machine.types import MachineState, Program
from ..run import RunRequest, Termination
from ..services import Services
from . import interface as ui
from .utils import (
    cancel_on_interrupt,
    inline_source,
    parse_int,
    parse_values,
    wait_for,
)

LOG = logging.getLogger(__name__)

HELP = """\
Commands:
  load <name|path>            Load a stored program
  assemble <source|path>      Assemble inline source or a file and load it
  run [--max N] [--speed HZ] [--break ADDR]
                              Run the current program (continues the state)
  step [N]                    Run N cycles (default 1)
  state [mailbox]             Show the current state
  trace [N]                   Show the last N trace entries
  inbox [values|clear]        Show or set the inbox
  reset                       Start again from a fresh state
  save <name> [--state]       Store the program (and the state as <name>-state)
  break add|remove <addr...>  Change persistent breakpoints
  break clear|list            Clear or list persistent breakpoints
  history [N|clear|search P]  Show command history
  help                        Show this message
  quit                        Exit"""


class REPLSession:
    def __init__(self, services: Services, history: History = None):
        self.services = services
        if history is None:
            path = services.config.workspace.history_file
            files.ensure_dir(path.parent)
            history = FileHistory(str(path))
        self.history = history
        self.program = None
        self.program_name = None
        self.state = MachineState()
        self.paused_at = None
        self.trace_tail = services.config.run.trace_tail
        self._prompt = None

    @property
    def prompt_text(self) -> str:
        return f"lmc({self.program_name})> " if self.program_name else "lmc> "

    def run(self):
        """Read commands until EOF or `quit'"""
        print("Type 'help' for a list of commands.\n")
        self._prompt = PromptSession(history=self.history)
        while True:
            try:
                with patch_stdout():
                    line = self._prompt.prompt(self.prompt_text)
            except (EOFError, KeyboardInterrupt):
                print()
                return
            if not self.handle(line):
                return

    def run_script(self, path: Path):
        for line in files.read_text(Path(path)).splitlines():
            line = line.strip()
            if not line or line.startswith("#"):
                continue
            print(self.prompt_text + line)
            if not self.handle(line):
                return

    def handle(self, line: str) -> bool:
        """Handle one command line. Returns False when the session should end."""
        try:
            words = shlex.split(line)
        except ValueError as exc:
            print(f"Parse error: {exc}")
            return True
        if not words:
            return True

        command, args = words[0].lower(), words[1:]
        if command in ("quit", "exit"):
            return False

        handler = getattr(self, "_cmd_" + command, None)
        if command in ("help", "?"):
            print(HELP)
        elif handler is None:
            print(f"Unknown command: {command}. Type 'help' for options.")
        else:
            try:
                handler(args, line)
            except UserResolvableError as exc:
                print(ui.bad(str(exc)))
            except LmcError as exc:
                LOG.info("Command failed: %r", exc)
                print(ui.bad(f"Error: {exc}"))
        return True

    ## Program

    def _use(self, program: Program, name: str):
        self.program = program
        self.program_name = name
        self._cmd_reset([], "")

    def _require_program(self) -> bool:
        if self.program is None:
            print("No program loaded. Use 'load' or 'assemble' first.")
            return False
        return True

    def _cmd_load(self, args, line):
        if not args:
            print("Usage: load <name|path>")
            return
        artifacts = self.services.artifacts
        location = artifacts.resolve_program(args[0])
        self._use(artifacts.load_program(location), location.stem)
        print(f"Loaded {self.program_name}.")

    def _cmd_assemble(self, args, line):
        text = line.strip()[len("assemble") :].strip()
        if not text:
            print("Usage: assemble <source|path>")
            return
        path = Path(text).expanduser()
        if path.is_file():
            source = files.read_text(path)
            name = path.stem
        else:
            source = inline_source(text)
            name = "inline"
        program = self.services.assemble(source)
        self._use(program, name)
        print(f"Program assembled and ready ({program_address(program)[:12]}).")

    def _cmd_reset(self, args, line):
        self.state = (
            MachineState.fresh(self.program) if self.program else MachineState()
        )
        self.paused_at = None

    ## Execution

    def _execute(self, request: RunRequest, count=None):
        """Continue the session state. Ctrl-C cancels the run, keeping its state."""
        request = replace(
            request, initial_state=self.state, resume_from_breakpoint=self.paused_at
        )
        if count is not None:
            request = replace(request, max_cycles=count)
        handle = self.services.orchestrator.start(request, [ui.LiveEventPrinter()])
        with cancel_on_interrupt(handle):
            outcome = wait_for(handle)
        self.state = outcome.state
        self.paused_at = outcome.breakpoint
        if outcome.termination in (Termination.CANCELLED, Termination.LIMIT_REACHED):
            ui.print_outcome(outcome)
        if outcome.errored:
            return
        ui.render_state(self.state, self.program, highlight=self.state.counter)
        limit = self.trace_tail if count is None else min(count, self.trace_tail)
        ui.print_trace(self.state, limit)
        outputs = [o for o in outcome.events if o.kind == "outputProduced"]
        if len(outputs) > 1:
            print(f"Total outputs produced: {len(outputs)}")

    def _run_options(self, args):
        max_cycles = rate = None
        breakpoints = []
        it = iter(args)
        for arg in it:
            value = next(it, None)
            if value is None:
                break
            if arg in ("--max", "-m"):
                max_cycles = int(value)
            elif arg in ("--speed", "-s"):
                rate = float(value)
            elif arg in ("--break", "-b"):
                breakpoints.append(int(value))
        return max_cycles, rate, breakpoints

    def _cmd_run(self, args, line):
        if not self._require_program():
            return
        try:
            max_cycles, rate, breakpoints = self._run_options(args)
        except ValueError as exc:
            print(f"Invalid option value: {exc}")
            return
        request = RunRequest(
            program=self.program,
            rate=rate,
            max_cycles=max_cycles,
            breakpoints=breakpoints,
        )
        self._execute(request)

    def _cmd_step(self, args, line):
        if not self._require_program():
            return
        count = int(args[0]) if args and args[0].isdigit() else 1
        request = RunRequest(program=self.program)
        self._execute(request, count=max(1, count))

    ## Inspection

    def _cmd_state(self, args, line):
        highlight = None
        if args:
            highlight = parse_int(args[0], "mailbox")
            if not 0 <= highlight < 100:
                print(f"Mailbox {highlight} out of range 0-99")
                return
        ui.render_state(self.state, self.program, highlight=highlight)

    def _cmd_trace(self, args, line):
        limit = int(args[0]) if args and args[0].isdigit() else self.trace_tail
        ui.print_trace(self.state, limit)

    def _cmd_inbox(self, args, line):
        if not args:
            print(f"Inbox: {self.state.inbox}")
        elif args[0].lower() == "clear":
            self.state.inbox = []
            print("Inbox cleared.")
        else:
            self.state.inbox = parse_values(" ".join(args))
            print(f"Inbox set to {self.state.inbox}")

    ## Persistence

    def _cmd_save(self, args, line):
        if not self._require_program():
            return
        names = [a for a in args if not a.startswith("--")]
        if not names:
            print("Usage: save <name> [--state]")
            return
        name = names[0]
        artifacts = self.services.artifacts
        path = artifacts.store_program(name, self.program.renamed(name))
        print(f"{ui.TICK} Saved program to {path.name}")
        if "--state" in args:
            path = artifacts.store_state(
                state_companion(name), self.state, self.program, self.paused_at
            )
            print(f"{ui.TICK} Saved state to {path.name}")
        self.program_name = name

    def _cmd_break(self, args, line):
        if not self._require_program():
            return
        if not args:
            print("Usage: break <add|remove|clear|list> [addresses...]")
            return
        sub, rest = args[0].lower(), args[1:]
        store = self.services.breakpoints
        digest = program_address(self.program)

        if sub in ("add", "remove"):
            addresses = parse_values(" ".join(rest))
            if not addresses:
                print(f"Provide at least one address to {sub}")
                return
            if sub == "add":
                store.add(addresses, digest, self.program_name)
            else:
                store.remove(addresses, digest)
            done = "Added" if sub == "add" else "Removed"
            print(f"{done} breakpoints at mailboxes " + ", ".join(f"{a:02d}" for a in addresses))
        elif sub == "clear":
            store.clear(digest)
            print("Cleared all breakpoints for the program")
        elif sub == "list":
            addresses = store.get(digest)
            if not addresses:
                print("No breakpoints set for this program")
            for a in addresses:
                print(f"  Mailbox {a:02d}")
        else:
            print(f"Unknown breakpoint subcommand: {sub}")

    ## History

    def _history_strings(self):
        return list(reversed(list(self.history.load_history_strings())))

    def _cmd_history(self, args, line):
        entries = self._history_strings()
        if args and args[0].lower() == "clear":
            if isinstance(self.history, FileHistory):
                files.atomic_write(Path(self.history.filename), "")
            else:
                self.history = InMemoryHistory()
            print("Command history cleared.")
            return
        if args and args[0].lower() == "search":
            pattern = " ".join(args[1:])
            if not pattern:
                print("Usage: history search <pattern>")
                return
            matches = [e for e in entries if pattern in e]
            print("\n".join(matches) if matches else "No matching commands found.")
            return

        count = int(args[0]) if args and args[0].isdigit() else 20
        start = max(0, len(entries) - count)
        for idx, entry in enumerate(entries[start:], start=start + 1):
            print(f"{idx:5d}  {entry}")
