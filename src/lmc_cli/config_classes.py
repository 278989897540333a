"""LMC configuration data, usually stored in lmc.toml"""

from dataclasses import dataclass
from pathlib import Path
from typing import Union

# Constants
DEFAULT_WORKSPACE = "~/.lmc"
DEFAULT_CONFIG_FILENAME = "lmc.toml"
PROGRAMS_DIR = "programs"
STATES_DIR = "states"
BREAKPOINTS_DIR = "breakpoints"
HISTORY_FILE = "repl_history"


@dataclass(unsafe_hash=True)
class WorkspaceConfig:
    root: Path = Path(DEFAULT_WORKSPACE)

    def __post_init__(self):
        self.root = Path(self.root).expanduser()

    @property
    def programs(self) -> Path:
        return self.root / PROGRAMS_DIR

    @property
    def states(self) -> Path:
        return self.root / STATES_DIR

    @property
    def breakpoints(self) -> Path:
        return self.root / BREAKPOINTS_DIR

    @property
    def history_file(self) -> Path:
        return self.root / HISTORY_FILE


@dataclass(unsafe_hash=True)
class EngineConfig:
    module: Union[str, None] = None


@dataclass(unsafe_hash=True)
class RunConfig:
    trace_tail: int = 10
    auto_load_breakpoints: bool = True
    live_queue_size: int = 64
    stall_timeout: float = 5.0

    def __post_init__(self):
        self.trace_tail = int(self.trace_tail)
        self.live_queue_size = max(1, int(self.live_queue_size))
        self.stall_timeout = float(self.stall_timeout)
