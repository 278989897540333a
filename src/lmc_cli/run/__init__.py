from .common import RunOutcome, RunRequest, Termination
from .local import Orchestrator
