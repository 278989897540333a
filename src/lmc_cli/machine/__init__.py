from .types import MEMORY_SIZE, MachineState, Program, ProgramMetadata, TraceEntry
