"""Named programs and machine states, and portable export bundles

Layout under the workspace root:

    programs/<name>.json   program snapshot
    programs/<name>.lmc    source text (optional)
    states/<name>.json     {"state": ..., "program": ... | null, "breakpoint": n?}

A program's state companion is the state named "<name>-state".
"""

import json
import logging
import platform
import threading
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional, Tuple

from .. import __version__
from ..config_classes import WorkspaceConfig
from ..exceptions import (
    InvalidAddress,
    LmcError,
    MalformedData,
    NotFound,
    VersionError,
)
from ..hashing import program_address
from ..machine.serialisable import now_str
from ..machine.types import MachineState, Program, ProgramMetadata, check_address
from . import files
from .breakpoints import BreakpointStore

LOG = logging.getLogger(__name__)

BUNDLE_VERSION = 1
SOURCE_SUFFIX = ".lmc"
STATE_SUFFIX = "-state"


@dataclass(frozen=True)
class Artifact:
    location: Path
    program: Optional[Program]
    state: Optional[MachineState] = None
    breakpoint: Optional[int] = None

    @property
    def name(self) -> str:
        return self.location.stem


@dataclass(frozen=True)
class ListEntry:
    name: str
    metadata: ProgramMetadata
    location: Path


def state_companion(name: str) -> str:
    return name + STATE_SUFFIX


class _Rollback:
    """Remember what files looked like before writing them, to undo on failure"""

    def __init__(self):
        self._saved = []

    def _save(self, path: Path):
        previous = files.read_text(path) if path.exists() else None
        self._saved.append((path, previous))

    def write(self, path: Path, text: str):
        self._save(path)
        files.atomic_write(path, text)

    def discard(self, path: Path):
        if path.exists():
            self._save(path)
            files.remove(path)

    def undo(self):
        for path, previous in reversed(self._saved):
            try:
                if previous is None:
                    if path.exists():
                        path.unlink()
                else:
                    files.atomic_write(path, previous)
            except (OSError, LmcError) as exc:
                LOG.error("Could not roll back %s: %s", path, exc)


class ArtifactStore:
    def __init__(
        self, workspace: WorkspaceConfig, breakpoints: BreakpointStore, clock=now_str
    ):
        self.workspace = workspace
        self.breakpoints = breakpoints
        self._clock = clock
        self._lock = threading.RLock()

    def _program_path(self, name: str) -> Path:
        return self.workspace.programs / f"{name}.json"

    def _state_path(self, name: str) -> Path:
        return self.workspace.states / f"{name}.json"

    ## Storing

    def store_program(self, name: str, program: Program, source: str = None) -> Path:
        """Store PROGRAM (and its SOURCE text, if any) as NAME"""
        files.validate_name(name)
        path = self._program_path(name)
        with self._lock:
            rollback = _Rollback()
            try:
                self._write_program(path, program, source, rollback)
            except LmcError:
                rollback.undo()
                raise
        LOG.info("Stored program %s at %s", name, path)
        return path

    def _write_program(self, path, program, source, rollback: _Rollback):
        rollback.write(path, files.dumps(program.serialise()))
        # the stored source always belongs to the stored program
        if source:
            rollback.write(path.with_suffix(SOURCE_SUFFIX), source)
        else:
            rollback.discard(path.with_suffix(SOURCE_SUFFIX))

    def store_state(
        self,
        name: str,
        state: MachineState,
        program: Program = None,
        breakpoint: int = None,
    ) -> Path:
        """Store STATE, with its program if given, as NAME

        BREAKPOINT is the mailbox the state is paused at, if it stopped at one.
        """
        files.validate_name(name)
        path = self._state_path(name)
        with self._lock:
            record = _state_record(state, program, breakpoint)
            files.atomic_write(path, files.dumps(record))
        LOG.info("Stored state %s at %s", name, path)
        return path

    ## Finding

    def _as_name(self, reference: str) -> str:
        name = reference
        for suffix in (".json", SOURCE_SUFFIX):
            if name.lower().endswith(suffix) and len(name) > len(suffix):
                name = name[: -len(suffix)]
                break
        return files.validate_name(name)

    def _existing_path(self, reference: str) -> Optional[Path]:
        candidate = Path(reference).expanduser()
        return candidate if candidate.is_file() else None

    def resolve(self, reference: str) -> Path:
        """Find a program or state by path or by name (programs first)"""
        path = self._existing_path(reference)
        if path:
            return path
        name = self._as_name(reference)
        for candidate in (self._program_path(name), self._state_path(name)):
            if candidate.exists():
                return candidate
        raise NotFound(reference, "See `lmc snapshot list' for stored programs.")

    def resolve_program(self, reference: str) -> Path:
        """Like resolve, but only looks for stored programs"""
        path = self._existing_path(reference)
        if path:
            return path
        candidate = self._program_path(self._as_name(reference))
        if candidate.exists():
            return candidate
        raise NotFound(reference, "See `lmc snapshot list' for stored programs.")

    ## Loading

    def load(self, location: Path) -> Artifact:
        """Load a program or state record, sniffing which one it is"""
        location = Path(location)
        data = files.read_json(location)
        if "state" in data:
            state = MachineState.deserialise(data["state"])
            if data.get("program"):
                program = Program.deserialise(data["program"])
            else:
                program = self._companion_program(location)
            return Artifact(location, program, state, _paused_at(data, location))
        if "words" in data:
            return Artifact(location, Program.deserialise(data))
        raise MalformedData(
            f"{location} is neither a program nor a state record",
            "Program records carry `words'; state records carry `state'.",
        )

    def _companion_program(self, state_location: Path) -> Optional[Program]:
        stem = state_location.stem
        names = [stem]
        if stem.endswith(STATE_SUFFIX) and len(stem) > len(STATE_SUFFIX):
            names.append(stem[: -len(STATE_SUFFIX)])
        for name in names:
            path = self._program_path(name)
            if path.exists():
                LOG.info("Using companion program %s", path)
                return Program.deserialise(files.read_json(path))
        return None

    def load_program(self, location: Path) -> Program:
        artifact = self.load(location)
        if artifact.program is None:
            raise NotFound(
                f"program for state {location}",
                "Store the state together with its program, "
                "or store the program under the same name.",
            )
        return artifact.program

    def source_for(self, location: Path) -> Optional[str]:
        """The source text stored alongside a program, if any"""
        path = Path(location).with_suffix(SOURCE_SUFFIX)
        return files.read_text(path) if path.exists() else None

    ## Listing and removing

    def list(self) -> List[ListEntry]:
        """Stored programs, by name"""
        entries = []
        for path in files.json_files(self.workspace.programs):
            try:
                program = Program.deserialise(files.read_json(path))
            except MalformedData as exc:
                raise MalformedData(f"Corrupt program record {path}", exc.msg) from exc
            entries.append(ListEntry(path.stem, program.metadata, path))
        return sorted(entries, key=lambda e: e.name)

    def remove(self, names: List[str]):
        """Remove stored programs. Nothing is removed unless all of them exist."""
        paths = [self._program_path(files.validate_name(n)) for n in names]
        with self._lock:
            for name, path in zip(names, paths):
                if not path.exists():
                    raise NotFound(name, "See `lmc snapshot list' for stored programs.")
            for path in paths:
                files.remove(path)
                source = path.with_suffix(SOURCE_SUFFIX)
                if source.exists():
                    try:
                        source.unlink()
                    except OSError as exc:
                        LOG.warning("Could not remove %s: %s", source, exc)
                LOG.info("Removed %s", path)

    ## Bundles

    def export_bundle(
        self, name: str, include_state: bool = False, description: str = None
    ) -> bytes:
        """Export a stored program as a self-contained bundle"""
        location = self.resolve_program(name)
        program_data = files.read_json(location)
        program = Program.deserialise(program_data)

        bundle = dict(
            version=BUNDLE_VERSION,
            metadata=dict(
                exported_at=self._clock(),
                exported_by=f"lmc {__version__}",
                original_name=location.stem,
                platform=platform.platform(),
            ),
            program=program.serialise(),
        )
        if description:
            bundle["metadata"]["description"] = description

        source = self.source_for(location)
        if source:
            bundle["source"] = source

        if include_state:
            state_path = self._state_path(state_companion(location.stem))
            if state_path.exists():
                bundle["state"] = self.load(state_path).state.serialise()
            else:
                LOG.info("No state companion at %s", state_path)

        addresses = self.breakpoints.get(program_address(program))
        if addresses:
            bundle["breakpoints"] = addresses

        return files.dumps(bundle).encode("utf-8")

    def import_bundle(self, data: bytes, name: str = None) -> Tuple[Path, Optional[Path]]:
        """Import a bundle, as NAME if given

        Returns the locations of the stored program and state (if any).
        """
        bundle = _decode_bundle(data)

        program = Program.deserialise(bundle["program"])
        state = None
        if bundle.get("state") is not None:
            state = MachineState.deserialise(bundle["state"])
        source = bundle.get("source")
        if source is not None and not isinstance(source, str):
            raise MalformedData("Bundle source must be text", "")
        addresses = [check_address(a) for a in bundle.get("breakpoints") or []]

        target = name if name is not None else bundle["metadata"].get("original_name")
        files.validate_name(target)

        program_path = self._program_path(target)
        state_path = self._state_path(state_companion(target)) if state else None

        with self._lock:
            rollback = _Rollback()
            try:
                self._write_program(program_path, program, source, rollback)
                if state:
                    rollback.write(state_path, files.dumps(_state_record(state, program)))
                if addresses:
                    stored = Program.deserialise(files.read_json(program_path))
                    self.breakpoints.add(addresses, program_address(stored), target)
            except Exception:
                LOG.error("Import of %s failed, rolling back", target)
                rollback.undo()
                raise

        LOG.info("Imported %s (state: %s)", program_path, state_path)
        return program_path, state_path


def _state_record(
    state: MachineState, program: Optional[Program], breakpoint: int = None
) -> dict:
    record = dict(
        state=state.serialise(), program=program.serialise() if program else None
    )
    if breakpoint is not None:
        record["breakpoint"] = check_address(breakpoint)
    return record


def _paused_at(data: dict, location: Path) -> Optional[int]:
    if data.get("breakpoint") is None:
        return None
    try:
        return check_address(data["breakpoint"])
    except InvalidAddress as exc:
        raise MalformedData(f"{location} has an invalid breakpoint", str(exc)) from exc


def _decode_bundle(data) -> dict:
    """Decode and check the envelope of a bundle, before anything is written"""
    try:
        text = data.decode("utf-8") if isinstance(data, (bytes, bytearray)) else data
        bundle = json.loads(text)
    except (UnicodeDecodeError, ValueError) as exc:
        raise MalformedData(f"Bundle is not valid JSON ({exc})", "") from exc

    if not isinstance(bundle, dict):
        raise MalformedData("Bundle must be a JSON object", "")

    version = bundle.get("version")
    if isinstance(version, bool) or not isinstance(version, int) or version < 1:
        raise MalformedData(f"Bundle has an invalid version: {version!r}", "")
    if version > BUNDLE_VERSION:
        raise VersionError(version, BUNDLE_VERSION)

    if not isinstance(bundle.get("metadata"), dict):
        raise MalformedData("Bundle has no metadata", "")
    if not isinstance(bundle.get("program"), dict):
        raise MalformedData("Bundle has no program", "")
    if bundle.get("state") is not None and not isinstance(bundle["state"], dict):
        raise MalformedData("Bundle state must be a JSON object", "")
    return bundle
