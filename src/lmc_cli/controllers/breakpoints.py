"""Persistent breakpoints, keyed by program content

A breakpoint set belongs to a content address (see lmc_cli.hashing), not to a
file name, so it follows a program through renames, re-assembly and
export/import.
"""

import logging
import re
import threading
from dataclasses import dataclass
from typing import Iterable, List, Optional

from ..config_classes import WorkspaceConfig
from ..exceptions import LmcError, NotFound, ValidationError
from ..machine.serialisable import Serialisable, now_str
from ..machine.types import check_address
from . import files

LOG = logging.getLogger(__name__)

HASH_PATTERN = re.compile(r"[0-9a-f]{64}")


@dataclass
class BreakpointSet(Serialisable):
    program_hash: str
    program_name: Optional[str]
    breakpoints: List[int]
    created: str
    modified: str

    @classmethod
    def deserialise(cls, item: dict):
        bset = cls(**item)
        bset.breakpoints = sorted({check_address(a) for a in bset.breakpoints})
        return bset


@dataclass(frozen=True)
class BreakpointEntry:
    program_hash: str
    program_name: Optional[str]
    addresses: List[int]


class BreakpointStore:
    """One JSON file per content address, under <workspace>/breakpoints"""

    def __init__(self, workspace: WorkspaceConfig, clock=now_str):
        self.directory = workspace.breakpoints
        self._clock = clock
        self._lock = threading.RLock()

    def _path(self, program_hash: str):
        if not isinstance(program_hash, str) or not HASH_PATTERN.fullmatch(program_hash):
            raise ValidationError(
                f"Invalid program hash: {program_hash!r}",
                "Program hashes are 64 lowercase hexadecimal characters.",
            )
        return self.directory / f"{program_hash}.json"

    def _load(self, program_hash: str) -> Optional[BreakpointSet]:
        path = self._path(program_hash)
        if not path.exists():
            return None
        data = files.read_json(path)
        try:
            return BreakpointSet.deserialise(data)
        except (TypeError, LmcError) as exc:
            raise files.MalformedData(f"Corrupt breakpoint record {path}", str(exc))

    def _save(self, bset: BreakpointSet):
        files.atomic_write(self._path(bset.program_hash), files.dumps(bset.serialise()))

    ##

    def add(self, addresses: Iterable[int], program_hash: str, name: str = None):
        """Add ADDRESSES to the set for PROGRAM_HASH, creating it if needed"""
        addresses = {check_address(a) for a in addresses}
        with self._lock:
            try:
                bset = self._load(program_hash)
            except files.MalformedData:
                LOG.warning("Replacing corrupt breakpoint record for %s", program_hash)
                bset = None

            now = self._clock()
            if bset is None:
                bset = BreakpointSet(
                    program_hash=program_hash,
                    program_name=name,
                    breakpoints=sorted(addresses),
                    created=now,
                    modified=now,
                )
            else:
                bset.breakpoints = sorted(set(bset.breakpoints) | addresses)
                bset.modified = now
                if name is not None:
                    bset.program_name = name

            if not bset.breakpoints:
                return  # nothing to store
            self._save(bset)
        LOG.info("Breakpoints for %s: %s", program_hash[:12], bset.breakpoints)

    def remove(self, addresses: Iterable[int], program_hash: str):
        """Remove ADDRESSES, deleting the record when none are left"""
        addresses = list(addresses)
        with self._lock:
            bset = self._load(program_hash)
            if bset is None:
                raise NotFound(
                    f"breakpoints for program {program_hash}",
                    "Nothing to remove: this program has no breakpoints.",
                )
            removed = {check_address(a) for a in addresses}
            bset.breakpoints = sorted(set(bset.breakpoints) - removed)
            bset.modified = self._clock()
            if bset.breakpoints:
                self._save(bset)
            else:
                files.remove(self._path(program_hash))

    def clear(self, program_hash: str):
        with self._lock:
            path = self._path(program_hash)
            if path.exists():
                files.remove(path)

    def get(self, program_hash: str) -> List[int]:
        """Breakpoints for PROGRAM_HASH, ascending"""
        try:
            bset = self._load(program_hash)
        except files.MalformedData as exc:
            LOG.warning("Ignoring corrupt breakpoint record: %s", exc.msg)
            return []
        return list(bset.breakpoints) if bset else []

    def list_all(self) -> List[BreakpointEntry]:
        """Every stored breakpoint set. Corrupt records are skipped."""
        results = []
        for path in files.json_files(self.directory):
            try:
                bset = BreakpointSet.deserialise(files.read_json(path))
            except (files.MalformedData, files.IOFailure, TypeError, LmcError) as exc:
                LOG.warning("Skipping breakpoint record %s: %s", path.name, exc)
                continue
            results.append(
                BreakpointEntry(bset.program_hash, bset.program_name, bset.breakpoints)
            )
        return sorted(results, key=lambda e: (e.program_name or "", e.program_hash))
