"""File helpers shared by the stores

Writes go to a temporary sibling and are then renamed into place, so a reader
sees either the old file or the new one, never half of one.
"""

import json
import logging
import os
import re
import threading
from pathlib import Path

from ..exceptions import InvalidName, IOFailure, MalformedData

LOG = logging.getLogger(__name__)

NAME_PATTERN = re.compile(r"[A-Za-z0-9_-]+")


def validate_name(name) -> str:
    """Return NAME if it is a valid artifact name, or raise InvalidName"""
    if not isinstance(name, str) or not NAME_PATTERN.fullmatch(name):
        raise InvalidName(name)
    return name


def dumps(obj) -> str:
    """Stable JSON text: sorted keys, two-space indent, trailing newline"""
    return json.dumps(obj, indent=2, sort_keys=True) + "\n"


def ensure_dir(directory: Path) -> Path:
    try:
        directory.mkdir(parents=True, exist_ok=True)
    except OSError as exc:
        raise IOFailure(directory, exc) from exc
    return directory


def atomic_write(path: Path, text: str):
    """Write TEXT to PATH atomically"""
    ensure_dir(path.parent)
    tmp = path.with_name(f".{path.name}.{os.getpid()}.{threading.get_ident()}.tmp")
    try:
        with open(tmp, "w", encoding="utf-8") as f:
            f.write(text)
            f.flush()
            os.fsync(f.fileno())
        os.replace(tmp, path)
    except OSError as exc:
        try:
            tmp.unlink()
        except OSError:
            pass
        raise IOFailure(path, exc) from exc
    LOG.debug("Wrote %s", path)


def read_text(path: Path) -> str:
    try:
        with open(path, encoding="utf-8") as f:
            return f.read()
    except OSError as exc:
        raise IOFailure(path, exc) from exc


def read_json(path: Path) -> dict:
    text = read_text(path)
    try:
        data = json.loads(text)
    except ValueError as exc:
        raise MalformedData(f"{path} is not valid JSON ({exc})", "") from exc
    if not isinstance(data, dict):
        raise MalformedData(f"{path} does not hold a JSON object", "")
    return data


def remove(path: Path):
    try:
        path.unlink()
    except OSError as exc:
        raise IOFailure(path, exc) from exc


def json_files(directory: Path) -> list:
    """Visible *.json files in DIRECTORY (empty if it doesn't exist)"""
    if not directory.is_dir():
        return []
    try:
        return sorted(
            p
            for p in directory.iterdir()
            if p.suffix.lower() == ".json" and not p.name.startswith(".")
        )
    except OSError as exc:
        raise IOFailure(directory, exc) from exc
