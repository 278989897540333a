"""Content addresses of memory images

A content address depends only on the memory image: two programs with the same
words share an address regardless of their names, labels or creation time.
"""

import hashlib
import struct
from typing import Sequence

from .machine.types import MEMORY_SIZE, Program, pad_image

# 64-bit little-endian words
_IMAGE_FORMAT = "<%dq" % MEMORY_SIZE


def content_address(image: Sequence[int]) -> str:
    """SHA-256 hex digest of a memory image"""
    data = struct.pack(_IMAGE_FORMAT, *pad_image(image))
    return hashlib.sha256(data).hexdigest()


def program_address(program: Program) -> str:
    return content_address(program.memory_image())


def snapshot_address(data: dict) -> str:
    """Content address of a serialised program, without deserialising it"""
    return content_address(data["words"])
