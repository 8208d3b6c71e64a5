# Author : Eshan Roy <eshanized@proton.me>
# SPDX-License-Identifier: MIT

"""
Hashing utilities for shipwright.

Every published asset gets a SHA256 digest. These helpers are the in-process
hash backend; the checksum generator can swap in an external utility behind
the same interface.
"""

import hashlib
from pathlib import Path

HASH_ALGORITHM = "sha256"
HASH_BUFFER_SIZE = 65536  # 64 KiB


def compute_sha256(file_path: Path) -> str:
    """
    Compute the SHA256 hex digest of a file.

    Reads in 64 KiB chunks so multi-hundred-megabyte binaries never sit in
    memory at once.

    Raises:
        FileNotFoundError: If the file doesn't exist.
        OSError: If the file can't be read.
    """
    hasher = hashlib.sha256()
    with open(file_path, "rb") as f:
        while True:
            chunk = f.read(HASH_BUFFER_SIZE)
            if not chunk:
                break
            hasher.update(chunk)
    return hasher.hexdigest()


def compute_sha256_bytes(data: bytes) -> str:
    """Compute the SHA256 hex digest of raw bytes."""
    return hashlib.sha256(data).hexdigest()
