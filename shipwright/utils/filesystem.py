# Author : Eshan Roy <eshanized@proton.me>
# SPDX-License-Identifier: MIT

"""
Safe filesystem operations for shipwright.

Release assets are published as-is, so a half-written manifest or checksum
file is worse than none. Writes go to a temp file in the target directory
and are renamed into place. The temp name starts with a dot so the checksum
scanner never picks it up.
"""

import os
import tempfile
from pathlib import Path
from typing import Optional


def atomic_write(
    target_path: Path,
    content: str,
    encoding: str = "utf-8",
    mode: Optional[int] = None,
) -> None:
    """
    Write content to a file atomically, optionally setting its permission bits.

    Args:
        target_path: Where the final file should end up.
        content: The string content to write.
        encoding: Text encoding to use.
        mode: Permission bits applied before the rename (e.g. 0o755 for scripts).

    Raises:
        OSError: If the write or rename fails.
    """
    target_path.parent.mkdir(parents=True, exist_ok=True)

    # delete=False because the file has to survive closing so it can be renamed.
    temp_fd = tempfile.NamedTemporaryFile(
        mode="w",
        encoding=encoding,
        dir=str(target_path.parent),
        prefix=".shipwright_tmp_",
        suffix=".tmp",
        delete=False,
        newline="\n",
    )
    temp_path = Path(temp_fd.name)

    try:
        temp_fd.write(content)
        temp_fd.flush()
        temp_fd.close()
        if mode is not None:
            os.chmod(temp_path, mode)
        temp_path.replace(target_path)
    except BaseException:
        temp_fd.close()
        if temp_path.exists():
            temp_path.unlink()
        raise


def make_executable(path: Path) -> None:
    """Add the execute bits (user/group/other) without touching anything else."""
    current = path.stat().st_mode
    path.chmod(current | 0o111)


def is_executable(path: Path) -> bool:
    return os.access(path, os.X_OK)
