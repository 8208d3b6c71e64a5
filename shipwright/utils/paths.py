# Author : Eshan Roy <eshanized@proton.me>
# SPDX-License-Identifier: MIT

"""
Path utilities for shipwright.

The rules:
  - path traversal must be prevented
  - directory creation must be explicit
"""

from pathlib import Path


def ensure_directory(path: Path) -> Path:
    """Create a directory (and parents) if it doesn't exist. Returns the path for chaining."""
    path.mkdir(parents=True, exist_ok=True)
    return path


def is_within_directory(target: Path, base_dir: Path) -> bool:
    """
    True when `target` resolves to `base_dir` itself or somewhere below it.

    Both sides are resolved first, so `..` segments and symlinks pointing
    outside the base are caught. The comparison is component-wise; a sibling
    like /srv/release-evil is not inside /srv/release.
    """
    resolved_target = target.resolve()
    resolved_base = base_dir.resolve()
    return resolved_target == resolved_base or resolved_target.is_relative_to(resolved_base)
