# Author : Eshan Roy <eshanized@proton.me>
# SPDX-License-Identifier: MIT

"""
Build executor: compile one binary for one platform and collect the result.

For a single (binary, platform) pair:
  1. `rustup target add` the triple (no-op when already installed)
  2. `cargo build --bin <name> --target <triple> <tool args>` with the
     provisioned cross-compilation env layered on top
  3. Find the binary under target/<triple>/release, falling back to debug
  4. Copy it to <output_dir>/<name>-<platform><ext> and set the exec bit
     for non-Windows targets (copy2 keeps the source mode, which isn't
     guaranteed to be executable)
  5. Write a <output>.meta JSON sidecar describing the build

Commands run as argv lists; tool arguments are split with shlex after
validation and never pass through a shell. A failure here fails this
platform's lane only.
"""

import json
import logging
import os
import shutil
import threading
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Mapping, Optional

from shipwright.logging.logger import get_logger
from shipwright.release.exceptions import ArtifactNotFoundError, BuildError
from shipwright.release.matrix.resolver import PlatformSpec
from shipwright.release.validation.validator import ValidatedString, ValidationKind
from shipwright.utils.command import CommandRunner, format_argv, run_command
from shipwright.utils.filesystem import atomic_write

_logger: logging.Logger = get_logger(__name__)

META_SUFFIX = ".meta"

# Raw binaries live here, under the release directory, until packaged.
BUILD_SUBDIR = "build"

# rustup locks its own toolchain directory; parallel lanes queue here instead.
_rustup_lock = threading.Lock()


@dataclass(frozen=True)
class BuildArtifact:
    """A compiled binary sitting in the output directory, ready for packaging."""

    binary_name: ValidatedString
    platform_id: ValidatedString
    target_triple: str
    path: Path
    size_bytes: int
    built_at: str
    binary_ext: str
    archive_ext: str
    metadata_path: Optional[Path] = None

    @property
    def is_windows(self) -> bool:
        return "windows" in self.target_triple


def _require_kind(value: object, kind: ValidationKind, name: str) -> ValidatedString:
    if not isinstance(value, ValidatedString) or value.kind is not kind:
        raise TypeError(f"{name} must be a ValidatedString of kind {kind.name}, got {value!r}")
    return value


def cargo_target_dir(project_dir: Path, env: Optional[Mapping[str, str]] = None) -> Path:
    """Where cargo writes build output: CARGO_TARGET_DIR if set, else <project>/target."""
    override = (env or {}).get("CARGO_TARGET_DIR") or os.environ.get("CARGO_TARGET_DIR")
    if override:
        path = Path(override)
        return path if path.is_absolute() else project_dir / path
    return project_dir / "target"


def candidate_paths(
    binary_name: str,
    target_triple: str,
    binary_ext: str,
    target_dir: Path,
) -> list[Path]:
    """Release location first, then the debug fallback."""
    filename = f"{binary_name}{binary_ext}"
    return [
        target_dir / target_triple / "release" / filename,
        target_dir / target_triple / "debug" / filename,
    ]


def locate_artifact(binary_name: str, searched: list[Path]) -> Path:
    for candidate in searched:
        if candidate.is_file():
            return candidate
    raise ArtifactNotFoundError(binary_name, searched)


def output_filename(binary_name: str, platform_id: str, binary_ext: str) -> str:
    return f"{binary_name}-{platform_id}{binary_ext}"


def _toolchain_version(runner: CommandRunner, toolchain: Optional[str], timeout: Optional[float]) -> str:
    argv = ["rustc", f"+{toolchain}", "--version"] if toolchain else ["rustc", "--version"]
    result = runner(argv, timeout_seconds=timeout)
    if result.ok and result.stdout.strip():
        return result.stdout.strip()
    return "unknown"


def ensure_target_installed(
    target_triple: str,
    *,
    toolchain: Optional[str] = None,
    runner: CommandRunner = run_command,
    timeout_seconds: Optional[float] = None,
) -> None:
    """`rustup target add` is idempotent, so this runs unconditionally."""
    argv = ["rustup", "target", "add"]
    if toolchain:
        argv += ["--toolchain", toolchain]
    argv.append(target_triple)
    with _rustup_lock:
        result = runner(argv, timeout_seconds=timeout_seconds)
    if not result.ok:
        raise BuildError(f"Failed to add target {target_triple}: {format_argv(argv)}", result.stderr)
    _logger.info("Rust target available", extra={"target": target_triple})


def build_binary(
    binary_name: ValidatedString,
    spec: PlatformSpec,
    tool_args: ValidatedString,
    output_dir: Path,
    *,
    project_dir: Path,
    toolchain_version: Optional[ValidatedString] = None,
    env: Optional[Mapping[str, str]] = None,
    runner: CommandRunner = run_command,
    timeout_seconds: Optional[float] = None,
) -> BuildArtifact:
    """
    Compile `binary_name` for `spec` and drop the result into `output_dir`.

    Args:
        binary_name: Validated cargo binary target name.
        spec: Matrix row being built.
        tool_args: Validated extra cargo arguments (may be empty).
        output_dir: Release asset directory.
        project_dir: Cargo project root; cargo runs here.
        toolchain_version: Validated toolchain selector (stable, 1.75.0, ...).
        env: Cross-compilation variables from the provisioner.
        runner: Command runner (swapped out in tests).
        timeout_seconds: Per-command limit.

    Returns:
        BuildArtifact describing the copied binary.

    Raises:
        BuildError: Target installation or compilation failed.
        ArtifactNotFoundError: Compilation succeeded but no binary was found.
    """
    _require_kind(binary_name, ValidationKind.BINARY_NAME, "binary_name")
    _require_kind(tool_args, ValidationKind.TOOL_ARGS, "tool_args")
    toolchain: Optional[str] = None
    if toolchain_version is not None:
        toolchain = _require_kind(
            toolchain_version, ValidationKind.TOOLCHAIN_VERSION, "toolchain_version"
        ).value

    name = binary_name.value
    target = spec.target_triple
    platform_id = spec.platform_id.value
    build_env = dict(env or {})

    _logger.info(
        "Building binary",
        extra={"binary_name": name, "target": target, "platform": platform_id},
    )

    ensure_target_installed(target, toolchain=toolchain, runner=runner, timeout_seconds=timeout_seconds)

    argv = ["cargo"]
    if toolchain:
        argv.append(f"+{toolchain}")
    argv += ["build", "--bin", name, "--target", target, *tool_args.as_argv()]

    result = runner(argv, cwd=project_dir, env=build_env, timeout_seconds=timeout_seconds)
    if not result.ok:
        _logger.error(
            "Build failed",
            extra={"platform": platform_id, "exit_code": result.returncode, "command": format_argv(argv)},
        )
        raise BuildError(f"Build failed for {platform_id}: {format_argv(argv)}", result.stderr)

    searched = candidate_paths(name, target, spec.binary_ext, cargo_target_dir(project_dir, build_env))
    source = locate_artifact(name, searched)

    output_dir.mkdir(parents=True, exist_ok=True)
    destination = output_dir / output_filename(name, platform_id, spec.binary_ext)
    shutil.copy2(str(source), str(destination))
    if not spec.is_windows:
        destination.chmod(0o755)

    size_bytes = source.stat().st_size
    built_at = datetime.now(tz=timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")

    metadata = {
        "binary_name": name,
        "target": target,
        "platform": platform_id,
        "output_path": str(destination),
        "binary_size": size_bytes,
        "tool_args": tool_args.value,
        "binary_ext": spec.binary_ext,
        "archive_ext": spec.archive_ext,
        "build_timestamp": built_at,
        "requested_toolchain": toolchain or "default",
        "toolchain_version": _toolchain_version(runner, toolchain, timeout_seconds),
    }
    metadata_path = destination.with_name(destination.name + META_SUFFIX)
    atomic_write(metadata_path, json.dumps(metadata, indent=2) + "\n")

    _logger.info(
        "Build completed",
        extra={
            "platform": platform_id,
            "output": str(destination),
            "size_bytes": size_bytes,
            "source": str(source),
        },
    )

    return BuildArtifact(
        binary_name=binary_name,
        platform_id=spec.platform_id,
        target_triple=target,
        path=destination,
        size_bytes=size_bytes,
        built_at=built_at,
        binary_ext=spec.binary_ext,
        archive_ext=spec.archive_ext,
        metadata_path=metadata_path,
    )


def load_artifact(
    binary_name: ValidatedString,
    spec: PlatformSpec,
    output_dir: Path,
) -> BuildArtifact:
    """
    Describe a binary built earlier into `output_dir`, reading its .meta
    sidecar when present.

    Raises:
        ArtifactNotFoundError: No <name>-<platform><ext> in output_dir.
    """
    _require_kind(binary_name, ValidationKind.BINARY_NAME, "binary_name")
    path = output_dir / output_filename(binary_name.value, spec.platform_id.value, spec.binary_ext)
    if not path.is_file():
        raise ArtifactNotFoundError(binary_name.value, [path])

    metadata_path = path.with_name(path.name + META_SUFFIX)
    built_at = ""
    if metadata_path.is_file():
        built_at = str(json.loads(metadata_path.read_text(encoding="utf-8")).get("build_timestamp", ""))
    if not built_at:
        built_at = datetime.fromtimestamp(path.stat().st_mtime, tz=timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")

    return BuildArtifact(
        binary_name=binary_name,
        platform_id=spec.platform_id,
        target_triple=spec.target_triple,
        path=path,
        size_bytes=path.stat().st_size,
        built_at=built_at,
        binary_ext=spec.binary_ext,
        archive_ext=spec.archive_ext,
        metadata_path=metadata_path if metadata_path.is_file() else None,
    )
