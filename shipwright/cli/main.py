# Author : Eshan Roy <eshanized@proton.me>
# SPDX-License-Identifier: MIT

"""
CLI entrypoint for shipwright.

Every operation is a subcommand of `shipwright`. No interactive prompts.

The global options (--config, --log-level, --dry-run) are inherited by every
subcommand through argparse's parent parser mechanism. Command-line values
override the config file, which overrides built-in defaults.

Usage:
    shipwright <subcommand> [options]
    shipwright matrix --exclude linux-arm64
    shipwright release --binary-name demo --version v1.2.3 --repository me/demo
    shipwright verify --output-dir release
"""

import argparse
import sys

from shipwright.cli.commands import (
    handle_build,
    handle_checksums,
    handle_info,
    handle_install_script,
    handle_matrix,
    handle_package,
    handle_release,
    handle_validate,
    handle_verify,
)
from shipwright.cli.exit_codes import USER_ERROR


def _build_global_parser() -> argparse.ArgumentParser:
    """
    Build the parent parser with global options.

    A separate parent parser (add_help=False) keeps help text from colliding
    between the parent and the subcommand parsers.
    """
    parent = argparse.ArgumentParser(add_help=False)
    parent.add_argument(
        "--config",
        type=str,
        default=None,
        help="Path to YAML configuration file.",
    )
    parent.add_argument(
        "--log-level",
        type=str,
        default=None,
        dest="log_level",
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        help="Set the logging verbosity level (overrides the config file).",
    )
    parent.add_argument(
        "--dry-run",
        action="store_true",
        default=False,
        dest="dry_run",
        help="Log system changes (package installs) instead of making them.",
    )
    return parent


def _add_identity_options(parser: argparse.ArgumentParser, *, platform: bool = False) -> None:
    parser.add_argument("--binary-name", dest="binary_name", default=None, help="Cargo binary target name.")
    parser.add_argument("--version", dest="version", default=None, help="Release version tag, e.g. v1.2.3.")
    if platform:
        parser.add_argument("--platform", dest="platform", default=None, help="Platform id, e.g. linux-x86_64.")


def _add_matrix_options(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "--include",
        default=None,
        help="Custom matrix as a JSON array of {target, os, platform} objects.",
    )
    parser.add_argument(
        "--platforms",
        default=None,
        help="Comma-separated platform ids picked from the default and extended tables.",
    )
    parser.add_argument(
        "--exclude",
        action="append",
        default=None,
        help="Comma-separated platform ids to drop (repeatable).",
    )


def _add_build_options(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--tool-args", dest="tool_args", default=None, help="Extra cargo build arguments.")
    parser.add_argument(
        "--toolchain-version",
        dest="toolchain_version",
        default=None,
        help="stable, beta, nightly or a version number.",
    )
    parser.add_argument("--project-dir", dest="project_dir", default=None, help="Cargo project root.")
    parser.add_argument("--output-dir", dest="output_dir", default=None, help="Release asset directory.")
    parser.add_argument(
        "--timeout",
        dest="timeout_seconds",
        type=int,
        default=None,
        help="Per external command timeout in seconds.",
    )


def _add_packaging_options(parser: argparse.ArgumentParser) -> None:
    for flag, dest, text in (
        ("--no-standalone", "create_standalone", "Skip the standalone binary copy."),
        ("--no-archive", "create_archive", "Skip the tar.gz / zip archive."),
        ("--no-readme", "include_readme", "Leave README.md out of the archive."),
        ("--no-license", "include_license", "Leave LICENSE out of the archive."),
    ):
        parser.add_argument(flag, dest=dest, action="store_false", default=None, help=text)


def _register_subcommands(
    subparsers: argparse._SubParsersAction,  # type: ignore[type-arg]
    parent: argparse.ArgumentParser,
) -> None:
    """
    Register all subcommands with their handler functions.

    Each subcommand gets the global options from the parent parser and sets
    its handler via set_defaults(func=...).
    """
    validate = subparsers.add_parser("validate", parents=[parent], help="Validate release inputs.")
    _add_identity_options(validate, platform=True)
    validate.add_argument("--repository", default=None, help="owner/repo")
    validate.add_argument("--tool-args", dest="tool_args", default=None, help="Extra cargo build arguments.")
    validate.add_argument("--toolchain-version", dest="toolchain_version", default=None)
    validate.set_defaults(func=handle_validate)

    matrix = subparsers.add_parser("matrix", parents=[parent], help="Resolve and print the build matrix.")
    _add_matrix_options(matrix)
    matrix.add_argument("--output", default=None, help="Also write the {\"include\": [...]} JSON to this file.")
    matrix.set_defaults(func=handle_matrix)

    build = subparsers.add_parser("build", parents=[parent], help="Build one platform.")
    _add_identity_options(build, platform=True)
    _add_build_options(build)
    build.set_defaults(func=handle_build)

    package = subparsers.add_parser("package", parents=[parent], help="Package one built platform.")
    _add_identity_options(package, platform=True)
    package.add_argument("--project-dir", dest="project_dir", default=None, help="Where to look for a LICENSE.")
    package.add_argument("--output-dir", dest="output_dir", default=None, help="Release asset directory.")
    package.add_argument(
        "--build-dir",
        dest="build_dir",
        default=None,
        help="Where `build` put the binary (defaults to <output-dir>/build).",
    )
    _add_packaging_options(package)
    package.set_defaults(func=handle_package)

    release = subparsers.add_parser("release", parents=[parent], help="Build, package and checksum every platform.")
    _add_identity_options(release)
    release.add_argument("--repository", default=None, help="owner/repo used in install scripts")
    _add_matrix_options(release)
    _add_build_options(release)
    _add_packaging_options(release)
    release.add_argument("--max-workers", dest="max_workers", type=int, default=None)
    release.add_argument(
        "--no-install-scripts",
        dest="generate_install_scripts",
        action="store_false",
        default=None,
        help="Don't render install-<platform> scripts.",
    )
    release.add_argument(
        "--enable-npm",
        dest="enable_npm",
        action="store_true",
        default=None,
        help="npm publishing follows this release; NPM_TOKEN must be set.",
    )
    release.add_argument("--fail-fast", dest="fail_fast", action="store_true", default=False)
    release.add_argument(
        "--skip-preflight",
        dest="skip_preflight",
        action="store_true",
        default=False,
        help="Don't check for cargo, rustup and disk space first.",
    )
    release.set_defaults(func=handle_release)

    checksums = subparsers.add_parser("checksums", parents=[parent], help="Write checksums.txt for a directory.")
    checksums.add_argument("--output-dir", dest="output_dir", default=None)
    checksums.add_argument(
        "--external-hasher",
        dest="external_hasher",
        action="store_true",
        default=False,
        help="Hash with sha256sum / shasum / openssl instead of hashlib.",
    )
    checksums.set_defaults(func=handle_checksums)

    verify = subparsers.add_parser("verify", parents=[parent], help="Verify release assets against checksums.txt.")
    verify.add_argument("--output-dir", dest="output_dir", default=None)
    verify.add_argument("--checksum-file", dest="checksum_file", default=None)
    verify.set_defaults(func=handle_verify)

    install = subparsers.add_parser("install-script", parents=[parent], help="Render an install script.")
    _add_identity_options(install, platform=True)
    install.add_argument("--repository", default=None, help="owner/repo")
    install.add_argument("--output-dir", dest="output_dir", default=None)
    install.add_argument("--template-dir", dest="template_dir", default=None)
    install.set_defaults(func=handle_install_script)

    info = subparsers.add_parser("info", parents=[parent], help="Display version and available backends.")
    info.set_defaults(func=handle_info)


def main() -> None:
    """
    Main CLI entrypoint. This is what pyproject.toml's [project.scripts] points to.

    If no subcommand is given, show help and exit with USER_ERROR.
    """
    parent = _build_global_parser()

    root_parser = argparse.ArgumentParser(
        prog="shipwright",
        description="shipwright: cross-platform release builds for Rust binaries.",
        parents=[parent],
    )
    subparsers = root_parser.add_subparsers(dest="command")
    _register_subcommands(subparsers, parent)

    args = root_parser.parse_args()

    if not hasattr(args, "func") or args.func is None:
        root_parser.print_help()
        sys.exit(USER_ERROR)

    exit_code = args.func(args)
    sys.exit(exit_code)


if __name__ == "__main__":
    main()
