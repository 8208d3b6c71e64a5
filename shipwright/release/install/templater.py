# Author : Eshan Roy <eshanized@proton.me>
# SPDX-License-Identifier: MIT

"""
Install-script templating.

Templates carry five tokens: {{BINARY_NAME}}, {{PLATFORM}}, {{VERSION}},
{{REPO}} and {{BINARY_EXT}}. Rendering is one pass over the template with a
function replacement, so a substituted value is inserted literally. An `&`,
a `\\1` or a `{{VERSION}}` inside a value is never expanded again.

Only ValidatedStrings are accepted as values; they can't hold quotes,
spaces or shell metacharacters, which is what keeps the generated scripts
safe to run.
"""

import logging
import re
from dataclasses import dataclass
from importlib import resources
from pathlib import Path
from typing import Optional

from shipwright.logging.logger import get_logger
from shipwright.release.validation.validator import ValidatedString, ValidationKind
from shipwright.utils.paths import ensure_directory

_logger: logging.Logger = get_logger(__name__)

UNIX_TEMPLATE = "install-unix.sh.template"
WINDOWS_TEMPLATE = "install-windows.ps1.template"

_TOKEN_RE = re.compile(r"\{\{(BINARY_NAME|PLATFORM|VERSION|REPO|BINARY_EXT)\}\}")


@dataclass(frozen=True)
class InstallVariables:
    binary_name: ValidatedString
    platform: ValidatedString
    version: ValidatedString
    repo: ValidatedString
    binary_ext: ValidatedString

    def __post_init__(self) -> None:
        expected = {
            "binary_name": ValidationKind.BINARY_NAME,
            "platform": ValidationKind.PLATFORM,
            "version": ValidationKind.VERSION,
            "repo": ValidationKind.REPOSITORY,
            "binary_ext": ValidationKind.BINARY_EXT,
        }
        for attr, kind in expected.items():
            value = getattr(self, attr)
            if not isinstance(value, ValidatedString) or value.kind is not kind:
                raise TypeError(f"{attr} must be a ValidatedString of kind {kind.name}, got {value!r}")

    @property
    def is_windows(self) -> bool:
        return "windows" in self.platform.value

    def tokens(self) -> dict[str, str]:
        return {
            "BINARY_NAME": self.binary_name.value,
            "PLATFORM": self.platform.value,
            "VERSION": self.version.value,
            "REPO": self.repo.value,
            "BINARY_EXT": self.binary_ext.value,
        }


def render(template: str, variables: InstallVariables) -> str:
    if not isinstance(variables, InstallVariables):
        raise TypeError(f"variables must be InstallVariables, got {type(variables).__name__}")
    values = variables.tokens()
    return _TOKEN_RE.sub(lambda match: values[match.group(1)], template)


def script_filename(platform: ValidatedString) -> str:
    ext = ".ps1" if "windows" in platform.value else ".sh"
    return f"install-{platform.value}{ext}"


def load_template(name: str, template_dir: Optional[Path] = None) -> str:
    """
    Read a template from `template_dir`, or from the copies shipped inside
    the package when no directory is given.

    Raises:
        FileNotFoundError: If the template doesn't exist.
    """
    if template_dir is not None:
        path = template_dir / name
        if not path.is_file():
            raise FileNotFoundError(f"Template file not found: {path}")
        return path.read_text(encoding="utf-8")

    packaged = resources.files("shipwright.release.install").joinpath("templates", name)
    if not packaged.is_file():
        raise FileNotFoundError(f"Template file not found: {name}")
    return packaged.read_text(encoding="utf-8")


def generate_install_script(
    variables: InstallVariables,
    output_dir: Path,
    *,
    template_dir: Optional[Path] = None,
) -> Path:
    """
    Render the install script for one platform into `output_dir`.

    Writes install-<platform>.sh (executable) or, for windows platforms,
    install-<platform>.ps1.
    """
    template_name = WINDOWS_TEMPLATE if variables.is_windows else UNIX_TEMPLATE
    content = render(load_template(template_name, template_dir), variables)

    ensure_directory(output_dir)
    output_path = output_dir / script_filename(variables.platform)
    output_path.write_text(content, encoding="utf-8", newline="\n")
    if not variables.is_windows:
        output_path.chmod(0o755)

    _logger.info(
        "Generated installation script",
        extra={"path": str(output_path), "platform": variables.platform.value},
    )
    return output_path
