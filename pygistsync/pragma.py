"""Host/OS specific annotations in settings.json.

Two annotations are understood, each applying to the line that follows it::

    // @sync os=mac host=work-laptop env=CODE_PROFILE
    "editor.fontSize": 14,

    // @sync-ignore
    "window.zoomLevel": 1,

``@sync`` lines are active only on machines matching every given condition
and are commented out elsewhere when the file is written after a download.
Before upload they are always stored active, so the gist holds one canonical
form. ``@sync-ignore`` lines never leave the machine: they are removed before
upload and restored from the local file after a download.
"""

import logging
import os
import re
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Optional

from .environment import OsType
from .exceptions import PragmaError

logger = logging.getLogger(__name__)

SYNC_PRAGMA = re.compile(r"^\s*//\s*@sync(?:\s+(?P<params>.*?))?\s*$")
IGNORE_PRAGMA = re.compile(r"^\s*//\s*@sync-ignore\b")
COMMENTED_LINE = re.compile(r"^(?P<indent>\s*)//\s?(?P<body>.*)$")
SETTING_KEY = re.compile(r'^\s*(?://\s*)?"(?P<key>[^"]+)"\s*:')

_OS_NAMES = {
    "windows": OsType.WINDOWS,
    "win": OsType.WINDOWS,
    "linux": OsType.LINUX,
    "mac": OsType.MAC,
    "macos": OsType.MAC,
    "osx": OsType.MAC,
}


@dataclass(frozen=True)
class SyncPragma:
    """Conditions of one ``// @sync`` annotation."""

    os_type: Optional[OsType] = None
    host: Optional[str] = None
    env: Optional[str] = None

    @classmethod
    def parse(cls, params: str) -> "SyncPragma":
        """Parse ``key=value`` pairs; unknown keys are ignored.

        Raises:
            PragmaError: If the ``os`` value is not a known OS
        """
        values: dict[str, str] = {}
        for token in params.split():
            if "=" not in token:
                continue
            key, value = token.split("=", 1)
            values[key.strip().lower()] = value.strip()

        os_type: Optional[OsType] = None
        if "os" in values:
            os_type = _OS_NAMES.get(values["os"].lower())
            if os_type is None:
                raise PragmaError(
                    f"Invalid OS in @sync annotation: '{values['os']}' "
                    "(expected windows, linux or mac)"
                )
        return cls(os_type=os_type, host=values.get("host"), env=values.get("env"))

    def matches(
        self,
        os_type: OsType,
        host_name: Optional[str],
        environ: Mapping[str, str],
    ) -> bool:
        if self.os_type is not None and self.os_type != os_type:
            return False
        if self.host is not None:
            if not host_name or self.host.lower() != host_name.strip().lower():
                return False
        if self.env is not None and not environ.get(self.env):
            return False
        return True


def _split_lines(content: str) -> tuple[list[str], str]:
    newline = "\r\n" if "\r\n" in content else "\n"
    return content.replace("\r\n", "\n").split("\n"), newline


def _comment(line: str) -> str:
    if COMMENTED_LINE.match(line):
        return line
    stripped = line.lstrip()
    indent = line[: len(line) - len(stripped)]
    return f"{indent}// {stripped}"


def _uncomment(line: str) -> str:
    match = COMMENTED_LINE.match(line)
    if not match:
        return line
    return f"{match.group('indent')}{match.group('body')}"


def _setting_key(line: str) -> Optional[str]:
    match = SETTING_KEY.match(line)
    return match.group("key") if match else None


def process_before_upload(content: str) -> str:
    """Strip machine-specific state from settings.json before upload.

    Removes ``@sync-ignore`` annotations with their setting line and stores
    every ``@sync`` guarded line uncommented.

    Raises:
        PragmaError: If an ``@sync`` annotation is malformed
    """
    lines, newline = _split_lines(content)
    result: list[str] = []
    index = 0
    while index < len(lines):
        line = lines[index]
        if IGNORE_PRAGMA.match(line):
            # Drop the annotation and the line it guards
            index += 2
            continue
        match = SYNC_PRAGMA.match(line)
        if match:
            SyncPragma.parse(match.group("params") or "")
            result.append(line)
            if index + 1 < len(lines):
                result.append(_uncomment(lines[index + 1]))
            index += 2
            continue
        result.append(line)
        index += 1
    return newline.join(result)


def _local_only_lines(local_content: str) -> list[tuple[str, str]]:
    """Collect ``(annotation, setting line)`` pairs marked ``@sync-ignore``."""
    lines, _ = _split_lines(local_content)
    pairs: list[tuple[str, str]] = []
    for index, line in enumerate(lines[:-1]):
        if IGNORE_PRAGMA.match(line):
            pairs.append((line, lines[index + 1]))
    return pairs


def _insert_after_open_brace(lines: list[str], extra: list[str]) -> list[str]:
    for index, line in enumerate(lines):
        stripped = line.strip()
        if stripped == "{":
            return lines[: index + 1] + extra + lines[index + 1 :]
        if stripped == "{}":
            indent = line[: len(line) - len(line.lstrip())]
            return (
                lines[:index]
                + [f"{indent}{{"]
                + extra
                + [f"{indent}}}"]
                + lines[index + 1 :]
            )
    if not "".join(lines).strip():
        return ["{"] + extra + ["}"]
    logger.warning("settings.json has no opening brace line, local-only lines dropped")
    return lines


def process_before_write(
    local_content: Optional[str],
    new_content: str,
    os_type: OsType,
    host_name: Optional[str],
    environ: Optional[Mapping[str, str]] = None,
) -> str:
    """Prepare downloaded settings.json content for this machine.

    Args:
        local_content: Current local settings.json (None if it does not exist)
        new_content: Content downloaded from the gist
        os_type: OS classification of this machine
        host_name: Host name of this machine (from the descriptor)
        environ: Environment used for ``env=`` conditions (os.environ default)

    Returns:
        Content to write

    Raises:
        PragmaError: If an ``@sync`` annotation is malformed
    """
    environ = os.environ if environ is None else environ
    lines, newline = _split_lines(new_content)
    result: list[str] = []
    index = 0
    while index < len(lines):
        line = lines[index]
        match = SYNC_PRAGMA.match(line)
        if match and index + 1 < len(lines):
            pragma = SyncPragma.parse(match.group("params") or "")
            guarded = lines[index + 1]
            if pragma.matches(os_type, host_name, environ):
                guarded = _uncomment(guarded)
            else:
                guarded = _comment(guarded)
            result.extend([line, guarded])
            index += 2
            continue
        result.append(line)
        index += 1

    if local_content:
        active = [line for line in result if not COMMENTED_LINE.match(line)]
        present = {key for key in map(_setting_key, active) if key}
        extra: list[str] = []
        for annotation, setting in _local_only_lines(local_content):
            key = _setting_key(setting)
            if key is not None and key in present:
                logger.debug("Local-only setting %s also present remotely", key)
                continue
            stripped = setting.rstrip()
            if stripped and not stripped.endswith(","):
                stripped += ","
            extra.extend([annotation, stripped])
        if extra:
            result = _insert_after_open_brace(result, extra)

    return newline.join(result)
