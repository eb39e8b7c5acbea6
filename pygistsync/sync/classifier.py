"""Classification of remote keys for download routing."""

from dataclasses import dataclass
from enum import Enum
from typing import Optional

from ..environment import CUSTOMIZED_SYNC_PREFIX, Environment


class EntryKind(str, Enum):
    """What a remote gist entry holds."""

    SETTINGS = "settings"
    """The primary settings.json (passes through the pragma hook)"""

    KEYBINDING = "keybinding"
    """keybindings.json or keybindingsMac.json"""

    CUSTOM_FILE = "custom_file"
    """An operator-declared file outside the User folder"""

    EXTENSION_LIST = "extension_list"
    """The serialized list of installed extensions"""

    MARKER = "marker"
    """The cloudSettings marker document"""

    OTHER = "other"
    """Any other file below the User folder (snippets, launch.json, ...)"""

    UNSUPPORTED = "unsupported"
    """Keys without an extension that are neither custom nor the marker"""


def classify_key(gist_name: str, env: Environment) -> EntryKind:
    """Classify a remote key once, so callers can dispatch on the kind.

    Examples:
        >>> env = Environment.detect()
        >>> classify_key("|customized_sync|myrc", env)
        <EntryKind.CUSTOM_FILE: 'custom_file'>
        >>> classify_key("snippets|python.json", env)
        <EntryKind.OTHER: 'other'>
    """
    if gist_name.startswith(CUSTOMIZED_SYNC_PREFIX):
        return EntryKind.CUSTOM_FILE
    if gist_name == env.file_cloudsettings_name:
        return EntryKind.MARKER
    if gist_name == env.file_extension_name:
        return EntryKind.EXTENSION_LIST
    if gist_name == env.file_setting_name:
        return EntryKind.SETTINGS
    if gist_name in (env.file_keybinding_default, env.file_keybinding_mac):
        return EntryKind.KEYBINDING
    if "." in gist_name:
        return EntryKind.OTHER
    return EntryKind.UNSUPPORTED


@dataclass
class RoutingDecision:
    """Where one remote entry goes on download."""

    gist_name: str
    kind: EntryKind
    accepted: bool
    reason: str
    custom_name: Optional[str] = None
    """Logical name for CUSTOM_FILE entries (prefix stripped)"""


def route_entry(
    gist_name: str,
    content: Optional[str],
    env: Environment,
    custom_files: dict[str, str],
) -> RoutingDecision:
    """Decide whether a remote entry produces a local file.

    Entries with empty content, unmapped custom files, unsupported keys,
    the marker and the keybindings variant of the other OS family are
    rejected.
    """
    kind = classify_key(gist_name, env)

    if not content:
        return RoutingDecision(gist_name, kind, False, "Empty content")

    if kind == EntryKind.MARKER:
        return RoutingDecision(gist_name, kind, False, "Marker document")

    if kind == EntryKind.UNSUPPORTED:
        return RoutingDecision(gist_name, kind, False, "No file extension")

    if kind == EntryKind.CUSTOM_FILE:
        name = gist_name[len(CUSTOMIZED_SYNC_PREFIX) :]
        if name not in custom_files:
            return RoutingDecision(
                gist_name, kind, False, "No custom file mapping", custom_name=name
            )
        return RoutingDecision(gist_name, kind, True, "Custom file", custom_name=name)

    if gist_name == env.foreign_keybinding_gist_name:
        reason = f"Keybindings variant not used on {env.os_type.value}"
        return RoutingDecision(gist_name, kind, False, reason)

    return RoutingDecision(gist_name, kind, True, "Remote file")
