"""Editor environment: OS classification, folder layout and fixed file names."""

import os
import platform
import sys
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Optional


class OsType(str, Enum):
    """Operating system classification used for keybindings and pragmas."""

    WINDOWS = "windows"
    LINUX = "linux"
    MAC = "mac"

    @classmethod
    def detect(cls, sys_platform: Optional[str] = None) -> "OsType":
        """Classify ``sys.platform`` (or the given value)."""
        value = sys_platform or sys.platform
        if value.startswith("win") or value == "cygwin":
            return cls.WINDOWS
        if value == "darwin":
            return cls.MAC
        return cls.LINUX


# Name of the folder every configuration file lives under
USER_FOLDER_NAME = "User"

# Marker prepended to the remote key of operator-declared custom files
CUSTOMIZED_SYNC_PREFIX = "|customized_sync|"

# Delimiter used to flatten nested paths into one remote key
PATH_DELIMITER = "|"

# Identifier of the editor extension this tool stands in for; never removed
SELF_EXTENSION_ID = "Shan.code-settings-sync"


def default_user_folder(os_type: OsType, editor: str = "Code") -> Path:
    """Return the editor's ``User`` folder for the given OS."""
    home = Path.home()
    if os_type == OsType.WINDOWS:
        base = Path(os.environ.get("APPDATA", home / "AppData" / "Roaming"))
    elif os_type == OsType.MAC:
        base = home / "Library" / "Application Support"
    else:
        base = Path(os.environ.get("XDG_CONFIG_HOME", home / ".config"))
    return base / editor / USER_FOLDER_NAME


def default_extensions_folder() -> Path:
    """Return the folder the editor installs extensions into."""
    return Path.home() / ".vscode" / "extensions"


@dataclass(frozen=True)
class Environment:
    """Immutable description of the machine-side editor installation.

    Holds everything the reconcilers previously read from shared state:
    the OS classification, the host name used by pragmas, the folder layout
    and the fixed file names.
    """

    user_folder: Path
    extensions_folder: Path
    os_type: OsType
    host_name: Optional[str] = None

    file_setting_name: str = "settings.json"
    file_keybinding_name: str = "keybindings.json"
    file_keybinding_default: str = "keybindings.json"
    file_keybinding_mac: str = "keybindingsMac.json"
    file_extension_name: str = "extensions.json"
    file_cloudsettings_name: str = "cloudSettings"
    file_customizedsettings_name: str = "syncLocalSettings.json"

    self_extension_id: str = field(default=SELF_EXTENSION_ID)

    @classmethod
    def detect(
        cls,
        user_folder: Optional[Path] = None,
        extensions_folder: Optional[Path] = None,
        host_name: Optional[str] = None,
        os_type: Optional[OsType] = None,
    ) -> "Environment":
        """Build the environment for the running machine.

        Args:
            user_folder: Override for the editor ``User`` folder
            extensions_folder: Override for the extensions folder
            host_name: Override for the host name (defaults to platform.node())
            os_type: Override for the OS classification

        Returns:
            Environment instance
        """
        detected_os = os_type or OsType.detect()
        return cls(
            user_folder=Path(user_folder or default_user_folder(detected_os)),
            extensions_folder=Path(extensions_folder or default_extensions_folder()),
            os_type=detected_os,
            host_name=host_name or platform.node() or None,
        )

    @property
    def is_mac(self) -> bool:
        return self.os_type == OsType.MAC

    @property
    def file_customizedsettings(self) -> Path:
        """Absolute path of the custom settings descriptor."""
        return self.user_folder / self.file_customizedsettings_name

    @property
    def file_extension(self) -> Path:
        """Absolute path of the serialized extension list."""
        return self.user_folder / self.file_extension_name

    @property
    def keybinding_gist_name(self) -> str:
        """Remote key the local keybindings file is uploaded under."""
        if self.is_mac:
            return self.file_keybinding_mac
        return self.file_keybinding_default

    @property
    def foreign_keybinding_gist_name(self) -> str:
        """Remote key of the keybindings variant for the other OS family."""
        if self.is_mac:
            return self.file_keybinding_default
        return self.file_keybinding_mac


@dataclass(frozen=True)
class SyncContext:
    """Per-operation context threaded through every engine call."""

    environment: Environment
    user_name: Optional[str] = None
    """Login of the authenticated user (None when unknown)"""
