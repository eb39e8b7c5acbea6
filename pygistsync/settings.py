"""Sync settings: the custom settings descriptor, extension config and marker.

The descriptor (``syncLocalSettings.json`` in the editor's User folder) is
mandatory for uploads because it carries the ignore rules and the custom
file mapping. It also records the last upload/download timestamps used for
the staleness check on download.
"""

import json
import logging
from dataclasses import dataclass, field, replace
from datetime import datetime
from pathlib import Path
from typing import Any, Optional

from .exceptions import ConfigurationMissingError, GistSyncError
from .utils import format_iso_timestamp, parse_iso_timestamp

logger = logging.getLogger(__name__)

DEFAULT_GIST_DESCRIPTION = "Visual Studio Code Settings Sync Gist"

DEFAULT_IGNORE_UPLOAD_FILES = (
    "state.*",
    "syncLocalSettings.json",
    ".DS_Store",
    "sync.lock",
    "projects.json",
    "projects_cache_vscode.json",
    "projects_cache_git.json",
    "projects_cache_svn.json",
    "gpm_projects.json",
    "gpm-recentItems.json",
)

DEFAULT_IGNORE_UPLOAD_FOLDERS = ("workspaceStorage",)

DEFAULT_SUPPORTED_FILE_EXTENSIONS = ("json", "code-snippets")


@dataclass(frozen=True)
class CloudSetting:
    """Marker document stored in the gist on every upload."""

    last_upload: Optional[datetime] = None

    def to_json(self) -> str:
        """Serialize to the ``{"lastUpload": ...}`` document."""
        value = format_iso_timestamp(self.last_upload) if self.last_upload else None
        return json.dumps({"lastUpload": value})

    @classmethod
    def from_json(cls, content: str) -> "CloudSetting":
        """Parse the marker document; unknown keys are ignored."""
        try:
            data = json.loads(content or "{}")
        except json.JSONDecodeError as e:
            raise GistSyncError(f"Invalid marker document: {e}") from e
        if not isinstance(data, dict):
            raise GistSyncError("Invalid marker document: expected a JSON object")
        return cls(last_upload=parse_iso_timestamp(data.get("lastUpload")))


def _string_list(
    data: dict[str, Any], key: str, default: tuple[str, ...]
) -> tuple[str, ...]:
    value = data.get(key)
    if value is None:
        return tuple(default)
    if not isinstance(value, list) or not all(isinstance(v, str) for v in value):
        raise GistSyncError(
            f"Invalid custom settings: '{key}' must be a list of strings"
        )
    return tuple(value)


def _optional_string(data: dict[str, Any], key: str) -> Optional[str]:
    value = data.get(key)
    if value is not None and not isinstance(value, str):
        raise GistSyncError(f"Invalid custom settings: '{key}' must be a string")
    return value


@dataclass(frozen=True)
class CustomSettings:
    """Contents of the custom settings descriptor."""

    ignore_upload_files: tuple[str, ...] = DEFAULT_IGNORE_UPLOAD_FILES
    """File names never uploaded"""

    ignore_upload_folders: tuple[str, ...] = DEFAULT_IGNORE_UPLOAD_FOLDERS
    """Path substrings never uploaded"""

    ignore_extensions: tuple[str, ...] = ()
    """Extension identifiers excluded from the extension list and diff"""

    supported_file_extensions: tuple[str, ...] = DEFAULT_SUPPORTED_FILE_EXTENSIONS
    """Allow-listed file extensions collected from the User folder"""

    custom_files: dict[str, str] = field(default_factory=dict)
    """Logical name -> absolute path of out-of-tree files to sync"""

    gist_description: str = DEFAULT_GIST_DESCRIPTION
    ask_gist_name: bool = False
    host_name: Optional[str] = None

    last_upload: Optional[datetime] = None
    last_download: Optional[datetime] = None

    def to_dict(self) -> dict[str, Any]:
        """Convert to the descriptor's JSON layout (camelCase keys)."""
        return {
            "ignoreUploadFiles": list(self.ignore_upload_files),
            "ignoreUploadFolders": list(self.ignore_upload_folders),
            "ignoreExtensions": list(self.ignore_extensions),
            "supportedFileExtensions": list(self.supported_file_extensions),
            "customFiles": dict(self.custom_files),
            "gistDescription": self.gist_description,
            "askGistName": self.ask_gist_name,
            "hostName": self.host_name,
            "lastUpload": (
                format_iso_timestamp(self.last_upload) if self.last_upload else None
            ),
            "lastDownload": (
                format_iso_timestamp(self.last_download) if self.last_download else None
            ),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "CustomSettings":
        """Create CustomSettings from the descriptor's JSON layout.

        Missing and null keys fall back to the defaults.

        Raises:
            GistSyncError: If a value has the wrong type
        """
        defaults = cls()
        custom_files = data.get("customFiles") or {}
        if not isinstance(custom_files, dict) or not all(
            isinstance(path, str) and path for path in custom_files.values()
        ):
            raise GistSyncError(
                "Invalid custom settings: 'customFiles' must map names to paths"
            )
        return cls(
            ignore_upload_files=_string_list(
                data, "ignoreUploadFiles", defaults.ignore_upload_files
            ),
            ignore_upload_folders=_string_list(
                data, "ignoreUploadFolders", defaults.ignore_upload_folders
            ),
            ignore_extensions=_string_list(data, "ignoreExtensions", ()),
            supported_file_extensions=tuple(
                ext.lower()
                for ext in _string_list(
                    data, "supportedFileExtensions", defaults.supported_file_extensions
                )
            ),
            custom_files=dict(custom_files),
            gist_description=_optional_string(data, "gistDescription")
            or DEFAULT_GIST_DESCRIPTION,
            ask_gist_name=bool(data.get("askGistName", False)),
            host_name=_optional_string(data, "hostName") or None,
            last_upload=parse_iso_timestamp(_optional_string(data, "lastUpload")),
            last_download=parse_iso_timestamp(_optional_string(data, "lastDownload")),
        )

    def with_last_upload(self, when: datetime) -> "CustomSettings":
        return replace(self, last_upload=when)

    def with_last_download(self, when: Optional[datetime]) -> "CustomSettings":
        return replace(self, last_download=when)


@dataclass(frozen=True)
class ExtensionConfig:
    """Per-user sync options (stored in the pygistsync config file)."""

    gist: Optional[str] = None
    """Id of the gist holding the settings (None until the first upload)"""

    sync_extensions: bool = True
    remove_extensions: bool = False
    force_download: bool = False
    quiet_sync: bool = False
    public_gist: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {
            "gist": self.gist,
            "syncExtensions": self.sync_extensions,
            "removeExtensions": self.remove_extensions,
            "forceDownload": self.force_download,
            "quietSync": self.quiet_sync,
            "publicGist": self.public_gist,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "ExtensionConfig":
        return cls(
            gist=data.get("gist") or None,
            sync_extensions=bool(data.get("syncExtensions", True)),
            remove_extensions=bool(data.get("removeExtensions", False)),
            force_download=bool(data.get("forceDownload", False)),
            quiet_sync=bool(data.get("quietSync", False)),
            public_gist=bool(data.get("publicGist", False)),
        )


def load_custom_settings(path: Path) -> CustomSettings:
    """Load the custom settings descriptor.

    Args:
        path: Path to ``syncLocalSettings.json``

    Returns:
        CustomSettings instance

    Raises:
        ConfigurationMissingError: If the descriptor does not exist
        GistSyncError: If the descriptor is not valid JSON
    """
    if not path.exists():
        raise ConfigurationMissingError(
            f"Custom settings file not found: {path}. "
            "Run 'pygistsync init' to create it."
        )

    try:
        with open(path, encoding="utf-8") as f:
            data = json.load(f)
    except json.JSONDecodeError as e:
        raise GistSyncError(f"Invalid custom settings file {path}: {e}") from e

    if not isinstance(data, dict):
        raise GistSyncError(f"Invalid custom settings file {path}: expected object")

    logger.debug("Loaded custom settings from %s", path)
    return CustomSettings.from_dict(data)


def save_custom_settings(path: Path, settings: CustomSettings) -> None:
    """Write the custom settings descriptor (creating parent folders)."""
    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, "w", encoding="utf-8") as f:
        json.dump(settings.to_dict(), f, indent=2)
    logger.debug("Saved custom settings to %s", path)
