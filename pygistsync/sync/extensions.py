"""Installed extensions: enumeration, serialization and diffing."""

import json
import logging
import subprocess
from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Optional

from ..environment import Environment
from ..exceptions import GistSyncError
from .scanner import SettingFile

logger = logging.getLogger(__name__)

# Editor-maintained file listing extension folders pending removal
OBSOLETE_FILE_NAME = ".obsolete"


@dataclass
class ExtensionInformation:
    """One extension, as listed in ``extensions.json``."""

    name: str
    publisher: str
    version: str = ""
    display_name: Optional[str] = None
    uuid: Optional[str] = None
    publisher_id: Optional[str] = None

    @property
    def identifier(self) -> str:
        """``publisher.name`` identifier used by the editor CLI."""
        return f"{self.publisher}.{self.name}"

    def to_dict(self) -> dict[str, Any]:
        return {
            "metadata": {
                "id": self.uuid,
                "publisherId": self.publisher_id,
                "publisherDisplayName": self.publisher,
            },
            "name": self.name,
            "publisher": self.publisher,
            "version": self.version,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "ExtensionInformation":
        metadata = data.get("metadata") or {}
        return cls(
            name=data["name"],
            publisher=data["publisher"],
            version=data.get("version") or "",
            display_name=data.get("displayName"),
            uuid=metadata.get("id"),
            publisher_id=metadata.get("publisherId"),
        )


def _normalized(identifiers: Iterable[str]) -> set[str]:
    return {identifier.lower() for identifier in identifiers}


def parse_extension_list(content: str) -> list[ExtensionInformation]:
    """Parse the content of ``extensions.json``.

    Raises:
        GistSyncError: If the content is not a JSON list of extensions
    """
    try:
        data = json.loads(content)
    except json.JSONDecodeError as e:
        raise GistSyncError(f"Invalid extension list: {e}") from e
    if not isinstance(data, list):
        raise GistSyncError("Invalid extension list: expected a JSON array")

    extensions: list[ExtensionInformation] = []
    for entry in data:
        try:
            extensions.append(ExtensionInformation.from_dict(entry))
        except (KeyError, TypeError, AttributeError):
            logger.warning(f"Skipping malformed extension entry: {entry!r}")
    return extensions


def serialize_extension_list(extensions: Sequence[ExtensionInformation]) -> str:
    return json.dumps([ext.to_dict() for ext in extensions], indent=2)


class ExtensionScanner:
    """Enumerates extensions installed in the editor's extensions folder."""

    def installed_extensions(
        self, extensions_folder: Path
    ) -> list[ExtensionInformation]:
        """Read ``<folder>/*/package.json`` manifests.

        Folders listed in the editor's ``.obsolete`` file and folders without
        a usable manifest are skipped. A missing folder yields an empty list.
        """
        if not extensions_folder.is_dir():
            logger.debug("Extensions folder %s does not exist", extensions_folder)
            return []

        obsolete = self._obsolete_folders(extensions_folder)
        extensions: list[ExtensionInformation] = []

        for folder in sorted(extensions_folder.iterdir()):
            if not folder.is_dir() or folder.name in obsolete:
                continue
            manifest_path = folder / "package.json"
            if not manifest_path.is_file():
                continue
            try:
                with open(manifest_path, encoding="utf-8") as f:
                    manifest = json.load(f)
            except (OSError, json.JSONDecodeError) as e:
                logger.debug("Skipping %s: %s", manifest_path, e)
                continue
            if not manifest.get("name") or not manifest.get("publisher"):
                continue

            metadata = manifest.get("__metadata") or {}
            extensions.append(
                ExtensionInformation(
                    name=manifest["name"],
                    publisher=manifest["publisher"],
                    version=manifest.get("version") or "",
                    display_name=manifest.get("displayName"),
                    uuid=metadata.get("id"),
                    publisher_id=metadata.get("publisherId"),
                )
            )

        logger.debug(
            "Found %d installed extension(s) in %s", len(extensions), extensions_folder
        )
        return extensions

    def _obsolete_folders(self, extensions_folder: Path) -> set[str]:
        obsolete_file = extensions_folder / OBSOLETE_FILE_NAME
        if not obsolete_file.is_file():
            return set()
        try:
            with open(obsolete_file, encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, json.JSONDecodeError):
            return set()
        if not isinstance(data, dict):
            return set()
        return {name for name, flag in data.items() if flag}


def create_extension_file(
    env: Environment,
    installed: Sequence[ExtensionInformation],
    ignored_extensions: Iterable[str],
) -> SettingFile:
    """Build the ``extensions.json`` record uploaded with the settings."""
    ignored = _normalized(ignored_extensions)
    listed = [ext for ext in installed if ext.identifier.lower() not in ignored]
    return SettingFile(
        file_name=env.file_extension_name,
        content=serialize_extension_list(listed),
        file_path=env.file_extension,
        gist_name=env.file_extension_name,
    )


def diff_extensions(
    remote_extensions: Sequence[ExtensionInformation],
    installed_extensions: Sequence[ExtensionInformation],
    ignored_extensions: Iterable[str],
    removal_enabled: bool,
    self_identifier: str,
) -> tuple[list[ExtensionInformation], list[ExtensionInformation]]:
    """Compute which extensions to install and which to remove.

    Identifiers are compared case-insensitively. The install list keeps the
    order of the remote list.

    Args:
        remote_extensions: Extensions listed in the gist
        installed_extensions: Extensions installed locally
        ignored_extensions: Identifiers never installed or removed
        removal_enabled: Whether locally installed extensions missing from
            the gist should be removed
        self_identifier: Identifier of the sync extension itself (never removed)

    Returns:
        Tuple of (to_add, to_remove)
    """
    ignored = _normalized(ignored_extensions)
    installed_ids = _normalized(ext.identifier for ext in installed_extensions)
    remote_ids = _normalized(ext.identifier for ext in remote_extensions)

    to_add = [
        ext
        for ext in remote_extensions
        if ext.identifier.lower() not in installed_ids
        and ext.identifier.lower() not in ignored
    ]

    to_remove: list[ExtensionInformation] = []
    if removal_enabled:
        to_remove = [
            ext
            for ext in installed_extensions
            if ext.identifier.lower() != self_identifier.lower()
            and ext.identifier.lower() not in remote_ids
            and ext.identifier.lower() not in ignored
        ]

    return to_add, to_remove


class EditorCliInstaller:
    """Applies an extension diff through the editor's command line."""

    def __init__(self, command: str = "code", timeout: float = 300.0):
        """Initialize the installer.

        Args:
            command: Editor executable (``code``, ``code-insiders``, ...)
            timeout: Timeout per CLI call in seconds
        """
        self.command = command
        self.timeout = timeout

    def _run(self, *args: str) -> subprocess.CompletedProcess[str]:
        return subprocess.run(
            [self.command, *args],
            check=True,
            capture_output=True,
            text=True,
            timeout=self.timeout,
        )

    def install(self, extension: ExtensionInformation) -> bool:
        try:
            self._run("--install-extension", extension.identifier)
        except (
            subprocess.CalledProcessError,
            subprocess.TimeoutExpired,
            FileNotFoundError,
        ) as e:
            logger.error(f"Failed to install {extension.identifier}: {e}")
            return False
        logger.debug("Installed %s", extension.identifier)
        return True

    def uninstall(self, extension: ExtensionInformation) -> bool:
        try:
            self._run("--uninstall-extension", extension.identifier)
        except (
            subprocess.CalledProcessError,
            subprocess.TimeoutExpired,
            FileNotFoundError,
        ) as e:
            logger.error(f"Failed to uninstall {extension.identifier}: {e}")
            return False
        logger.debug("Uninstalled %s", extension.identifier)
        return True

    def apply(
        self,
        to_add: Sequence[ExtensionInformation],
        to_remove: Sequence[ExtensionInformation],
    ) -> tuple[list[ExtensionInformation], list[ExtensionInformation]]:
        """Install and remove extensions; return the ones that succeeded."""
        added = [ext for ext in to_add if self.install(ext)]
        removed = [ext for ext in to_remove if self.uninstall(ext)]
        return added, removed
