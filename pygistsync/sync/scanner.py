"""Collecting local configuration files for sync operations."""

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from ..environment import CUSTOMIZED_SYNC_PREFIX, PATH_DELIMITER, USER_FOLDER_NAME
from ..exceptions import GistSyncNotFoundError
from ..utils import DEFAULT_SCAN_DEPTH

logger = logging.getLogger(__name__)


@dataclass
class SettingFile:
    """A file taking part in one sync operation."""

    file_name: str
    """Display name (base name for collected files)"""

    content: str
    """Text content (may be empty)"""

    file_path: Optional[Path]
    """Absolute local path (None for synthetic documents and for entries
    that are placed below the User folder on download)"""

    gist_name: str
    """Remote key of the file inside the gist"""


def file_extension(file_name: str) -> Optional[str]:
    """Lower-cased text after the last dot, or None without a dot.

    Examples:
        >>> file_extension("settings.JSON")
        'json'
        >>> file_extension("python.code-snippets")
        'code-snippets'
        >>> file_extension("Makefile") is None
        True
    """
    if "." not in file_name:
        return None
    return file_name.rsplit(".", 1)[1].lower()


def flatten_path(
    file_path: Path, root: Optional[Path] = None, sentinel: str = USER_FOLDER_NAME
) -> str:
    """Build the remote key for a file below the configuration root.

    The path segments below ``root`` are joined with ``|``, so
    ``.../User/snippets/python.json`` becomes ``snippets|python.json``.
    Without a root, the segments following the last ``sentinel`` folder
    are used, and failing that the base name.

    Examples:
        >>> flatten_path(Path("/c/User/a/b.json"), Path("/c/User"))
        'a|b.json'
        >>> flatten_path(Path("/c/User/settings.json"))
        'settings.json'
    """
    if root is not None:
        try:
            return PATH_DELIMITER.join(file_path.relative_to(root).parts)
        except ValueError:
            logger.debug("%s is not below %s", file_path, root)

    parts = file_path.parts
    sentinel_indexes = [i for i, part in enumerate(parts[:-1]) if part == sentinel]
    if sentinel_indexes:
        return PATH_DELIMITER.join(parts[sentinel_indexes[-1] + 1 :])
    return file_path.name


class FileScanner:
    """Walks the editor's User folder and loads allow-listed files.

    Examples:
        >>> scanner = FileScanner()
        >>> files = scanner.list_files(Path("~/.config/Code/User").expanduser())
        >>> for f in files:
        ...     print(f.gist_name)
    """

    def __init__(self, sentinel: str = USER_FOLDER_NAME):
        """Initialize the scanner.

        Args:
            sentinel: Name of the configuration root folder used when
                building remote keys
        """
        self.sentinel = sentinel

    def is_allowed(self, file_name: str, file_extensions: tuple[str, ...]) -> bool:
        """Check a file name against the extension allow-list.

        Files without an extension are allowed when "" is allow-listed.
        """
        extension = file_extension(file_name)
        allowed = {ext.lower() for ext in file_extensions}
        if extension is None:
            return "" in allowed
        return extension in allowed

    def list_files(
        self,
        directory: Path,
        depth: int = 0,
        full_depth: int = DEFAULT_SCAN_DEPTH,
        file_extensions: tuple[str, ...] = ("json",),
        root: Optional[Path] = None,
    ) -> list[SettingFile]:
        """List allow-listed files, recursing while ``depth < full_depth``.

        Args:
            directory: Directory to scan
            depth: Depth of ``directory`` below the scan root (0 for the root)
            full_depth: Maximum depth to recurse into
            file_extensions: Allowed extensions (lower-case, without dot)
            root: Scan root (defaults to ``directory``)

        Returns:
            List of SettingFile objects, sorted by path within each folder

        Raises:
            GistSyncNotFoundError: If ``directory`` does not exist
        """
        if root is None:
            root = directory
        if not directory.is_dir():
            raise GistSyncNotFoundError(f"Directory does not exist: {directory}")

        files: list[SettingFile] = []

        for item in sorted(directory.iterdir()):
            if item.is_dir():
                if depth < full_depth:
                    files.extend(
                        self.list_files(
                            item, depth + 1, full_depth, file_extensions, root
                        )
                    )
                else:
                    logger.debug("Not descending into %s (depth %d)", item, depth)
                continue

            if not self.is_allowed(item.name, file_extensions):
                continue

            setting_file = self.get_file(item, item.name, root)
            if setting_file is not None:
                files.append(setting_file)

        return files

    def get_file(
        self, file_path: Path, file_name: str, root: Optional[Path] = None
    ) -> Optional[SettingFile]:
        """Load one file below the configuration root.

        Returns:
            SettingFile, or None if the file is missing or unreadable
        """
        content = self._read(file_path)
        if content is None:
            return None
        gist_name = flatten_path(file_path, root, self.sentinel)
        return SettingFile(file_name, content, file_path, gist_name)

    def get_custom_file(self, file_path: Path, name: str) -> Optional[SettingFile]:
        """Load an operator-declared file from outside the User folder.

        Returns:
            SettingFile keyed ``|customized_sync|<name>``, or None if missing
        """
        content = self._read(file_path)
        if content is None:
            return None
        return SettingFile(name, content, file_path, CUSTOMIZED_SYNC_PREFIX + name)

    def _read(self, file_path: Path) -> Optional[str]:
        if not file_path.is_file():
            return None
        try:
            # newline="" keeps line endings byte-identical
            with open(file_path, encoding="utf-8", newline="") as f:
                return f.read()
        except (OSError, UnicodeDecodeError) as e:
            # Skip files we can't read
            logger.warning(f"Could not read {file_path}: {e}")
            return None
