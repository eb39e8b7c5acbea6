"""Local filesystem operations used when applying a download."""

import logging
from pathlib import Path
from typing import Optional

from ..environment import PATH_DELIMITER
from ..exceptions import GistSyncError

logger = logging.getLogger(__name__)


class SyncOperations:
    """Reads and writes local files on behalf of the sync engine."""

    def read_file(self, file_path: Path) -> Optional[str]:
        """Read a text file, or return None if it does not exist."""
        if not file_path.is_file():
            return None
        with open(file_path, encoding="utf-8", newline="") as f:
            return f.read()

    def write_file(self, file_path: Path, content: str) -> bool:
        """Write a text file.

        Args:
            file_path: Destination path (its folder must exist)
            content: Text to write

        Returns:
            False if there was nothing to write, True otherwise

        Raises:
            OSError: If the file cannot be written
        """
        if not content:
            logger.warning(f"Unable to write file {file_path}: no content")
            return False
        with open(file_path, "w", encoding="utf-8", newline="") as f:
            f.write(content)
        logger.debug("Wrote %s (%d chars)", file_path, len(content))
        return True

    def create_dir_tree(self, user_folder: Path, gist_name: str) -> Path:
        """Rebuild the local path of a flattened remote key.

        ``a|b|c.json`` becomes ``<user_folder>/a/b/c.json``; missing folders
        are created.

        Returns:
            Destination file path

        Raises:
            GistSyncError: If the key does not map to a path below the folder
        """
        segments = gist_name.split(PATH_DELIMITER)
        for segment in segments:
            if (
                segment in ("", ".", "..")
                or "/" in segment
                or "\\" in segment
                or Path(segment).is_absolute()
            ):
                raise GistSyncError(f"Invalid remote file name: {gist_name}")

        root = user_folder.resolve()
        try:
            user_folder.joinpath(*segments).resolve().relative_to(root)
        except ValueError as e:
            raise GistSyncError(
                f"Remote file {gist_name} is outside {user_folder}"
            ) from e

        directory = user_folder.joinpath(*segments[:-1])
        directory.mkdir(parents=True, exist_ok=True)
        return directory / segments[-1]

    def create_custom_dir_tree(self, file_path: Path) -> Path:
        """Ensure the parent folder of a custom file exists."""
        file_path.parent.mkdir(parents=True, exist_ok=True)
        return file_path
