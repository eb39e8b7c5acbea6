"""Configuration management for pygistsync.

Values are read from environment variables first and fall back to the JSON
config file at ``~/.config/pygistsync/config.json``.
"""

import json
import logging
import os
from pathlib import Path
from typing import Any, Optional

from .settings import ExtensionConfig

logger = logging.getLogger(__name__)

DEFAULT_API_URL = "https://api.github.com"


class Config:
    """Configuration manager for pygistsync."""

    def __init__(self, config_dir: Optional[Path] = None):
        """Initialize configuration.

        Args:
            config_dir: Directory holding config.json
                (defaults to ~/.config/pygistsync)
        """
        self.config_dir = config_dir or Path.home() / ".config" / "pygistsync"
        self.config_file = self.config_dir / "config.json"

    def _load(self) -> dict[str, Any]:
        if not self.config_file.exists():
            return {}
        try:
            with open(self.config_file, encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            logger.warning(f"Failed to read config file {self.config_file}: {e}")
            return {}
        return data if isinstance(data, dict) else {}

    def _save(self, data: dict[str, Any]) -> None:
        self.config_dir.mkdir(parents=True, exist_ok=True)
        with open(self.config_file, "w", encoding="utf-8") as f:
            json.dump(data, f, indent=2)
        # The file holds a token
        try:
            self.config_file.chmod(0o600)
        except OSError:
            logger.debug("Could not restrict permissions on %s", self.config_file)

    def _update(self, **values: Any) -> None:
        data = self._load()
        data.update(values)
        self._save(data)

    @property
    def token(self) -> Optional[str]:
        """GitHub token from GISTSYNC_TOKEN or the config file."""
        return os.environ.get("GISTSYNC_TOKEN") or self._load().get("token")

    @property
    def api_url(self) -> str:
        """API base URL (custom for GitHub Enterprise)."""
        url = os.environ.get("GISTSYNC_API_URL") or self._load().get("api_url")
        return (url or DEFAULT_API_URL).rstrip("/")

    @property
    def user_folder(self) -> Optional[Path]:
        value = os.environ.get("GISTSYNC_USER_FOLDER") or self._load().get(
            "user_folder"
        )
        return Path(value).expanduser() if value else None

    @property
    def extensions_folder(self) -> Optional[Path]:
        value = os.environ.get("GISTSYNC_EXTENSIONS_FOLDER") or self._load().get(
            "extensions_folder"
        )
        return Path(value).expanduser() if value else None

    def is_configured(self) -> bool:
        """Check whether a token is available."""
        return bool(self.token)

    def get_config_path(self) -> Path:
        return self.config_file

    def save_token(self, token: str) -> None:
        self._update(token=token)

    def save_api_url(self, api_url: Optional[str]) -> None:
        self._update(api_url=api_url)

    def load_extension_config(self) -> ExtensionConfig:
        """Load sync options (gist id and flags)."""
        return ExtensionConfig.from_dict(self._load().get("sync", {}))

    def save_extension_config(self, extension_config: ExtensionConfig) -> None:
        self._update(sync=extension_config.to_dict())


config = Config()
