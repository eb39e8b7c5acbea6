"""pygistsync - sync editor settings, keybindings and extensions via a gist."""

__version__ = "0.1.0"

from .api import GistClient
from .environment import Environment, OsType, SyncContext
from .exceptions import (
    ConfigurationMissingError,
    GistAPIError,
    GistAuthenticationError,
    GistConfigError,
    GistInvalidResponseError,
    GistNetworkError,
    GistNotFoundError,
    GistPermissionError,
    GistRateLimitError,
    GistSyncError,
    GistSyncNotFoundError,
    OwnershipMismatchError,
    PragmaError,
    RemoteCreateFailedError,
    RemoteReadFailedError,
    RemoteWriteFailedError,
)
from .settings import CloudSetting, CustomSettings, ExtensionConfig

__all__ = [
    "__version__",
    "GistClient",
    "Environment",
    "OsType",
    "SyncContext",
    "CloudSetting",
    "CustomSettings",
    "ExtensionConfig",
    "GistSyncError",
    "GistSyncNotFoundError",
    "ConfigurationMissingError",
    "RemoteCreateFailedError",
    "RemoteReadFailedError",
    "RemoteWriteFailedError",
    "OwnershipMismatchError",
    "PragmaError",
    "GistAPIError",
    "GistAuthenticationError",
    "GistConfigError",
    "GistInvalidResponseError",
    "GistNetworkError",
    "GistNotFoundError",
    "GistPermissionError",
    "GistRateLimitError",
]
