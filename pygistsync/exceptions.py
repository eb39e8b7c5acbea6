"""Exceptions raised by pygistsync."""


class GistSyncError(Exception):
    """Base exception for all settings sync errors."""


class GistSyncNotFoundError(GistSyncError):
    """A required local file or directory does not exist."""


class ConfigurationMissingError(GistSyncError):
    """The custom settings descriptor is missing.

    Raised before any network call is made.
    """


class RemoteCreateFailedError(GistSyncError):
    """Creating a new gist failed."""


class RemoteReadFailedError(GistSyncError):
    """Reading the gist failed (unreachable or unknown id)."""


class RemoteWriteFailedError(GistSyncError):
    """Saving the file set to the gist failed."""


class OwnershipMismatchError(GistSyncError):
    """The gist belongs to a different user than the authenticated one."""

    def __init__(self, owner: str, user_name: str):
        super().__init__(f"You can't edit GIST for user: {owner}")
        self.owner = owner
        self.user_name = user_name


class PragmaError(GistSyncError):
    """A ``// @sync`` annotation in settings.json could not be processed."""


class GistAPIError(GistSyncError):
    """Base exception for Gist API errors."""


class GistConfigError(GistAPIError):
    """The API client is not configured (missing token)."""


class GistAuthenticationError(GistAPIError):
    """Invalid token or unauthorized access."""


class GistPermissionError(GistAPIError):
    """Access to the resource is forbidden."""


class GistNotFoundError(GistAPIError):
    """The requested gist does not exist."""


class GistRateLimitError(GistAPIError):
    """The API rate limit was exceeded."""


class GistNetworkError(GistAPIError):
    """The request failed before a response was received."""


class GistInvalidResponseError(GistAPIError):
    """The server returned something that is not the expected JSON."""
