"""Exceptions for mira."""


class MiraError(Exception):
    """Base class for every error mira raises on purpose."""


class ConfigError(MiraError):
    """Raised when the configuration document is structurally invalid.

    Fatal: detected before any mirror is processed.
    """


class WorkspaceError(MiraError):
    """Raised when the workspace root cannot be created or is not writable.

    Fatal: detected before any mirror is processed.
    """


class InvalidNameError(MiraError):
    """Raised for a configuration or mirror name that is unsafe as a
    directory segment, or that collides with a sibling name."""


class CorruptWorkspaceError(MiraError):
    """Raised when a mirror's local directory is in a state mira will not
    touch (e.g. it exists, is not a repository, and is not empty)."""


class SyncError(MiraError):
    """A repository operation failed.

    *detail* holds the transport's own message (git stderr, protocol
    error text) so it can be shown to the user verbatim.
    """

    def __init__(self, message: str, detail: str | None = None):
        super().__init__(message)
        self.detail = detail

    def __str__(self) -> str:
        msg = super().__str__()
        if self.detail:
            return f"{msg}: {self.detail}"
        return msg


class CloneError(SyncError):
    """Cloning the source repository failed."""


class FetchError(SyncError):
    """Fetching new history from the source failed."""


class RemoteConfigError(SyncError):
    """Adding or updating a named remote failed."""


class PushError(SyncError):
    """Pushing to (or listing refs of) the destination failed."""
