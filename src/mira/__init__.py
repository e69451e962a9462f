"""mira: mirror git repositories from a JSON configuration file."""

__version__ = "1.0.0"

from .config import Configuration, Mirror, RootConfig, load_config, parse_config
from .engine import MIRROR_REMOTE, MirrorSyncEngine, SyncOutcome
from .exceptions import (
    CloneError,
    ConfigError,
    CorruptWorkspaceError,
    FetchError,
    InvalidNameError,
    MiraError,
    PushError,
    RemoteConfigError,
    SyncError,
    WorkspaceError,
)
from .layout import resolve_path, validate_name
from .mirror import MirrorDiff, RefChange
from .ops import DulwichOperations, RepositoryOperations, get_operations
from .runner import RunResult, prepare_workspace, run
from .state import MirrorState, classify

__all__ = [
    "Configuration", "Mirror", "RootConfig", "load_config", "parse_config",
    "MIRROR_REMOTE", "MirrorSyncEngine", "SyncOutcome",
    "MiraError", "ConfigError", "WorkspaceError", "InvalidNameError",
    "CorruptWorkspaceError", "SyncError", "CloneError", "FetchError",
    "RemoteConfigError", "PushError",
    "resolve_path", "validate_name",
    "MirrorDiff", "RefChange",
    "DulwichOperations", "RepositoryOperations", "get_operations",
    "RunResult", "prepare_workspace", "run",
    "MirrorState", "classify",
]
