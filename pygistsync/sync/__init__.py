"""Sync engine for pygistsync - upload and download of editor settings."""

from .classifier import EntryKind, RoutingDecision, classify_key, route_entry
from .engine import DownloadResponse, SyncEngine, UploadResponse, is_up_to_date
from .extensions import (
    EditorCliInstaller,
    ExtensionInformation,
    ExtensionScanner,
    create_extension_file,
    diff_extensions,
    parse_extension_list,
    serialize_extension_list,
)
from .operations import SyncOperations
from .scanner import FileScanner, SettingFile, flatten_path

__all__ = [
    "SyncEngine",
    "UploadResponse",
    "DownloadResponse",
    "is_up_to_date",
    "SyncOperations",
    "FileScanner",
    "SettingFile",
    "flatten_path",
    "EntryKind",
    "RoutingDecision",
    "classify_key",
    "route_entry",
    "ExtensionInformation",
    "ExtensionScanner",
    "EditorCliInstaller",
    "create_extension_file",
    "diff_extensions",
    "parse_extension_list",
    "serialize_extension_list",
]
