"""Sync engine for projsync - one-way incremental project upload."""

from .changeset import ChangeSet
from .engine import SyncEngine, SyncPhase
from .matcher import clean_rule, is_ignored
from .rules import (
    IGNORE_FILE_NAME,
    REF_PATHS_FILE_NAME,
    RefPath,
    SyncRules,
    load_ignored_paths,
    load_ref_paths,
    load_rules,
)
from .state import SyncState, SyncStateManager
from .uploader import UploadCoordinator, build_upload_message
from .walker import EntryKind, WalkEntry, walk_reference, walk_tree

__all__ = [
    "SyncEngine",
    "SyncPhase",
    "ChangeSet",
    "UploadCoordinator",
    "build_upload_message",
    "EntryKind",
    "WalkEntry",
    "walk_tree",
    "walk_reference",
    "clean_rule",
    "is_ignored",
    "IGNORE_FILE_NAME",
    "REF_PATHS_FILE_NAME",
    "RefPath",
    "SyncRules",
    "load_ignored_paths",
    "load_ref_paths",
    "load_rules",
    "SyncState",
    "SyncStateManager",
]
