"""Reconcile a game server's git-managed addons against a control document."""

from __future__ import annotations

from importlib.metadata import PackageNotFoundError, version

from addon_sync.config import SyncConfig
from addon_sync.control import parse_control_document
from addon_sync.exceptions import AddonSyncError
from addon_sync.identity import AddonIdentity, canonical_url, resolve
from addon_sync.manager import AddonManager
from addon_sync.models import DesiredAddon, InstalledAddon
from addon_sync.planner import ActionPlan, plan
from addon_sync.report import ChangeSet, FailureSet, RunReport

try:
    __version__ = version("addon-sync")
except PackageNotFoundError:
    __version__ = "0.0.0"

__all__ = [
    "ActionPlan",
    "AddonIdentity",
    "AddonManager",
    "AddonSyncError",
    "ChangeSet",
    "DesiredAddon",
    "FailureSet",
    "InstalledAddon",
    "RunReport",
    "SyncConfig",
    "__version__",
    "canonical_url",
    "parse_control_document",
    "plan",
    "resolve",
]
