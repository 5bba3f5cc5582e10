"""Pruning of the update queue against live upstream commits."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from addon_sync.log import get_logger
from addon_sync.models import UNKNOWN_COMMIT, RemoteInfo, UpdateFailure


if TYPE_CHECKING:
    from collections.abc import Mapping, Sequence

    from addon_sync.models import InstalledAddon


logger = get_logger(__name__)

_MISSING = RemoteInfo(latest_commit=UNKNOWN_COMMIT)


@dataclass
class FilteredUpdates:
    """Outcome of checking update candidates against upstream."""

    to_pull: list[InstalledAddon] = field(default_factory=list)
    """Addons behind their upstream branch."""

    bad_branches: list[UpdateFailure] = field(default_factory=list)
    """Addons whose branch does not exist upstream."""

    up_to_date: list[InstalledAddon] = field(default_factory=list)
    """Addons already at the latest upstream commit."""


def bad_branch_error(addon: InstalledAddon) -> str:
    return f"Branch does not exist or is not accessible: '{addon.branch}'"


def filter_updates(
    to_update: Sequence[InstalledAddon],
    remote_info: Mapping[str, RemoteInfo],
) -> FilteredUpdates:
    """Split update candidates into pulls, bad branches and no-ops.

    Bad branches are removed first: an addon without a known upstream commit
    has nothing to compare against. Addons missing from `remote_info` count as
    bad branches too.
    """
    result = FilteredUpdates()

    candidates: list[tuple[InstalledAddon, RemoteInfo]] = []
    for addon in to_update:
        info = remote_info.get(addon.url, _MISSING)
        if not info.branch_exists:
            logger.warning("Bad branch detected", repo=addon.repo, branch=addon.branch)
            failure = UpdateFailure(addon=addon, error=bad_branch_error(addon))
            result.bad_branches.append(failure)
            continue
        candidates.append((addon, info))

    for addon, info in candidates:
        if addon.commit == info.latest_commit:
            logger.debug("Addon already at latest commit", repo=addon.repo, commit=addon.commit)
            result.up_to_date.append(addon)
        else:
            result.to_pull.append(addon)

    return result
