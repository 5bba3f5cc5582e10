"""Diffing of installed against desired addons into action queues."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from addon_sync.identity import canonical_url
from addon_sync.log import get_logger


if TYPE_CHECKING:
    from collections.abc import Mapping

    from addon_sync.models import DesiredAddon, InstalledAddon


logger = get_logger(__name__)


@dataclass
class ActionPlan:
    """Queues of work for one reconciliation run.

    An installed addon whose branch or name drifted shows up in `to_delete`
    while its desired counterpart shows up in `to_clone` (destroy and recreate).
    """

    to_clone: list[DesiredAddon] = field(default_factory=list)
    """Addons to install."""

    to_update: list[InstalledAddon] = field(default_factory=list)
    """Installed addons to pull."""

    to_delete: list[InstalledAddon] = field(default_factory=list)
    """Installed addons to remove."""

    @property
    def is_empty(self) -> bool:
        return not (self.to_clone or self.to_update or self.to_delete)

    def summary(self) -> dict[str, list[str]]:
        """Human readable overview, used for logging and dry runs."""
        return {
            "clone": [f"{a.url}@{a.branch}" for a in self.to_clone],
            "update": [a.path for a in self.to_update],
            "delete": [a.path for a in self.to_delete],
        }


def plan(
    installed: Mapping[str, InstalledAddon],
    desired: Mapping[str, DesiredAddon] | None,
) -> ActionPlan:
    """Partition installed and desired addons into clone/update/delete queues.

    Without a control document (`desired` is None) every installed addon is
    refreshed and nothing gets created or deleted. Neither mapping is mutated.

    Args:
        installed: Installed addons keyed by canonical URL
        desired: Desired addons keyed by canonical URL, or None

    Returns:
        The action plan
    """
    result = ActionPlan()

    if desired is None:
        logger.info("No control document, updating all installed addons")
        result.to_update.extend(installed.values())
        return result

    installed_by_url = {canonical_url(url): addon for url, addon in installed.items()}
    desired_urls = {canonical_url(url) for url in desired}

    for url, wanted in desired.items():
        current = installed_by_url.get(canonical_url(url))
        if current is None:
            logger.info("Desired addon is not installed", url=wanted.url)
            result.to_clone.append(wanted)
            continue

        branch_match = current.branch == wanted.branch
        name_match = wanted.name == current.name if wanted.name else True

        if branch_match and name_match:
            result.to_update.append(current)
            continue

        if not branch_match:
            logger.info(
                "Branch mismatch",
                path=current.path,
                installed=current.branch,
                desired=wanted.branch,
            )
        if not name_match:
            logger.info(
                "Name mismatch",
                path=current.path,
                installed=current.name,
                desired=wanted.name,
            )
        result.to_delete.append(current)
        result.to_clone.append(wanted)

    for url, current in installed_by_url.items():
        if url not in desired_urls:
            logger.info("Installed addon is missing from desired list", url=url)
            result.to_delete.append(current)

    return result
