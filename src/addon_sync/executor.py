"""Execution of clone/update/delete queues against the game server.

Every item is isolated: a failing addon becomes a failure record and never
stops its siblings.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from addon_sync.concurrency import DEFAULT_CONCURRENCY, gather_with_concurrency
from addon_sync.exceptions import describe_error
from addon_sync.log import get_logger
from addon_sync.models import (
    AddonCreated,
    AddonDeleted,
    AddonUpdated,
    CreateFailure,
    DeleteFailure,
    UpdateFailure,
)


if TYPE_CHECKING:
    from collections.abc import Sequence

    from addon_sync.models import DesiredAddon, InstalledAddon, PullResult
    from addon_sync.ports import RemoteExecutionPort, VcsMetadataPort


logger = get_logger(__name__)

DEFAULT_ADDONS_DIR = "/garrysmod/addons"

RECLONE_ERRORS = frozenset({"No merge base found", "Unknown Error. Try again later."})
"""Pull errors fixed by deleting and cloning the checkout again."""


def _parent_dir(path: str) -> str:
    return path.rstrip("/").rsplit("/", 1)[0] or "/"


class RemoteChangeExecutor:
    """Applies action queues through the remote execution port."""

    def __init__(
        self,
        remote: RemoteExecutionPort,
        vcs: VcsMetadataPort,
        *,
        addons_dir: str = DEFAULT_ADDONS_DIR,
        concurrency: int = DEFAULT_CONCURRENCY,
    ):
        """Initialize the executor.

        Args:
            remote: Remote execution port of the game server
            vcs: VCS metadata port used to fetch commit ranges of updates
            addons_dir: Directory new addons get cloned into
            concurrency: Maximum concurrent clone/pull operations
        """
        self.remote = remote
        self.vcs = vcs
        self.addons_dir = addons_dir.rstrip("/")
        self.concurrency = concurrency

    # === Delete ===

    async def delete(self, addons: Sequence[InstalledAddon]) -> list[AddonDeleted | DeleteFailure]:
        """Remove the checkouts of the given addons."""
        outcomes: list[AddonDeleted | DeleteFailure] = []
        for addon in addons:
            logger.info("Deleting addon", path=addon.path)
            try:
                await self.remote.delete_files([addon.path])
            except Exception as e:  # noqa: BLE001
                error = describe_error(e)
                logger.error("Failed to delete addon", repo=addon.repo, error=error)  # noqa: TRY400
                outcomes.append(DeleteFailure(addon=addon, error=error))
            else:
                outcomes.append(AddonDeleted(addon=addon))
        return outcomes

    # === Clone ===

    async def clone(self, addons: Sequence[DesiredAddon]) -> list[AddonCreated | CreateFailure]:
        """Install the given addons, renaming them where a custom name is desired."""
        results = await gather_with_concurrency(
            (self._clone_one(addon) for addon in addons),
            limit=self.concurrency,
        )
        outcomes: list[AddonCreated | CreateFailure] = []
        for addon, result in zip(addons, results, strict=True):
            if isinstance(result, Exception):
                error = describe_error(result)
                logger.error("Failed to clone addon", url=addon.clone_url, error=error)
                outcomes.append(CreateFailure(addon=addon, error=error))
            else:
                outcomes.append(result)
        return outcomes

    async def _clone_one(self, addon: DesiredAddon) -> AddonCreated:
        logger.info("Cloning addon", url=addon.clone_url, branch=addon.branch, into=self.addons_dir)
        cloned = await self.remote.git_clone(addon.clone_url, self.addons_dir, addon.branch)
        logger.info("Cloned addon", url=addon.clone_url)

        warning = None
        if addon.needs_rename:
            source = f"{self.addons_dir}/{addon.repo}"
            target = f"{self.addons_dir}/{addon.name}"
            logger.info("New addon has a desired name, renaming", source=source, target=target)
            try:
                await self.remote.rename_file(source, target)
            except Exception as e:  # noqa: BLE001
                # Installed but misnamed, the next run sees a name mismatch and recreates it.
                warning = f"Rename to '{addon.name}' failed: {describe_error(e)}"
                logger.warning("Failed to rename cloned addon", source=source, error=warning)
        return AddonCreated(addon=addon, is_private=cloned.is_private, warning=warning)

    # === Update ===

    async def update(
        self, addons: Sequence[InstalledAddon]
    ) -> list[AddonUpdated | UpdateFailure | None]:
        """Pull the given addons.

        Returns:
            One entry per addon; None for pulls that did not move the checkout
        """
        results = await gather_with_concurrency(
            (self._update_one(addon) for addon in addons),
            limit=self.concurrency,
        )
        logger.info("Handled all updates in the queue", count=len(addons))
        outcomes: list[AddonUpdated | UpdateFailure | None] = []
        for addon, result in zip(addons, results, strict=True):
            if isinstance(result, Exception):
                error = describe_error(result)
                logger.error("Failed to update addon", path=addon.path, error=error)
                outcomes.append(UpdateFailure(addon=addon, error=error))
            else:
                outcomes.append(result)
        return outcomes

    async def _update_one(self, addon: InstalledAddon) -> AddonUpdated | None:
        pulled = await self.pull(addon)
        new_commit = pulled.output
        if new_commit == addon.commit:
            logger.info("No changes for addon", repo=addon.repo, commit=new_commit)
            return None

        logger.info("Changes detected, getting diff", repo=addon.repo, old=addon.commit, new=new_commit)
        diff = None
        warning = None
        try:
            diff = await self.vcs.get_commit_range_diff(
                addon.owner, addon.repo, addon.commit, new_commit
            )
        except Exception as e:  # noqa: BLE001
            warning = f"Could not retrieve commit diff: {describe_error(e)}"
            logger.warning("Failed to retrieve git diff", repo=addon.repo, error=warning)

        return AddonUpdated(
            addon=addon,
            old_commit=addon.commit,
            new_commit=new_commit,
            diff=diff,
            is_private=pulled.is_private,
            warning=warning,
        )

    async def pull(self, addon: InstalledAddon) -> PullResult:
        """Pull an addon, recloning it once on known-recoverable errors.

        Addons on a primary branch are never recloned automatically, the
        original error is raised instead.
        """
        try:
            return await self.remote.git_pull(addon.path)
        except Exception as e:
            message = describe_error(e)
            logger.info("Pull failed", path=addon.path, error=message)
            if message not in RECLONE_ERRORS:
                raise
            if addon.is_primary_branch:
                logger.warning(
                    "Recoverable error on primary branch pull, ignoring in case it's temporary",
                    path=addon.path,
                    branch=addon.branch,
                    error=message,
                )
                raise
            logger.warning(
                "Recoverable error on non-primary branch pull, deleting and recloning",
                path=addon.path,
                branch=addon.branch,
                error=message,
            )

        await self.reclone(addon)
        return await self.remote.git_pull(addon.path)

    async def reclone(self, addon: InstalledAddon) -> None:
        """Replace a checkout by a fresh clone of the same URL and branch."""
        parent = _parent_dir(addon.path)
        await self.remote.delete_files([addon.path])
        await self.remote.git_clone(addon.clone_url, parent, addon.branch)
        if addon.has_custom_name:
            logger.info("Recloned addon has a custom name, renaming", url=addon.url, name=addon.name)
            await self.remote.rename_file(f"{parent}/{addon.repo}", f"{parent}/{addon.name}")
