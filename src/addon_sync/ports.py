"""Interfaces of the external collaborators a reconciliation run talks to."""

from __future__ import annotations

from typing import TYPE_CHECKING, Protocol


if TYPE_CHECKING:
    from collections.abc import Sequence

    from addon_sync.models import (
        CloneResult,
        CompareInfo,
        FileSearchResults,
        InstalledAddon,
        PullResult,
        RemoteInfo,
    )
    from addon_sync.report import ChangeSet, FailureSet


class RemoteExecutionPort(Protocol):
    """Control plane of the game server (filesystem, console and git)."""

    async def connect(self) -> None:
        """Open and authenticate the connection."""
        ...

    async def disconnect(self) -> None:
        """Release the connection. Safe to call more than once."""
        ...

    async def search_files(self, pattern: str) -> FileSearchResults:
        """Search file contents on the server."""
        ...

    async def read_file(self, path: str) -> str: ...

    async def write_file(self, path: str, content: str) -> None: ...

    async def delete_files(self, paths: Sequence[str]) -> None: ...

    async def rename_file(self, path: str, new_path: str) -> None: ...

    async def run_command_with_nonce(self, prefix: str, command: str) -> str:
        """Run a console command and return the output line starting with `prefix`."""
        ...

    async def git_clone(self, url: str, directory: str, branch: str) -> CloneResult:
        """Clone `url` at `branch` into `directory`."""
        ...

    async def git_pull(self, directory: str) -> PullResult:
        """Pull the checkout at `directory`."""
        ...


class VcsMetadataPort(Protocol):
    """Source-control hosting API."""

    async def get_latest_commit_hashes(
        self, addons: Sequence[InstalledAddon]
    ) -> dict[str, RemoteInfo]:
        """Latest commit of each addon's branch, keyed by canonical URL."""
        ...

    async def get_commit_range_diff(
        self, owner: str, repo: str, old_sha: str, new_sha: str
    ) -> CompareInfo:
        """Commits between two revisions."""
        ...


class NotificationSink(Protocol):
    """Receives the outcome of a run."""

    async def send_changes(self, changes: ChangeSet) -> None: ...

    async def send_failures(self, failures: FailureSet) -> None: ...

    async def send_server_config_diff(self, diff: str) -> None: ...

