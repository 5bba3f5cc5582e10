"""Test configuration and shared fixtures."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

import pytest

from addon_sync.exceptions import NotFoundError
from addon_sync.models import (
    CloneResult,
    CommitInfo,
    CompareInfo,
    DesiredAddon,
    FileSearchResults,
    InstalledAddon,
    PullResult,
    RemoteInfo,
)


if TYPE_CHECKING:
    from collections.abc import Sequence

    from addon_sync.report import ChangeSet, FailureSet


ADDONS_DIR = "/garrysmod/addons"


def installed(
    repo: str,
    *,
    owner: str = "cfc-servers",
    branch: str = "main",
    commit: str = "aaaaaaaa",
    name: str | None = None,
) -> InstalledAddon:
    """Build an installed addon checked out below the default addons directory."""
    name = name or repo
    return InstalledAddon(
        path=f"{ADDONS_DIR}/{name}",
        url=f"https://github.com/{owner}/{repo}",
        branch=branch,
        commit=commit,
    )


def desired(
    repo: str,
    *,
    owner: str = "cfc-servers",
    branch: str = "main",
    name: str | None = None,
) -> DesiredAddon:
    return DesiredAddon(url=f"https://github.com/{owner}/{repo}", branch=branch, name=name)


def keyed[T: (InstalledAddon, DesiredAddon)](*addons: T) -> dict[str, T]:
    return {addon.url: addon for addon in addons}


@dataclass
class FakeRemote:
    """In-memory remote execution port recording every call."""

    files: dict[str, str] = field(default_factory=dict)
    search_results: FileSearchResults = field(default_factory=FileSearchResults)
    pull_results: dict[str, list[PullResult | Exception]] = field(default_factory=dict)
    clone_errors: dict[str, Exception] = field(default_factory=dict)
    rename_errors: dict[str, Exception] = field(default_factory=dict)
    delete_errors: dict[str, Exception] = field(default_factory=dict)
    private_urls: set[str] = field(default_factory=set)
    command_reply: str | Exception = "ok"
    connect_error: Exception | None = None
    search_error: Exception | None = None
    calls: list[tuple[Any, ...]] = field(default_factory=list)
    connected: bool = False

    def called(self, name: str) -> list[tuple[Any, ...]]:
        return [call[1:] for call in self.calls if call[0] == name]

    async def connect(self) -> None:
        self.calls.append(("connect",))
        if self.connect_error:
            raise self.connect_error
        self.connected = True

    async def disconnect(self) -> None:
        self.calls.append(("disconnect",))
        self.connected = False

    async def search_files(self, pattern: str) -> FileSearchResults:
        self.calls.append(("search_files", pattern))
        if self.search_error:
            raise self.search_error
        return self.search_results

    async def read_file(self, path: str) -> str:
        self.calls.append(("read_file", path))
        if path not in self.files:
            msg = f"{path} not found"
            raise NotFoundError(msg)
        return self.files[path]

    async def write_file(self, path: str, content: str) -> None:
        self.calls.append(("write_file", path, content))
        self.files[path] = content

    async def delete_files(self, paths: Sequence[str]) -> None:
        self.calls.append(("delete_files", list(paths)))
        for path in paths:
            if error := self.delete_errors.get(path):
                raise error

    async def rename_file(self, path: str, new_path: str) -> None:
        self.calls.append(("rename_file", path, new_path))
        if error := self.rename_errors.get(path):
            raise error

    async def run_command_with_nonce(self, prefix: str, command: str) -> str:
        self.calls.append(("run_command_with_nonce", prefix, command))
        if isinstance(self.command_reply, Exception):
            raise self.command_reply
        return self.command_reply

    async def git_clone(self, url: str, directory: str, branch: str) -> CloneResult:
        self.calls.append(("git_clone", url, directory, branch))
        if error := self.clone_errors.get(url):
            raise error
        return CloneResult(is_private=url in self.private_urls)

    async def git_pull(self, directory: str) -> PullResult:
        self.calls.append(("git_pull", directory))
        queue = self.pull_results.get(directory)
        if not queue:
            msg = f"No pull result configured for {directory}"
            raise AssertionError(msg)
        result = queue.pop(0) if len(queue) > 1 else queue[0]
        if isinstance(result, Exception):
            raise result
        return result


@dataclass
class FakeVcs:
    """VCS metadata port answering from dictionaries."""

    latest: dict[str, RemoteInfo] = field(default_factory=dict)
    diffs: dict[str, CompareInfo] = field(default_factory=dict)
    hash_error: Exception | None = None
    diff_error: Exception | None = None
    hash_requests: list[list[str]] = field(default_factory=list)
    diff_requests: list[tuple[str, str, str, str]] = field(default_factory=list)

    async def get_latest_commit_hashes(
        self, addons: Sequence[InstalledAddon]
    ) -> dict[str, RemoteInfo]:
        self.hash_requests.append([addon.url for addon in addons])
        if self.hash_error:
            raise self.hash_error
        return {addon.url: self.latest[addon.url] for addon in addons if addon.url in self.latest}

    async def get_commit_range_diff(
        self, owner: str, repo: str, old_sha: str, new_sha: str
    ) -> CompareInfo:
        self.diff_requests.append((owner, repo, old_sha, new_sha))
        if self.diff_error:
            raise self.diff_error
        if diff := self.diffs.get(repo):
            return diff
        url = f"https://github.com/{owner}/{repo}/compare/{old_sha[:6]}...{new_sha[:6]}"
        commit = CommitInfo(sha=new_sha, message="Update", url=f"https://github.com/{owner}/{repo}")
        return CompareInfo(url=url, commits=[commit])


@dataclass
class RecordingSink:
    """Notification sink keeping everything it receives."""

    changes: list[ChangeSet] = field(default_factory=list)
    failures: list[FailureSet] = field(default_factory=list)
    config_diffs: list[str] = field(default_factory=list)
    error: Exception | None = None

    async def send_changes(self, changes: ChangeSet) -> None:
        if self.error:
            raise self.error
        self.changes.append(changes)

    async def send_failures(self, failures: FailureSet) -> None:
        if self.error:
            raise self.error
        self.failures.append(failures)

    async def send_server_config_diff(self, diff: str) -> None:
        if self.error:
            raise self.error
        self.config_diffs.append(diff)


@pytest.fixture
def remote() -> FakeRemote:
    return FakeRemote()


@pytest.fixture
def vcs() -> FakeVcs:
    return FakeVcs()


@pytest.fixture
def sink() -> RecordingSink:
    return RecordingSink()
