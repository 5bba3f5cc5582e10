"""Core models for installed/desired addons, upstream metadata and run outcomes."""

from __future__ import annotations

from typing import Annotated, Any, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel

from addon_sync.identity import canonical_url, clone_url, resolve


UNKNOWN_COMMIT = "UNKNOWN"
"""Sentinel reported upstream when a branch does not exist or is not accessible."""

PRIMARY_BRANCHES = frozenset({"main", "master"})


class AddonBaseModel(BaseModel):
    """Base class for addon_sync records.

    Records are immutable once built. Snake_case fields accept camelCase
    aliases so manifests produced by the game server parse directly.
    """

    model_config = ConfigDict(
        frozen=True,
        extra="ignore",
        populate_by_name=True,
        alias_generator=to_camel,
    )


def _fill_identity(data: Any) -> Any:
    """Derive owner/repo from the URL when a payload leaves them out."""
    if not isinstance(data, dict) or not isinstance(data.get("url"), str):
        return data
    if data.get("owner") and data.get("repo"):
        return data
    identity = resolve(data["url"])
    return {"owner": identity.owner, "repo": identity.repo, **data}


class InstalledAddon(AddonBaseModel):
    """A git checkout found on the game server's filesystem."""

    path: str
    """Absolute install directory, e.g. /garrysmod/addons/niknaks."""

    name: str
    """Directory name of the checkout."""

    url: str
    """Canonical repository URL."""

    owner: str
    repo: str

    branch: str = "unknown"
    """Currently checked out branch."""

    commit: str = "unknown"
    """Currently checked out commit."""

    @model_validator(mode="before")
    @classmethod
    def complete_identity(cls, data: Any) -> Any:
        data = _fill_identity(data)
        if isinstance(data, dict) and not data.get("name") and isinstance(data.get("path"), str):
            data = {**data, "name": data["path"].rstrip("/").rsplit("/", 1)[-1]}
        return data

    @field_validator("url")
    @classmethod
    def normalize_url(cls, value: str) -> str:
        return canonical_url(value)

    @property
    def is_primary_branch(self) -> bool:
        return self.branch in PRIMARY_BRANCHES

    @property
    def has_custom_name(self) -> bool:
        return self.name != self.repo

    @property
    def clone_url(self) -> str:
        return clone_url(self.url)


class DesiredAddon(AddonBaseModel):
    """An addon declared in the control document."""

    url: str
    owner: str
    repo: str
    branch: str

    name: str | None = None
    """Directory name to install under, defaults to the repository name."""

    @model_validator(mode="before")
    @classmethod
    def complete_identity(cls, data: Any) -> Any:
        return _fill_identity(data)

    @field_validator("url")
    @classmethod
    def normalize_url(cls, value: str) -> str:
        return canonical_url(value)

    @property
    def install_name(self) -> str:
        return self.name or self.repo

    @property
    def needs_rename(self) -> bool:
        return bool(self.name) and self.name != self.repo

    @property
    def clone_url(self) -> str:
        return clone_url(self.url)


class RemoteInfo(AddonBaseModel):
    """Latest upstream state of an addon's branch."""

    latest_commit: str
    is_private: bool = False

    @property
    def branch_exists(self) -> bool:
        return self.latest_commit != UNKNOWN_COMMIT


class CommitAuthor(AddonBaseModel):
    username: str = "unknown"
    avatar: str = ""
    url: str = ""


class CommitInfo(AddonBaseModel):
    """A single commit of a compared range."""

    sha: str
    message: str
    url: str
    author: CommitAuthor = Field(default_factory=CommitAuthor)
    verified: bool = False
    date: str = ""


class CompareInfo(AddonBaseModel):
    """Commits between two revisions of an addon."""

    url: str
    """Web page showing the comparison."""

    commits: list[CommitInfo] = Field(default_factory=list)


class FileSearchMatch(AddonBaseModel):
    """Matching lines of a single file, keyed by line number."""

    lines: dict[int, str] = Field(default_factory=dict)


class FileSearchResults(AddonBaseModel):
    files: dict[str, FileSearchMatch] = Field(default_factory=dict)
    too_many: bool = False


class CloneResult(AddonBaseModel):
    is_private: bool = False


class PullResult(AddonBaseModel):
    output: str
    """Commit the checkout is at after pulling."""

    is_private: bool = False


class GitInfoSnapshot(AddonBaseModel):
    """Manifest of installed addons written by the game server."""

    generated_at: int
    """Unix timestamp of generation."""

    installed_addons: list[InstalledAddon] = Field(default_factory=list)


# Outcomes


class AddonCreated(AddonBaseModel):
    kind: Literal["create"] = "create"
    addon: DesiredAddon
    is_private: bool = False
    warning: str | None = None
    """Set when the addon got installed but a follow-up step (rename) failed."""


class AddonUpdated(AddonBaseModel):
    kind: Literal["update"] = "update"
    addon: InstalledAddon
    old_commit: str
    new_commit: str
    diff: CompareInfo | None = None
    is_private: bool = False
    warning: str | None = None
    """Set when the pull succeeded but the commit range could not be fetched."""


class AddonDeleted(AddonBaseModel):
    kind: Literal["delete"] = "delete"
    addon: InstalledAddon


ChangeRecord = Annotated[
    AddonCreated | AddonUpdated | AddonDeleted,
    Field(discriminator="kind"),
]


class CreateFailure(AddonBaseModel):
    kind: Literal["create"] = "create"
    addon: DesiredAddon
    error: str


class UpdateFailure(AddonBaseModel):
    kind: Literal["update"] = "update"
    addon: InstalledAddon
    error: str


class DeleteFailure(AddonBaseModel):
    kind: Literal["delete"] = "delete"
    addon: InstalledAddon
    error: str


FailureRecord = Annotated[
    CreateFailure | UpdateFailure | DeleteFailure,
    Field(discriminator="kind"),
]
