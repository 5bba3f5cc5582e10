"""Canonical identity of addon repositories.

Installed and desired addons are joined on their canonical URL: lowercase,
scheme-qualified, without trailing slash and without the ``.git`` suffix.
"""

from __future__ import annotations

from typing import NamedTuple

from addon_sync.exceptions import IdentityError


GIT_SUFFIX = ".git"


class AddonIdentity(NamedTuple):
    """Owner, repository name and canonical URL of an addon."""

    owner: str
    repo: str
    url: str


def canonical_url(url: str) -> str:
    """Normalize a repository URL into the join key used by all addon maps."""
    url = url.strip().lower().rstrip("/")
    return url.removesuffix(GIT_SUFFIX)


def clone_url(url: str) -> str:
    """URL handed to git when cloning."""
    return f"{canonical_url(url)}{GIT_SUFFIX}"


def resolve(url: str) -> AddonIdentity:
    """Derive the (owner, repo, url) triple from a repository URL.

    "https://github.com/CFC-Servers/cfc_cl_http_whitelist.git" resolves to
    ("cfc-servers", "cfc_cl_http_whitelist", "https://github.com/cfc-servers/cfc_cl_http_whitelist").

    Raises:
        IdentityError: If the URL is not of the form scheme://host/owner/repo[.git]
    """
    canonical = canonical_url(url)
    parts = canonical.split("/")
    if (
        len(parts) != 5  # noqa: PLR2004
        or not parts[0].endswith(":")
        or parts[1]
        or not all(parts[2:])
    ):
        msg = f"Not a repository URL of the form scheme://host/owner/repo: {url!r}"
        raise IdentityError(msg)
    _scheme, _, _host, owner, repo = parts
    return AddonIdentity(owner=owner, repo=repo, url=canonical)
