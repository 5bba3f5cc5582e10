"""Tests for control document parsing."""

from __future__ import annotations

from typing import TYPE_CHECKING

import pytest

from addon_sync.control import parse_control_document, read_control_source
from addon_sync.exceptions import ControlFileError


if TYPE_CHECKING:
    from pathlib import Path


CONTROL = """
addons:
  - url: https://github.com/CFC-Servers/cfc_chat_transit.git
    branch: main
  - url: https://github.com/CFC-Servers/gm_express
    branch: lua
    name: express
  - url: https://github.com/wiremod/wire
    branch: master
    name: ""
"""


def test_parse_keys_by_canonical_url():
    addons = parse_control_document(CONTROL)
    assert list(addons) == [
        "https://github.com/cfc-servers/cfc_chat_transit",
        "https://github.com/cfc-servers/gm_express",
        "https://github.com/wiremod/wire",
    ]
    transit = addons["https://github.com/cfc-servers/cfc_chat_transit"]
    assert transit.owner == "cfc-servers"
    assert transit.repo == "cfc_chat_transit"
    assert transit.name is None


def test_parse_custom_and_empty_names():
    addons = parse_control_document(CONTROL)
    express = addons["https://github.com/cfc-servers/gm_express"]
    assert express.name == "express"
    assert express.needs_rename
    wire = addons["https://github.com/wiremod/wire"]
    assert wire.name is None
    assert wire.install_name == "wire"


def test_duplicate_entries_last_wins():
    document = """
addons:
  - url: https://github.com/owner/repo
    branch: main
  - url: https://github.com/Owner/Repo.git
    branch: dev
"""
    addons = parse_control_document(document)
    assert len(addons) == 1
    assert addons["https://github.com/owner/repo"].branch == "dev"


@pytest.mark.parametrize(
    "document",
    [
        "addons: [",
        "- just a list",
        "addons:\n  - url: https://github.com/owner/repo\n",
        "addons:\n  - branch: main\n",
        "addons:\n  - url: not-a-url\n    branch: main\n",
        "addons:\n  - url: null\n    branch: main\n",
        "addons:\n  - url: 123\n    branch: main\n",
    ],
)
def test_parse_rejects_malformed_documents(document: str):
    with pytest.raises(ControlFileError):
        parse_control_document(document)


class FakeRepositoryFiles:
    def __init__(self):
        self.requests: list[tuple[str, str, str, str | None]] = []

    async def get_file(self, owner: str, repo: str, path: str, ref: str | None = None) -> str:
        self.requests.append((owner, repo, path, ref))
        return CONTROL


async def test_read_control_source_from_github():
    files = FakeRepositoryFiles()
    text = await read_control_source("github://CFC-Servers/server-config/addons/build.yaml@live", files)
    assert text == CONTROL
    assert files.requests == [("CFC-Servers", "server-config", "addons/build.yaml", "live")]


async def test_read_control_source_without_ref():
    files = FakeRepositoryFiles()
    await read_control_source("github://owner/repo/control.yaml", files)
    assert files.requests == [("owner", "repo", "control.yaml", None)]


async def test_read_control_source_rejects_incomplete_github_source():
    with pytest.raises(ControlFileError):
        await read_control_source("github://owner/repo", FakeRepositoryFiles())


async def test_read_control_source_from_disk(tmp_path: Path):
    path = tmp_path / "control.yaml"
    path.write_text(CONTROL, encoding="utf-8")
    assert await read_control_source(str(path), FakeRepositoryFiles()) == CONTROL


async def test_read_missing_local_control_file(tmp_path: Path):
    with pytest.raises(ControlFileError, match="Could not read"):
        await read_control_source(str(tmp_path / "missing.yaml"), FakeRepositoryFiles())
