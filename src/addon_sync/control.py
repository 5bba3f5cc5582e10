"""Parsing of the control document declaring the desired addons.

The control document is YAML:

    addons:
      - url: https://github.com/CFC-Servers/cfc_chat_transit
        branch: main
      - url: https://github.com/CFC-Servers/gm_express
        branch: lua
        name: express
"""

from __future__ import annotations

from pathlib import Path
from typing import Protocol

from pydantic import BaseModel, ConfigDict, ValidationError, field_validator
import yamling

from addon_sync.exceptions import ControlFileError
from addon_sync.log import get_logger
from addon_sync.models import DesiredAddon


logger = get_logger(__name__)


class ControlDocument(BaseModel):
    """Top level of the control document."""

    model_config = ConfigDict(extra="ignore")

    addons: list[DesiredAddon]

    @field_validator("addons", mode="before")
    @classmethod
    def drop_empty_names(cls, value: object) -> object:
        if not isinstance(value, list):
            return value
        return [
            {k: v for k, v in entry.items() if not (k == "name" and not v)}
            if isinstance(entry, dict)
            else entry
            for entry in value
        ]


def parse_control_document(document: str) -> dict[str, DesiredAddon]:
    """Parse a control document into desired addons keyed by canonical URL.

    Args:
        document: Raw YAML text

    Returns:
        Mapping of canonical URL -> DesiredAddon, in document order

    Raises:
        ControlFileError: If the text is not YAML or entries miss `url`/`branch`
    """
    try:
        data = yamling.load_yaml(document, mode="safe")
    except yamling.YAMLError as e:
        msg = f"Control document is not valid YAML: {e}"
        raise ControlFileError(msg) from e

    if not isinstance(data, dict):
        msg = "Control document must be a mapping with an 'addons' list"
        raise ControlFileError(msg)

    try:
        parsed = ControlDocument.model_validate(data)
    except ValidationError as e:
        msg = f"Invalid control document: {e}"
        raise ControlFileError(msg) from e

    desired: dict[str, DesiredAddon] = {}
    for addon in parsed.addons:
        if addon.url in desired:
            logger.warning("Duplicate addon in control document, last entry wins", url=addon.url)
        desired[addon.url] = addon
    return desired


GITHUB_SCHEME = "github://"


class RepositoryFileReader(Protocol):
    async def get_file(self, owner: str, repo: str, path: str, ref: str | None = None) -> str: ...


async def read_control_source(source: str, github: RepositoryFileReader) -> str:
    """Fetch the raw control document from a local path or a GitHub repository.

    GitHub sources look like ``github://owner/repo/path/to/control.yaml@ref``
    (``@ref`` is optional).
    """
    if not source.startswith(GITHUB_SCHEME):
        try:
            return Path(source).read_text(encoding="utf-8")
        except OSError as e:
            msg = f"Could not read control file {source}: {e}"
            raise ControlFileError(msg) from e

    location, _, ref = source.removeprefix(GITHUB_SCHEME).partition("@")
    owner, _, rest = location.partition("/")
    repo, _, path = rest.partition("/")
    if not (owner and repo and path):
        msg = f"GitHub control source must be {GITHUB_SCHEME}owner/repo/path[@ref]: {source!r}"
        raise ControlFileError(msg)
    logger.info("Fetching control document", owner=owner, repo=repo, path=path, ref=ref or None)
    return await github.get_file(owner, repo, path, ref or None)
