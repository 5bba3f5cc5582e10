"""Sync of the game server's config file."""

from __future__ import annotations

import difflib
from typing import TYPE_CHECKING

from addon_sync.log import get_logger


if TYPE_CHECKING:
    from addon_sync.ports import NotificationSink, RemoteExecutionPort


logger = get_logger(__name__)

DEFAULT_SERVER_CONFIG_PATH = "garrysmod/cfg/server.cfg"


def _normalize(text: str) -> list[str]:
    return [line.rstrip() for line in text.replace("\r\n", "\n").split("\n")]


def config_diff(old: str, new: str, *, filename: str = "server.cfg") -> str:
    """Unified diff between two config texts, ignoring line endings and trailing spaces."""
    diff = difflib.unified_diff(
        _normalize(old),
        _normalize(new),
        fromfile=filename,
        tofile=filename,
        lineterm="",
    )
    return "\n".join(diff)


async def update_server_config(
    remote: RemoteExecutionPort,
    sink: NotificationSink,
    desired: str | None,
    *,
    path: str = DEFAULT_SERVER_CONFIG_PATH,
) -> str | None:
    """Write the desired server config and report what changed.

    Args:
        remote: Remote execution port
        sink: Receives the diff
        desired: Desired config text, nothing happens when empty
        path: Config file location on the server

    Returns:
        The applied diff, None if nothing was written
    """
    if not desired:
        return None

    current = await remote.read_file(path)
    diff = config_diff(current, desired)
    if not diff:
        logger.info("Server config already up to date", path=path)
        return None

    logger.info("Updating server config", path=path)
    await remote.write_file(path, desired)
    await sink.send_server_config_diff(diff)
    return diff
