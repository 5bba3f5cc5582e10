"""Discord webhook implementation of the notification sink.

Change reports go to the alert webhook, failure reports and server config
diffs to the failure webhook.
"""

from __future__ import annotations

from datetime import UTC, datetime
import re
from typing import TYPE_CHECKING, Any, Self

import httpx

from addon_sync.exceptions import NotificationError
from addon_sync.log import get_logger


if TYPE_CHECKING:
    from collections.abc import Sequence
    from types import TracebackType

    from addon_sync.models import (
        AddonCreated,
        AddonDeleted,
        AddonUpdated,
        CommitInfo,
        CreateFailure,
        DeleteFailure,
        UpdateFailure,
    )
    from addon_sync.report import ChangeSet, FailureSet


logger = get_logger(__name__)

EMBED_COLORS = {
    "update": 0x1E90FF,
    "delete": 0xFF4500,
    "create": 0x32CD32,
    "failure": 0xDC143C,
    "config": 0xFFD700,
}
HIDDEN_URL = "https://github.com/404"
MAX_DESCRIPTION = 2048
MAX_MESSAGE_LENGTH = 50
MAX_EMBEDS_PER_MESSAGE = 10
SHORT_SHA_LENGTH = 6

_VISIBLE = re.compile(r"[^ ]")

type Embed = dict[str, Any]


def _now() -> str:
    return datetime.now(UTC).isoformat()


def _mask(text: str) -> str:
    return _VISIBLE.sub("❚", text)


def _fit(entries: Sequence[str], limit: int = MAX_DESCRIPTION) -> str:
    """Join entries, cutting off with an "and more" trailer past `limit`."""
    description = ""
    for index, entry in enumerate(entries):
        and_more = f"\n_And {len(entries) - index} more..._"
        if len(description) + len(entry) + 1 > limit - len(and_more):
            description += and_more
            break
        description += f"{entry}\n"
    return description


def _commit_entry(commit: CommitInfo, *, is_private: bool) -> str:
    message = commit.message
    sha = commit.sha
    username = commit.author.username
    author_url = commit.author.url
    commit_url = commit.url
    prefix = "✅" if commit.verified else "#️⃣"
    if is_private:
        message = _mask(message)
        sha = _mask(sha)
        username = "unknown"
        author_url = commit_url = HIDDEN_URL
        prefix = "🔒"

    if len(message) > MAX_MESSAGE_LENGTH:
        message = f"{message[:MAX_MESSAGE_LENGTH]}..."

    time_line = ""
    if commit.date:
        try:
            timestamp = int(datetime.fromisoformat(commit.date).timestamp())
        except ValueError:
            pass
        else:
            time_line = f"_(<t:{timestamp}:R>)_"

    commit_link = f"[`{prefix}{sha[:SHORT_SHA_LENGTH]}`]({commit_url})"
    author_link = f"[@{username}]({author_url})"
    return f"**{author_link} - {commit_link}:**᲼{time_line}\n```{message}```"


def build_update_embed(change: AddonUpdated) -> Embed:
    addon = change.addon
    embed: Embed = {
        "title": f"🚀 Updates for: **`{addon.repo}`**",
        "color": EMBED_COLORS["update"],
        "timestamp": _now(),
    }
    if change.diff is None:
        embed["description"] = (
            f"Updated `{change.old_commit[:SHORT_SHA_LENGTH]}` → "
            f"`{change.new_commit[:SHORT_SHA_LENGTH]}` (commit details unavailable)"
        )
        return embed

    embed["url"] = HIDDEN_URL if change.is_private else f"{change.diff.url}/tree/{addon.branch}"
    entries = [_commit_entry(c, is_private=change.is_private) for c in change.diff.commits]
    embed["description"] = _fit(entries)
    return embed


def build_created_embed(created: Sequence[AddonCreated]) -> Embed:
    lines = [
        f"- [**{c.addon.repo}**]({HIDDEN_URL if c.is_private else c.addon.url})" for c in created
    ]
    return {
        "title": "✨ New Addons",
        "description": _fit(lines),
        "color": EMBED_COLORS["create"],
        "timestamp": _now(),
    }


def build_deleted_embed(deleted: Sequence[AddonDeleted]) -> Embed:
    lines = [f"- [**{d.addon.repo}**]({d.addon.url})" for d in deleted]
    return {
        "title": "🗑️ Removed",
        "description": _fit(lines),
        "color": EMBED_COLORS["delete"],
        "timestamp": _now(),
    }


def build_failure_embed(
    action: str,
    failures: Sequence[CreateFailure | UpdateFailure | DeleteFailure],
) -> Embed:
    lines = [f"- [**{f.addon.repo}**]({f.addon.url}): `{f.error}`" for f in failures]
    return {
        "title": f"❌ Failed to {action}",
        "description": _fit(lines),
        "color": EMBED_COLORS["failure"],
        "timestamp": _now(),
    }


def build_config_embed(diff: str) -> Embed:
    fence_overhead = len("```diff\n\n```")
    body = diff
    limit = MAX_DESCRIPTION - fence_overhead
    if len(body) > limit:
        body = body[: limit - 4] + "\n..."
    return {
        "title": "⚙️ Server config updated",
        "description": f"```diff\n{body}\n```",
        "color": EMBED_COLORS["config"],
        "timestamp": _now(),
    }


class DiscordNotifier:
    """Posts run reports as Discord embeds."""

    def __init__(
        self,
        alert_webhook: str,
        failure_webhook: str,
        server_name: str,
        *,
        timeout: float = 30.0,
        client: httpx.AsyncClient | None = None,
    ):
        """Initialize the notifier.

        Args:
            alert_webhook: Webhook URL for change reports
            failure_webhook: Webhook URL for failure reports
            server_name: Server name shown as the message author
            timeout: Request timeout in seconds
            client: Preconfigured HTTP client to use instead of a new one
        """
        self.alert_webhook = alert_webhook
        self.failure_webhook = failure_webhook
        self.server_name = server_name
        self._client = client or httpx.AsyncClient(timeout=timeout)

    async def __aenter__(self) -> Self:
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        await self.close()

    async def close(self) -> None:
        await self._client.aclose()

    async def _send(self, webhook: str, embeds: list[Embed]) -> None:
        if not webhook:
            msg = "No webhook URL provided"
            raise NotificationError(msg)
        logger.info("Sending webhook", embeds=len(embeds))
        try:
            response = await self._client.post(
                webhook, json={"username": self.server_name, "embeds": embeds}
            )
            response.raise_for_status()
        except httpx.HTTPError as e:
            msg = f"Webhook delivery failed: {e}"
            raise NotificationError(msg) from e

    async def send_changes(self, changes: ChangeSet) -> None:
        new_and_deleted: list[Embed] = []
        if changes.create:
            new_and_deleted.append(build_created_embed(changes.create))
        if changes.delete:
            new_and_deleted.append(build_deleted_embed(changes.delete))
        if new_and_deleted:
            await self._send(self.alert_webhook, new_and_deleted)

        updates = [build_update_embed(change) for change in changes.update]
        for start in range(0, len(updates), MAX_EMBEDS_PER_MESSAGE):
            await self._send(self.alert_webhook, updates[start : start + MAX_EMBEDS_PER_MESSAGE])

    async def send_failures(self, failures: FailureSet) -> None:
        embeds = [
            build_failure_embed(action, records)
            for action, records in (
                ("create", failures.create),
                ("update", failures.update),
                ("delete", failures.delete),
            )
            if records
        ]
        if embeds:
            await self._send(self.failure_webhook, embeds)

    async def send_server_config_diff(self, diff: str) -> None:
        await self._send(self.failure_webhook, [build_config_embed(diff)])
