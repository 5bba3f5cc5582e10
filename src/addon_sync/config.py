"""Configuration models for reconciliation runs."""

from __future__ import annotations

from pathlib import Path
from typing import Any, Literal, Self

from pydantic import ConfigDict, Field, SecretStr, model_validator
from schemez import Schema
import yamling

from addon_sync.collector import DEFAULT_GITINFO_PATH
from addon_sync.executor import DEFAULT_ADDONS_DIR


CollectorType = Literal["snapshot", "probe"]


class SyncConfig(Schema):
    """Settings of an addon reconciliation run.

    Can be loaded from YAML:

        domain: https://example.panel.gg
        uuid: 1234abcd
        server_name: "CFC Build"
        token: wisp-api-token
        github_token: ghp_...
        alert_webhook: https://discord.com/api/webhooks/...
        failure_webhook: https://discord.com/api/webhooks/...
        control_file: control.yaml
    """

    model_config = ConfigDict(extra="forbid")

    domain: str
    """Base URL of the Wisp panel."""

    uuid: str
    """Identifier of the game server on the panel."""

    token: SecretStr
    """Wisp API token with access to the server."""

    github_token: SecretStr
    """GitHub token, used for the API and for cloning private repositories."""

    alert_webhook: str
    """Discord webhook receiving change reports."""

    failure_webhook: str
    """Discord webhook receiving failure reports."""

    server_name: str | None = None
    """Human friendly server name used in notifications."""

    control_file: str | None = None
    """Control document declaring desired addons, a local path or github://owner/repo/path[@ref].

    Without it all installed addons are refreshed.
    """

    server_config: Path | None = None
    """Desired server config file contents."""

    addons_dir: str = DEFAULT_ADDONS_DIR
    """Directory addons live in on the server."""

    gitinfo_path: str = DEFAULT_GITINFO_PATH
    """Git info manifest written by the server."""

    server_config_path: str = "garrysmod/cfg/server.cfg"
    """Location of the server config file on the server."""

    collector: CollectorType = "snapshot"
    """How installed addons are discovered."""

    concurrency: int = Field(default=5, ge=1, le=10)
    """Maximum concurrent remote operations."""

    search_timeout: float = Field(default=5.0, gt=0)
    """Seconds to wait for file search results."""

    command_timeout: float = Field(default=30.0, gt=0)
    """Seconds to wait for console command output."""

    log_level: str = "INFO"
    json_logs: bool = False

    @model_validator(mode="before")
    @classmethod
    def default_server_name(cls, data: Any) -> Any:
        if isinstance(data, dict) and not data.get("server_name") and data.get("uuid"):
            return {**data, "server_name": f"GMod Server: {data['uuid']}"}
        return data

    @classmethod
    def from_file(cls, path: Path | str, **overrides: Any) -> Self:
        """Load settings from a YAML file, explicit overrides win."""
        data = yamling.load_yaml_file(str(path)) or {}
        if not isinstance(data, dict):
            msg = f"Config file {path} must contain a mapping"
            raise ValueError(msg)  # noqa: TRY004
        data.update({k: v for k, v in overrides.items() if v is not None})
        return cls.model_validate(data)

    def read_server_config(self) -> str | None:
        if self.server_config is None:
            return None
        return self.server_config.read_text(encoding="utf-8")
