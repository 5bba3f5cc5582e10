"""Command line interface for addon reconciliation runs.

Examples:
    # Reconcile using a config file
    addon-sync run --config sync.yml

    # Show what would change without touching the server
    addon-sync plan --config sync.yml

    # Configure entirely through the environment
    WISP_DOMAIN=... WISP_UUID=... WISP_TOKEN=... GITHUB_PAT=... addon-sync run
"""

from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING, Annotated, Any

from pydantic import ValidationError
import typer as t

from addon_sync.exceptions import AddonSyncError, describe_error
from addon_sync.log import configure_logging, get_logger


if TYPE_CHECKING:
    from addon_sync.config import SyncConfig
    from addon_sync.discord import DiscordNotifier
    from addon_sync.github import GitHubClient
    from addon_sync.manager import AddonManager
    from addon_sync.planner import ActionPlan
    from addon_sync.report import RunReport


logger = get_logger(__name__)

app = t.Typer(
    name="addon-sync",
    help="Keep a game server's git-managed addons in line with a control document.",
    no_args_is_help=True,
)

ConfigOpt = Annotated[
    str | None, t.Option("--config", "-c", help="YAML settings file", envvar="ADDON_SYNC_CONFIG")
]
DomainOpt = Annotated[str | None, t.Option("--domain", help="Wisp panel URL", envvar="WISP_DOMAIN")]
UuidOpt = Annotated[str | None, t.Option("--uuid", help="Server id on the panel", envvar="WISP_UUID")]
TokenOpt = Annotated[
    str | None, t.Option("--token", help="Wisp API token", envvar="WISP_TOKEN", show_default=False)
]
GitHubTokenOpt = Annotated[
    str | None,
    t.Option("--github-token", help="GitHub access token", envvar="GITHUB_PAT", show_default=False),
]
ServerNameOpt = Annotated[
    str | None, t.Option("--server-name", help="Name shown in notifications", envvar="SERVER_NAME")
]
AlertWebhookOpt = Annotated[
    str | None,
    t.Option("--alert-webhook", help="Webhook for change reports", envvar="DISCORD_ALERT_WEBHOOK"),
]
FailureWebhookOpt = Annotated[
    str | None,
    t.Option(
        "--failure-webhook", help="Webhook for failure reports", envvar="DISCORD_FAILURE_WEBHOOK"
    ),
]
ControlOpt = Annotated[
    str | None,
    t.Option(
        "--control",
        help="Control document: local path or github://owner/repo/path[@ref]",
        envvar="CONTROL_FILE",
    ),
]
ServerConfigOpt = Annotated[
    str | None,
    t.Option("--server-config", help="Desired server.cfg file", envvar="SERVER_CONFIG_FILE"),
]
VerboseOpt = Annotated[bool, t.Option("--verbose", "-v", help="Enable debug logging")]
JsonLogsOpt = Annotated[bool, t.Option("--json-logs", help="Emit JSON log lines")]


def load_config(config: str | None, **overrides: Any) -> SyncConfig:
    """Build settings from an optional file plus command line / environment overrides."""
    from addon_sync.config import SyncConfig

    try:
        if config:
            return SyncConfig.from_file(config, **overrides)
        return SyncConfig.model_validate({k: v for k, v in overrides.items() if v is not None})
    except (ValidationError, ValueError, OSError) as e:
        t.echo(f"Invalid settings: {e}", err=True)
        raise t.Exit(1) from e


def build_manager(settings: SyncConfig) -> tuple[AddonManager, GitHubClient, DiscordNotifier]:
    """Wire the adapters for a run.

    Returns:
        The manager plus the HTTP clients that need closing afterwards
    """
    from addon_sync.collector import FilesystemProbeCollector, SnapshotCollector
    from addon_sync.discord import DiscordNotifier
    from addon_sync.github import GitHubClient
    from addon_sync.manager import AddonManager
    from addon_sync.wisp import WispClient

    github_token = settings.github_token.get_secret_value()
    remote = WispClient(
        settings.domain,
        settings.uuid,
        settings.token.get_secret_value(),
        git_token=github_token,
        search_timeout=settings.search_timeout,
        command_timeout=settings.command_timeout,
    )
    github = GitHubClient(github_token)
    notifier = DiscordNotifier(
        settings.alert_webhook,
        settings.failure_webhook,
        settings.server_name or settings.uuid,
    )
    match settings.collector:
        case "probe":
            collector: Any = FilesystemProbeCollector(
                remote, addons_dir=settings.addons_dir, batch_size=settings.concurrency
            )
        case _:
            collector = SnapshotCollector(remote, gitinfo_path=settings.gitinfo_path)

    manager = AddonManager(
        remote,
        github,
        notifier,
        collector=collector,
        addons_dir=settings.addons_dir,
        concurrency=settings.concurrency,
        server_config_path=settings.server_config_path,
    )
    return manager, github, notifier


async def _read_control(settings: SyncConfig, github: GitHubClient) -> str | None:
    from addon_sync.control import read_control_source

    if not settings.control_file:
        return None
    return await read_control_source(settings.control_file, github)


async def _execute_run(settings: SyncConfig) -> RunReport:
    manager, github, notifier = build_manager(settings)
    try:
        control_document = await _read_control(settings, github)
        server_config = settings.read_server_config()
        return await manager.run(control_document, server_config=server_config)
    finally:
        await manager.remote.disconnect()
        await github.close()
        await notifier.close()


async def _execute_plan(settings: SyncConfig) -> ActionPlan:
    manager, github, notifier = build_manager(settings)
    try:
        control_document = await _read_control(settings, github)
        return await manager.preview(control_document)
    finally:
        await manager.remote.disconnect()
        await github.close()
        await notifier.close()


@app.command("run")
def run_command(
    config: ConfigOpt = None,
    domain: DomainOpt = None,
    uuid: UuidOpt = None,
    token: TokenOpt = None,
    github_token: GitHubTokenOpt = None,
    server_name: ServerNameOpt = None,
    alert_webhook: AlertWebhookOpt = None,
    failure_webhook: FailureWebhookOpt = None,
    control: ControlOpt = None,
    server_config: ServerConfigOpt = None,
    verbose: VerboseOpt = False,
    json_logs: JsonLogsOpt = False,
) -> None:
    """Reconcile the server's addons and report the outcome.

    Exits with 1 when the run could not complete. Per-addon failures are
    reported to the failure webhook and do not change the exit code.
    """
    settings = load_config(
        config,
        domain=domain,
        uuid=uuid,
        token=token,
        github_token=github_token,
        server_name=server_name,
        alert_webhook=alert_webhook,
        failure_webhook=failure_webhook,
        control_file=control,
        server_config=server_config,
    )
    configure_logging(
        "DEBUG" if verbose else settings.log_level, json_logs=json_logs or settings.json_logs
    )
    try:
        report = asyncio.run(_execute_run(settings))
    except (AddonSyncError, OSError) as e:
        logger.error("Run failed", error=describe_error(e))  # noqa: TRY400
        raise t.Exit(1) from e

    logger.info("Run complete", changes=len(report.changes), failures=len(report.failures))


@app.command("plan")
def plan_command(
    config: ConfigOpt = None,
    domain: DomainOpt = None,
    uuid: UuidOpt = None,
    token: TokenOpt = None,
    github_token: GitHubTokenOpt = None,
    alert_webhook: AlertWebhookOpt = None,
    failure_webhook: FailureWebhookOpt = None,
    control: ControlOpt = None,
    verbose: VerboseOpt = False,
) -> None:
    """Show which addons would be cloned, updated or deleted."""
    settings = load_config(
        config,
        domain=domain,
        uuid=uuid,
        token=token,
        github_token=github_token,
        alert_webhook=alert_webhook,
        failure_webhook=failure_webhook,
        control_file=control,
    )
    configure_logging("DEBUG" if verbose else settings.log_level, json_logs=settings.json_logs)
    try:
        actions = asyncio.run(_execute_plan(settings))
    except (AddonSyncError, OSError) as e:
        logger.error("Planning failed", error=describe_error(e))  # noqa: TRY400
        raise t.Exit(1) from e

    for kind, urls in actions.summary().items():
        t.echo(f"{kind} ({len(urls)}):")
        for url in urls:
            t.echo(f"  {url}")


def main() -> None:
    app()


if __name__ == "__main__":
    main()
