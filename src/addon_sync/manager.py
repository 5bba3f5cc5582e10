"""Main orchestrator for addon reconciliation runs."""

from __future__ import annotations

from typing import TYPE_CHECKING

from addon_sync.collector import SnapshotCollector, regenerate_snapshot
from addon_sync.concurrency import DEFAULT_CONCURRENCY
from addon_sync.control import parse_control_document
from addon_sync.exceptions import describe_error
from addon_sync.executor import DEFAULT_ADDONS_DIR, RemoteChangeExecutor
from addon_sync.log import get_logger
from addon_sync.necessity import filter_updates
from addon_sync.planner import ActionPlan, plan
from addon_sync.report import RunReport
from addon_sync.server_config import DEFAULT_SERVER_CONFIG_PATH, update_server_config


if TYPE_CHECKING:
    from collections.abc import Mapping

    from addon_sync.collector import InstalledStateCollector
    from addon_sync.models import DesiredAddon, InstalledAddon
    from addon_sync.ports import NotificationSink, RemoteExecutionPort, VcsMetadataPort


logger = get_logger(__name__)


class AddonManager:
    """Reconciles the addons of one game server against a control document.

    A run collects the installed addons, diffs them against the desired ones,
    applies deletes, clones and updates, then reports the outcome. All state
    is rebuilt from scratch on every run.
    """

    def __init__(
        self,
        remote: RemoteExecutionPort,
        vcs: VcsMetadataPort,
        sink: NotificationSink,
        *,
        collector: InstalledStateCollector | None = None,
        addons_dir: str = DEFAULT_ADDONS_DIR,
        concurrency: int = DEFAULT_CONCURRENCY,
        server_config_path: str = DEFAULT_SERVER_CONFIG_PATH,
    ):
        """Initialize the manager.

        Args:
            remote: Remote execution port of the game server
            vcs: VCS metadata port
            sink: Receives change and failure reports
            collector: Installed-state strategy (default: snapshot manifest)
            addons_dir: Directory addons get cloned into
            concurrency: Maximum concurrent clone/pull operations
            server_config_path: Location of the server config file
        """
        self.remote = remote
        self.vcs = vcs
        self.sink = sink
        self.collector = collector or SnapshotCollector(remote)
        self.executor = RemoteChangeExecutor(
            remote, vcs, addons_dir=addons_dir, concurrency=concurrency
        )
        self.server_config_path = server_config_path

    async def reconcile(
        self,
        installed: Mapping[str, InstalledAddon],
        desired: Mapping[str, DesiredAddon] | None,
    ) -> RunReport:
        """Plan and apply changes for already collected state.

        Upstream commits are looked up before anything changes on the server,
        a failed lookup aborts the run untouched. Queues then run in the order
        delete, clone, update.
        """
        actions = plan(installed, desired)
        logger.info("Planned changes", **actions.summary())
        report = RunReport()

        filtered = None
        if actions.to_update:
            logger.info("Getting remote git info", count=len(actions.to_update))
            remote_info = await self.vcs.get_latest_commit_hashes(actions.to_update)
            filtered = filter_updates(actions.to_update, remote_info)
            report.record_all(filtered.bad_branches)
            logger.info(
                "Filtered update queue",
                to_pull=len(filtered.to_pull),
                up_to_date=len(filtered.up_to_date),
                bad_branches=len(filtered.bad_branches),
            )

        if actions.to_delete:
            report.record_all(await self.executor.delete(actions.to_delete))
        else:
            logger.info("No addons to delete")

        if actions.to_clone:
            report.record_all(await self.executor.clone(actions.to_clone))
        else:
            logger.info("No addons to clone")

        if filtered is not None:
            report.record_all(await self.executor.update(filtered.to_pull))
        else:
            logger.info("No addons to update")

        logger.info("Reconciliation finished", changes=len(report.changes), failures=len(report.failures))
        return report

    async def notify(self, report: RunReport) -> None:
        """Hand the report to the sink. Delivery problems never fail the run."""
        try:
            await self.sink.send_changes(report.changes)
        except Exception:
            logger.exception("Failed to send change report")
        try:
            await self.sink.send_failures(report.failures)
        except Exception:
            logger.exception("Failed to send failure report")

    async def preview(self, control_document: str | None = None) -> ActionPlan:
        """Collect and plan without changing anything."""
        desired = parse_control_document(control_document) if control_document else None
        try:
            await self.remote.connect()
            installed = await self.collector.collect()
            return plan(installed, desired)
        finally:
            await self._disconnect()

    async def run(
        self,
        control_document: str | None = None,
        *,
        server_config: str | None = None,
    ) -> RunReport:
        """Execute a full reconciliation run.

        Args:
            control_document: YAML control document; None refreshes all installed addons
            server_config: Desired server config text, synced after the addons

        Returns:
            Changes and failures of the run

        Raises:
            ControlFileError: If the control document is malformed
            CollectionError: If the installed addons could not be collected
            RemoteError: If connecting to the game server failed
        """
        if control_document:
            logger.info("Control document provided, getting desired addons")
            desired = parse_control_document(control_document)
        else:
            logger.info("No control document provided, updating all existing addons")
            desired = None

        try:
            await self.remote.connect()
            logger.info("Connected, getting installed addons")
            installed = await self.collector.collect()
            report = await self.reconcile(installed, desired)
            await self.notify(report)
            # Refresh the manifest so it reflects this run.
            await regenerate_snapshot(self.remote)
            await self._sync_server_config(server_config)
        except Exception:
            logger.exception("Run failed, disconnecting")
            raise
        finally:
            await self._disconnect()
        return report

    async def _sync_server_config(self, server_config: str | None) -> None:
        try:
            await update_server_config(
                self.remote, self.sink, server_config, path=self.server_config_path
            )
        except Exception as e:  # noqa: BLE001
            logger.error("Failed to update server config", error=describe_error(e))  # noqa: TRY400

    async def _disconnect(self) -> None:
        try:
            await self.remote.disconnect()
        except Exception as e:  # noqa: BLE001
            logger.warning("Failed to disconnect", error=describe_error(e))
        else:
            logger.info("Disconnected")
