"""Collection of the addons currently installed on the game server.

Two strategies are available:

- `SnapshotCollector` asks the server to write a JSON manifest of its git
  checkouts and reads it back in one call.
- `FilesystemProbeCollector` searches for git configs declaring an origin
  remote and reads HEAD/ref files of every checkout it finds.
"""

from __future__ import annotations

import re
import time
from typing import TYPE_CHECKING, Protocol
import uuid

from pydantic import ValidationError

from addon_sync.concurrency import DEFAULT_CONCURRENCY, gather_with_concurrency
from addon_sync.exceptions import CollectionError, NotFoundError, describe_error
from addon_sync.log import get_logger
from addon_sync.models import GitInfoSnapshot, InstalledAddon


if TYPE_CHECKING:
    from collections.abc import Callable, Iterable, Mapping

    from addon_sync.ports import RemoteExecutionPort


logger = get_logger(__name__)

DEFAULT_GITINFO_PATH = "/garrysmod/data/cfc/nanny_gitinfo.json"
GIT_CONFIG_MARKER = 'remote "origin"'
UNKNOWN = "unknown"

_URL_LINE = re.compile(r"^\s*url\s*=\s*(\S+)\s*$")
_HEAD_REF = re.compile(r"^ref:\s*refs/heads/(.+)$")


class InstalledStateCollector(Protocol):
    async def collect(self) -> dict[str, InstalledAddon]:
        """Map of canonical URL -> installed addon."""
        ...


def index_by_url(addons: Iterable[InstalledAddon]) -> dict[str, InstalledAddon]:
    """Key installed addons by canonical URL."""
    installed: dict[str, InstalledAddon] = {}
    for addon in addons:
        if existing := installed.get(addon.url):
            logger.warning(
                "Repository installed twice, keeping first checkout",
                url=addon.url,
                kept=existing.path,
                ignored=addon.path,
            )
            continue
        installed[addon.url] = addon
    return installed


def new_nonce() -> str:
    return f"nanny-{uuid.uuid4().hex[:8]}"


async def regenerate_snapshot(remote: RemoteExecutionPort) -> bool:
    """Tell the server to rebuild its git info manifest.

    Returns:
        Whether the server confirmed the rebuild
    """
    nonce = new_nonce()
    try:
        await remote.run_command_with_nonce(f"{nonce}: ", f"nanny {nonce} gitinfo")
    except Exception as e:  # noqa: BLE001
        logger.warning(
            "Failed to generate current git info (is the server down?)",
            error=describe_error(e),
        )
        return False
    logger.info("Server generated new git info")
    return True


class SnapshotCollector:
    """Reads the server-side git info manifest."""

    def __init__(
        self,
        remote: RemoteExecutionPort,
        *,
        gitinfo_path: str = DEFAULT_GITINFO_PATH,
        clock: Callable[[], float] = time.time,
    ):
        self.remote = remote
        self.gitinfo_path = gitinfo_path
        self._clock = clock

    async def collect(self) -> dict[str, InstalledAddon]:
        await regenerate_snapshot(self.remote)

        try:
            content = await self.remote.read_file(self.gitinfo_path)
        except Exception as e:
            msg = f"Could not read git info manifest {self.gitinfo_path}: {describe_error(e)}"
            raise CollectionError(msg) from e

        try:
            snapshot = GitInfoSnapshot.model_validate_json(content)
        except ValidationError as e:
            msg = f"Malformed git info manifest {self.gitinfo_path}: {e}"
            raise CollectionError(msg) from e

        now = int(self._clock())
        logger.info(
            "Read git info manifest",
            generated_at=snapshot.generated_at,
            age_seconds=now - snapshot.generated_at,
            addons=len(snapshot.installed_addons),
        )
        return index_by_url(snapshot.installed_addons)


def config_key_to_path(key: str) -> str:
    """Install directory of a git config search hit.

    "garrysmod/addons/niknaks/.git/config" -> "/garrysmod/addons/niknaks"
    """
    parts = key.strip("/").split("/")
    return "/" + "/".join(parts[:-2])


def extract_remote_url(lines: Mapping[int, str] | Iterable[str]) -> str | None:
    """Find the `url = ...` entry in git config lines."""
    values = lines.values() if hasattr(lines, "values") else lines
    for line in values:
        if match := _URL_LINE.match(line):
            return match.group(1)
    return None


def parse_head(content: str) -> str | None:
    """Branch name from a HEAD file, None when detached."""
    if match := _HEAD_REF.match(content.strip()):
        return match.group(1).strip()
    return None


class FilesystemProbeCollector:
    """Discovers checkouts by searching the server filesystem."""

    def __init__(
        self,
        remote: RemoteExecutionPort,
        *,
        addons_dir: str | None = None,
        batch_size: int = DEFAULT_CONCURRENCY,
    ):
        """Initialize the collector.

        Args:
            remote: Remote execution port
            addons_dir: Only consider checkouts directly below this directory
            batch_size: Maximum concurrent per-addon probes
        """
        self.remote = remote
        self.addons_dir = addons_dir.rstrip("/") if addons_dir else None
        self.batch_size = batch_size

    def _is_tracked(self, path: str) -> bool:
        if self.addons_dir is None:
            return True
        return path.rsplit("/", 1)[0] == self.addons_dir

    async def collect(self) -> dict[str, InstalledAddon]:
        try:
            results = await self.remote.search_files(GIT_CONFIG_MARKER)
        except Exception as e:
            msg = f"Addon search failed: {describe_error(e)}"
            raise CollectionError(msg) from e

        if results.too_many:
            logger.warning("Search returned too many results, listing may be incomplete")

        discovered: list[InstalledAddon] = []
        for key, match in results.files.items():
            path = config_key_to_path(key)
            if not self._is_tracked(path):
                logger.debug("Ignoring checkout outside addons directory", path=path)
                continue
            url = extract_remote_url(match.lines) or await self._read_remote_url(key)
            if not url:
                logger.warning("No origin url found in git config", config=key)
                continue
            try:
                discovered.append(InstalledAddon(path=path, url=url))
            except ValidationError as e:
                logger.warning("Skipping checkout with unusable origin", path=path, url=url, error=str(e))

        logger.info("Discovered checkouts, probing branch and commit", count=len(discovered))
        probed = await gather_with_concurrency(
            (self._probe(addon) for addon in discovered),
            limit=self.batch_size,
        )
        addons: list[InstalledAddon] = []
        for addon, result in zip(discovered, probed, strict=True):
            if isinstance(result, Exception):
                logger.warning(
                    "Could not determine branch/commit", path=addon.path, error=describe_error(result)
                )
                addons.append(addon)
            else:
                addons.append(result)
        return index_by_url(addons)

    async def _read_remote_url(self, key: str) -> str | None:
        try:
            content = await self.remote.read_file("/" + key.strip("/"))
        except Exception as e:  # noqa: BLE001
            logger.warning("Could not read git config", config=key, error=describe_error(e))
            return None
        return extract_remote_url(content.splitlines())

    async def _probe(self, addon: InstalledAddon) -> InstalledAddon:
        head = await self.remote.read_file(f"{addon.path}/.git/HEAD")
        branch = parse_head(head)
        if branch is None:
            # Detached HEAD holds the commit itself.
            return addon.model_copy(update={"branch": UNKNOWN, "commit": head.strip()})
        commit = await self._resolve_ref(addon.path, branch)
        return addon.model_copy(update={"branch": branch, "commit": commit})

    async def _resolve_ref(self, path: str, branch: str) -> str:
        ref = f"refs/heads/{branch}"
        try:
            return (await self.remote.read_file(f"{path}/.git/{ref}")).strip()
        except NotFoundError:
            pass
        packed = await self.remote.read_file(f"{path}/.git/packed-refs")
        for line in packed.splitlines():
            sha, _, name = line.strip().partition(" ")
            if name == ref:
                return sha
        msg = f"Ref {ref} not found"
        raise NotFoundError(msg)
