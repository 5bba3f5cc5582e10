"""Wisp game panel implementation of the remote execution port.

Filesystem and console calls use the panel's REST API, file search and git
operations go through its socket.io websocket.
"""

from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING, Any, Self

import httpx
import socketio
from socketio.exceptions import SocketIOError

from addon_sync.exceptions import (
    GitOperationError,
    NetworkError,
    NotFoundError,
    ProtocolError,
    RemoteTimeoutError,
    UnknownRemoteError,
)
from addon_sync.log import get_logger
from addon_sync.models import CloneResult, FileSearchResults, PullResult


if TYPE_CHECKING:
    from collections.abc import Callable, Sequence
    from types import TracebackType


logger = get_logger(__name__)

ACCEPT_HEADER = "application/vnd.wisp.v1+json"


def _git_error(data: Any) -> Exception:
    if isinstance(data, dict):
        data = data.get("message") or data.get("error")
    if not data:
        return UnknownRemoteError()
    return GitOperationError(str(data))


class WispClient:
    """Client for a single server on a Wisp panel.

    Examples:
        ```python
        async with WispClient("https://example.panel.gg", uuid, token) as wisp:
            content = await wisp.read_file("/garrysmod/cfg/server.cfg")
        ```
    """

    def __init__(
        self,
        domain: str,
        uuid: str,
        token: str,
        *,
        git_token: str | None = None,
        search_timeout: float = 5.0,
        command_timeout: float = 30.0,
        git_timeout: float = 300.0,
        timeout: float = 30.0,
        client: httpx.AsyncClient | None = None,
        sio: socketio.AsyncClient | None = None,
    ):
        """Initialize the client.

        Args:
            domain: Panel base URL, e.g. https://example.panel.gg
            uuid: Server identifier on the panel
            token: Panel API token
            git_token: Token the server uses to clone/pull private repositories
            search_timeout: Seconds to wait for file search results
            command_timeout: Seconds to wait for console command output
            git_timeout: Seconds to wait for a clone or pull to finish
            timeout: HTTP request timeout in seconds
            client: Preconfigured HTTP client to use instead of a new one
            sio: Preconfigured socket.io client to use instead of a new one
        """
        domain = domain.rstrip("/")
        if not domain.startswith(("http://", "https://")):
            domain = f"https://{domain}"
        self.domain = domain
        self.uuid = uuid
        self.git_token = git_token
        self.search_timeout = search_timeout
        self.command_timeout = command_timeout
        self.git_timeout = git_timeout
        self._token = token
        self._http = client or httpx.AsyncClient(timeout=timeout)
        self._sio = sio or socketio.AsyncClient(reconnection=False)
        self._waiters: dict[str, asyncio.Future[Any]] = {}
        self._console_listeners: list[Callable[[str], None]] = []
        # Git and search events carry no correlation id, one at a time.
        self._git_lock = asyncio.Lock()
        self._search_lock = asyncio.Lock()
        self._closed = False

        self._sio.on("auth_success", self._on_auth_success)
        self._sio.on("error", self._on_error)
        self._sio.on("filesearch-results", self._on_filesearch_results)
        self._sio.on("git-success", self._on_git_success)
        self._sio.on("git-error", self._on_git_error)
        self._sio.on("console", self._on_console)

    async def __aenter__(self) -> Self:
        await self.connect()
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        await self.disconnect()

    # === Socket event plumbing ===

    def _expect(self, key: str) -> asyncio.Future[Any]:
        future: asyncio.Future[Any] = asyncio.get_running_loop().create_future()
        self._waiters[key] = future
        return future

    def _settle(self, key: str, result: Any = None, error: Exception | None = None) -> None:
        future = self._waiters.get(key)
        if future is None or future.done():
            logger.debug("Unexpected socket event", key=key)
            return
        if error is not None:
            future.set_exception(error)
        else:
            future.set_result(result)

    async def _await(self, key: str, future: asyncio.Future[Any], timeout: float) -> Any:
        try:
            return await asyncio.wait_for(future, timeout)
        except TimeoutError as e:
            msg = f"No answer for {key} within {timeout}s"
            raise RemoteTimeoutError(msg) from e
        finally:
            if self._waiters.get(key) is future:
                del self._waiters[key]

    def _on_auth_success(self, *_: Any) -> None:
        logger.info("Websocket auth success")
        self._settle("auth")

    def _on_error(self, message: Any = None) -> None:
        logger.error("Websocket error", message=message)
        self._settle("auth", error=NetworkError(f"Websocket error: {message}"))

    def _on_filesearch_results(self, data: Any) -> None:
        self._settle("filesearch", data)

    def _on_git_success(self, data: Any = None) -> None:
        self._settle("git", data)

    def _on_git_error(self, data: Any = None) -> None:
        logger.info("Git operation failed", error=data)
        self._settle("git", error=_git_error(data))

    def _on_console(self, data: Any) -> None:
        line = data.get("line", "") if isinstance(data, dict) else str(data)
        for listener in list(self._console_listeners):
            listener(line)

    # === REST ===

    def make_url(self, path: str) -> str:
        return f"{self.domain}/api/client/servers/{self.uuid}/{path}"

    async def _request(
        self,
        method: str,
        path: str,
        *,
        params: dict[str, Any] | None = None,
        json: dict[str, Any] | None = None,
    ) -> httpx.Response:
        url = self.make_url(path)
        headers = {
            "Content-Type": "application/json",
            "Accept": ACCEPT_HEADER,
            "Authorization": f"Bearer {self._token}",
        }
        logger.debug("Sending request", method=method, url=url)
        try:
            response = await self._http.request(method, url, params=params, json=json, headers=headers)
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            status = e.response.status_code
            msg = f"{method} {path} failed with {status}: {e.response.text}"
            if status == 404:  # noqa: PLR2004
                raise NotFoundError(msg) from e
            raise ProtocolError(msg) from e
        except httpx.HTTPError as e:
            msg = f"{method} {path} failed: {e}"
            raise NetworkError(msg) from e
        return response

    # === Connection ===

    async def connect(self) -> None:
        """Authenticate against the panel websocket."""
        response = await self._request("GET", "websocket")
        try:
            details = response.json()
            url, token = details["url"], details["token"]
        except (ValueError, KeyError, TypeError) as e:
            msg = f"Unexpected websocket details: {response.text}"
            raise ProtocolError(msg) from e

        future = self._expect("auth")
        try:
            await self._sio.connect(
                url,
                headers={"Authorization": f"Bearer {token}"},
                transports=["websocket"],
            )
            logger.info("Connected to websocket")
            await self._sio.emit("auth", token)
        except SocketIOError as e:
            self._waiters.pop("auth", None)
            msg = f"Could not connect to websocket: {e}"
            raise NetworkError(msg) from e
        await self._await("auth", future, self.command_timeout)

    async def disconnect(self) -> None:
        if self._closed:
            return
        self._closed = True
        if self._sio.connected:
            await self._sio.disconnect()
            logger.info("Disconnected from websocket")
        await self._http.aclose()

    # === Port operations ===

    async def search_files(self, pattern: str) -> FileSearchResults:
        async with self._search_lock:
            future = self._expect("filesearch")
            await self._sio.emit("filesearch-start", pattern)
            data = await self._await("filesearch", future, self.search_timeout)
        try:
            return FileSearchResults.model_validate(data)
        except ValueError as e:
            msg = f"Unexpected file search results: {e}"
            raise ProtocolError(msg) from e

    async def read_file(self, path: str) -> str:
        response = await self._request("GET", "files/read", params={"path": path})
        try:
            payload = response.json()
        except ValueError:
            return response.text
        if isinstance(payload, dict) and "content" in payload:
            return str(payload["content"])
        return response.text

    async def write_file(self, path: str, content: str) -> None:
        await self._request("POST", "files/write", json={"path": path, "content": content})

    async def delete_files(self, paths: Sequence[str]) -> None:
        await self._request("POST", "files/delete", json={"paths": list(paths)})

    async def rename_file(self, path: str, new_path: str) -> None:
        await self._request("PUT", "files/rename", json={"path": path, "to": new_path})

    async def send_command(self, command: str) -> None:
        await self._request("POST", "command", json={"command": command})

    async def run_command_with_nonce(self, prefix: str, command: str) -> str:
        future: asyncio.Future[str] = asyncio.get_running_loop().create_future()

        def listener(line: str) -> None:
            if line.startswith(prefix) and not future.done():
                future.set_result(line.removeprefix(prefix))

        self._console_listeners.append(listener)
        try:
            await self.send_command(command)
            return await asyncio.wait_for(future, self.command_timeout)
        except TimeoutError as e:
            msg = f"No console output for {prefix!r} within {self.command_timeout}s"
            raise RemoteTimeoutError(msg) from e
        finally:
            self._console_listeners.remove(listener)

    async def git_clone(self, url: str, directory: str, branch: str) -> CloneResult:
        data = {"dir": directory, "url": url, "branch": branch, "authkey": self.git_token}
        async with self._git_lock:
            future = self._expect("git")
            await self._sio.emit("git-clone", data)
            result = await self._await("git", future, self.git_timeout)
        is_private = result.get("isPrivate", False) if isinstance(result, dict) else False
        return CloneResult(is_private=bool(is_private))

    async def git_pull(self, directory: str) -> PullResult:
        data = {"dir": directory, "authkey": self.git_token}
        async with self._git_lock:
            future = self._expect("git")
            await self._sio.emit("git-pull", data)
            result = await self._await("git", future, self.git_timeout)
        if isinstance(result, dict):
            output, is_private = result.get("output"), result.get("isPrivate", False)
        else:
            output, is_private = result, False
        if not output:
            msg = f"Pull of {directory} reported no commit"
            raise ProtocolError(msg)
        return PullResult(output=str(output).strip(), is_private=bool(is_private))
