"""Tests for the Wisp panel adapter."""

from __future__ import annotations

import json
from typing import Any

import httpx
import pytest

from addon_sync.exceptions import (
    GitOperationError,
    NetworkError,
    NotFoundError,
    ProtocolError,
    RemoteTimeoutError,
    UnknownRemoteError,
    describe_error,
)
from addon_sync.wisp import WispClient


BASE = "https://panel.test/api/client/servers/uuid-1"


class FakeSocket:
    """Stands in for socketio.AsyncClient, answering emits from a script."""

    def __init__(self, replies: dict[str, tuple[str, Any] | None] | None = None):
        self.handlers: dict[str, Any] = {}
        self.replies = {"auth": ("auth_success", None), **(replies or {})}
        self.emitted: list[tuple[str, Any]] = []
        self.connected = False
        self.connect_args: tuple[str, dict[str, Any]] | None = None

    def on(self, event: str, handler: Any) -> None:
        self.handlers[event] = handler

    async def connect(self, url: str, **kwargs: Any) -> None:
        self.connected = True
        self.connect_args = (url, kwargs)

    async def disconnect(self) -> None:
        self.connected = False

    async def emit(self, event: str, data: Any = None) -> None:
        self.emitted.append((event, data))
        reply = self.replies.get(event)
        if reply is None:
            return
        name, payload = reply
        if payload is None:
            self.handlers[name]()
        else:
            self.handlers[name](payload)

    def console(self, line: str) -> None:
        self.handlers["console"]({"line": line})


class Panel:
    """Mock REST endpoints of a Wisp panel."""

    def __init__(self):
        self.files: dict[str, str] = {}
        self.requests: list[tuple[str, str, Any]] = []
        self.on_command: Any = None

    def __call__(self, request: httpx.Request) -> httpx.Response:
        path = request.url.path.removeprefix("/api/client/servers/uuid-1/")
        body = json.loads(request.content) if request.content else None
        self.requests.append((request.method, path, body))
        match request.method, path:
            case "GET", "websocket":
                return httpx.Response(200, json={"url": "wss://ws.panel.test", "token": "ws-token"})
            case "GET", "files/read":
                file_path = request.url.params["path"]
                if file_path not in self.files:
                    return httpx.Response(404, text="missing")
                return httpx.Response(200, json={"content": self.files[file_path]})
            case "POST", "command":
                if self.on_command:
                    self.on_command(body["command"])
                return httpx.Response(204)
            case _:
                return httpx.Response(204)


def make_wisp(panel: Panel, sio: FakeSocket, **kwargs: Any) -> WispClient:
    client = httpx.AsyncClient(transport=httpx.MockTransport(panel))
    return WispClient("panel.test", "uuid-1", "api-token", client=client, sio=sio, **kwargs)


async def test_connect_authenticates():
    panel, sio = Panel(), FakeSocket()
    wisp = make_wisp(panel, sio, git_token="ghp")
    await wisp.connect()
    assert sio.connect_args is not None
    assert sio.connect_args[0] == "wss://ws.panel.test"
    assert sio.emitted == [("auth", "ws-token")]
    await wisp.disconnect()
    assert not sio.connected
    await wisp.disconnect()


async def test_socket_error_fails_connect():
    sio = FakeSocket({"auth": ("error", "bad token")})
    wisp = make_wisp(Panel(), sio)
    with pytest.raises(NetworkError, match="bad token"):
        await wisp.connect()


async def test_read_file_and_missing_file():
    panel = Panel()
    panel.files["/garrysmod/cfg/server.cfg"] = "sv_cheats 0"
    wisp = make_wisp(panel, FakeSocket())
    assert await wisp.read_file("/garrysmod/cfg/server.cfg") == "sv_cheats 0"
    with pytest.raises(NotFoundError):
        await wisp.read_file("/nope")


async def test_server_errors_are_protocol_errors():
    wisp = make_wisp(Panel(), FakeSocket())
    wisp._http = httpx.AsyncClient(transport=httpx.MockTransport(lambda r: httpx.Response(500)))
    with pytest.raises(ProtocolError):
        await wisp.delete_files(["/a"])


async def test_file_operations_send_expected_payloads():
    panel = Panel()
    wisp = make_wisp(panel, FakeSocket())
    await wisp.write_file("/a.txt", "hi")
    await wisp.delete_files(["/a", "/b"])
    await wisp.rename_file("/a", "/b")
    assert panel.requests == [
        ("POST", "files/write", {"path": "/a.txt", "content": "hi"}),
        ("POST", "files/delete", {"paths": ["/a", "/b"]}),
        ("PUT", "files/rename", {"path": "/a", "to": "/b"}),
    ]


async def test_search_files():
    results = {"files": {"garrysmod/addons/a/.git/config": {"lines": {"7": "url = x"}}}, "tooMany": False}
    wisp = make_wisp(Panel(), FakeSocket({"filesearch-start": ("filesearch-results", results)}))
    found = await wisp.search_files('remote "origin"')
    assert found.files["garrysmod/addons/a/.git/config"].lines == {7: "url = x"}


async def test_search_timeout():
    wisp = make_wisp(Panel(), FakeSocket({"filesearch-start": None}), search_timeout=0.01)
    with pytest.raises(RemoteTimeoutError):
        await wisp.search_files("anything")


async def test_git_clone_reports_privacy():
    sio = FakeSocket({"git-clone": ("git-success", {"isPrivate": True})})
    wisp = make_wisp(Panel(), sio, git_token="ghp")
    result = await wisp.git_clone("https://github.com/o/r.git", "/garrysmod/addons", "main")
    assert result.is_private
    assert sio.emitted[-1] == (
        "git-clone",
        {"dir": "/garrysmod/addons", "url": "https://github.com/o/r.git", "branch": "main", "authkey": "ghp"},
    )


async def test_git_pull_returns_commit():
    sio = FakeSocket({"git-pull": ("git-success", {"output": "abc123\n", "isPrivate": False})})
    result = await make_wisp(Panel(), sio).git_pull("/garrysmod/addons/a")
    assert result.output == "abc123"


async def test_git_error_keeps_message():
    sio = FakeSocket({"git-pull": ("git-error", "No merge base found")})
    with pytest.raises(GitOperationError, match="No merge base found"):
        await make_wisp(Panel(), sio).git_pull("/garrysmod/addons/a")


async def test_empty_git_error_is_unknown():
    sio = FakeSocket({"git-pull": ("git-error", {})})
    with pytest.raises(UnknownRemoteError) as exc_info:
        await make_wisp(Panel(), sio).git_pull("/garrysmod/addons/a")
    assert describe_error(exc_info.value) == "Unknown Error"


async def test_command_with_nonce_waits_for_prefixed_line():
    panel, sio = Panel(), FakeSocket()

    def answer(command: str) -> None:
        sio.console("unrelated output")
        sio.console("nanny-1: done")

    panel.on_command = answer
    wisp = make_wisp(panel, sio)
    assert await wisp.run_command_with_nonce("nanny-1: ", "nanny nanny-1 gitinfo") == "done"
    assert panel.requests[-1] == ("POST", "command", {"command": "nanny nanny-1 gitinfo"})


async def test_command_with_nonce_times_out():
    wisp = make_wisp(Panel(), FakeSocket(), command_timeout=0.01)
    with pytest.raises(RemoteTimeoutError):
        await wisp.run_command_with_nonce("nanny-2: ", "nanny nanny-2 gitinfo")
