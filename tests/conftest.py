"""Shared fixtures: a fake UI scheduler and a local fake daemon."""

from __future__ import annotations

import json
import threading
import time
from collections import deque
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer
from typing import Callable

import pytest


class FakeScheduler:
    """Stands in for the UI loop's set_timer/call_later."""

    def __init__(self) -> None:
        self.pending: deque[tuple[float, Callable[[], None]]] = deque()
        self.delays: list[float] = []

    def __call__(self, delay: float, callback: Callable[[], None]) -> None:
        self.delays.append(delay)
        self.pending.append((delay, callback))

    def step(self) -> None:
        _, callback = self.pending.popleft()
        callback()

    def run_until(self, predicate: Callable[[], bool], timeout: float = 5.0) -> None:
        """Run callbacks, honouring their delays, until predicate() holds."""
        deadline = time.monotonic() + timeout
        while not predicate():
            if time.monotonic() > deadline:
                raise AssertionError("scheduler timed out")
            if not self.pending:
                raise AssertionError("scheduler went idle before predicate held")
            delay, callback = self.pending.popleft()
            if delay > 0:
                time.sleep(delay)
            callback()

    def run_until_idle(self, timeout: float = 5.0) -> None:
        self.run_until(lambda: not self.pending, timeout=timeout)


@pytest.fixture
def scheduler() -> FakeScheduler:
    return FakeScheduler()


def record(content: str | None = None, done: bool = False, eval_count: int | None = None) -> dict:
    """One daemon chat stream record."""
    data: dict = {"model": "m1", "done": done}
    data["message"] = None if content is None else {"role": "assistant", "content": content}
    if eval_count is not None:
        data["eval_count"] = eval_count
    return data


class FakeDaemon(ThreadingHTTPServer):
    daemon_threads = True

    def __init__(self) -> None:
        super().__init__(("127.0.0.1", 0), _Handler)
        self.routes: dict[tuple[str, str], Callable[[BaseHTTPRequestHandler], None]] = {}
        self.requests: list[dict] = []

    @property
    def url(self) -> str:
        host, port = self.server_address[:2]
        return f"http://{host}:{port}"

    def route(self, method: str, path: str, handler: Callable[[BaseHTTPRequestHandler], None]) -> None:
        self.routes[(method, path)] = handler


class _Handler(BaseHTTPRequestHandler):
    protocol_version = "HTTP/1.1"

    def _dispatch(self, method: str) -> None:
        length = int(self.headers.get("Content-Length") or 0)
        body = self.rfile.read(length) if length else b""
        self.server.requests.append(
            {"method": method, "path": self.path, "headers": dict(self.headers), "body": body}
        )
        handler = self.server.routes.get((method, self.path))
        if handler is None:
            self.send_response(404)
            self.send_header("Content-Length", "0")
            self.send_header("Connection", "close")
            self.end_headers()
            return
        try:
            handler(self)
        except (BrokenPipeError, ConnectionResetError):
            pass
        self.close_connection = True

    def do_GET(self) -> None:
        self._dispatch("GET")

    def do_POST(self) -> None:
        self._dispatch("POST")

    def log_message(self, format, *args) -> None:
        pass


def json_reply(payload: dict, status: int = 200) -> Callable[[BaseHTTPRequestHandler], None]:
    def handle(h: BaseHTTPRequestHandler) -> None:
        body = json.dumps(payload).encode()
        h.send_response(status)
        h.send_header("Content-Type", "application/json")
        h.send_header("Content-Length", str(len(body)))
        h.send_header("Connection", "close")
        h.end_headers()
        h.wfile.write(body)

    return handle


def text_reply(body: str, status: int, content_type: str = "text/plain") -> Callable[[BaseHTTPRequestHandler], None]:
    def handle(h: BaseHTTPRequestHandler) -> None:
        data = body.encode()
        h.send_response(status)
        h.send_header("Content-Type", content_type)
        h.send_header("Content-Length", str(len(data)))
        h.send_header("Connection", "close")
        h.end_headers()
        h.wfile.write(data)

    return handle


def ndjson_stream(
    records: list[dict],
    hold: threading.Event | None = None,
    content_type: str = "application/x-ndjson",
) -> Callable[[BaseHTTPRequestHandler], None]:
    """Chunked NDJSON body, one HTTP chunk per record.

    With ``hold`` the response stays open after the last record until the
    event is set, like a daemon still generating.
    """

    def write_chunk(h: BaseHTTPRequestHandler, data: bytes) -> None:
        h.wfile.write(f"{len(data):x}\r\n".encode() + data + b"\r\n")
        h.wfile.flush()

    def handle(h: BaseHTTPRequestHandler) -> None:
        h.send_response(200)
        h.send_header("Content-Type", content_type)
        h.send_header("Transfer-Encoding", "chunked")
        h.send_header("Connection", "close")
        h.end_headers()
        for item in records:
            write_chunk(h, (json.dumps(item) + "\n").encode())
        if hold is not None:
            hold.wait(5)
        h.wfile.write(b"0\r\n\r\n")
        h.wfile.flush()

    return handle


def stall_before_headers(release: threading.Event) -> Callable[[BaseHTTPRequestHandler], None]:
    """Accept the request but send nothing until ``release`` is set."""

    def handle(h: BaseHTTPRequestHandler) -> None:
        release.wait(5)
        h.send_response(200)
        h.send_header("Content-Type", "application/x-ndjson")
        h.send_header("Content-Length", "0")
        h.send_header("Connection", "close")
        h.end_headers()

    return handle


@pytest.fixture
def daemon():
    server = FakeDaemon()
    thread = threading.Thread(target=server.serve_forever, daemon=True)
    thread.start()
    yield server
    server.shutdown()
    server.server_close()


@pytest.fixture
def refused_url() -> str:
    """URL of a port nothing listens on."""
    import socket

    with socket.socket() as s:
        s.bind(("127.0.0.1", 0))
        port = s.getsockname()[1]
    return f"http://127.0.0.1:{port}"
