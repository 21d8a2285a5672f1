"""StreamProducer - runs one streaming chat request on a background worker.

The worker owns the HTTP connection for its whole life, republishes decoded
chunks on the session's data channel and reports the single terminal
failure, if any, on the error channel. Both channels are closed exactly once
before the worker exits.
"""

from __future__ import annotations

import json
import logging
import socket
import threading
from typing import Callable

import requests
from requests.adapters import HTTPAdapter
from urllib3.connection import HTTPConnection, HTTPSConnection
from urllib3.connectionpool import HTTPConnectionPool, HTTPSConnectionPool

from ..config import DEFAULT_STREAM_BUFFER, DEFAULT_TIMEOUT, ERROR_BODY_LIMIT
from ..errors import (
    DaemonConnectionError,
    DaemonStatusError,
    StreamCancelled,
    StreamDecodeError,
)
from .decoder import StreamDecoder
from .session import StreamSession
from .types import ChatRequest

logger = logging.getLogger(__name__)

CHAT_PATH = "/api/llm/chat"

STREAM_HEADERS = {
    "Content-Type": "application/json",
    "Accept": "text/event-stream",
}

Spawn = Callable[[Callable[[], None]], object]
"""Signature: spawn(target) starts ``target`` on a background thread."""


def spawn_thread(target: Callable[[], None]) -> threading.Thread:
    thread = threading.Thread(target=target, name="hecate-stream", daemon=True)
    thread.start()
    return thread


def serialize_request(request: ChatRequest, stream: bool) -> bytes:
    """Shared by the streaming and non-streaming chat paths."""
    return json.dumps(request.payload(stream=stream)).encode("utf-8")


class StreamProducer:
    """Starts streaming chat sessions against the daemon.

    Without ``http`` every stream gets its own session with an
    AbortableAdapter, so a cancel also reaches a request that is still
    waiting for response headers. A shared ``http`` session only supports
    aborting once the response has started.
    """

    def __init__(
        self,
        base_url: str,
        http: requests.Session | None = None,
        connect_timeout: float = DEFAULT_TIMEOUT,
        capacity: int = DEFAULT_STREAM_BUFFER,
        spawn: Spawn | None = None,
    ) -> None:
        self._url = base_url.rstrip("/") + CHAT_PATH
        self._http = http
        self._connect_timeout = connect_timeout
        self._capacity = capacity
        self._spawn = spawn or spawn_thread

    def start(self, request: ChatRequest) -> StreamSession:
        """Open the stream on a background worker and return its session."""
        session = StreamSession(model=request.model, capacity=self._capacity)
        body = serialize_request(request, stream=True)
        logger.info("Starting stream: model=%s messages=%d", request.model, len(request.messages))
        self._spawn(lambda: self._run(session, body))
        return session

    def _run(self, session: StreamSession, body: bytes) -> None:
        try:
            error = self._pump(session, body)
        except Exception as e:
            logger.exception("Stream worker crashed")
            error = e

        if error is not None:
            if session.cancelled and not isinstance(error, StreamCancelled):
                error = StreamCancelled()
            session.error_channel.send(error)
        session.error_channel.close()
        session.data_channel.close()
        session.mark_done()
        logger.info(
            "Stream closed: model=%s elapsed=%.2fs error=%s",
            session.model,
            session.elapsed,
            type(error).__name__ if error else None,
        )

    def _pump(self, session: StreamSession, body: bytes) -> Exception | None:
        """Run the request and decode loop. Returns the terminal error, if any."""
        cancel = session.cancel_signal
        if cancel.cancelled:
            return StreamCancelled("cancelled before connecting")

        if self._http is not None:
            return self._stream(self._http, session, body)

        # One session per stream, so cancelling can reach the socket while
        # the request is still waiting for response headers.
        adapter = AbortableAdapter()
        http = requests.Session()
        http.mount("http://", adapter)
        http.mount("https://", adapter)
        cancel.add_callback(adapter.abort)
        try:
            return self._stream(http, session, body)
        finally:
            cancel.remove_callback(adapter.abort)
            http.close()

    def _stream(self, http: requests.Session, session: StreamSession, body: bytes) -> Exception | None:
        cancel = session.cancel_signal
        try:
            response = http.post(
                self._url,
                data=body,
                headers=STREAM_HEADERS,
                stream=True,
                timeout=(self._connect_timeout, None),
            )
        except requests.ConnectionError as e:
            if cancel.cancelled:
                return StreamCancelled()
            logger.warning("Stream connection failed: %s", e)
            return DaemonConnectionError(f"request failed: {e}")
        except requests.RequestException as e:
            if cancel.cancelled:
                return StreamCancelled()
            logger.warning("Stream request failed: %s", e)
            return DaemonConnectionError(f"request failed: {e}")

        def abort() -> None:
            abort_response(response)

        cancel.add_callback(abort)
        try:
            if cancel.cancelled:
                return StreamCancelled("cancelled before first byte")

            if not 200 <= response.status_code < 300:
                detail = read_error_detail(response)
                logger.warning("Stream rejected: status=%d detail=%r", response.status_code, detail)
                return DaemonStatusError(response.status_code, detail)

            decoder = StreamDecoder(
                response.iter_content(chunk_size=None),
                content_type=response.headers.get("Content-Type"),
            )
            for chunk in decoder:
                if not session.data_channel.send(chunk, cancel=cancel):
                    return StreamCancelled()
                if chunk.is_final:
                    logger.debug("Final chunk received: eval_count=%s", chunk.tokens_emitted)
                    break
            if cancel.cancelled:
                return StreamCancelled()
            return None
        except StreamDecodeError as e:
            if cancel.cancelled:
                return StreamCancelled()
            logger.warning("Stream decode failed: %s", e)
            return e
        except (requests.RequestException, OSError, AttributeError, ValueError) as e:
            # Reads on an aborted connection fail with whatever the transport
            # raises at that moment.
            if cancel.cancelled:
                return StreamCancelled()
            logger.warning("Stream read failed: %s", e)
            return DaemonConnectionError(f"stream interrupted: {e}")
        finally:
            cancel.remove_callback(abort)
            response.close()


def read_error_detail(response: requests.Response, limit: int = ERROR_BODY_LIMIT) -> str:
    """Read at most ``limit`` bytes of an error body."""
    data = b""
    try:
        for block in response.iter_content(chunk_size=limit):
            data += block
            if len(data) >= limit:
                break
    except requests.RequestException:
        pass
    return data[:limit].decode("utf-8", errors="replace").strip()


def abort_response(response: requests.Response) -> None:
    """Abort an in-flight streaming response from another thread.

    Shutting the socket down wakes a reader blocked in recv(); closing the
    response alone does not.
    """
    connection = getattr(response.raw, "connection", None)
    sock = getattr(connection, "sock", None)
    if sock is not None:
        try:
            sock.shutdown(socket.SHUT_RDWR)
        except OSError:
            pass
    response.close()


class AbortableAdapter(HTTPAdapter):
    """HTTPAdapter whose sockets can be shut down from another thread.

    requests hands out no socket until the response headers have arrived.
    This adapter records each connection as urllib3 opens it, and
    ``abort()`` shuts them all down, including one still waiting for
    headers. A connection opened after ``abort()`` is shut down at once.
    """

    def __init__(self, **kwargs) -> None:
        self._lock = threading.Lock()
        self._connections: list[HTTPConnection] = []
        self._aborted = False
        super().__init__(**kwargs)

    def init_poolmanager(self, *args, **kwargs) -> None:
        super().init_poolmanager(*args, **kwargs)
        self.poolmanager.pool_classes_by_scheme = {
            "http": _tracking_pool(HTTPConnectionPool, HTTPConnection, self),
            "https": _tracking_pool(HTTPSConnectionPool, HTTPSConnection, self),
        }

    @property
    def aborted(self) -> bool:
        return self._aborted

    def opened(self, connection: HTTPConnection) -> None:
        with self._lock:
            if not self._aborted:
                self._connections.append(connection)
                return
        _shutdown(connection)

    def abort(self) -> None:
        with self._lock:
            self._aborted = True
            connections, self._connections = self._connections, []
        for connection in connections:
            _shutdown(connection)


def _tracking_pool(pool_cls, connection_cls, adapter: AbortableAdapter):
    class TrackedConnection(connection_cls):
        def connect(self) -> None:
            super().connect()
            adapter.opened(self)

    class TrackingPool(pool_cls):
        ConnectionCls = TrackedConnection

    return TrackingPool


def _shutdown(connection: HTTPConnection) -> None:
    sock = getattr(connection, "sock", None)
    if sock is None:
        return
    try:
        sock.shutdown(socket.SHUT_RDWR)
    except OSError:
        pass
