"""Daemon REST client.

Every endpoint except the chat stream answers with the envelope
``{"ok": bool, "result": ..., "error": str}``. The stream bypasses the
envelope because its body is read incrementally (see llm/producer.py).
"""

from __future__ import annotations

import logging
from typing import Any

import requests
from pydantic import BaseModel, ValidationError

from ..config import DEFAULT_STREAM_BUFFER, DEFAULT_TIMEOUT, ERROR_BODY_LIMIT
from ..errors import DaemonConnectionError, DaemonError, DaemonStatusError
from ..llm.producer import CHAT_PATH, Spawn, StreamProducer, serialize_request
from ..llm.session import StreamSession
from ..llm.types import ChatRequest, ChatResponse, LLMHealth, ModelInfo, ProviderInfo

logger = logging.getLogger(__name__)


class ApiResponse(BaseModel):
    ok: bool
    result: Any = None
    error: str = ""


class Health(BaseModel):
    status: str
    ready: bool = False
    uptime_seconds: int = 0
    version: str = ""


class Identity(BaseModel):
    identity: str
    public_key: str = ""
    created_at: str = ""


class Procedure(BaseModel):
    name: str
    mri: str = ""
    endpoint: str = ""
    registered_at: str = ""


class DaemonClient:
    """Client for the Hecate daemon HTTP API."""

    def __init__(
        self,
        base_url: str,
        timeout: float = DEFAULT_TIMEOUT,
        stream_buffer: int = DEFAULT_STREAM_BUFFER,
        spawn: Spawn | None = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.session = requests.Session()
        self._producer = StreamProducer(
            self.base_url,
            connect_timeout=timeout,
            capacity=stream_buffer,
            spawn=spawn,
        )

    def _request(self, method: str, path: str, **kwargs) -> ApiResponse:
        url = f"{self.base_url}{path}"
        try:
            response = self.session.request(method, url, timeout=self.timeout, **kwargs)
        except requests.ConnectionError as e:
            raise DaemonConnectionError(f"cannot reach daemon at {self.base_url}: {e}") from e
        except requests.RequestException as e:
            raise DaemonError(f"{method} {path} failed: {e}") from e

        logger.debug("%s %s -> %d", method, path, response.status_code)

        try:
            payload = response.json()
        except ValueError:
            if not 200 <= response.status_code < 300:
                raise DaemonStatusError(response.status_code, response.text[:ERROR_BODY_LIMIT].strip())
            raise DaemonError(f"{method} {path}: response is not JSON")

        try:
            return ApiResponse.model_validate(payload)
        except ValidationError as e:
            if not 200 <= response.status_code < 300:
                raise DaemonStatusError(response.status_code, response.text[:ERROR_BODY_LIMIT].strip())
            raise DaemonError(f"{method} {path}: unexpected response shape") from e

    def get(self, path: str) -> ApiResponse:
        return self._request("GET", path)

    def post(self, path: str, body: Any = None) -> ApiResponse:
        if isinstance(body, bytes):
            return self._request(
                "POST", path, data=body, headers={"Content-Type": "application/json"}
            )
        return self._request("POST", path, json=body)

    def _result(self, response: ApiResponse, what: str) -> Any:
        if not response.ok:
            raise DaemonError(f"{what} failed: {response.error or 'unknown error'}")
        return response.result

    # --- Daemon ---

    def get_health(self) -> Health:
        result = self._result(self.get("/health"), "health check")
        return Health.model_validate(result)

    def get_identity(self) -> Identity:
        result = self._result(self.get("/identity"), "identity request")
        return Identity.model_validate(result)

    def list_procedures(self) -> list[Procedure]:
        """Registered procedures.

        The daemon has no procedure listing endpoint (RPC is only tracked via
        POST /rpc/track), so this is unsupported and always empty.
        """
        return []

    # --- LLM ---

    def list_models(self) -> list[ModelInfo]:
        result = self._result(self.get("/api/llm/models"), "list models")
        models = (result or {}).get("models") or []
        return [ModelInfo.model_validate(m) for m in models]

    def get_llm_health(self) -> LLMHealth:
        result = self._result(self.get("/api/llm/health"), "LLM health check")
        return LLMHealth.model_validate(result)

    def list_providers(self) -> dict[str, ProviderInfo]:
        result = self._result(self.get("/api/llm/providers"), "list providers")
        providers = (result or {}).get("providers") or {}
        return {name: ProviderInfo.model_validate(p) for name, p in providers.items()}

    def chat(self, request: ChatRequest) -> ChatResponse:
        """Non-streaming chat: one synchronous reply."""
        body = serialize_request(request, stream=False)
        result = self._result(self.post(CHAT_PATH, body), "chat")
        return ChatResponse.model_validate(result)

    def chat_stream(self, request: ChatRequest) -> StreamSession:
        """Streaming chat. Returns immediately; the reply arrives on the session."""
        return self._producer.start(request)

    def close(self) -> None:
        self.session.close()
