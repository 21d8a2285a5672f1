"""Tests for the daemon REST client against a local fake daemon."""

import json

import pytest

from conftest import json_reply, text_reply
from hecate_tui.client.client import DaemonClient
from hecate_tui.errors import DaemonConnectionError, DaemonError, DaemonStatusError
from hecate_tui.llm.types import ChatRequest, Message


@pytest.fixture
def client(daemon):
    c = DaemonClient(daemon.url + "/", timeout=2)
    yield c
    c.close()


def ok(result):
    return json_reply({"ok": True, "result": result})


def test_health(daemon, client):
    daemon.route("GET", "/health", ok({"status": "healthy", "ready": True, "uptime_seconds": 12}))
    health = client.get_health()
    assert health.status == "healthy"
    assert health.ready
    assert health.uptime_seconds == 12


def test_identity(daemon, client):
    daemon.route("GET", "/identity", ok({"identity": "mri:agent:io.macula/hecate"}))
    assert client.get_identity().identity == "mri:agent:io.macula/hecate"


def test_envelope_error(daemon, client):
    daemon.route("GET", "/health", json_reply({"ok": False, "error": "not ready"}, status=503))
    with pytest.raises(DaemonError, match="not ready"):
        client.get_health()


def test_non_json_error_status(daemon, client):
    daemon.route("GET", "/api/llm/models", text_reply("bad gateway", 502))
    with pytest.raises(DaemonStatusError) as exc:
        client.list_models()
    assert exc.value.status == 502
    assert exc.value.detail == "bad gateway"


def test_non_json_success(daemon, client):
    daemon.route("GET", "/api/llm/models", text_reply("<html>", 200, "text/html"))
    with pytest.raises(DaemonError, match="not JSON"):
        client.list_models()


def test_list_models(daemon, client):
    daemon.route(
        "GET",
        "/api/llm/models",
        ok({"models": [{"name": "m1", "size": 1024, "family": "llama"}, {"name": "m2"}]}),
    )
    models = client.list_models()
    assert [m.name for m in models] == ["m1", "m2"]
    assert models[0].family == "llama"


def test_list_models_empty(daemon, client):
    daemon.route("GET", "/api/llm/models", ok({"models": None}))
    assert client.list_models() == []


def test_llm_health(daemon, client):
    daemon.route("GET", "/api/llm/health", ok({"status": "healthy", "backend": "ollama"}))
    assert client.get_llm_health().backend == "ollama"


def test_providers(daemon, client):
    daemon.route(
        "GET",
        "/api/llm/providers",
        ok({"providers": {"ollama": {"type": "ollama", "url": "http://localhost:11434", "enabled": True}}}),
    )
    providers = client.list_providers()
    assert providers["ollama"].enabled
    assert providers["ollama"].url == "http://localhost:11434"


def test_procedures_are_unsupported(daemon, client):
    assert client.list_procedures() == []
    assert daemon.requests == []


def test_non_streaming_chat(daemon, client):
    daemon.route(
        "POST",
        "/api/llm/chat",
        ok({"model": "m1", "message": {"role": "assistant", "content": "Hello"}, "done": True, "eval_count": 2}),
    )
    request = ChatRequest(model="m1", messages=[Message(role="user", content="hi")])
    reply = client.chat(request)

    assert reply.message.content == "Hello"
    assert reply.eval_count == 2
    sent = daemon.requests[0]
    assert sent["headers"]["Content-Type"] == "application/json"
    assert json.loads(sent["body"])["stream"] is False


def test_connection_refused(refused_url):
    client = DaemonClient(refused_url, timeout=2)
    with pytest.raises(DaemonConnectionError, match="cannot reach daemon"):
        client.get_health()
