"""Tests for ChatController, with a stub client and against a local daemon."""

import pytest

from conftest import ndjson_stream, record
from hecate_tui.chat.consumer import TurnState
from hecate_tui.chat.controller import ChatController
from hecate_tui.client.client import DaemonClient
from hecate_tui.errors import DaemonConnectionError, NoModelAvailable, StreamBusyError
from hecate_tui.llm.session import StreamSession
from hecate_tui.llm.types import ModelInfo, Role, StreamChunk


class StubClient:
    def __init__(self):
        self.requests = []
        self.sessions = []

    def chat_stream(self, request):
        self.requests.append(request)
        session = StreamSession(request.model)
        self.sessions.append(session)
        return session


def finish(session, *chunks):
    for chunk in chunks:
        session.data_channel.send(chunk)
    session.error_channel.close()
    session.data_channel.close()
    session.mark_done()


def models(*names):
    return [ModelInfo(name=n) for n in names]


@pytest.fixture
def client():
    return StubClient()


@pytest.fixture
def controller(client, scheduler):
    ctl = ChatController(client, scheduler, poll_interval=0.001)
    ctl.set_models(models("m1", "llama3:8b"))
    return ctl


class TestModels:
    def test_first_model_is_active(self, controller):
        assert controller.active_model.name == "m1"

    def test_preferred_model(self, scheduler, client):
        ctl = ChatController(client, scheduler)
        ctl.set_models(models("m1", "llama3:8b"), preferred="llama3:8b")
        assert ctl.active_model.name == "llama3:8b"

    def test_unknown_preferred_keeps_first(self, scheduler, client):
        ctl = ChatController(client, scheduler)
        ctl.set_models(models("m1"), preferred="nope")
        assert ctl.active_model.name == "m1"

    def test_empty_list_clears_active(self, controller):
        controller.set_models([])
        assert controller.active_model is None

    def test_switch_by_prefix(self, controller):
        assert controller.switch_model("LLAMA").name == "llama3:8b"
        assert controller.active_model.name == "llama3:8b"

    def test_exact_match_wins_over_prefix(self, scheduler, client):
        ctl = ChatController(client, scheduler)
        ctl.set_models(models("m1-large", "m1"))
        assert ctl.switch_model("m1").name == "m1"

    def test_switch_unknown(self, controller):
        assert controller.switch_model("gpt") is None
        assert controller.switch_model("  ") is None
        assert controller.active_model.name == "m1"


class TestSubmit:
    def test_hello_round_trip(self, controller, client, scheduler):
        session = controller.submit("hi")
        assert controller.streaming
        assert controller.transcript.turns[-1].role == Role.USER

        finish(session, StreamChunk("He"), StreamChunk("llo"), StreamChunk(is_final=True, tokens_emitted=2))
        scheduler.run_until(lambda: not controller.streaming)

        turns = controller.transcript.turns
        assert [(t.role, t.content) for t in turns] == [(Role.USER, "hi"), (Role.ASSISTANT, "Hello")]
        assert controller.session_tokens == 2

        request = client.requests[0]
        assert request.model == "m1"
        assert request.stream is True
        assert [(m.role, m.content) for m in request.messages] == [("user", "hi")]

    def test_history_and_system_prompt(self, client, scheduler):
        ctl = ChatController(client, scheduler, system_prompt="Be brief.")
        ctl.set_models(models("m1"))
        ctl.add_system_note("Switched to m1")
        session = ctl.submit("one")
        finish(session, StreamChunk("first"), StreamChunk(is_final=True))
        scheduler.run_until(lambda: not ctl.streaming)
        ctl.submit("two")

        sent = [(m.role, m.content) for m in client.requests[-1].messages]
        assert sent == [
            ("system", "Be brief."),
            ("user", "one"),
            ("assistant", "first"),
            ("user", "two"),
        ]

    def test_no_model_appends_nothing(self, client, scheduler):
        ctl = ChatController(client, scheduler)
        with pytest.raises(NoModelAvailable):
            ctl.submit("hi")
        assert len(ctl.transcript) == 0
        assert client.requests == []

    def test_submit_while_streaming(self, controller, client):
        controller.submit("one")
        with pytest.raises(StreamBusyError):
            controller.submit("two")
        assert len(client.requests) == 1
        assert len(controller.transcript) == 1

    def test_cancel(self, controller, scheduler):
        session = controller.submit("hi")
        session.data_channel.send(StreamChunk("Par"))
        scheduler.run_until(lambda: controller.consumer.buffer.text == "Par")
        assert controller.cancel() is True
        scheduler.run_until(lambda: not controller.streaming)
        assert controller.consumer.last_outcome.state == TurnState.CANCELLED
        assert controller.transcript.last_assistant() == "Par [cancelled]"

    def test_clear(self, controller, scheduler):
        session = controller.submit("hi")
        with pytest.raises(StreamBusyError):
            controller.clear()
        finish(session, StreamChunk("yo", is_final=True, tokens_emitted=1))
        scheduler.run_until(lambda: not controller.streaming)

        controller.clear()
        assert len(controller.transcript) == 0
        assert controller.session_tokens == 0

    def test_on_finish_is_forwarded(self, client, scheduler):
        outcomes = []
        ctl = ChatController(client, scheduler, on_finish=outcomes.append)
        ctl.set_models(models("m1"))
        finish(ctl.submit("hi"), StreamChunk(is_final=True))
        scheduler.run_until(lambda: not ctl.streaming)
        assert [o.state for o in outcomes] == [TurnState.COMPLETED]


class TestAgainstDaemon:
    def test_streamed_reply(self, daemon, scheduler):
        daemon.route(
            "POST",
            "/api/llm/chat",
            ndjson_stream([record("He"), record("llo"), record(done=True, eval_count=2)]),
        )
        client = DaemonClient(daemon.url)
        ctl = ChatController(client, scheduler, poll_interval=0.005)
        ctl.set_models(models("m1"))
        ctl.submit("hi")
        scheduler.run_until(lambda: not ctl.streaming)
        client.close()

        assert ctl.consumer.last_outcome.state == TurnState.COMPLETED
        assert [t.content for t in ctl.transcript] == ["hi", "Hello"]

    def test_unreachable_daemon(self, refused_url, scheduler):
        client = DaemonClient(refused_url, timeout=2)
        ctl = ChatController(client, scheduler, poll_interval=0.005)
        ctl.set_models(models("m1"))
        ctl.submit("hi")
        scheduler.run_until(lambda: not ctl.streaming)

        outcome = ctl.consumer.last_outcome
        assert outcome.state == TurnState.FAILED
        assert isinstance(outcome.error, DaemonConnectionError)
        assert [(t.role, t.content) for t in ctl.transcript] == [(Role.USER, "hi")]
