"""ChatController - one chat view's conversation, model choice and live stream.

The active session is held by the controller's StreamConsumer rather than in
a module-level slot, so at most one stream per view is structural.
"""

from __future__ import annotations

import logging
from typing import Callable, Protocol

from ..config import DEFAULT_POLL_INTERVAL
from ..errors import NoModelAvailable, StreamBusyError
from ..llm.session import StreamSession
from ..llm.types import ChatRequest, ChatTurn, ModelInfo, Role
from .consumer import Schedule, StreamConsumer, TurnOutcome
from .transcript import Transcript

logger = logging.getLogger(__name__)


class StreamStarter(Protocol):
    def chat_stream(self, request: ChatRequest) -> StreamSession: ...


class ChatController:
    """Submits user turns and routes their streamed replies into the transcript."""

    def __init__(
        self,
        client: StreamStarter,
        schedule: Schedule,
        system_prompt: str = "",
        poll_interval: float = DEFAULT_POLL_INTERVAL,
        on_chunk: Callable[[str, StreamSession], None] | None = None,
        on_finish: Callable[[TurnOutcome], None] | None = None,
    ) -> None:
        self.client = client
        self.system_prompt = system_prompt
        self.transcript = Transcript()
        self.models: list[ModelInfo] = []
        self.active_model: ModelInfo | None = None
        self.session_tokens = 0
        self._on_finish = on_finish
        self.consumer = StreamConsumer(
            self.transcript,
            schedule,
            poll_interval=poll_interval,
            on_chunk=on_chunk,
            on_finish=self._finished,
        )

    @property
    def streaming(self) -> bool:
        return self.consumer.streaming

    # --- Models ---

    def set_models(self, models: list[ModelInfo], preferred: str = "") -> None:
        """Replace the model list, keeping the preferred model active if present."""
        self.models = list(models)
        self.active_model = self.models[0] if self.models else None
        if preferred:
            self.switch_model(preferred)

    def switch_model(self, name: str) -> ModelInfo | None:
        """Activate a model by exact name or case-insensitive prefix.

        Returns the activated model, or None when nothing matches.
        """
        wanted = name.strip().lower()
        if not wanted:
            return None
        for model in self.models:
            if model.name.lower() == wanted:
                self.active_model = model
                return model
        for model in self.models:
            if model.name.lower().startswith(wanted):
                self.active_model = model
                return model
        return None

    # --- Turns ---

    def submit(self, text: str) -> StreamSession:
        """Append a user turn and start streaming the reply.

        Raises:
            StreamBusyError: A reply is still streaming.
            NoModelAvailable: No model to send to; nothing is appended and
                no connection is opened.
        """
        if self.streaming:
            raise StreamBusyError()
        if self.active_model is None:
            raise NoModelAvailable()

        self.transcript.add(Role.USER, text)
        request = ChatRequest.from_turns(
            self.active_model.name,
            list(self.transcript),
            system_prompt=self.system_prompt,
        )
        session = self.client.chat_stream(request)
        self.consumer.begin(session)
        return session

    def cancel(self) -> bool:
        return self.consumer.cancel()

    def add_system_note(self, text: str) -> ChatTurn:
        """Record a UI note. System turns are never sent to the model."""
        return self.transcript.add(Role.SYSTEM, text)

    def clear(self) -> None:
        """Forget the conversation.

        Raises:
            StreamBusyError: A reply is still streaming; cancel it first.
        """
        if self.streaming:
            raise StreamBusyError()
        self.transcript.clear()
        self.session_tokens = 0

    def _finished(self, outcome: TurnOutcome) -> None:
        self.session_tokens += outcome.token_count
        if self._on_finish is not None:
            self._on_finish(outcome)
