"""StreamConsumer - drains a StreamSession from the UI's cooperative loop.

Textual runs every handler on one event loop, so the consumer never waits on
a channel. Each tick does a single non-blocking check and asks the scheduler
to call it again: right away when a chunk was just folded, after
``poll_interval`` when nothing was ready. Keystrokes, resizes and the cancel
binding are handled between ticks.
"""

from __future__ import annotations

import logging
import queue
from dataclasses import dataclass
from enum import Enum
from functools import partial
from typing import Callable

from ..config import DEFAULT_POLL_INTERVAL
from ..errors import StreamBusyError, StreamCancelled
from ..llm.session import ChannelClosed, StreamSession
from ..llm.types import ChatTurn, Role, StreamChunk
from .transcript import Transcript

logger = logging.getLogger(__name__)

CANCELLED_MARKER = "[cancelled]"

Schedule = Callable[[float, Callable[[], None]], object]
"""Signature: schedule(delay_seconds, callback). A delay of 0 means next tick."""


class TurnState(str, Enum):
    IDLE = "idle"
    STREAMING = "streaming"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"

    @property
    def terminal(self) -> bool:
        return self in (TurnState.COMPLETED, TurnState.FAILED, TurnState.CANCELLED)


@dataclass(frozen=True)
class TurnOutcome:
    """How a streamed turn ended."""

    state: TurnState
    turn: ChatTurn | None
    error: Exception | None
    token_count: int
    elapsed: float

    @property
    def tokens_per_second(self) -> float:
        if self.elapsed <= 0:
            return 0.0
        return self.token_count / self.elapsed


class PartialAssistantBuffer:
    """Append-only accumulator for the reply being streamed."""

    def __init__(self) -> None:
        self._parts: list[str] = []

    def __len__(self) -> int:
        return sum(len(p) for p in self._parts)

    def append(self, text: str) -> None:
        if text:
            self._parts.append(text)

    @property
    def text(self) -> str:
        return "".join(self._parts)

    def reset(self) -> None:
        self._parts.clear()

    def flush(self, marker: str = "") -> str:
        """Return the buffered text (plus ``marker``) and reset."""
        text = self.text
        if marker:
            text = f"{text} {marker}" if text else marker
        self.reset()
        return text


class StreamConsumer:
    """Folds one session at a time into the transcript.

    Args:
        transcript: Conversation that receives the finalized assistant turn.
        schedule: Scheduler hook of the UI loop, e.g. Textual's set_timer.
        poll_interval: Delay before re-checking empty channels.
        on_chunk: Called after every folded chunk, token-only ones included,
            with the buffer text and the session.
        on_finish: Called once per session with its TurnOutcome.
    """

    def __init__(
        self,
        transcript: Transcript,
        schedule: Schedule,
        poll_interval: float = DEFAULT_POLL_INTERVAL,
        on_chunk: Callable[[str, StreamSession], None] | None = None,
        on_finish: Callable[[TurnOutcome], None] | None = None,
    ) -> None:
        self.transcript = transcript
        self.buffer = PartialAssistantBuffer()
        self.state = TurnState.IDLE
        self.last_outcome: TurnOutcome | None = None
        self._schedule = schedule
        self._poll_interval = poll_interval
        self._on_chunk = on_chunk
        self._on_finish = on_finish
        self._session: StreamSession | None = None

    @property
    def session(self) -> StreamSession | None:
        return self._session

    @property
    def streaming(self) -> bool:
        return self._session is not None

    def begin(self, session: StreamSession) -> None:
        """Start draining ``session``.

        Raises:
            StreamBusyError: If another session is still streaming.
        """
        if self._session is not None:
            raise StreamBusyError()
        self._session = session
        self.buffer.reset()
        self.state = TurnState.STREAMING
        self.last_outcome = None
        self._schedule(0, partial(self._tick, session))

    def cancel(self) -> bool:
        """Request cancellation. The next tick finalizes the turn.

        Returns False when nothing is streaming.
        """
        if self._session is None:
            return False
        logger.info("Cancelling stream: model=%s", self._session.model)
        self._session.cancel()
        return True

    def _tick(self, session: StreamSession) -> None:
        if session is not self._session:
            # Stale timer from a session that already ended.
            return
        try:
            delay = self.poll_once()
        except Exception as e:
            logger.exception("Stream consumer failed: model=%s", session.model)
            if self._session is session:
                self._finalize(session, e)
                # Release the producer; nothing reads this session any more.
                session.cancel()
            return
        if delay is not None:
            self._schedule(delay, partial(self._tick, session))

    def poll_once(self) -> float | None:
        """One non-blocking check of the active session.

        Returns the delay before the next check, or None once the session
        has terminated (or when nothing is streaming).
        """
        session = self._session
        if session is None:
            return None

        if session.cancelled:
            self._finalize(session, StreamCancelled())
            return None

        try:
            chunk = session.data_channel.try_receive()
        except queue.Empty:
            error = _take_error(session)
            if error is not None:
                # The producer sends its error after its last chunk, so any
                # chunk that landed since the check above precedes it.
                self._drain(session)
                self._finalize(session, error)
                return None
            return self._poll_interval
        except ChannelClosed:
            self._finalize(session, _take_error(session))
            return None

        self._fold(session, chunk)
        if chunk.is_final:
            self._finalize(session, None)
            return None
        return 0

    def _drain(self, session: StreamSession) -> None:
        while True:
            try:
                chunk = session.data_channel.try_receive()
            except (queue.Empty, ChannelClosed):
                return
            self._fold(session, chunk)

    def _fold(self, session: StreamSession, chunk: StreamChunk) -> None:
        session.record(chunk)
        self.buffer.append(chunk.delta_content)
        if self._on_chunk is not None:
            _notify(self._on_chunk, self.buffer.text, session)

    def _finalize(self, session: StreamSession, error: Exception | None) -> None:
        turn = None
        if isinstance(error, StreamCancelled) or session.cancelled:
            state = TurnState.CANCELLED
            error = None
            content = self.buffer.flush(CANCELLED_MARKER)
        elif error is not None:
            state = TurnState.FAILED
            content = self.buffer.flush()
        else:
            state = TurnState.COMPLETED
            content = self.buffer.flush()

        if content:
            turn = self.transcript.add(Role.ASSISTANT, content)

        self._session = None
        self.state = state
        outcome = TurnOutcome(
            state=state,
            turn=turn,
            error=error,
            token_count=session.token_count,
            elapsed=session.elapsed,
        )
        self.last_outcome = outcome
        logger.info(
            "Turn %s: model=%s tokens=%d elapsed=%.2fs%s",
            state.value,
            session.model,
            outcome.token_count,
            outcome.elapsed,
            f" error={error}" if error else "",
        )
        if self._on_finish is not None:
            _notify(self._on_finish, outcome)


def _notify(callback: Callable[..., None], *args) -> None:
    """Run a UI callback; a failing one must not strand the turn."""
    try:
        callback(*args)
    except Exception:
        logger.exception("Stream callback %r failed", callback)


def _take_error(session: StreamSession) -> Exception | None:
    try:
        return session.error_channel.try_receive()
    except (queue.Empty, ChannelClosed):
        return None
