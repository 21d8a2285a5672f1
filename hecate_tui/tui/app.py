"""Hecate TUI Application - chat-first single-screen dashboard."""

from __future__ import annotations

import logging
import sys

from dotenv import load_dotenv
from textual import work
from textual.app import App, ComposeResult
from textual.binding import Binding
from textual.containers import Horizontal, Vertical
from textual.message import Message
from textual.timer import Timer
from textual.widgets import Footer, Static

from hecate_tui.chat.consumer import TurnState
from hecate_tui.client.client import DaemonClient
from hecate_tui.config import Settings, load_settings
from hecate_tui.errors import ConfigError, HecateError
from hecate_tui.log import setup_logging

from .widgets.activity_panel import ActivityPanel
from .widgets.chat_panel import ChatPanel
from .widgets.event_log import EventLog
from .widgets.status_bar import StatusBar

logger = logging.getLogger(__name__)

MIN_WIDTH = 90
MIN_HEIGHT = 20


class HealthChecked(Message):
    """Posted from the health worker thread."""

    def __init__(self, daemon: str | None, llm: str | None, error: str | None = None) -> None:
        self.daemon = daemon
        self.llm = llm
        self.error = error
        super().__init__()


class HecateApp(App):
    """Hecate TUI - chat with the local agent daemon."""

    TITLE = "Hecate"
    CSS_PATH = "styles/app.tcss"

    BINDINGS = [
        Binding("escape", "cancel_stream", "Cancel", show=True),
        Binding("ctrl+q", "quit_app", "Quit", show=True),
    ]

    def __init__(self, settings: Settings, client: DaemonClient | None = None) -> None:
        super().__init__()
        self._settings = settings
        self._client = client or DaemonClient(
            settings.daemon_url,
            timeout=settings.timeout,
            stream_buffer=settings.stream_buffer,
        )
        self._stream_clock: Timer | None = None
        self._stream_model = ""

    def compose(self) -> ComposeResult:
        yield StatusBar(id="status-bar")
        with Horizontal(id="main-content"):
            yield ChatPanel(self._client, self._settings, id="chat-panel")
            with Vertical(id="right-panel"):
                yield ActivityPanel(id="activity-panel")
                yield EventLog(id="event-log", markup=True)
        yield Static(
            f"Terminal too small (minimum {MIN_WIDTH}x{MIN_HEIGHT})",
            id="size-warning",
        )
        yield Footer()

    def on_mount(self) -> None:
        self._event_log.log_info(f"Hecate TUI started ({self._settings.daemon_url})")
        self._check_terminal_size()
        self._check_health()

    def on_resize(self) -> None:
        self._check_terminal_size()

    def _check_terminal_size(self) -> None:
        warning = self.query_one("#size-warning", Static)
        too_small = self.size.width < MIN_WIDTH or self.size.height < MIN_HEIGHT
        warning.display = too_small

    # --- Widget accessors ---

    @property
    def _event_log(self) -> EventLog:
        return self.query_one("#event-log", EventLog)

    @property
    def _activity_panel(self) -> ActivityPanel:
        return self.query_one("#activity-panel", ActivityPanel)

    @property
    def _status_bar(self) -> StatusBar:
        return self.query_one("#status-bar", StatusBar)

    @property
    def _chat_panel(self) -> ChatPanel:
        return self.query_one("#chat-panel", ChatPanel)

    # --- Command routing from ChatPanel ---

    def on_chat_panel_command_requested(self, message: ChatPanel.CommandRequested) -> None:
        if message.command == "health":
            self._event_log.log_info("Checking daemon health...")
            self._check_health()
        elif message.command == "quit":
            self.action_quit_app()

    # --- Health ---

    @work(thread=True, exclusive=True, group="health")
    def _check_health(self) -> None:
        """Background daemon + LLM backend health check."""
        try:
            health = self._client.get_health()
        except HecateError as e:
            self.post_message(HealthChecked(None, None, error=str(e)))
            return

        daemon = f"{health.status} v{health.version}" if health.version else health.status
        try:
            llm = self._client.get_llm_health()
            llm_status = f"{llm.backend or 'llm'} {llm.status}"
            if llm.error:
                llm_status += f" ({llm.error})"
        except HecateError as e:
            llm_status = f"unavailable ({e})"
        self.post_message(HealthChecked(daemon, llm_status))

    def on_health_checked(self, message: HealthChecked) -> None:
        if message.error:
            self._status_bar.daemon = "offline"
            self._event_log.log_error(f"Daemon unreachable: {message.error}")
            return
        self._status_bar.daemon = message.daemon or "unknown"
        self._event_log.log_success(f"Daemon {message.daemon}")
        self._event_log.log_info(f"LLM backend: {message.llm}")

    # --- Stream lifecycle ---

    def on_chat_panel_model_changed(self, message: ChatPanel.ModelChanged) -> None:
        self._status_bar.model = message.name or "no model"
        if message.name:
            self._event_log.log_info(f"Model: {message.name}")

    def on_chat_panel_stream_started(self, message: ChatPanel.StreamStarted) -> None:
        self._stream_model = message.model
        self._event_log.log_info(f"Streaming from {message.model}")
        self._activity_panel.set_task(message.model)
        if self._stream_clock is None:
            self._stream_clock = self.set_interval(0.5, self._tick_stream_clock)

    def on_chat_panel_stream_progress(self, message: ChatPanel.StreamProgress) -> None:
        self._activity_panel.set_task(self._stream_model, message.elapsed, message.tokens)

    def _tick_stream_clock(self) -> None:
        session = self._chat_panel.controller.consumer.session
        if session is not None:
            self._activity_panel.set_task(self._stream_model, session.elapsed, session.token_count)

    def on_chat_panel_stream_finished(self, message: ChatPanel.StreamFinished) -> None:
        if self._stream_clock is not None:
            self._stream_clock.stop()
            self._stream_clock = None
        self._activity_panel.clear_task()

        outcome = message.outcome
        self._status_bar.set_turn_stats(
            outcome.token_count, outcome.elapsed, outcome.tokens_per_second
        )
        self._status_bar.session_tokens = message.session_tokens

        if outcome.state == TurnState.COMPLETED:
            self._event_log.log_success(
                f"Reply done: {outcome.token_count} tok in {outcome.elapsed:0.1f}s"
            )
        elif outcome.state == TurnState.CANCELLED:
            self._event_log.log_warning("Reply cancelled")
        else:
            self._event_log.log_error(f"Reply failed: {outcome.error}")

    # --- Actions ---

    def action_cancel_stream(self) -> None:
        """Cancel the reply being streamed."""
        if self._chat_panel.cancel_stream():
            self._event_log.log_warning("Cancelling reply...")
        else:
            self._event_log.log_info("Nothing to cancel")

    def action_quit_app(self) -> None:
        self._event_log.log_info("Exiting Hecate TUI...")
        self._chat_panel.cancel_stream()
        self._client.close()
        self.exit()


def main() -> None:
    load_dotenv()
    try:
        settings = load_settings()
    except ConfigError as e:
        print(f"hecate-tui: {e}", file=sys.stderr)
        sys.exit(2)

    setup_logging(settings.log_file, settings.log_level)
    logger.info("Starting hecate-tui: daemon=%s", settings.daemon_url)
    HecateApp(settings).run()


if __name__ == "__main__":
    main()
