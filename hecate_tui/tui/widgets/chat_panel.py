"""ChatPanel widget - chat with the daemon's LLM, streamed and rendered as markdown."""

from __future__ import annotations

from pathlib import Path
from typing import Callable

from textual import work
from textual.app import ComposeResult
from textual.containers import VerticalScroll
from textual.message import Message
from textual.widget import Widget
from textual.widgets import Input, Markdown, Static

from hecate_tui.chat.consumer import TurnOutcome, TurnState
from hecate_tui.chat.controller import ChatController
from hecate_tui.client.client import DaemonClient
from hecate_tui.config import Settings
from hecate_tui.errors import HecateError, NoModelAvailable, StreamBusyError
from hecate_tui.llm.session import StreamSession
from hecate_tui.llm.types import ModelInfo
from hecate_tui.tui.commands import COMMANDS, ChatCommand, parse_command


class ChatPanel(Widget):
    """Chat panel with input, message history, and LLM streaming."""

    DEFAULT_CSS = """
    ChatPanel {
        height: 100%;
        width: 1fr;
        layout: vertical;
    }
    ChatPanel #chat-messages {
        height: 1fr;
        padding: 0 1;
    }
    ChatPanel .chat-user {
        color: $accent;
        margin: 1 0 0 0;
    }
    ChatPanel .chat-assistant {
        margin: 0 0 0 2;
    }
    ChatPanel .chat-error {
        color: $error;
        margin: 0 0 0 2;
    }
    ChatPanel .chat-info {
        color: $text-muted;
        content-align: center middle;
        margin: 1 0;
    }
    ChatPanel .chat-system {
        color: $text-muted;
        margin: 0 0 0 2;
    }
    ChatPanel #chat-input {
        dock: bottom;
        margin: 0;
    }
    """

    class CommandRequested(Message):
        """Posted when a slash command should be handled by the app."""

        def __init__(self, command: str, args: str) -> None:
            self.command = command
            self.args = args
            super().__init__()

    class ModelsLoaded(Message):
        """Posted from the model discovery worker."""

        def __init__(self, models: list[ModelInfo], error: str | None = None) -> None:
            self.models = models
            self.error = error
            super().__init__()

    class ModelChanged(Message):
        def __init__(self, name: str | None) -> None:
            self.name = name
            super().__init__()

    class StreamStarted(Message):
        def __init__(self, model: str) -> None:
            self.model = model
            super().__init__()

    class StreamProgress(Message):
        def __init__(self, elapsed: float, tokens: int) -> None:
            self.elapsed = elapsed
            self.tokens = tokens
            super().__init__()

    class StreamFinished(Message):
        def __init__(self, outcome: TurnOutcome, session_tokens: int) -> None:
            self.outcome = outcome
            self.session_tokens = session_tokens
            super().__init__()

    def __init__(self, client: DaemonClient, settings: Settings, **kwargs) -> None:
        super().__init__(**kwargs)
        self._client = client
        self._settings = settings
        self._controller = ChatController(
            client,
            self._schedule,
            system_prompt=settings.system_prompt,
            poll_interval=settings.poll_interval,
            on_chunk=self._on_stream_chunk,
            on_finish=self._on_stream_finish,
        )
        self._response_widget: Markdown | None = None

    @property
    def controller(self) -> ChatController:
        return self._controller

    @property
    def streaming(self) -> bool:
        return self._controller.streaming

    def compose(self) -> ComposeResult:
        yield VerticalScroll(id="chat-messages")
        yield Input(
            placeholder="Type your message or /command...",
            id="chat-input",
        )

    def on_mount(self) -> None:
        self._add_info(f"Connecting to {self._client.base_url}")
        self.load_models()

    # --- Scheduling seam for the stream consumer ---

    def _schedule(self, delay: float, callback: Callable[[], None]) -> None:
        if delay <= 0:
            self.call_later(callback)
        else:
            self.set_timer(delay, callback)

    # --- Models ---

    @work(thread=True, exclusive=True, group="models")
    def load_models(self) -> None:
        """Fetch the model list from the daemon in the background."""
        try:
            models = self._client.list_models()
        except HecateError as e:
            self.post_message(self.ModelsLoaded([], error=str(e)))
            return
        self.post_message(self.ModelsLoaded(models))

    def on_chat_panel_models_loaded(self, message: ModelsLoaded) -> None:
        if message.error:
            self._add_error(f"Could not load models: {message.error}")
        self._controller.set_models(message.models, preferred=self._settings.model)
        active = self._controller.active_model
        if active is not None:
            self._add_info(f"Chat ready ({active.name}, {len(message.models)} models)")
        elif not message.error:
            self._add_info("Daemon reports no models. Pull one, then /models to refresh.")
        self.post_message(self.ModelChanged(active.name if active else None))

    # --- Input ---

    def on_input_submitted(self, event: Input.Submitted) -> None:
        if event.input.id != "chat-input":
            return

        text = event.value.strip()
        if not text:
            return

        event.input.value = ""

        cmd = parse_command(text)
        if cmd is not None:
            self._handle_command(cmd)
            return

        if self.streaming:
            return

        self._send(text)

    def _send(self, text: str) -> None:
        try:
            session = self._controller.submit(text)
        except NoModelAvailable as e:
            self._add_error(f"Cannot send: {e}. Check /models or the daemon's LLM backend.")
            return
        except StreamBusyError as e:
            self._add_error(str(e))
            return

        self._add_user_bubble(text)

        input_widget = self.query_one("#chat-input", Input)
        input_widget.disabled = True

        self._response_widget = Markdown("...", classes="chat-assistant")
        container = self.query_one("#chat-messages", VerticalScroll)
        container.mount(self._response_widget)
        container.scroll_end(animate=False)

        self.post_message(self.StreamStarted(session.model))

    def cancel_stream(self) -> bool:
        """Cancel the reply being streamed. Returns False if nothing streams."""
        return self._controller.cancel()

    # --- Stream callbacks (run on the UI loop) ---

    def _on_stream_chunk(self, text: str, session: StreamSession) -> None:
        if self._response_widget is not None and text:
            self._response_widget.update(text)
            self.query_one("#chat-messages", VerticalScroll).scroll_end(animate=False)
        self.post_message(self.StreamProgress(session.elapsed, session.token_count))

    def _on_stream_finish(self, outcome: TurnOutcome) -> None:
        widget, self._response_widget = self._response_widget, None

        if widget is not None:
            if outcome.turn is not None:
                widget.update(outcome.turn.content)
            else:
                widget.remove()

        if outcome.state == TurnState.FAILED:
            self._add_error(f"Error: {outcome.error}")
        elif outcome.state == TurnState.COMPLETED and outcome.turn is None:
            self._add_info("Stream ended with no content")

        input_widget = self.query_one("#chat-input", Input)
        input_widget.disabled = False
        input_widget.focus()

        self.post_message(self.StreamFinished(outcome, self._controller.session_tokens))

    # --- Commands ---

    def _handle_command(self, cmd: ChatCommand) -> None:
        """Route a parsed ChatCommand to the appropriate handler."""
        self._add_user_bubble(f"/{cmd.name}" + (f" {cmd.args}" if cmd.args else ""))
        if cmd.name == "help":
            self._show_help()
        elif cmd.name == "clear":
            self._clear_chat()
        elif cmd.name == "models":
            self._show_models()
        elif cmd.name == "model":
            self._switch_model(cmd.args)
        elif cmd.name == "system":
            self._set_system_prompt(cmd.args)
        elif cmd.name == "save":
            self._save_transcript(cmd.args)
        elif cmd.name == "procedures":
            self._show_procedures()
        elif cmd.name in COMMANDS:
            self.post_message(self.CommandRequested(cmd.name, cmd.args))
        else:
            self._add_error(f"Unknown command: /{cmd.name}. Type /help for commands.")

    def _show_help(self) -> None:
        lines = ["Available commands:", ""]
        for name, description in COMMANDS.items():
            lines.append(f"  /{name} - {description}")
        lines.append("")
        lines.append("  Esc - cancel the reply being streamed")
        self._add_system_message("\n".join(lines))

    def _clear_chat(self) -> None:
        try:
            self._controller.clear()
        except StreamBusyError:
            self._add_error("A reply is still streaming. Press Esc to cancel it first.")
            return
        container = self.query_one("#chat-messages", VerticalScroll)
        container.remove_children()
        self._add_info("Chat cleared")

    def _show_models(self) -> None:
        models = self._controller.models
        if not models:
            self._add_system_message("No models loaded. Refreshing from daemon...")
            self.load_models()
            return

        active = self._controller.active_model
        lines = ["**Models**", "", "| | Name | Family | Params |", "|-|------|--------|--------|"]
        for m in models:
            marker = "▸" if active is not None and m.name == active.name else ""
            lines.append(f"| {marker} | {m.name} | {m.family or '-'} | {m.parameter_size or '-'} |")
        self._add_markdown("\n".join(lines))

    def _switch_model(self, name: str) -> None:
        if not name:
            self._add_system_message("Usage: /model <name>")
            return
        model = self._controller.switch_model(name)
        if model is None:
            self._add_error(f"No model matching {name!r}. See /models.")
            return
        self.render_system_message(f"Switched to {model.name}")
        self.post_message(self.ModelChanged(model.name))

    def _set_system_prompt(self, args: str) -> None:
        if not args:
            current = self._controller.system_prompt or "(none)"
            self._add_system_message(f"System prompt: {current}")
            return
        if args.lower() == "clear":
            self._controller.system_prompt = ""
            self.render_system_message("System prompt cleared")
            return
        self._controller.system_prompt = args
        self.render_system_message("System prompt set")

    def _save_transcript(self, args: str) -> None:
        transcript = self._controller.transcript
        if not len(transcript):
            self._add_system_message("No messages to save.")
            return
        try:
            path = transcript.save(Path(args).expanduser() if args else None)
        except OSError as e:
            self._add_error(f"Failed to save: {e}")
            return
        self._add_system_message(f"Saved {path} ({len(transcript)} messages)")

    def _show_procedures(self) -> None:
        procedures = self._client.list_procedures()
        if not procedures:
            self._add_system_message(
                "No procedures listed. The daemon does not expose procedure listing yet."
            )
            return
        lines = ["**Procedures**", "", "| Name | MRI |", "|------|-----|"]
        for p in procedures:
            lines.append(f"| {p.name} | {p.mri} |")
        self._add_markdown("\n".join(lines))

    # --- Rendering ---

    def render_system_message(self, text: str) -> None:
        """Render a system note inline and record it in the transcript."""
        self._controller.add_system_note(text)
        self._add_system_message(text)

    def _mount(self, widget: Widget) -> None:
        container = self.query_one("#chat-messages", VerticalScroll)
        container.mount(widget)
        container.scroll_end(animate=False)

    def _add_user_bubble(self, text: str) -> None:
        self._mount(Static(f"> {text}", classes="chat-user", markup=False))

    def _add_markdown(self, text: str) -> None:
        self._mount(Markdown(text, classes="chat-assistant"))

    def _add_error(self, text: str) -> None:
        self._mount(Static(text, classes="chat-error", markup=False))

    def _add_info(self, text: str) -> None:
        self._mount(Static(text, classes="chat-info", markup=False))

    def _add_system_message(self, text: str) -> None:
        self._mount(Static(text, classes="chat-system", markup=False))
