"""StatusBar widget - reactive status line at the top of the TUI."""

from textual.app import ComposeResult
from textual.reactive import reactive
from textual.widget import Widget
from textual.widgets import Static


def format_tokens(count: int) -> str:
    if count >= 1000:
        return f"{count / 1000:.1f}k tok"
    return f"{count} tok"


class StatusBar(Widget):
    """Displays daemon health, the active model and token statistics."""

    DEFAULT_CSS = """
    StatusBar {
        dock: top;
        height: 1;
        background: $accent;
        color: $text;
    }
    StatusBar Static {
        width: 1fr;
        content-align: center middle;
    }
    """

    daemon: reactive[str] = reactive("connecting...")
    model: reactive[str] = reactive("no model")
    last_turn: reactive[str] = reactive("--")
    session_tokens: reactive[int] = reactive(0)

    def compose(self) -> ComposeResult:
        yield Static(id="status-text")

    def _render_status(self) -> str:
        return (
            f" Daemon: {self.daemon}  |  Model: {self.model}  |  "
            f"Last: {self.last_turn}  |  Session: {format_tokens(self.session_tokens)}"
        )

    def watch_daemon(self) -> None:
        self._update_display()

    def watch_model(self) -> None:
        self._update_display()

    def watch_last_turn(self) -> None:
        self._update_display()

    def watch_session_tokens(self) -> None:
        self._update_display()

    def on_mount(self) -> None:
        self._update_display()

    def set_turn_stats(self, tokens: int, elapsed: float, speed: float) -> None:
        self.last_turn = f"{format_tokens(tokens)}  {speed:.1f} tok/s  {elapsed:0.1f}s"

    def _update_display(self) -> None:
        for text in self.query("#status-text").results(Static):
            text.update(self._render_status())
