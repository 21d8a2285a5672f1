"""ActivityPanel widget - shows the streaming turn with an animated spinner."""

from __future__ import annotations

from textual.app import ComposeResult
from textual.widget import Widget
from textual.widgets import Static

from .spinner import ThinkingSpinner

IDLE_TEXT = "Idle"


class ActivityPanel(Widget):
    """Spinner, model name and elapsed time of the reply being streamed."""

    DEFAULT_CSS = """
    ActivityPanel {
        height: 6;
        padding: 0 1;
        border-bottom: solid $accent;
    }
    ActivityPanel .ap-title {
        text-style: bold;
    }
    ActivityPanel .ap-label {
        height: auto;
    }
    ActivityPanel .ap-label-idle {
        height: auto;
        color: $text-muted;
    }
    """

    def compose(self) -> ComposeResult:
        yield Static("Activity", classes="ap-title")
        yield ThinkingSpinner(id="ap-spinner")
        yield Static(IDLE_TEXT, id="ap-label", classes="ap-label-idle")

    def on_mount(self) -> None:
        self.clear_task()

    def set_task(self, model: str, elapsed: float = 0.0, tokens: int = 0) -> None:
        """Show the spinner for a reply streaming from ``model``."""
        spinner = self.query_one("#ap-spinner", ThinkingSpinner)
        spinner.active = True
        spinner.display = True

        parts = [f"via {model}", f"{elapsed:0.1f}s"]
        if tokens:
            parts.append(f"{tokens} tok")
        label = self.query_one("#ap-label", Static)
        label.update("  ".join(parts) + "\n(Esc to cancel)")
        label.set_class(False, "ap-label-idle")
        label.set_class(True, "ap-label")

    def clear_task(self) -> None:
        """Stop the spinner and show the idle state."""
        spinner = self.query_one("#ap-spinner", ThinkingSpinner)
        spinner.active = False
        spinner.display = False

        label = self.query_one("#ap-label", Static)
        label.update(IDLE_TEXT)
        label.set_class(True, "ap-label-idle")
        label.set_class(False, "ap-label")
