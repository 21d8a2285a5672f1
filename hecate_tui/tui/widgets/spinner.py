"""ThinkingSpinner widget - animated indicator while a reply streams."""

from textual.app import ComposeResult
from textual.reactive import reactive
from textual.widget import Widget
from textual.widgets import Static

THINKING_FRAMES = [
    "Channeling",
    "Channeling.",
    "Channeling..",
    "Channeling...",
]

SPARKLES = ["✦", "✧", "⋆", "✧"]

IDLE_FRAME = ""


class ThinkingSpinner(Widget):
    """Cycles through THINKING_FRAMES while active."""

    DEFAULT_CSS = """
    ThinkingSpinner {
        width: 1fr;
        height: 1;
        color: $accent;
        text-style: bold;
    }
    """

    active: reactive[bool] = reactive(False)
    _frame_index: int = 0
    _timer = None

    def compose(self) -> ComposeResult:
        yield Static(IDLE_FRAME, id="spinner-frame")

    def watch_active(self, value: bool) -> None:
        if value:
            self._frame_index = 0
            self._show_frame()
            if self._timer is None:
                self._timer = self.set_interval(0.2, self._advance_frame)
        else:
            if self._timer is not None:
                self._timer.stop()
                self._timer = None
            self._frame_index = 0
            self._set_text(IDLE_FRAME)

    def _advance_frame(self) -> None:
        self._frame_index = (self._frame_index + 1) % len(THINKING_FRAMES)
        self._show_frame()

    def _show_frame(self) -> None:
        sparkle = SPARKLES[self._frame_index % len(SPARKLES)]
        self._set_text(f"{sparkle} {THINKING_FRAMES[self._frame_index]} {sparkle}")

    def _set_text(self, text: str) -> None:
        for frame in self.query("#spinner-frame").results(Static):
            frame.update(text)
