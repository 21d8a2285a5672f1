"""EventLog widget - timestamped, colour-coded lifecycle events."""

import logging
from datetime import datetime

from rich.markup import escape
from textual.widgets import RichLog

logger = logging.getLogger(__name__)


class EventLog(RichLog):
    """Scrollable event log. Every entry is mirrored to the log file."""

    DEFAULT_CSS = """
    EventLog {
        width: 32;
        border-left: solid $accent;
        padding: 0 1;
    }
    """

    MAX_LINES = 500

    def log_info(self, message: str) -> None:
        self._emit(logging.INFO, "{}", message)

    def log_success(self, message: str) -> None:
        self._emit(logging.INFO, "[green]{}[/]", message)

    def log_warning(self, message: str) -> None:
        self._emit(logging.WARNING, "[yellow]{}[/]", message)

    def log_error(self, message: str) -> None:
        self._emit(logging.ERROR, "[bold red]{}[/]", message)

    def _emit(self, level: int, template: str, message: str) -> None:
        logger.log(level, "event: %s", message)
        ts = datetime.now().strftime("%H:%M:%S")
        self.write(f"[dim]{ts}[/]  " + template.format(escape(message)))
        if len(self.lines) > self.MAX_LINES:
            self.clear()

