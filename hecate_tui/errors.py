"""Exception types shared by the daemon client, the stream pipeline and the UI."""

from __future__ import annotations


class HecateError(Exception):
    """Base class for all hecate-tui errors."""


class ConfigError(HecateError):
    """Config file exists but could not be parsed."""


class DaemonError(HecateError):
    """The daemon answered with ok=false or an undecodable envelope."""


class DaemonConnectionError(DaemonError):
    """Connection refused, reset or name resolution failure."""


class DaemonStatusError(DaemonError):
    """Non-2xx HTTP status. ``detail`` holds a bounded prefix of the body."""

    def __init__(self, status: int, detail: str = "") -> None:
        self.status = status
        self.detail = detail
        message = f"unexpected status {status}"
        if detail:
            message = f"{message}: {detail}"
        super().__init__(message)


class StreamDecodeError(HecateError):
    """Malformed stream record or unexpected content-type."""


class StreamCancelled(HecateError):
    """Cancellation was observed by the stream producer."""

    def __init__(self, message: str = "stream cancelled") -> None:
        super().__init__(message)


class NoModelAvailable(HecateError):
    """No model to send the turn to. Checked before any connection is opened."""

    def __init__(self, message: str = "no models available") -> None:
        super().__init__(message)


class StreamBusyError(HecateError):
    """A turn was submitted while another one is still streaming."""

    def __init__(self, message: str = "a response is already streaming") -> None:
        super().__init__(message)
