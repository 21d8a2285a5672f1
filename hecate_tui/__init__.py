"""Hecate TUI - terminal dashboard for the Hecate agent daemon."""

__version__ = "0.4.0"
