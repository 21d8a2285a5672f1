"""Slash command parser for the chat input."""

from __future__ import annotations

from dataclasses import dataclass


@dataclass
class ChatCommand:
    """Parsed chat command with name and optional arguments."""

    name: str
    args: str


COMMANDS: dict[str, str] = {
    "help": "Show available commands",
    "clear": "Clear chat history",
    "models": "List available LLM models",
    "model": "Switch LLM model (/model <name>)",
    "system": "Set/view LLM system prompt (/system [prompt], /system clear)",
    "health": "Check daemon and LLM backend health",
    "procedures": "List registered procedures",
    "save": "Save chat transcript (/save [filename])",
    "quit": "Exit hecate-tui",
}

ALIASES: dict[str, str] = {
    "h": "help",
    "?": "help",
    "w": "save",
    "q": "quit",
    "exit": "quit",
}


def parse_command(text: str) -> ChatCommand | None:
    """Parse a chat input string into a ChatCommand if it starts with /.

    Returns None if text does not start with / (or is just "/").
    Splits on first whitespace: "/model llama3" -> ChatCommand("model", "llama3").
    Aliases resolve to their command; unknown names are returned as-is.
    """
    stripped = text.strip()
    if not stripped.startswith("/"):
        return None

    without_slash = stripped[1:]
    if not without_slash:
        return None

    parts = without_slash.split(None, 1)
    name = parts[0].lower()
    args = parts[1].strip() if len(parts) > 1 else ""

    return ChatCommand(name=ALIASES.get(name, name), args=args)
