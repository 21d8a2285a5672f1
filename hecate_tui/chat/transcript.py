"""Transcript - ordered list of completed chat turns for one chat view."""

from __future__ import annotations

from datetime import datetime
from pathlib import Path
from typing import Iterator

from ..llm.types import ChatTurn, Role


class Transcript:
    """In-memory conversation. Only the UI thread mutates it."""

    def __init__(self) -> None:
        self._turns: list[ChatTurn] = []

    def __len__(self) -> int:
        return len(self._turns)

    def __iter__(self) -> Iterator[ChatTurn]:
        return iter(self._turns)

    @property
    def turns(self) -> tuple[ChatTurn, ...]:
        return tuple(self._turns)

    def append(self, turn: ChatTurn) -> ChatTurn:
        self._turns.append(turn)
        return turn

    def add(self, role: Role, content: str) -> ChatTurn:
        return self.append(ChatTurn(role=role, content=content))

    def clear(self) -> None:
        self._turns.clear()

    def last_assistant(self) -> str:
        for turn in reversed(self._turns):
            if turn.role == Role.ASSISTANT:
                return turn.content
        return ""

    def to_markdown(self, exported_at: datetime | None = None) -> str:
        """Render the conversation as a Markdown document."""
        exported_at = exported_at or datetime.now()
        lines = [
            "# Hecate Chat Transcript",
            f"*Exported: {exported_at.strftime('%Y-%m-%d %H:%M:%S')}*",
            "",
            "---",
            "",
        ]
        for turn in self._turns:
            if turn.role == Role.USER:
                lines += ["### You", "", turn.content, ""]
            elif turn.role == Role.ASSISTANT:
                lines += ["### Hecate", "", turn.content, ""]
            else:
                lines += ["---", "", f"*System: {_first_line(turn.content)}*", ""]
        lines += ["---", "*End of transcript*", ""]
        return "\n".join(lines)

    def save(self, path: Path | None = None) -> Path:
        """Write the Markdown transcript and return the path written."""
        if path is None:
            path = Path(f"hecate-chat-{datetime.now().strftime('%Y-%m-%d-%H%M%S')}.md")
        path.write_text(self.to_markdown(), encoding="utf-8")
        return path


def _first_line(text: str) -> str:
    line = text.split("\n", 1)[0]
    if len(line) > 60:
        return line[:57] + "..."
    return line
