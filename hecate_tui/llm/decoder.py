"""StreamDecoder - turns a chunked HTTP body into StreamChunk values.

The daemon answers POST /api/llm/chat with newline-delimited JSON records.
Some backends frame the same records as server-sent events ("data: {...}"),
so the SSE prefix, SSE comments and the "[DONE]" sentinel are tolerated too.
"""

from __future__ import annotations

import codecs
import json
from typing import Iterable, Iterator

from pydantic import ValidationError

from ..errors import StreamDecodeError
from .types import ChatResponse, StreamChunk

ACCEPTED_CONTENT_TYPES = {
    "application/x-ndjson",
    "application/json",
    "text/event-stream",
    "text/plain",
}

SSE_DATA_PREFIX = "data:"
SSE_DONE = "[DONE]"


def check_content_type(content_type: str | None) -> None:
    """Reject bodies that cannot be a chat stream (e.g. an HTML error page)."""
    if not content_type:
        return
    media_type = content_type.split(";", 1)[0].strip().lower()
    if media_type not in ACCEPTED_CONTENT_TYPES:
        raise StreamDecodeError(f"unexpected content-type {media_type!r}")


def decode_record(line: str) -> StreamChunk | None:
    """Decode one wire line.

    Returns None for lines that carry no record (blank lines, SSE comments).
    Raises StreamDecodeError for anything that is not a JSON object.
    """
    line = line.strip()
    if not line or line.startswith(":"):
        return None

    if line.startswith(SSE_DATA_PREFIX):
        line = line[len(SSE_DATA_PREFIX):].strip()
        if not line:
            return None
        if line == SSE_DONE:
            return StreamChunk(is_final=True)

    try:
        data = json.loads(line)
    except json.JSONDecodeError as e:
        raise StreamDecodeError(f"malformed stream record: {line[:80]!r}") from e

    if not isinstance(data, dict):
        raise StreamDecodeError(f"stream record is not an object: {line[:80]!r}")

    try:
        record = ChatResponse.model_validate(data)
    except ValidationError as e:
        raise StreamDecodeError(f"invalid stream record: {e.errors()[0]['msg']}") from e

    return StreamChunk.from_response(record)


class StreamDecoder:
    """Lazy, finite, non-restartable iterator of StreamChunk.

    ``source`` yields raw byte blocks of any size, e.g.
    ``response.iter_content(chunk_size=None)``. Incomplete lines are held
    until their newline arrives; nothing beyond one record is buffered.
    Iteration stops after a record with done=true or when the source is
    exhausted.
    """

    def __init__(self, source: Iterable[bytes], content_type: str | None = None) -> None:
        check_content_type(content_type)
        self._source = iter(source)
        self._text = codecs.getincrementaldecoder("utf-8")(errors="strict")
        self._pending = ""
        self._finished = False

    def __iter__(self) -> Iterator[StreamChunk]:
        return self

    def __next__(self) -> StreamChunk:
        if self._finished:
            raise StopIteration

        while True:
            newline = self._pending.find("\n")
            if newline >= 0:
                line = self._pending[:newline]
                self._pending = self._pending[newline + 1:]
                chunk = decode_record(line)
                if chunk is None:
                    continue
                if chunk.is_final:
                    self._finished = True
                return chunk

            block = next(self._source, None)
            if block is None:
                return self._finish()
            if not block:
                continue
            try:
                self._pending += self._text.decode(block)
            except UnicodeDecodeError as e:
                raise StreamDecodeError(f"stream is not valid UTF-8: {e}") from e

    def _finish(self) -> StreamChunk:
        """Source exhausted: decode an unterminated trailing record, if any."""
        self._finished = True
        try:
            self._pending += self._text.decode(b"", final=True)
        except UnicodeDecodeError as e:
            raise StreamDecodeError(f"stream ended inside a UTF-8 sequence: {e}") from e

        tail, self._pending = self._pending, ""
        chunk = decode_record(tail)
        if chunk is None:
            raise StopIteration
        return chunk
