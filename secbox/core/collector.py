"""
Per-execution output buffer.

Chunks are forwarded to the sink exactly as they arrive (per chunk, not per
line). Buffers stop growing once they pass the limit; the final text is the
first `limit` characters plus TRUNCATION_MARKER, whatever the chunk
boundaries were. After close() every feed is a no-op.
"""
from __future__ import annotations

import codecs
import inspect

from secbox.core.models import ChunkSink, OutputChunk, StreamType
from secbox.utils.logger import get_logger

TRUNCATION_MARKER = "\n... (output truncated)"

log = get_logger(__name__)


class _StreamBuffer:
    __slots__ = ("parts", "size", "truncated")

    def __init__(self) -> None:
        self.parts: list[str] = []
        self.size = 0
        self.truncated = False

    def append(self, content: str, limit: int) -> None:
        if self.truncated:
            return
        remaining = limit - self.size
        if len(content) <= remaining:
            self.parts.append(content)
            self.size += len(content)
            return
        if remaining > 0:
            self.parts.append(content[:remaining])
            self.size = limit
        self.truncated = True

    def text(self) -> str:
        out = "".join(self.parts)
        return out + TRUNCATION_MARKER if self.truncated else out


class OutputCollector:
    def __init__(self, process_id: str, max_output_length: int, sink: ChunkSink | None = None) -> None:
        if max_output_length <= 0:
            raise ValueError("max_output_length must be positive")
        self.process_id = process_id
        self.max_output_length = max_output_length
        self._sink = sink
        self._buffers = {StreamType.STDOUT: _StreamBuffer(), StreamType.STDERR: _StreamBuffer()}
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def feed(self, stream: StreamType, content: str) -> None:
        if self._closed or not content:
            return
        self._buffers[stream].append(content, self.max_output_length)
        if self._sink is not None:
            self._deliver(OutputChunk(stream=stream, content=content, process_id=self.process_id))

    def _deliver(self, chunk: OutputChunk) -> None:
        try:
            result = self._sink(chunk)
        except Exception:
            log.warning("Output sink raised for %s; continuing", self.process_id, exc_info=True)
            return
        if inspect.isawaitable(result):
            # Sinks are plain callables; an awaitable here would never run.
            log.warning("Output sink for %s returned an awaitable; it was not awaited", self.process_id)
            close = getattr(result, "close", None)
            if close is not None:
                close()

    def close(self) -> None:
        self._closed = True

    def text(self, stream: StreamType) -> str:
        return self._buffers[stream].text()

    def truncated(self, stream: StreamType) -> bool:
        return self._buffers[stream].truncated

    @property
    def stdout(self) -> str:
        return self.text(StreamType.STDOUT)

    @property
    def stderr(self) -> str:
        return self.text(StreamType.STDERR)


class StreamDecoder:
    """Incremental UTF-8 decoding so multibyte characters split across reads stay intact."""

    def __init__(self) -> None:
        self._decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")

    def decode(self, data: bytes) -> str:
        return self._decoder.decode(data)

    def flush(self) -> str:
        return self._decoder.decode(b"", final=True)
