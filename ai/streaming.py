"""
Server-Sent Events Parsers
==========================

Each provider frames its streaming responses as ``data: {...}`` lines but
puts the text in a different place. The parsers here only know about that
framing: they buffer incoming text until a full line is available, decode it,
and stop once the provider's end signal has been seen. Fragments come out in
exactly the order they were received.
"""

import json
import logging
from typing import AsyncIterator, List, Optional

logger = logging.getLogger(__name__)


class SseParser:
    """Base line-buffering parser. Subclasses implement ``extract_text``."""

    done_marker = "[DONE]"

    def __init__(self):
        self._buffer = ""
        self.done = False

    def feed(self, text: str) -> List[str]:
        if self.done:
            return []
        self._buffer += text
        *lines, self._buffer = self._buffer.split("\n")
        return self._parse_lines(lines)

    def flush(self) -> List[str]:
        """Parses whatever is left once the stream has ended."""
        if self.done or not self._buffer:
            return []
        lines, self._buffer = [self._buffer], ""
        return self._parse_lines(lines)

    def _parse_lines(self, lines: List[str]) -> List[str]:
        fragments = []
        for line in lines:
            line = line.rstrip("\r")
            if not line.startswith("data:"):
                continue
            data = line[5:].strip()
            if data == self.done_marker:
                self.done = True
                break
            try:
                payload = json.loads(data)
            except ValueError:
                logger.debug(f"Ignoring non-JSON stream line: {data[:80]!r}")
                continue
            text = self.extract_text(payload)
            if text:
                fragments.append(text)
            if self.done:
                break
        return fragments

    def extract_text(self, payload) -> Optional[str]:
        raise NotImplementedError


class OpenAiSseParser(SseParser):
    """OpenAI chat completions; OpenRouter uses the same format."""

    def extract_text(self, payload):
        choices = payload.get("choices") if isinstance(payload, dict) else None
        if not choices:
            return None
        delta = choices[0].get("delta") or {}
        return delta.get("content")


class AnthropicSseParser(SseParser):

    def extract_text(self, payload):
        if not isinstance(payload, dict):
            return None
        if payload.get("type") == "message_stop":
            self.done = True
            return None
        if payload.get("type") == "content_block_delta":
            return (payload.get("delta") or {}).get("text")
        return None


class GeminiSseParser(SseParser):
    """Gemini ``streamGenerateContent?alt=sse``; the stream simply ends, there is no end marker."""

    def extract_text(self, payload):
        if not isinstance(payload, dict):
            return None
        candidates = payload.get("candidates") or []
        if not candidates:
            return None
        parts = (candidates[0].get("content") or {}).get("parts") or []
        return "".join(part.get("text", "") for part in parts if isinstance(part, dict))


async def iter_sse_fragments(chunks: AsyncIterator[str], parser: SseParser) -> AsyncIterator[str]:
    """Decodes a stream of raw text chunks into text fragments, stopping at the end signal."""
    async for chunk in chunks:
        for fragment in parser.feed(chunk):
            yield fragment
        if parser.done:
            return
    for fragment in parser.flush():
        yield fragment
