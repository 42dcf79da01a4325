"""Incremental decoding of newline-delimited LLM completion streams."""

import json
import re
from collections.abc import Iterable
from typing import Any

import structlog

logger = structlog.get_logger(__name__)

# Non-greedy: the first top-level object wins even if prose follows it.
_JSON_OBJECT = re.compile(r"\{[\s\S]*?\}")


class IntentParseError(Exception):
    """Model output could not be turned into a JSON object."""


class FragmentDecoder:
    """Owned buffer fed by sequential byte chunks.

    Each complete line is a JSON envelope whose ``response`` field holds a
    text fragment. A line split across chunks is held until its newline
    arrives; malformed lines are logged and skipped.
    """

    def __init__(self) -> None:
        self._pending = b""
        self._parts: list[str] = []
        self.skipped = 0

    def feed(self, chunk: bytes) -> None:
        data = self._pending + chunk
        *lines, self._pending = data.split(b"\n")
        for line in lines:
            self._consume(line)

    def close(self) -> str:
        """Flush any trailing line without a newline and return the text."""
        if self._pending:
            self._consume(self._pending)
            self._pending = b""
        return self.text

    @property
    def text(self) -> str:
        return "".join(self._parts)

    def _consume(self, line: bytes) -> None:
        if not line.strip():
            return
        try:
            envelope = json.loads(line)
        except (json.JSONDecodeError, UnicodeDecodeError) as e:
            self.skipped += 1
            logger.warning(
                "Error parsing stream fragment",
                error=str(e),
                line=line[:80].decode("utf-8", errors="replace"),
            )
            return
        if isinstance(envelope, dict) and envelope.get("response"):
            self._parts.append(str(envelope["response"]))


def fold_fragments(chunks: Iterable[bytes]) -> str:
    """Concatenate every fragment of a finite chunk sequence."""
    decoder = FragmentDecoder()
    for chunk in chunks:
        decoder.feed(chunk)
    return decoder.close()


def extract_json_object(text: str) -> dict[str, Any]:
    """Extract and parse the first JSON object embedded in ``text``.

    Raises:
        IntentParseError: If the text is empty, has no object, or the object
            is not valid JSON
    """
    clean = text.strip()
    if not clean:
        raise IntentParseError("LLM returned empty response")

    match = _JSON_OBJECT.search(clean)
    if match is None:
        raise IntentParseError("No valid JSON in LLM response")

    try:
        parsed = json.loads(match.group(0))
    except json.JSONDecodeError as e:
        raise IntentParseError(f"Invalid JSON format from LLM: {e}") from e

    if not isinstance(parsed, dict):
        raise IntentParseError("LLM JSON is not an object")
    return parsed
