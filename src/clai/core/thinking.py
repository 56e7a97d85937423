"""Removal of <think>...</think> reasoning spans from model output."""

import re

OPEN_TAG = "<think>"
CLOSE_TAG = "</think>"

_THINK_SPAN = re.compile(r"<think>[\s\S]*?</think>")


def strip_think_tags(text: str) -> str:
    """Remove every complete think span and trim surrounding whitespace."""
    return _THINK_SPAN.sub("", text).strip()


def _partial_open_tag_length(text: str) -> int:
    for size in range(len(OPEN_TAG) - 1, 0, -1):
        if text.endswith(OPEN_TAG[:size]):
            return size
    return 0


class ThinkTagStreamFilter:
    """Incremental think-span filter for a chunked token stream.

    Output of every ``process`` call plus the final ``flush`` equals the whole
    input with complete spans removed, however the input was chunked. Text
    that could be the start of an opening tag is held back until the next
    chunk decides it; an opening tag that is never closed comes back verbatim
    from ``flush``. Tags do not nest.
    """

    def __init__(self) -> None:
        self._buffer = ""
        self._inside = False

    @property
    def inside_tag(self) -> bool:
        return self._inside

    @property
    def pending(self) -> str:
        return self._buffer

    def process(self, chunk: str) -> str:
        self._buffer += chunk
        emitted: list[str] = []
        while True:
            if self._inside:
                end = self._buffer.find(CLOSE_TAG)
                if end < 0:
                    break
                self._buffer = self._buffer[end + len(CLOSE_TAG) :]
                self._inside = False
                continue

            start = self._buffer.find(OPEN_TAG)
            if start >= 0:
                emitted.append(self._buffer[:start])
                # keep the opening tag so flush() can surface an unterminated span
                self._buffer = self._buffer[start:]
                self._inside = True
                continue

            held = _partial_open_tag_length(self._buffer)
            if held:
                emitted.append(self._buffer[:-held])
                self._buffer = self._buffer[-held:]
            else:
                emitted.append(self._buffer)
                self._buffer = ""
            break
        return "".join(emitted)

    def flush(self) -> str:
        output = self._buffer
        self._buffer = ""
        self._inside = False
        return output
