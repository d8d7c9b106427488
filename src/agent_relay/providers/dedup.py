"""Suppress duplicated and replayed assistant text blocks.

Some backends stream the same text chunk twice in a row and finish a turn by
replaying everything said so far as one large block. The filter keeps the
first copy of each chunk and drops the trailing replay. The replay test is a
heuristic; the thresholds below are empirical.
"""

from __future__ import annotations

import re

from agent_relay.providers.models import BlockKind, ContentBlock, DedupState

REPLAY_MIN_ACCUMULATED_CHARS = 100
REPLAY_MIN_LENGTH_RATIO = 0.8
REPLAY_PREFIX_CHARS = 100

_WHITESPACE = re.compile(r"\s+")


class TextDedupFilter:
    """Stateful filter scoped to exactly one streaming execution."""

    def __init__(self, state: DedupState | None = None) -> None:
        self.state = state or DedupState()

    def filter_blocks(self, blocks: list[ContentBlock]) -> list[ContentBlock]:
        """Return the blocks that survive, updating state for every kept text block."""

        kept: list[ContentBlock] = []
        for block in blocks:
            if block.kind is not BlockKind.TEXT:
                kept.append(block)
                continue
            text = block.text or ""
            if not text.strip():
                continue
            if text == self.state.last_emitted_block:
                continue
            if self._is_replay(text):
                continue
            self.state.last_emitted_block = text
            self.state.accumulated_text += text
            kept.append(block)
        return kept

    def _is_replay(self, text: str) -> bool:
        accumulated = self.state.accumulated_text
        if len(accumulated) <= REPLAY_MIN_ACCUMULATED_CHARS:
            return False
        if len(text) < len(accumulated) * REPLAY_MIN_LENGTH_RATIO:
            return False
        prefix = _collapse_whitespace(accumulated)[:REPLAY_PREFIX_CHARS]
        return prefix in _collapse_whitespace(text)


def _collapse_whitespace(value: str) -> str:
    return _WHITESPACE.sub(" ", value).strip()
