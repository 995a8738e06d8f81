"""
Message windowing for chat-export RAG.

Individual chat messages are too short for useful embeddings, so consecutive
messages are packed into chunks of roughly `target_chars` characters, each
line rendered as "participant: content".

Packing is greedy: a chunk is closed as soon as it reaches `target_chars`, and
may grow towards `max_chars` before that. A chunk that has reached `min_chars`
is closed rather than pushed past `max_chars`. A line so long that it cannot
share a chunk without passing `max_chars` closes the current chunk even when it
is still under `min_chars`; an oversized line therefore always ends up alone.

The windowing is written as a fold: `fold_message(acc, message)` returns the
next accumulator plus any chunks completed by that message. Nothing is mutated,
so every step can be tested in isolation.
"""

import logging
import re
from dataclasses import dataclass, replace
from datetime import datetime
from typing import Iterable, List, Optional, Tuple

from .models import CanonicalMessage, Chunk

logger = logging.getLogger(__name__)

DEFAULT_TARGET_CHARS = 1000
DEFAULT_MIN_CHARS = 400
DEFAULT_MAX_CHARS = 1600

# Acknowledgements that carry no retrievable meaning
_TRIVIAL_UTTERANCE = re.compile(r"^(ok|k|lol|haha|thx|thanks|\U0001F44D|\U0001F44C)$", re.IGNORECASE)


def is_trivial(content: str) -> bool:
    """True for one-character messages and bare acknowledgements ("ok", "thx", 👍)."""
    text = content.strip()
    return len(text) < 2 or bool(_TRIVIAL_UTTERANCE.match(text))


def _add_unique(values: Tuple[str, ...], value: Optional[str]) -> Tuple[str, ...]:
    if not value or value in values:
        return values
    return values + (value,)


@dataclass(frozen=True)
class WindowAccumulator:
    """The chunk currently being filled."""
    content: str = ""
    start_time: Optional[datetime] = None
    end_time: Optional[datetime] = None
    participants: Tuple[str, ...] = ()
    participant_emails: Tuple[str, ...] = ()
    message_count: int = 0

    def append(self, line: str, message: CanonicalMessage) -> "WindowAccumulator":
        addition = f"\n{line}" if self.content else line
        return replace(
            self,
            content=self.content + addition,
            start_time=self.start_time if self.content else message.timestamp,
            end_time=message.timestamp,
            participants=_add_unique(self.participants, message.participant),
            participant_emails=_add_unique(self.participant_emails, message.participant_email),
            message_count=self.message_count + 1,
        )

    def to_chunk(self) -> Optional[Chunk]:
        """Completed chunk, or None when there's nothing but whitespace."""
        if not self.content.strip():
            return None
        return Chunk(
            content=self.content,
            start_time=self.start_time,
            end_time=self.end_time,
            participants=self.participants,
            participant_emails=self.participant_emails,
            message_count=self.message_count,
        )


EMPTY = WindowAccumulator()


class MessageWindower:
    """
    Packs canonical messages into bounded-size chunks.

    Args:
        target_chars: Close a chunk once it reaches this length (default: 1000)
        min_chars: Don't close a chunk below this length unless a line can't fit
            beside it without passing max_chars (default: 400)
        max_chars: Upper bound on chunk length; only a single oversized line may
            exceed it, alone in its chunk (default: 1600)

    Example:
        windower = MessageWindower(target_chars=800)
        chunks = windower.window(messages)
    """

    def __init__(
        self,
        target_chars: int = DEFAULT_TARGET_CHARS,
        min_chars: int = DEFAULT_MIN_CHARS,
        max_chars: int = DEFAULT_MAX_CHARS,
    ):
        if not 0 < min_chars <= target_chars <= max_chars:
            raise ValueError(
                f"Expected 0 < min_chars <= target_chars <= max_chars, "
                f"got min={min_chars}, target={target_chars}, max={max_chars}"
            )
        self.target_chars = target_chars
        self.min_chars = min_chars
        self.max_chars = max_chars

    @classmethod
    def from_config(cls, config) -> "MessageWindower":
        return cls(
            target_chars=config.get("chunk_target_chars", DEFAULT_TARGET_CHARS),
            min_chars=config.get("chunk_min_chars", DEFAULT_MIN_CHARS),
            max_chars=config.get("chunk_max_chars", DEFAULT_MAX_CHARS),
        )

    def fold_message(
        self,
        acc: WindowAccumulator,
        message: CanonicalMessage,
    ) -> Tuple[WindowAccumulator, Tuple[Chunk, ...]]:
        """
        Fold one message into the accumulator.

        Returns:
            (next accumulator, chunks completed by this message). A message can
            complete up to two chunks: the one it didn't fit into, and its own
            once that reaches target_chars.
        """
        if not message.content or is_trivial(message.content):
            return acc, ()

        completed: List[Chunk] = []
        line = f"{message.participant}: {message.content}"
        separator = 1 if acc.content else 0
        overflows = len(acc.content) + separator + len(line) > self.max_chars

        if acc.content and overflows:
            if len(acc.content) < self.min_chars:
                logger.debug(
                    f"Closing undersized chunk ({len(acc.content)} chars) "
                    f"before a {len(line)}-char line"
                )
            chunk = acc.to_chunk()
            if chunk:
                completed.append(chunk)
            acc = EMPTY

        acc = acc.append(line, message)

        if len(acc.content) >= self.target_chars:
            chunk = acc.to_chunk()
            if chunk:
                completed.append(chunk)
            acc = EMPTY

        return acc, tuple(completed)

    def window(self, messages: Iterable[CanonicalMessage]) -> List[Chunk]:
        """
        Convert an ordered message sequence into chunks.

        Args:
            messages: CanonicalMessages in conversation order

        Returns:
            Chunks in input order
        """
        chunks: List[Chunk] = []
        acc = EMPTY
        total = 0

        for message in messages:
            total += 1
            acc, completed = self.fold_message(acc, message)
            chunks.extend(completed)

        remainder = acc.to_chunk()
        if remainder:
            chunks.append(remainder)

        logger.info(f"Created {len(chunks)} chunks from {total} messages")
        return chunks


def window_messages(
    messages: Iterable[CanonicalMessage],
    target_chars: int = DEFAULT_TARGET_CHARS,
    min_chars: int = DEFAULT_MIN_CHARS,
    max_chars: int = DEFAULT_MAX_CHARS,
) -> List[Chunk]:
    """
    Convenience function to window messages with the given bounds.

    Example:
        messages = load_export(raw_json)
        chunks = window_messages(messages)
    """
    windower = MessageWindower(target_chars=target_chars, min_chars=min_chars, max_chars=max_chars)
    return windower.window(messages)
