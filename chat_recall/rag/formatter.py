"""
Context formatting for the language model.

Turns retrieval results into the plain-text block handed to the model as
grounding context. Output is deterministic for a given input.
"""

from typing import Sequence

from .dates import format_chat_date
from .models import ChatHistoryMatch, CorpusCoverage, RetrievalResult

NO_RESULTS = "No relevant chat history found."
CHUNKED_HEADING = "Relevant chat history (chunked):"
LEGACY_HEADING = "Relevant chat history:"


def format_chunks_for_rag(results: Sequence[RetrievalResult]) -> str:
    """
    Render chunk search results.

    Each entry reads "[i] participants (date) [xx.x%]:" followed by the chunk
    text, numbered from 1 in the given order. The date is the chunk's start
    time, falling back to its end time.
    """
    if not results:
        return NO_RESULTS

    parts = []
    for index, result in enumerate(results, start=1):
        when = format_chat_date(result.start_time or result.end_time)
        who = ", ".join(result.participants)
        parts.append(f"[{index}] {who} ({when}) [{result.similarity * 100:.1f}%]:\n{result.content}")

    return f"{CHUNKED_HEADING}\n\n" + "\n\n".join(parts)


def format_coverage_header(coverage: CorpusCoverage) -> str:
    return (
        f"Corpus coverage: earliest {coverage.earliest}, "
        f"latest {coverage.latest}, total chunks {coverage.total_chunks}."
    )


def format_context(coverage: CorpusCoverage, results: Sequence[RetrievalResult]) -> str:
    """Coverage header, a blank line, then the chunk block."""
    return f"{format_coverage_header(coverage)}\n\n{format_chunks_for_rag(results)}"


def format_context_for_rag(matches: Sequence[ChatHistoryMatch]) -> str:
    """Render legacy per-message matches: "[i] creator (email) (date) [Topic: t]: content"."""
    if not matches:
        return NO_RESULTS

    parts = []
    for index, match in enumerate(matches, start=1):
        creator = match.creator_name or match.participant_name
        email = f" ({match.creator_email})" if match.creator_email else ""
        topic = f" [Topic: {match.topic_id}]" if match.topic_id else ""
        date = format_chat_date(match.message_date)
        parts.append(f"[{index}] {creator}{email} ({date}){topic}: {match.message_content}")

    return f"{LEGACY_HEADING}\n\n" + "\n\n".join(parts)
