"""
Unit tests for context formatting.
"""

from datetime import datetime, timezone

from chat_recall.rag.formatter import (
    NO_RESULTS,
    format_chunks_for_rag,
    format_context,
    format_context_for_rag,
    format_coverage_header,
)
from chat_recall.rag.models import ChatHistoryMatch, CorpusCoverage, RetrievalResult

WHEN = datetime(2013, 9, 12, 15, 50, 11, tzinfo=timezone.utc)


def result(content, similarity, start=WHEN, end=None, participants=("Ann", "Bo")):
    return RetrievalResult(
        chunk_id="c1",
        content=content,
        participants=list(participants),
        start_time=start,
        end_time=end,
        original_source="a.json",
        similarity=similarity,
    )


class TestFormatChunksForRag:
    """Tests for format_chunks_for_rag()."""

    def test_empty(self):
        assert format_chunks_for_rag([]) == NO_RESULTS == "No relevant chat history found."

    def test_entries(self):
        text = format_chunks_for_rag([
            result("Ann: hi\nBo: hey", 0.876),
            result("Bo: later", 0.5, start=None, end=WHEN, participants=("Bo",)),
        ])

        assert text == (
            "Relevant chat history (chunked):\n\n"
            "[1] Ann, Bo (Sep 12, 2013, 03:50 PM) [87.6%]:\nAnn: hi\nBo: hey\n\n"
            "[2] Bo (Sep 12, 2013, 03:50 PM) [50.0%]:\nBo: later"
        )

    def test_missing_times(self):
        text = format_chunks_for_rag([result("Ann: hi", 0.3, start=None, end=None)])
        assert "(Unknown date)" in text


class TestCoverageHeader:
    def test_header(self):
        coverage = CorpusCoverage(earliest="Jan 1, 2020, 09:00 AM", latest="Mar 1, 2024, 10:00 AM", total_chunks=42)
        assert format_coverage_header(coverage) == (
            "Corpus coverage: earliest Jan 1, 2020, 09:00 AM, latest Mar 1, 2024, 10:00 AM, total chunks 42."
        )

    def test_context_joins_header_and_block(self):
        context = format_context(CorpusCoverage(), [result("Ann: hi", 0.4)])

        header, block = context.split("\n\n", 1)
        assert header == "Corpus coverage: earliest unknown, latest unknown, total chunks 0."
        assert block.startswith("Relevant chat history (chunked):")


class TestFormatContextForRag:
    """Tests for the legacy formatter."""

    def test_empty(self):
        assert format_context_for_rag([]) == NO_RESULTS

    def test_entries(self):
        matches = [
            ChatHistoryMatch(
                id="h1", participant_name="dana", message_content="Move the review?", similarity=0.9,
                creator_name="Dana Reyes", creator_email="dana@example.com", message_date=WHEN, topic_id="t7",
            ),
            ChatHistoryMatch(id="h2", participant_name="sam", message_content="Sure", similarity=0.8),
        ]

        assert format_context_for_rag(matches) == (
            "Relevant chat history:\n\n"
            "[1] Dana Reyes (dana@example.com) (Sep 12, 2013, 03:50 PM) [Topic: t7]: Move the review?\n\n"
            "[2] sam (Unknown date): Sure"
        )
