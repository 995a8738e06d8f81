"""Corpus coverage: the time span and size of one owner's ingested chunks."""

import logging
from datetime import datetime
from typing import Optional

from .dates import format_chat_date
from .models import UNKNOWN, CorpusCoverage

logger = logging.getLogger(__name__)


def _earliest(*values: Optional[datetime]) -> Optional[datetime]:
    present = [v for v in values if v is not None]
    return min(present) if present else None


def _latest(*values: Optional[datetime]) -> Optional[datetime]:
    present = [v for v in values if v is not None]
    return max(present) if present else None


class CoverageAggregator:
    """
    Summarizes an owner's corpus for the context header.

    A chunk may carry only one of start/end time, so both columns are
    consulted on each side of the range.
    """

    def __init__(self, store):
        self.store = store

    def coverage(self, owner_id: str) -> CorpusCoverage:
        bounds = self.store.corpus_bounds(owner_id)

        earliest = _earliest(bounds.get("min_start"), bounds.get("min_end"))
        latest = _latest(bounds.get("max_end"), bounds.get("max_start"))
        total = int(bounds.get("total") or 0)

        coverage = CorpusCoverage(
            earliest=format_chat_date(earliest) if earliest else UNKNOWN,
            latest=format_chat_date(latest) if latest else UNKNOWN,
            total_chunks=total,
        )
        logger.debug(f"Coverage for {owner_id}: {coverage}")
        return coverage
