"""
Query side of chat-recall.

HybridRetriever runs the lexical-then-vector chunk search; QueryPipeline pairs
it with corpus coverage and renders the context block for the language model.
"""

import logging
from concurrent.futures import ThreadPoolExecutor
from typing import List, Optional

from .coverage import CoverageAggregator
from .embeddings import EmbeddingClient
from .formatter import format_context
from .models import ChatHistoryMatch, RetrievalResult

logger = logging.getLogger(__name__)

DEFAULT_MATCH_THRESHOLD = 0.2
DEFAULT_LEXICAL_LIMIT = 5000
DEFAULT_FINAL_K = 50

DEFAULT_LEGACY_MATCH_THRESHOLD = 0.78
DEFAULT_LEGACY_MATCH_COUNT = 10


class HybridRetriever:
    """
    Retrieves the chunks most relevant to a query for one owner.

    Args:
        store: ChunkStore
        embedder: EmbeddingClient used for query embeddings
        match_threshold: Minimum cosine similarity (exclusive)
        lexical_limit: Candidates kept by the full-text pre-filter
        final_k: Maximum results returned
        legacy_match_threshold: Default cutoff for search_chat_history()
        legacy_match_count: Default result count for search_chat_history()

    Example:
        retriever = HybridRetriever(ChunkStore(db), EmbeddingClient())
        results = retriever.search("when did we book the cabin?", owner_id)
    """

    def __init__(
        self,
        store,
        embedder: EmbeddingClient,
        match_threshold: float = DEFAULT_MATCH_THRESHOLD,
        lexical_limit: int = DEFAULT_LEXICAL_LIMIT,
        final_k: int = DEFAULT_FINAL_K,
        legacy_match_threshold: float = DEFAULT_LEGACY_MATCH_THRESHOLD,
        legacy_match_count: int = DEFAULT_LEGACY_MATCH_COUNT,
    ):
        if not 0 <= match_threshold <= 1:
            raise ValueError(f"match_threshold must be within [0, 1], got {match_threshold}")
        if not lexical_limit >= final_k >= 1:
            raise ValueError(
                f"Expected lexical_limit >= final_k >= 1, "
                f"got lexical_limit={lexical_limit}, final_k={final_k}"
            )

        self.store = store
        self.embedder = embedder
        self.match_threshold = match_threshold
        self.lexical_limit = lexical_limit
        self.final_k = final_k
        self.legacy_match_threshold = legacy_match_threshold
        self.legacy_match_count = legacy_match_count

    @classmethod
    def from_config(cls, config, store, embedder: EmbeddingClient) -> "HybridRetriever":
        return cls(
            store,
            embedder,
            match_threshold=config.get("match_threshold", DEFAULT_MATCH_THRESHOLD),
            lexical_limit=config.get("lexical_limit", DEFAULT_LEXICAL_LIMIT),
            final_k=config.get("final_k", DEFAULT_FINAL_K),
            legacy_match_threshold=config.get("legacy_match_threshold", DEFAULT_LEGACY_MATCH_THRESHOLD),
            legacy_match_count=config.get("legacy_match_count", DEFAULT_LEGACY_MATCH_COUNT),
        )

    def search(self, query: str, owner_id: str) -> List[RetrievalResult]:
        """
        Hybrid search over the owner's chunks.

        Results are strictly above match_threshold, sorted by similarity
        (highest first) and at most final_k long, whatever the store returns.
        """
        query_embedding = self.embedder.embed(query)

        rows = self.store.hybrid_search(
            query,
            query_embedding,
            self.match_threshold,
            self.lexical_limit,
            self.final_k,
            owner_id,
        )

        results = [RetrievalResult.from_row(row) for row in rows]
        results = [r for r in results if r.similarity > self.match_threshold]
        results.sort(key=lambda r: r.similarity, reverse=True)
        results = results[:self.final_k]

        logger.info(f"Hybrid search found {len(results)} chunks for query: {query[:50]}")
        return results

    def search_chat_history(
        self,
        query: str,
        owner_id: str,
        match_threshold: Optional[float] = None,
        match_count: Optional[int] = None,
    ) -> List[ChatHistoryMatch]:
        """Vector-only search over legacy per-message rows."""
        if match_threshold is None:
            match_threshold = self.legacy_match_threshold
        if match_count is None:
            match_count = self.legacy_match_count

        query_embedding = self.embedder.embed(query)
        rows = self.store.search_chat_history(query_embedding, match_threshold, match_count, owner_id)
        matches = [ChatHistoryMatch.from_row(row) for row in rows]
        logger.info(f"Legacy search found {len(matches)} messages")
        return matches


class QueryPipeline:
    """
    Builds the grounding context for one query.

    Search and coverage are independent, so they run side by side and are
    joined before formatting. Either failing fails the whole query.
    """

    def __init__(self, retriever: HybridRetriever, coverage: CoverageAggregator):
        self.retriever = retriever
        self.coverage = coverage

    def build_context(self, query: str, owner_id: str) -> str:
        with ThreadPoolExecutor(max_workers=2) as executor:
            search_future = executor.submit(self.retriever.search, query, owner_id)
            coverage_future = executor.submit(self.coverage.coverage, owner_id)
            results = search_future.result()
            coverage = coverage_future.result()

        return format_context(coverage, results)
