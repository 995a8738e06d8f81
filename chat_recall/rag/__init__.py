"""
Chat-history RAG (Retrieval-Augmented Generation) module.

Ingests exported chat JSON and retrieves relevant history for a query by
fusing full-text and vector search over windowed chunks.

Components:
- normalizer: Reads many export shapes into CanonicalMessages
- chunker: Groups messages into embeddable windows
- embeddings: OpenAI embeddings with retry and error classification
- store: PostgreSQL + pgvector persistence
- ingest: Two-phase upsert/embed pipeline and the legacy per-message path
- retriever: Hybrid search and context assembly
"""

from .chunker import MessageWindower, window_messages
from .coverage import CoverageAggregator
from .embeddings import (
    EmbeddingClient,
    EmbeddingError,
    EmbeddingNetworkError,
    QuotaExceededError,
    RateLimitedError,
)
from .formatter import format_chunks_for_rag, format_context, format_context_for_rag
from .ingest import ChatIngestor
from .models import CanonicalMessage, Chunk, CorpusCoverage, RetrievalResult, UploadSummary
from .normalizer import MalformedExportError, load_export
from .retriever import HybridRetriever, QueryPipeline
from .store import ChunkStore

__all__ = [
    "MessageWindower",
    "window_messages",
    "CoverageAggregator",
    "EmbeddingClient",
    "EmbeddingError",
    "EmbeddingNetworkError",
    "QuotaExceededError",
    "RateLimitedError",
    "format_chunks_for_rag",
    "format_context",
    "format_context_for_rag",
    "ChatIngestor",
    "CanonicalMessage",
    "Chunk",
    "CorpusCoverage",
    "RetrievalResult",
    "UploadSummary",
    "MalformedExportError",
    "load_export",
    "HybridRetriever",
    "QueryPipeline",
    "ChunkStore",
]
