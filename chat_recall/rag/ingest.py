"""
Ingestion orchestrator for chat-recall.

Chunked path (primary):
    export -> load_export() -> MessageWindower -> ingest()
    Phase 1 hashes and upserts chunks, phase 2 embeds whatever the owner has
    without an embedding. Because phase 2 selects by "embedding IS NULL" rather
    than by what phase 1 just wrote, an interrupted run is finished by the next
    one, whatever export triggers it.

Legacy path:
    One chat_history row plus one chat_embeddings row per message, guarded by a
    duplicate probe. Failures come back as EmbedEntryError values so a caller
    looping over many messages can carry on.
"""

import logging
from dataclasses import replace
from functools import partial
from typing import Any, Dict, Iterable, List, Optional, Sequence, Union

from .chunker import MessageWindower
from .embeddings import EmbeddingClient, QuotaExceededError
from .hashing import hash_chunk, is_duplicate_message
from .models import CanonicalMessage, Chunk, EmbedEntryError, IngestResult, UploadSummary
from .normalizer import load_export
from .retry import STORE_WRITE_RETRY, RetryPolicy
from .store import ChunkStore

logger = logging.getLogger(__name__)

DEFAULT_UPSERT_BATCH_SIZE = 400
DEFAULT_PAGE_SIZE = 1000
DEFAULT_UPDATE_BATCH_SIZE = 200


class ChatIngestor:
    """
    Writes chat exports into the store and fills in their embeddings.

    Args:
        store: ChunkStore (or anything with the same methods)
        embedder: EmbeddingClient
        upsert_batch_size: Chunks per upsert statement
        page_size: Unembedded rows fetched per phase-2 page
        update_batch_size: Embedding writes per logged sub-batch
        write_retry: Retry policy for each legacy-path step (quota errors are
            never retried)

    Example:
        ingestor = ChatIngestor(ChunkStore(db), EmbeddingClient())
        summary = ingestor.ingest_export(owner_id, raw_json, "export.json")
    """

    def __init__(
        self,
        store: ChunkStore,
        embedder: EmbeddingClient,
        upsert_batch_size: int = DEFAULT_UPSERT_BATCH_SIZE,
        page_size: int = DEFAULT_PAGE_SIZE,
        update_batch_size: int = DEFAULT_UPDATE_BATCH_SIZE,
        write_retry: RetryPolicy = STORE_WRITE_RETRY,
    ):
        for name, value in (
            ("upsert_batch_size", upsert_batch_size),
            ("page_size", page_size),
            ("update_batch_size", update_batch_size),
        ):
            if value < 1:
                raise ValueError(f"{name} must be >= 1, got {value}")

        self.store = store
        self.embedder = embedder
        self.upsert_batch_size = upsert_batch_size
        self.page_size = page_size
        self.update_batch_size = update_batch_size
        self.write_retry = replace(write_retry, terminal=write_retry.terminal + (QuotaExceededError,))

    @classmethod
    def from_config(cls, config, store: ChunkStore, embedder: EmbeddingClient, **kwargs) -> "ChatIngestor":
        return cls(
            store,
            embedder,
            upsert_batch_size=config.get("upsert_batch_size", DEFAULT_UPSERT_BATCH_SIZE),
            page_size=config.get("missing_embedding_page_size", DEFAULT_PAGE_SIZE),
            update_batch_size=config.get("embedding_update_batch_size", DEFAULT_UPDATE_BATCH_SIZE),
            **kwargs,
        )

    # === Chunked path ===

    def ingest(self, owner_id: str, chunks: Sequence[Chunk], source_label: Optional[str]) -> IngestResult:
        """
        Upsert chunks, then embed every unembedded chunk this owner has.

        Store and embedding errors propagate; rows written before the failure
        stay written, and a later call picks up where this one stopped.

        Returns:
            IngestResult with rows newly inserted and rows embedded this run
        """
        inserted = self._upsert(owner_id, chunks, source_label)
        logger.info(f"Inserted {inserted} new chunks ({len(chunks) - inserted} already present)")

        embedded = self._embed_missing(owner_id)
        logger.info(f"Embedded {embedded} chunks")

        return IngestResult(inserted_count=inserted, embedded_count=embedded)

    def _upsert(self, owner_id: str, chunks: Sequence[Chunk], source_label: Optional[str]) -> int:
        rows = [(hash_chunk(chunk), chunk) for chunk in chunks]
        inserted = 0
        for start in range(0, len(rows), self.upsert_batch_size):
            batch = rows[start:start + self.upsert_batch_size]
            inserted += self.store.upsert_chunks(owner_id, batch, source_label)
        return inserted

    def _embed_missing(self, owner_id: str) -> int:
        total = 0
        while True:
            page = self.store.fetch_missing_embeddings(owner_id, self.page_size)
            if not page:
                return total

            vectors = self.embedder.embed_batch([content for _, content in page])

            for start in range(0, len(page), self.update_batch_size):
                ids = [chunk_id for chunk_id, _ in page[start:start + self.update_batch_size]]
                for chunk_id, vector in zip(ids, vectors[start:start + self.update_batch_size]):
                    self.store.update_embedding(chunk_id, vector)
                logger.debug(f"Wrote {len(ids)} embeddings")

            total += len(page)

    def ingest_export(
        self,
        owner_id: str,
        payload: Any,
        source_label: Optional[str],
        windower: Optional[MessageWindower] = None,
    ) -> UploadSummary:
        """
        Upload entry point: decode, window and ingest one export.

        Raises:
            MalformedExportError: Before any store call, for bad JSON or an
                export with no messages
        """
        messages = load_export(payload)
        chunks = (windower or MessageWindower()).window(messages)
        result = self.ingest(owner_id, chunks, source_label)

        summary = UploadSummary(
            total_messages=len(messages),
            chunks_generated=len(chunks),
            chunks_inserted=result.inserted_count,
            chunks_embedded=result.embedded_count,
        )
        logger.info(f"Processed {source_label}: {summary.to_dict()}")
        return summary

    # === Legacy per-message path ===

    def embed_chat_history_entry(
        self,
        owner_id: str,
        message: CanonicalMessage,
        source_label: str,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> Union[str, None, EmbedEntryError]:
        """
        Store and embed a single message.

        Returns:
            New chat_history id, None if the message was already stored, or an
            EmbedEntryError describing why it failed
        """
        try:
            if is_duplicate_message(
                self.store,
                owner_id,
                message.content,
                message_id=message.message_id,
                topic_id=message.topic_id,
            ):
                logger.info(f"Skipping duplicate message: {message.content[:50]}...")
                return None

            history_id = self.write_retry.run(
                partial(self.store.insert_chat_history, owner_id, message, source_label, metadata),
                description="Insert chat history",
            )
            vector = self.write_retry.run(
                partial(self.embedder.embed, message.content),
                description="Embed chat message",
            )
            self.write_retry.run(
                partial(self.store.insert_chat_embedding, history_id, vector),
                description="Insert chat embedding",
            )
            return history_id

        except Exception as e:
            logger.error(f"Error embedding chat history entry: {e}")
            return EmbedEntryError(message=str(e) or "Unknown error", details=e)

    def ingest_chat_history(
        self,
        owner_id: str,
        messages: Iterable[CanonicalMessage],
        source_label: str,
    ) -> Dict[str, int]:
        """Run embed_chat_history_entry over many messages and tally the outcomes."""
        tally = {"inserted": 0, "skipped": 0, "failed": 0}
        failures: List[EmbedEntryError] = []

        for message in messages:
            outcome = self.embed_chat_history_entry(owner_id, message, source_label)
            if outcome is None:
                tally["skipped"] += 1
            elif isinstance(outcome, EmbedEntryError):
                tally["failed"] += 1
                failures.append(outcome)
            else:
                tally["inserted"] += 1

        if failures:
            logger.warning(f"{len(failures)} messages failed, first error: {failures[0].message}")
        logger.info(f"Legacy ingestion of {source_label}: {tally}")
        return tally
