"""
Embedding client for chat-recall (OpenAI embeddings API).

Two entry points with different failure policies:
- embed(): one text, one request, failures classified and surfaced
  immediately so the caller decides whether to retry
- embed_batch(): many texts in fixed-size groups, each group retried with
  jittered exponential backoff; built for long ingestion jobs where a
  transient provider hiccup must not drop data (quota errors are not retried)

Inputs longer than max_chars are truncated rather than rejected.
"""

import logging
import os
import time
from dataclasses import replace
from functools import partial
from typing import Callable, List, Optional, Sequence

import openai
from openai import OpenAI

from .retry import BATCH_EMBED_RETRY, RetryPolicy

logger = logging.getLogger(__name__)

DEFAULT_MODEL = "text-embedding-3-small"
DEFAULT_DIMENSIONS = 1536
DEFAULT_BATCH_SIZE = 64
DEFAULT_MAX_CHARS = 8000
DEFAULT_PACING_SECONDS = 0.2


class EmbeddingError(Exception):
    """Raised when embedding generation fails."""
    pass


class RateLimitedError(EmbeddingError):
    """Provider rate limit (HTTP 429). Safe for the caller to retry later."""
    pass


class QuotaExceededError(EmbeddingError):
    """Quota or billing problem. Retrying won't help."""
    pass


class EmbeddingNetworkError(EmbeddingError):
    """Provider unreachable."""
    pass


def classify_embedding_error(error: Exception) -> EmbeddingError:
    """
    Map a provider exception onto the EmbeddingError taxonomy.

    OpenAI reports exhausted quota as a 429 with code "insufficient_quota",
    so that code is checked before the generic rate-limit signals.
    """
    message = str(error).lower()
    code = getattr(error, "code", None)

    if code == "insufficient_quota":
        return QuotaExceededError("API quota exceeded - please check your OpenAI billing")

    if (
        isinstance(error, openai.RateLimitError)
        or getattr(error, "status_code", None) == 429
        or "rate_limit" in message
        or "rate limit" in message
        or "429" in message
    ):
        return RateLimitedError("Rate limit exceeded - please try again later")

    if "quota" in message or "billing" in message:
        return QuotaExceededError("API quota exceeded - please check your OpenAI billing")

    if (
        isinstance(error, openai.APIConnectionError)
        or "fetch failed" in message
        or "network" in message
        or "connection" in message
    ):
        return EmbeddingNetworkError("Network error - please check your connection")

    return EmbeddingError("Failed to generate embedding")


class EmbeddingClient:
    """
    Generates embeddings with the OpenAI API.

    Args:
        client: OpenAI client (built from OPENAI_API_KEY when omitted)
        model: Embedding model name
        batch_size: Texts per provider request in embed_batch()
        max_chars: Per-text truncation limit
        pacing_delay: Seconds to wait between batch requests
        retry_policy: Backoff policy for each batch request
        sleep: Blocking sleep used for pacing and backoff (injectable for tests)
        api_key: Explicit API key, overriding OPENAI_API_KEY

    Example:
        embedder = EmbeddingClient()
        vector = embedder.embed("dinner plans")
        vectors = embedder.embed_batch(chunk_texts)
    """

    def __init__(
        self,
        client: Optional[OpenAI] = None,
        model: str = DEFAULT_MODEL,
        batch_size: int = DEFAULT_BATCH_SIZE,
        max_chars: int = DEFAULT_MAX_CHARS,
        pacing_delay: float = DEFAULT_PACING_SECONDS,
        retry_policy: RetryPolicy = BATCH_EMBED_RETRY,
        sleep: Callable[[float], None] = time.sleep,
        api_key: Optional[str] = None,
    ):
        if batch_size < 1:
            raise ValueError(f"batch_size must be >= 1, got {batch_size}")

        self.client = client or self._init_openai(api_key)
        self.model = model
        self.dimensions = DEFAULT_DIMENSIONS
        self.batch_size = batch_size
        self.max_chars = max_chars
        self.pacing_delay = pacing_delay
        self.sleep = sleep
        self.retry_policy = replace(
            retry_policy,
            sleep=sleep,
            terminal=retry_policy.terminal + (QuotaExceededError,),
        )

        logger.info(f"Initialized OpenAI embeddings with model: {self.model}")

    @staticmethod
    def _init_openai(api_key: Optional[str]) -> OpenAI:
        """Initialize OpenAI client."""
        api_key = api_key or os.environ.get("OPENAI_API_KEY")
        if not api_key:
            raise ValueError("OPENAI_API_KEY environment variable not set.")
        return OpenAI(api_key=api_key)

    @classmethod
    def from_config(cls, config, client: Optional[OpenAI] = None, **kwargs) -> "EmbeddingClient":
        return cls(
            client=client,
            model=config.get("embedding_model", DEFAULT_MODEL),
            batch_size=config.get("embedding_batch_size", DEFAULT_BATCH_SIZE),
            max_chars=config.get("embedding_max_chars", DEFAULT_MAX_CHARS),
            pacing_delay=config.get("embedding_pacing_seconds", DEFAULT_PACING_SECONDS),
            api_key=config.get_openai_api_key(),
            **kwargs,
        )

    def _truncate(self, text: str) -> str:
        return text[:self.max_chars] if len(text) > self.max_chars else text

    def _request(self, inputs: Sequence[str]) -> List[List[float]]:
        response = self.client.embeddings.create(
            model=self.model,
            input=list(inputs),
            encoding_format="float",
        )
        vectors = [item.embedding for item in response.data]
        if len(vectors) != len(inputs):
            raise EmbeddingError(
                f"Provider returned {len(vectors)} embeddings for {len(inputs)} inputs"
            )
        return vectors

    def _request_group(self, inputs: Sequence[str]) -> List[List[float]]:
        try:
            return self._request(inputs)
        except EmbeddingError:
            raise
        except Exception as e:
            error = classify_embedding_error(e)
            if isinstance(error, QuotaExceededError):
                raise error from e
            raise

    def embed(self, text: str) -> List[float]:
        """
        Generate an embedding for a single text (no internal retry).

        Raises:
            RateLimitedError, QuotaExceededError, EmbeddingNetworkError,
            EmbeddingError
        """
        try:
            return self._request([self._truncate(text)])[0]
        except EmbeddingError:
            raise
        except Exception as e:
            logger.error(f"Error generating embedding: {e}")
            raise classify_embedding_error(e) from e

    def embed_batch(self, texts: Sequence[str]) -> List[List[float]]:
        """
        Generate embeddings for many texts, preserving input order.

        Texts are sent in groups of batch_size. Each group is retried per
        retry_policy; when the budget runs out the last error propagates.
        Quota and billing errors are raised as QuotaExceededError on the first
        failure.

        Complexity: ceil(n / batch_size) successful requests.
        """
        if not texts:
            return []

        vectors: List[List[float]] = []
        batch_count = (len(texts) + self.batch_size - 1) // self.batch_size

        for number, start in enumerate(range(0, len(texts), self.batch_size), start=1):
            if number > 1:
                self.sleep(self.pacing_delay)

            group = [self._truncate(text) for text in texts[start:start + self.batch_size]]
            vectors.extend(
                self.retry_policy.run(
                    partial(self._request_group, group),
                    description=f"Embedding batch {number}/{batch_count}",
                )
            )
            logger.debug(f"Embedded batch {number}/{batch_count} ({len(group)} texts)")

        return vectors
