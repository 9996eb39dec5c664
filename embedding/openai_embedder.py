"""
OpenAI embedding client for generating semantic document embeddings.
"""
import asyncio
import json
import logging
import openai
from typing import List, Optional, Callable
import numpy as np
from tenacity import (
    retry,
    stop_after_attempt,
    wait_exponential,
    retry_if_exception_type
)

from config.api_config import APIEndpoints, BATCH_TERMINAL_STATUSES
from config.settings import get_settings, EmbeddingSettings
from core.exceptions import BatchJobError, EmbeddingError, EmbeddingDimensionError, RateLimitError
from core.polling import poll_until

logger = logging.getLogger(__name__)


class OpenAIEmbedder:
    """
    OpenAI embedding client using text-embedding-3-large, shortened to the
    configured width.
    """

    def __init__(
        self,
        api_key: str = None,
        settings: EmbeddingSettings = None,
        client: openai.AsyncOpenAI = None
    ):
        """
        Initialize OpenAI embedder.

        Args:
            api_key: OpenAI API key (defaults to configured secret)
            settings: Embedding settings
            client: Pre-built async client
        """
        app_settings = get_settings()
        self.settings = settings or app_settings.embedding
        self.api_key = api_key if api_key is not None else app_settings.openai_api_key
        self.client = client or openai.AsyncOpenAI(api_key=self.api_key)

    @property
    def is_configured(self) -> bool:
        """Check if API key is configured."""
        return bool(self.api_key)

    @property
    def dimensions(self) -> int:
        return self.settings.dimensions

    def _prepare(self, texts: List[str]) -> List[str]:
        """Truncate every input to the character budget."""
        limit = self.settings.max_chars
        return [text[:limit] for text in texts]

    def _validate(self, vectors: List[List[float]], batch_index: int = None) -> np.ndarray:
        for vector in vectors:
            if vector is None:
                raise EmbeddingError("Missing embedding in response", batch_index=batch_index)
            if len(vector) != self.dimensions:
                raise EmbeddingDimensionError(
                    expected=self.dimensions,
                    actual=len(vector),
                    batch_index=batch_index
                )
        return np.array(vectors, dtype=np.float32)

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=30),
        retry=retry_if_exception_type(
            (RateLimitError, openai.APIConnectionError)
        ),
        reraise=True
    )
    async def embed_batch(self, texts: List[str], batch_index: int = 0) -> np.ndarray:
        """
        Generate embeddings for a batch of texts.

        Args:
            texts: List of texts to embed (max batch_size)
            batch_index: Position of the batch, reported on errors

        Returns:
            numpy array of shape (n_texts, dimensions)
        """
        if not self.is_configured:
            raise EmbeddingError("OpenAI API key not configured")

        if len(texts) > self.settings.batch_size:
            raise EmbeddingError(
                f"Batch too large: {len(texts)} > {self.settings.batch_size}",
                batch_index=batch_index
            )

        try:
            response = await self.client.embeddings.create(
                model=self.settings.model,
                input=self._prepare(texts),
                dimensions=self.dimensions
            )
        except openai.RateLimitError:
            raise RateLimitError(service="OpenAI", retry_after=60)
        except openai.APIConnectionError:
            raise
        except openai.APIError as e:
            raise EmbeddingError(
                f"OpenAI API error: {str(e)}",
                batch_index=batch_index
            )

        # Extract embeddings in the same order as input
        embeddings = [None] * len(texts)
        for item in response.data:
            embeddings[item.index] = item.embedding

        return self._validate(embeddings, batch_index)

    async def embed_all(
        self,
        texts: List[str],
        progress_callback: Callable = None
    ) -> np.ndarray:
        """
        Generate embeddings for all texts with batching.

        Args:
            texts: List of texts to embed
            progress_callback: Optional (current, total) callback

        Returns:
            numpy array of shape (n_texts, dimensions)
        """
        if not texts:
            return np.empty((0, self.dimensions), dtype=np.float32)

        batch_size = self.settings.batch_size
        all_embeddings = []

        for i in range(0, len(texts), batch_size):
            batch = texts[i:i + batch_size]

            embeddings = await self.embed_batch(batch, batch_index=i // batch_size)
            all_embeddings.append(embeddings)

            if progress_callback:
                progress_callback(min(i + batch_size, len(texts)), len(texts))

            # Small delay between batches
            if i + batch_size < len(texts):
                await asyncio.sleep(0.1)

        return np.vstack(all_embeddings)

    def _build_batch_file(self, texts: List[str]) -> bytes:
        """JSONL request file for the Batch API, one request per text."""
        lines = [
            json.dumps({
                "custom_id": f"doc-{i}",
                "method": "POST",
                "url": APIEndpoints.OPENAI_EMBEDDINGS,
                "body": {
                    "model": self.settings.model,
                    "input": text,
                    "dimensions": self.dimensions
                }
            }, ensure_ascii=False)
            for i, text in enumerate(self._prepare(texts))
        ]
        return "\n".join(lines).encode("utf-8")

    def _parse_batch_output(self, content: str, n_texts: int) -> np.ndarray:
        """Map Batch API output lines back to input order."""
        embeddings = [None] * n_texts
        for line in content.splitlines():
            if not line.strip():
                continue
            record = json.loads(line)
            index = int(record["custom_id"].split("-", 1)[1])
            if record.get("error"):
                raise EmbeddingError(
                    f"Batch request {record['custom_id']} failed: {record['error']}",
                    batch_index=index
                )
            body = record["response"]["body"]
            embeddings[index] = body["data"][0]["embedding"]
        return self._validate(embeddings)

    async def embed_via_batch(
        self,
        texts: List[str],
        poll_interval: float = 30.0,
        max_attempts: Optional[int] = None,
        on_poll: Callable = None
    ) -> np.ndarray:
        """
        Generate embeddings through the asynchronous Batch API.

        Submits one JSONL file and polls until the batch reaches a terminal
        status.

        Args:
            texts: List of texts to embed
            poll_interval: Seconds between status polls
            max_attempts: Optional cap on the number of polls
            on_poll: Optional (batch, attempt) callback

        Returns:
            numpy array of shape (n_texts, dimensions)
        """
        if not texts:
            return np.empty((0, self.dimensions), dtype=np.float32)
        if not self.is_configured:
            raise EmbeddingError("OpenAI API key not configured")

        try:
            batch_file = await self.client.files.create(
                file=("embeddings.jsonl", self._build_batch_file(texts)),
                purpose="batch"
            )
            batch = await self.client.batches.create(
                input_file_id=batch_file.id,
                endpoint=APIEndpoints.OPENAI_EMBEDDINGS,
                completion_window="24h"
            )
        except openai.APIError as e:
            raise EmbeddingError(f"Batch submission failed: {str(e)}")

        logger.info("Submitted embedding batch %s with %d request(s)", batch.id, len(texts))

        batch = await poll_until(
            lambda: self.client.batches.retrieve(batch.id),
            lambda b: b.status in BATCH_TERMINAL_STATUSES,
            interval_seconds=poll_interval,
            max_attempts=max_attempts,
            on_poll=on_poll,
            phase="embedding"
        )

        if batch.status != "completed" or not batch.output_file_id:
            raise BatchJobError(batch.id, batch.status)

        content = await self.client.files.content(batch.output_file_id)
        return self._parse_batch_output(content.text, len(texts))
