"""
Embedding stage: embeds canonical documents of a session in chunks and
persists the vectors.
"""
import logging
from typing import Optional
from dataclasses import dataclass

from config.settings import get_settings, Settings
from core.progress_tracker import ProgressTracker, PipelineStage
from embedding.openai_embedder import OpenAIEmbedder

logger = logging.getLogger(__name__)


@dataclass
class EmbeddingProgress:
    """Outcome of an embedding run."""

    total_documents: int = 0
    embedded_documents: int = 0
    skipped_documents: int = 0
    chunks: int = 0

    @property
    def progress(self) -> float:
        if self.total_documents == 0:
            return 0.0
        return self.embedded_documents / self.total_documents


class EmbeddingStage:
    """
    Processes large document sets in chunks.
    Each chunk is persisted before the next one starts, so an interrupted
    run resumes from the first document without an embedding.
    """

    def __init__(
        self,
        store,
        embedder: OpenAIEmbedder,
        settings: Settings = None
    ):
        """
        Initialize embedding stage.

        Args:
            store: DocumentStore implementation
            embedder: Embedding client
            settings: Settings (defaults to get_settings())
        """
        self.store = store
        self.embedder = embedder
        self.settings = settings or get_settings()

    async def run(
        self,
        session_id: str,
        tracker: Optional[ProgressTracker] = None
    ) -> EmbeddingProgress:
        """
        Embed every eligible canonical document still lacking a vector.

        Args:
            session_id: Session to process
            tracker: Optional progress tracker

        Returns:
            EmbeddingProgress summary
        """
        tracker = tracker or ProgressTracker(session_id, self.store)
        documents = self.store.get_documents_needing_embedding(
            session_id,
            self.settings.clustering.eligible_statuses
        )

        result = EmbeddingProgress()
        documents = [d for d in documents if (d.get("extracted_text") or "").strip()]
        result.total_documents = len(documents)
        if not documents:
            logger.info("No documents to embed for session %s", session_id)
            return result

        chunk_size = self.settings.embedding.chunk_size
        pipeline = self.settings.pipeline
        tracker.start_stage(
            PipelineStage.EMBEDDING,
            total=len(documents),
            message="Generating embeddings"
        )

        for start in range(0, len(documents), chunk_size):
            chunk = documents[start:start + chunk_size]
            texts = [d["extracted_text"] for d in chunk]

            if self.settings.embedding.use_batch_api:
                vectors = await self.embedder.embed_via_batch(
                    texts,
                    poll_interval=pipeline.poll_interval_seconds,
                    max_attempts=pipeline.max_poll_attempts or None,
                    on_poll=lambda batch, attempt: tracker.update(
                        result.embedded_documents,
                        message=f"Batch {batch.status} (poll {attempt})"
                    )
                )
            else:
                vectors = await self.embedder.embed_all(texts)

            self.store.save_embeddings({
                doc["id"]: vectors[i].tolist()
                for i, doc in enumerate(chunk)
            })

            result.chunks += 1
            result.embedded_documents += len(chunk)
            tracker.update(
                result.embedded_documents,
                message=f"Embedded {result.embedded_documents}/{result.total_documents} documents"
            )

        tracker.complete_stage(f"Embedded {result.embedded_documents} documents")
        logger.info(
            "Embedded %d document(s) in %d chunk(s) for session %s",
            result.embedded_documents,
            result.chunks,
            session_id
        )
        return result
