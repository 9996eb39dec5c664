"""
Tests for the OpenAI embedding client and the embedding stage.
"""

import asyncio
import json
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import numpy as np
import pytest

from core.exceptions import BatchJobError, EmbeddingDimensionError, EmbeddingError
from embedding.batch_processor import EmbeddingStage
from embedding.openai_embedder import OpenAIEmbedder


@pytest.fixture
def embedding_settings(settings):
    settings.embedding.dimensions = 3
    settings.embedding.batch_size = 2
    settings.embedding.max_chars = 10
    return settings.embedding


@pytest.fixture
def openai_client():
    client = MagicMock()
    client.embeddings.create = AsyncMock()
    client.files.create = AsyncMock(return_value=SimpleNamespace(id="file-in"))
    client.files.content = AsyncMock()
    client.batches.create = AsyncMock(return_value=SimpleNamespace(id="batch-1", status="validating"))
    client.batches.retrieve = AsyncMock()
    return client


def _response(vectors):
    """Embedding response with items deliberately out of order."""
    items = [SimpleNamespace(index=i, embedding=v) for i, v in enumerate(vectors)]
    return SimpleNamespace(data=list(reversed(items)))


class TestEmbedBatch:

    @pytest.mark.asyncio
    async def test_results_follow_input_order(self, embedding_settings, openai_client):
        openai_client.embeddings.create.return_value = _response([[1, 0, 0], [0, 1, 0]])
        embedder = OpenAIEmbedder("sk-test", embedding_settings, openai_client)

        vectors = await embedder.embed_batch(["first text is long", "second"])

        np.testing.assert_allclose(vectors, [[1, 0, 0], [0, 1, 0]])
        kwargs = openai_client.embeddings.create.call_args.kwargs
        assert kwargs["input"] == ["first text", "second"]
        assert kwargs["dimensions"] == 3

    @pytest.mark.asyncio
    async def test_wrong_width_is_rejected(self, embedding_settings, openai_client):
        openai_client.embeddings.create.return_value = _response([[1, 0]])
        embedder = OpenAIEmbedder("sk-test", embedding_settings, openai_client)

        with pytest.raises(EmbeddingDimensionError) as exc_info:
            await embedder.embed_batch(["text"], batch_index=4)

        assert exc_info.value.expected == 3
        assert exc_info.value.actual == 2
        assert exc_info.value.batch_index == 4

    @pytest.mark.asyncio
    async def test_oversized_batch_is_rejected(self, embedding_settings, openai_client):
        embedder = OpenAIEmbedder("sk-test", embedding_settings, openai_client)

        with pytest.raises(EmbeddingError):
            await embedder.embed_batch(["a", "b", "c"])

        openai_client.embeddings.create.assert_not_called()

    @pytest.mark.asyncio
    async def test_embed_all_batches_and_stacks(self, embedding_settings, openai_client, monkeypatch):
        async def no_sleep(seconds):
            return None

        monkeypatch.setattr(asyncio, "sleep", no_sleep)
        openai_client.embeddings.create.side_effect = [
            _response([[1, 0, 0], [0, 1, 0]]),
            _response([[0, 0, 1]]),
        ]
        embedder = OpenAIEmbedder("sk-test", embedding_settings, openai_client)
        progress = []

        vectors = await embedder.embed_all(["a", "b", "c"], lambda done, total: progress.append(done))

        assert vectors.shape == (3, 3)
        assert progress == [2, 3]

    @pytest.mark.asyncio
    async def test_empty_input(self, embedding_settings, openai_client):
        embedder = OpenAIEmbedder("sk-test", embedding_settings, openai_client)
        assert (await embedder.embed_all([])).shape == (0, 3)


class TestBatchApi:

    @pytest.mark.asyncio
    async def test_submits_polls_and_maps_output(self, embedding_settings, openai_client, monkeypatch):
        async def no_sleep(seconds):
            return None

        monkeypatch.setattr(asyncio, "sleep", no_sleep)
        openai_client.batches.retrieve.side_effect = [
            SimpleNamespace(id="batch-1", status="in_progress", output_file_id=None),
            SimpleNamespace(id="batch-1", status="completed", output_file_id="file-out"),
        ]
        output = "\n".join(
            json.dumps({
                "custom_id": f"doc-{i}",
                "response": {"body": {"data": [{"embedding": vector}]}},
                "error": None,
            })
            for i, vector in [(1, [0, 1, 0]), (0, [1, 0, 0])]
        )
        openai_client.files.content.return_value = SimpleNamespace(text=output)
        embedder = OpenAIEmbedder("sk-test", embedding_settings, openai_client)

        vectors = await embedder.embed_via_batch(["a", "b"], poll_interval=1)

        np.testing.assert_allclose(vectors, [[1, 0, 0], [0, 1, 0]])
        assert openai_client.batches.retrieve.await_count == 2
        request_file = openai_client.files.create.call_args.kwargs["file"][1].decode("utf-8")
        assert json.loads(request_file.splitlines()[0])["custom_id"] == "doc-0"

    @pytest.mark.asyncio
    async def test_failed_batch_raises(self, embedding_settings, openai_client):
        openai_client.batches.retrieve.return_value = SimpleNamespace(
            id="batch-1", status="expired", output_file_id=None
        )
        embedder = OpenAIEmbedder("sk-test", embedding_settings, openai_client)

        with pytest.raises(BatchJobError) as exc_info:
            await embedder.embed_via_batch(["a"])

        assert exc_info.value.status == "expired"
        openai_client.files.content.assert_not_called()


class FakeEmbedder:
    """Embeds every text as a constant vector and records the chunks."""

    def __init__(self):
        self.chunks = []

    async def embed_all(self, texts, progress_callback=None):
        self.chunks.append(list(texts))
        return np.ones((len(texts), 3), dtype=np.float32)


class TestEmbeddingStage:

    @pytest.mark.asyncio
    async def test_embeds_eligible_canonical_documents_in_chunks(self, store, session_id, settings):
        settings.embedding.chunk_size = 2
        eligible = [
            store.add_document(session_id, f"doc {i}", validation_status="Accepted")
            for i in range(3)
        ]
        duplicate = store.add_document(session_id, "doc 0", validation_status="Accepted", is_canonical=False)
        pending = store.add_document(session_id, "doc 9", validation_status="Pending")
        blank = store.add_document(session_id, "  ", validation_status="Accepted")
        embedder = FakeEmbedder()

        result = await EmbeddingStage(store, embedder, settings).run(session_id)

        assert result.total_documents == 3
        assert result.embedded_documents == 3
        assert result.chunks == 2
        assert embedder.chunks == [["doc 0", "doc 1"], ["doc 2"]]
        assert all(store.documents[d]["embedding"] == [1.0, 1.0, 1.0] for d in eligible)
        assert store.documents[duplicate]["embedding"] is None
        assert store.documents[pending]["embedding"] is None
        assert store.documents[blank]["embedding"] is None

    @pytest.mark.asyncio
    async def test_rerun_only_embeds_missing_vectors(self, store, session_id, settings):
        store.add_document(session_id, "done", validation_status="Accepted", embedding=[0.0, 0.0, 0.0])
        store.add_document(session_id, "todo", validation_status="Accepted")
        embedder = FakeEmbedder()

        await EmbeddingStage(store, embedder, settings).run(session_id)

        assert embedder.chunks == [["todo"]]
