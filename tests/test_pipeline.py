"""
End-to-end tests for the clustering pipeline over the in-memory store.
"""

import numpy as np
import pytest
import umap

from clustering.pipeline import ALL_STAGES, DocumentClusteringPipeline
from core.exceptions import EmbeddingError


class IdentityUMAP:
    """Keeps the first n_components columns."""

    def __init__(self, n_components, **kwargs):
        self.n_components = n_components

    def fit_transform(self, matrix):
        return np.asarray(matrix)[:, :self.n_components]


class PrefixEmbedder:
    """Places invoices near the origin and contracts far away from them."""

    def __init__(self, error=None):
        self.error = error

    async def embed_all(self, texts, progress_callback=None):
        if self.error:
            raise self.error
        vectors = []
        for i, text in enumerate(texts):
            base = 0.0 if text.startswith("Factura") else 10.0
            vectors.append([base + 0.01 * i, base, base])
        return np.array(vectors, dtype=np.float32)


@pytest.fixture
def pipeline_settings(settings, monkeypatch):
    monkeypatch.setattr(umap, "UMAP", IdentityUMAP)
    settings.embedding.dimensions = 3
    settings.clustering.umap_n_components = 3
    return settings


@pytest.fixture
def archive(store, session_id):
    """Four invoices, four contracts and a smaller copy of the first invoice."""
    for i in range(1, 5):
        store.add_document(session_id, f"Factura seria A nr. {i}", file_size_bytes=100, validation_status="Accepted")
    for i in range(1, 5):
        store.add_document(session_id, f"Contract de mandat nr. {i}", file_size_bytes=100, validation_status="Accepted")
    store.add_document(
        session_id, "FACTURA seria A nr. 1", doc_id="copy", file_size_bytes=10, validation_status="Accepted"
    )
    return session_id


class TestDocumentClusteringPipeline:

    @pytest.mark.asyncio
    async def test_full_run(self, store, archive, pipeline_settings, fake_llm):
        fake_llm.responses = [
            '{"nameRo": "Facturi fiscale", "nameEn": "Tax invoices", "description": "x"}',
            '{"nameRo": "Facturi de avans", "nameEn": "Advance invoices", "description": "y"}',
            '{"nameRo": "Facturi", "nameEn": "Invoices", "description": "Toate facturile"}',
        ]
        pipeline = DocumentClusteringPipeline(
            store, PrefixEmbedder(), fake_llm, settings=pipeline_settings
        )
        seen_stages = []

        result = await pipeline.run(archive, progress_callback=lambda p: seen_stages.append(p.stage.value))

        assert result.completed_stages == list(ALL_STAGES)
        assert result.deduplication.duplicate_count == 1
        assert store.documents["copy"]["is_canonical"] is False
        assert store.documents["copy"]["embedding"] is None
        assert result.embedding.embedded_documents == 8
        assert result.clustering.n_clusters == 2
        assert result.naming.named_count == 2
        assert result.merge.merged_count == 1

        clusters = store.get_clusters(archive, include_rejected=True)
        assert len(clusters) == 1
        assert clusters[0]["suggested_name"] == "Facturi"
        assert clusters[0]["document_count"] == 8

        session = store.sessions[archive]
        assert session["pipeline_status"] == "ReadyForValidation"
        assert session["pipeline_error"] is None
        assert session["clustering_stats"]["clusterCount"] == 2
        assert {"Deduplication", "Embedding", "Clustering", "Naming", "Merging"} <= set(seen_stages)

    @pytest.mark.asyncio
    async def test_resume_from_clustering(self, store, archive, pipeline_settings, fake_llm):
        first = DocumentClusteringPipeline(store, PrefixEmbedder(), fake_llm, settings=pipeline_settings)
        await first.run(archive, stages=["dedup", "embed"])

        result = await first.run(archive, stages=["cluster"])

        assert result.completed_stages == ["cluster"]
        assert result.clustering.n_clusters == 2
        assert all(c["is_auto_named"] for c in store.get_clusters(archive))

    @pytest.mark.asyncio
    async def test_stage_failure_marks_session_failed(self, store, archive, pipeline_settings, fake_llm):
        pipeline = DocumentClusteringPipeline(
            store, PrefixEmbedder(error=EmbeddingError("quota exhausted")), fake_llm,
            settings=pipeline_settings
        )

        with pytest.raises(EmbeddingError):
            await pipeline.run(archive)

        session = store.sessions[archive]
        assert session["pipeline_status"] == "Failed"
        assert session["pipeline_error"] == "embed: quota exhausted"

    @pytest.mark.asyncio
    async def test_unknown_stage_is_rejected(self, store, archive, pipeline_settings, fake_llm):
        pipeline = DocumentClusteringPipeline(store, PrefixEmbedder(), fake_llm, settings=pipeline_settings)

        with pytest.raises(ValueError):
            await pipeline.run(archive, stages=["dedup", "export"])
