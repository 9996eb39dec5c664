"""
Tests for bilingual cluster naming.
"""

import pytest

from core.exceptions import LabelingError
from labeling.cluster_namer import ClusterNamer


def _seed(store, session_id, name="Grup 1", auto=True, status="Pending", texts=("Factura seria A",)):
    doc_ids = [store.add_document(session_id, text) for text in texts]
    return store.add_cluster(
        session_id,
        name,
        doc_ids,
        suggested_name_en="Group 1",
        sample_document_ids=doc_ids,
        is_auto_named=auto,
        status=status,
    )


class TestClusterNamer:

    @pytest.mark.asyncio
    async def test_names_placeholder_clusters(self, store, session_id, settings, fake_llm):
        cluster_id = _seed(store, session_id)
        fake_llm.responses = [
            '```json\n{"nameRo": "Facturi", "nameEn": "Invoices", "description": "Facturi fiscale"}\n```'
        ]

        result = await ClusterNamer(store, fake_llm, settings).name_clusters(session_id)

        cluster = store.clusters[cluster_id]
        assert result.named_count == 1
        assert cluster["suggested_name"] == "Facturi"
        assert cluster["suggested_name_en"] == "Invoices"
        assert cluster["description"] == "Facturi fiscale"
        assert cluster["is_auto_named"] is False
        assert "Factura seria A" in fake_llm.calls[0]["prompt"]

    @pytest.mark.asyncio
    async def test_failed_cluster_keeps_placeholder_and_others_continue(self, store, session_id, settings, fake_llm):
        first = _seed(store, session_id, texts=("a", "b"))
        second = _seed(store, session_id, name="Grup 2")
        fake_llm.responses = [LabelingError("boom"), '{"nameRo": "Contracte"}']

        result = await ClusterNamer(store, fake_llm, settings).name_clusters(session_id)

        assert result.skipped == [first]
        assert store.clusters[first]["suggested_name"] == "Grup 1"
        assert store.clusters[first]["is_auto_named"] is True
        assert store.clusters[second]["suggested_name"] == "Contracte"
        assert store.clusters[second]["suggested_name_en"] == "Contracte"

    @pytest.mark.asyncio
    async def test_unparseable_or_nameless_response_is_skipped(self, store, session_id, settings, fake_llm):
        _seed(store, session_id, texts=("a", "b"))
        _seed(store, session_id, name="Grup 2")
        fake_llm.responses = ["I cannot name this", '{"nameEn": "Only English"}']

        result = await ClusterNamer(store, fake_llm, settings).name_clusters(session_id)

        assert result.named_count == 0
        assert result.skipped_count == 2

    @pytest.mark.asyncio
    async def test_named_and_rejected_clusters_are_left_alone(self, store, session_id, settings, fake_llm):
        _seed(store, session_id, name="Contracte", auto=False)
        _seed(store, session_id, name="Neclasificate", auto=True, status="Rejected")

        result = await ClusterNamer(store, fake_llm, settings).name_clusters(session_id)

        assert result.named_count == 0
        assert fake_llm.calls == []

    @pytest.mark.asyncio
    async def test_cluster_without_samples_is_skipped(self, store, session_id, settings, fake_llm):
        cluster_id = store.add_cluster(session_id, "Grup 1", is_auto_named=True)

        result = await ClusterNamer(store, fake_llm, settings).name_clusters(session_id)

        assert result.skipped == [cluster_id]
        assert fake_llm.calls == []
