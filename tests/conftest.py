"""
Shared test fixtures for the clustering pipeline test suite.

Provides: in-memory DocumentStore, scripted LLM client, fresh settings
Dependencies: pytest
System role: Test infrastructure and fixture management
"""

import itertools
import uuid
from typing import Any, Dict, List, Optional, Sequence, Tuple

import pytest

from config.settings import Settings
from storage.base import DocumentStore


class InMemoryStore(DocumentStore):
    """
    DocumentStore kept in plain dicts.

    Mirrors the semantics of the SQL functions: membership changes recount
    every affected cluster from live membership and merged clusters are
    soft-deleted.
    """

    def __init__(self):
        self.sessions: Dict[str, dict] = {}
        self.documents: Dict[str, dict] = {}
        self.clusters: Dict[str, dict] = {}
        self.session_updates: List[Tuple[str, dict]] = []
        self._order = itertools.count()

    # Builders

    def add_session(self, session_id: str = None, **fields) -> str:
        session_id = session_id or str(uuid.uuid4())
        self.sessions[session_id] = {"id": session_id, **fields}
        return session_id

    def add_document(
        self,
        session_id: str,
        text: Optional[str] = "",
        doc_id: str = None,
        **fields
    ) -> str:
        doc_id = doc_id or str(uuid.uuid4())
        self.documents[doc_id] = {
            "id": doc_id,
            "session_id": session_id,
            "file_name": f"{doc_id}.pdf",
            "extracted_text": text,
            "file_size_bytes": 0,
            "content_hash": None,
            "duplicate_group_id": None,
            "is_canonical": True,
            "cluster_id": None,
            "embedding": None,
            "validation_status": "Pending",
            "reclassification_note": None,
            "reclassification_round": 0,
            "validated_by": None,
            "validated_at": None,
            "created_at": next(self._order),
            **fields,
        }
        return doc_id

    def add_cluster(
        self,
        session_id: str,
        name: str,
        document_ids: Sequence[str] = (),
        **fields
    ) -> str:
        row = self.create_cluster(
            session_id,
            {"suggested_name": name, **fields},
            document_ids
        )
        if "approved_name" in fields:
            self.clusters[row["id"]]["approved_name"] = fields["approved_name"]
        return row["id"]

    def members(self, cluster_id: str) -> List[str]:
        return [
            d["id"] for d in self._ordered_documents()
            if d["cluster_id"] == cluster_id
        ]

    # Internals

    def _ordered_documents(self) -> List[dict]:
        return sorted(self.documents.values(), key=lambda d: d["created_at"])

    def _recount(self, cluster_ids):
        for cluster_id in set(cluster_ids):
            if cluster_id in self.clusters:
                self.clusters[cluster_id]["document_count"] = len(self.members(cluster_id))

    # Sessions

    def get_session(self, session_id: str) -> Optional[dict]:
        session = self.sessions.get(session_id)
        return dict(session) if session else None

    def update_session(self, session_id: str, fields: Dict[str, Any]):
        self.session_updates.append((session_id, dict(fields)))
        self.sessions.setdefault(session_id, {"id": session_id}).update(fields)

    # Documents

    def get_documents_for_dedup(self, session_id: str) -> List[dict]:
        return [
            dict(d) for d in self._ordered_documents()
            if d["session_id"] == session_id and d["content_hash"] is None
        ]

    def get_hashed_documents(self, session_id, hashes):
        wanted = set(hashes)
        return [
            {
                "id": d["id"],
                "content_hash": d["content_hash"],
                "file_size_bytes": d["file_size_bytes"],
                "is_canonical": d["is_canonical"],
                "created_at": d["created_at"],
            }
            for d in self._ordered_documents()
            if d["session_id"] == session_id and d["content_hash"] in wanted
        ]

    def stamp_duplicate_groups(self, rows: List[dict]):
        for row in rows:
            self.documents[row["id"]].update({
                "content_hash": row["content_hash"],
                "duplicate_group_id": row["duplicate_group_id"],
                "is_canonical": row["is_canonical"],
            })

    def get_documents_needing_embedding(self, session_id, statuses):
        return [
            {"id": d["id"], "extracted_text": d["extracted_text"]}
            for d in self._ordered_documents()
            if d["session_id"] == session_id
            and d["is_canonical"]
            and d["validation_status"] in statuses
            and d["embedding"] is None
        ]

    def save_embeddings(self, embeddings: Dict[str, List[float]]):
        for doc_id, vector in embeddings.items():
            self.documents[doc_id]["embedding"] = list(vector)

    def get_session_embeddings(self, session_id, statuses):
        return [
            (d["id"], list(d["embedding"]))
            for d in self._ordered_documents()
            if d["session_id"] == session_id
            and d["is_canonical"]
            and d["validation_status"] in statuses
            and d["embedding"] is not None
        ]

    def get_documents_by_ids(self, document_ids):
        return [
            {
                "id": d["id"],
                "file_name": d["file_name"],
                "extracted_text": d["extracted_text"],
                "cluster_id": d["cluster_id"],
            }
            for d in self._ordered_documents()
            if d["id"] in set(document_ids)
        ]

    def get_reclassified_documents(self, session_id: str) -> List[dict]:
        return [
            dict(d) for d in self._ordered_documents()
            if d["session_id"] == session_id
            and d["validation_status"] == "Reclassified"
        ]

    # Clusters

    def get_clusters(self, session_id, include_rejected=False):
        rows = [
            dict(c) for c in self.clusters.values()
            if c["session_id"] == session_id
            and not c["is_deleted"]
            and (include_rejected or c["status"] != "Rejected")
        ]
        return sorted(rows, key=lambda c: -c["document_count"])

    def get_cluster(self, cluster_id):
        cluster = self.clusters.get(cluster_id)
        return dict(cluster) if cluster else None

    def clear_session_clusters(self, session_id):
        for doc in self.documents.values():
            if doc["session_id"] == session_id:
                doc["cluster_id"] = None
        self.clusters = {
            cid: c for cid, c in self.clusters.items()
            if c["session_id"] != session_id
        }

    def create_cluster(self, session_id, fields, document_ids=(), reset_validation=False):
        cluster_id = str(uuid.uuid4())
        self.clusters[cluster_id] = {
            "id": cluster_id,
            "session_id": session_id,
            "suggested_name": fields.get("suggested_name"),
            "suggested_name_en": fields.get("suggested_name_en"),
            "approved_name": None,
            "description": fields.get("description"),
            "document_count": 0,
            "sample_document_ids": list(fields.get("sample_document_ids") or []),
            "status": fields.get("status") or "Pending",
            "is_deleted": False,
            "is_auto_named": bool(fields.get("is_auto_named", False)),
        }

        previous = set()
        for doc_id in document_ids:
            doc = self.documents[doc_id]
            if doc["cluster_id"]:
                previous.add(doc["cluster_id"])
            doc["cluster_id"] = cluster_id
            if reset_validation:
                doc.update({
                    "validation_status": "Pending",
                    "validated_by": None,
                    "validated_at": None,
                    "reclassification_round": doc["reclassification_round"] + 1,
                })

        self._recount(previous | {cluster_id})
        return dict(self.clusters[cluster_id])

    def update_cluster_naming(self, cluster_id, name, name_en, description):
        self.clusters[cluster_id].update({
            "suggested_name": name,
            "suggested_name_en": name_en,
            "description": description,
            "is_auto_named": False,
        })

    def merge_clusters(self, target_id, source_ids, name, name_en, description, sample_ids):
        for doc in self.documents.values():
            if doc["cluster_id"] in source_ids:
                doc["cluster_id"] = target_id

        self.clusters[target_id].update({
            "suggested_name": name,
            "suggested_name_en": name_en,
            "description": description,
            "sample_document_ids": list(sample_ids),
            "approved_name": None,
            "status": "Pending",
            "is_auto_named": False,
        })
        for source_id in source_ids:
            self.clusters[source_id].update({"is_deleted": True, "document_count": 0})

        self._recount([target_id])
        return self.clusters[target_id]["document_count"]

    def move_documents_to_cluster(self, document_ids, cluster_id):
        previous = set()
        for doc_id in document_ids:
            doc = self.documents[doc_id]
            if doc["cluster_id"]:
                previous.add(doc["cluster_id"])
            doc.update({
                "cluster_id": cluster_id,
                "validation_status": "Pending",
                "validated_by": None,
                "validated_at": None,
                "reclassification_round": doc["reclassification_round"] + 1,
            })

        self._recount(previous | {cluster_id})
        return self.clusters[cluster_id]["document_count"]


class FakeLLM:
    """
    Scripted text-generation client.

    Each generate() call pops the next scripted response; an exception
    instance in the script is raised instead of returned.
    """

    def __init__(self, responses=None):
        self.responses = list(responses or [])
        self.calls: List[dict] = []

    async def generate(self, prompt, model=None, max_tokens=1000, temperature=None, system_prompt=None):
        self.calls.append({
            "prompt": prompt,
            "system_prompt": system_prompt,
            "max_tokens": max_tokens,
        })
        if not self.responses:
            raise AssertionError("FakeLLM called more times than scripted")
        response = self.responses.pop(0)
        if isinstance(response, Exception):
            raise response
        return response

    def get_stats(self) -> dict:
        return {"request_count": len(self.calls)}


@pytest.fixture
def store():
    """Empty in-memory store."""
    return InMemoryStore()


@pytest.fixture
def session_id(store):
    """Session registered in the in-memory store."""
    return store.add_session(pipeline_status=None)


@pytest.fixture
def settings():
    """Fresh settings, independent of the cached get_settings() instance."""
    return Settings()


@pytest.fixture
def fake_llm():
    """LLM client with an empty script; tests append responses."""
    return FakeLLM()
