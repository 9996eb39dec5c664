"""
Supabase database client for persistent storage.
All pipeline state lives in Supabase PostgreSQL; membership-changing
operations call the functions in storage/schema.sql through rpc.
"""
import logging
from supabase import create_client, Client
from typing import List, Dict, Optional, Any, Sequence, Tuple
from functools import lru_cache

from config.settings import get_settings
from core.exceptions import DatabaseError, ConfigurationError
from storage.base import DocumentStore
from storage.vector_codec import to_vector_literal, parse_vector_literal

logger = logging.getLogger(__name__)

SESSIONS_TABLE = "legacy_import_sessions"
DOCUMENTS_TABLE = "extracted_documents"
CLUSTERS_TABLE = "document_clusters"

# PostgREST caps result sets; reads are paged with .range()
PAGE_SIZE = 1000
HASH_CHUNK_SIZE = 100


class SupabaseStore(DocumentStore):
    """
    Client for interacting with Supabase PostgreSQL database.
    Handles sessions, extracted documents and document clusters.
    """

    def __init__(self, url: str = None, key: str = None, client: Client = None):
        """
        Initialize Supabase client.

        Args:
            url: Supabase project URL
            key: Supabase service key
            client: Pre-built client (skips create_client)
        """
        self.client: Client = client or create_client(url, key)

    # =========================================================================
    # Helpers
    # =========================================================================

    def _select_all(self, build_query, table: str) -> List[dict]:
        """Run a select page by page until a short page comes back."""
        rows = []
        start = 0
        try:
            while True:
                result = build_query().range(start, start + PAGE_SIZE - 1).execute()
                page = result.data or []
                rows.extend(page)
                if len(page) < PAGE_SIZE:
                    return rows
                start += PAGE_SIZE
        except Exception as e:
            raise DatabaseError(
                f"Failed to read {table}: {e}",
                operation="select",
                table=table
            )

    def _rpc(self, function: str, params: dict, table: str) -> Any:
        try:
            return self.client.rpc(function, params).execute().data
        except Exception as e:
            raise DatabaseError(
                f"{function} failed: {e}",
                operation=function,
                table=table
            )

    # =========================================================================
    # Sessions
    # =========================================================================

    def get_session(self, session_id: str) -> Optional[dict]:
        """Get session details by ID."""
        try:
            result = self.client.table(SESSIONS_TABLE).select("*").eq(
                "id", session_id
            ).limit(1).execute()
        except Exception as e:
            raise DatabaseError(
                f"Failed to get session: {e}",
                operation="select",
                table=SESSIONS_TABLE
            )
        return result.data[0] if result.data else None

    def update_session(self, session_id: str, fields: Dict[str, Any]):
        """Update session columns."""
        try:
            self.client.table(SESSIONS_TABLE).update(
                fields
            ).eq("id", session_id).execute()
        except Exception as e:
            raise DatabaseError(
                f"Failed to update session: {e}",
                operation="update",
                table=SESSIONS_TABLE
            )

    # =========================================================================
    # Documents
    # =========================================================================

    def get_documents_for_dedup(self, session_id: str) -> List[dict]:
        return self._select_all(
            lambda: self.client.table(DOCUMENTS_TABLE).select(
                "id, extracted_text, file_size_bytes, created_at"
            ).eq("session_id", session_id).is_(
                "content_hash", "null"
            ).order("created_at").order("id"),
            DOCUMENTS_TABLE
        )

    def get_hashed_documents(
        self,
        session_id: str,
        hashes: Sequence[str]
    ) -> List[dict]:
        hashes = list(hashes)
        rows = []
        # Keeps the in.() filter within URL limits
        for start in range(0, len(hashes), HASH_CHUNK_SIZE):
            chunk = hashes[start:start + HASH_CHUNK_SIZE]
            rows.extend(self._select_all(
                lambda: self.client.table(DOCUMENTS_TABLE).select(
                    "id, content_hash, file_size_bytes, is_canonical, created_at"
                ).eq("session_id", session_id).in_(
                    "content_hash", chunk
                ).order("created_at").order("id"),
                DOCUMENTS_TABLE
            ))
        return rows

    def stamp_duplicate_groups(self, rows: List[dict]):
        if not rows:
            return
        self._rpc("stamp_duplicate_groups", {"p_rows": rows}, DOCUMENTS_TABLE)

    def get_documents_needing_embedding(
        self,
        session_id: str,
        statuses: Sequence[str]
    ) -> List[dict]:
        return self._select_all(
            lambda: self.client.table(DOCUMENTS_TABLE).select(
                "id, extracted_text"
            ).eq("session_id", session_id).eq(
                "is_canonical", True
            ).in_("validation_status", list(statuses)).is_(
                "embedding", "null"
            ).order("created_at").order("id"),
            DOCUMENTS_TABLE
        )

    def save_embeddings(self, embeddings: Dict[str, List[float]]):
        """
        Persist embeddings.

        Args:
            embeddings: Dict mapping document ID -> vector
        """
        rows = [
            {"id": doc_id, "embedding": to_vector_literal(vector)}
            for doc_id, vector in embeddings.items()
        ]
        if rows:
            self._rpc("save_document_embeddings", {"p_rows": rows}, DOCUMENTS_TABLE)

    def get_session_embeddings(
        self,
        session_id: str,
        statuses: Sequence[str]
    ) -> List[Tuple[str, List[float]]]:
        rows = self._select_all(
            lambda: self.client.table(DOCUMENTS_TABLE).select(
                "id, embedding"
            ).eq("session_id", session_id).eq(
                "is_canonical", True
            ).in_("validation_status", list(statuses)).not_.is_(
                "embedding", "null"
            ).order("created_at").order("id"),
            DOCUMENTS_TABLE
        )
        return [(row["id"], parse_vector_literal(row["embedding"])) for row in rows]

    def get_documents_by_ids(self, document_ids: Sequence[str]) -> List[dict]:
        if not document_ids:
            return []
        try:
            result = self.client.table(DOCUMENTS_TABLE).select(
                "id, file_name, extracted_text, cluster_id"
            ).in_("id", list(document_ids)).execute()
        except Exception as e:
            raise DatabaseError(
                f"Failed to get documents: {e}",
                operation="select",
                table=DOCUMENTS_TABLE
            )
        return result.data or []

    def get_reclassified_documents(self, session_id: str) -> List[dict]:
        return self._select_all(
            lambda: self.client.table(DOCUMENTS_TABLE).select(
                "id, file_name, extracted_text, reclassification_note, cluster_id"
            ).eq("session_id", session_id).eq(
                "validation_status", "Reclassified"
            ).order("created_at").order("id"),
            DOCUMENTS_TABLE
        )

    # =========================================================================
    # Clusters
    # =========================================================================

    def get_clusters(
        self,
        session_id: str,
        include_rejected: bool = False
    ) -> List[dict]:
        """Get all live clusters for a session."""
        def build():
            query = self.client.table(CLUSTERS_TABLE).select("*").eq(
                "session_id", session_id
            ).eq("is_deleted", False)
            if not include_rejected:
                query = query.neq("status", "Rejected")
            return query.order("document_count", desc=True).order("id")

        return self._select_all(build, CLUSTERS_TABLE)

    def get_cluster(self, cluster_id: str) -> Optional[dict]:
        try:
            result = self.client.table(CLUSTERS_TABLE).select("*").eq(
                "id", cluster_id
            ).limit(1).execute()
        except Exception as e:
            raise DatabaseError(
                f"Failed to get cluster: {e}",
                operation="select",
                table=CLUSTERS_TABLE
            )
        return result.data[0] if result.data else None

    def clear_session_clusters(self, session_id: str):
        self._rpc(
            "clear_session_clusters",
            {"p_session_id": session_id},
            CLUSTERS_TABLE
        )

    def create_cluster(
        self,
        session_id: str,
        fields: Dict[str, Any],
        document_ids: Sequence[str] = (),
        reset_validation: bool = False
    ) -> dict:
        data = self._rpc(
            "create_cluster_with_documents",
            {
                "p_session_id": session_id,
                "p_cluster": fields,
                "p_document_ids": list(document_ids),
                "p_reset_validation": reset_validation
            },
            CLUSTERS_TABLE
        )
        if isinstance(data, list):
            if not data:
                raise DatabaseError(
                    "create_cluster_with_documents returned no row",
                    operation="create_cluster_with_documents",
                    table=CLUSTERS_TABLE
                )
            return data[0]
        return data

    def update_cluster_naming(
        self,
        cluster_id: str,
        name: str,
        name_en: str,
        description: str
    ):
        try:
            self.client.table(CLUSTERS_TABLE).update({
                "suggested_name": name,
                "suggested_name_en": name_en,
                "description": description,
                "is_auto_named": False
            }).eq("id", cluster_id).execute()
        except Exception as e:
            raise DatabaseError(
                f"Failed to update cluster name: {e}",
                operation="update",
                table=CLUSTERS_TABLE
            )

    def merge_clusters(
        self,
        target_id: str,
        source_ids: Sequence[str],
        name: str,
        name_en: str,
        description: str,
        sample_ids: Sequence[str]
    ) -> int:
        count = self._rpc(
            "merge_clusters",
            {
                "p_target_id": target_id,
                "p_source_ids": list(source_ids),
                "p_name": name,
                "p_name_en": name_en,
                "p_description": description,
                "p_sample_ids": list(sample_ids)
            },
            CLUSTERS_TABLE
        )
        return int(count or 0)

    def move_documents_to_cluster(
        self,
        document_ids: Sequence[str],
        cluster_id: str
    ) -> int:
        count = self._rpc(
            "move_documents_to_cluster",
            {
                "p_document_ids": list(document_ids),
                "p_cluster_id": cluster_id
            },
            DOCUMENTS_TABLE
        )
        return int(count or 0)


@lru_cache()
def get_supabase_store() -> SupabaseStore:
    """
    Get cached Supabase store instance.

    Raises:
        ConfigurationError: If credentials are not configured
    """
    settings = get_settings()
    url = settings.supabase_url
    key = settings.supabase_key

    if not (url and key):
        raise ConfigurationError(
            "Supabase credentials are not configured",
            missing_keys=[
                name for name, value in
                (("SUPABASE_URL", url), ("SUPABASE_KEY", key)) if not value
            ]
        )

    logger.info("Connecting to Supabase at %s", url)
    return SupabaseStore(url, key)
