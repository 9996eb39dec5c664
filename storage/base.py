"""
Store interface used by every pipeline stage.

Reads return plain dicts shaped like the table rows. Every operation that
changes cluster membership is atomic and leaves `document_count` equal to the
live number of member documents of each affected cluster.
"""
from abc import ABC, abstractmethod
from typing import List, Dict, Optional, Any, Sequence, Tuple


class DocumentStore(ABC):
    """Persistence for import sessions, extracted documents and clusters."""

    # =========================================================================
    # Sessions
    # =========================================================================

    @abstractmethod
    def get_session(self, session_id: str) -> Optional[dict]:
        """Get an import session by ID, or None."""

    @abstractmethod
    def update_session(self, session_id: str, fields: Dict[str, Any]):
        """Update columns of an import session."""

    # =========================================================================
    # Documents
    # =========================================================================

    @abstractmethod
    def get_documents_for_dedup(self, session_id: str) -> List[dict]:
        """
        Documents of a session that have no content hash yet.

        Returns:
            Rows with id, extracted_text, file_size_bytes, created_at,
            ordered by insertion
        """

    @abstractmethod
    def get_hashed_documents(
        self,
        session_id: str,
        hashes: Sequence[str]
    ) -> List[dict]:
        """
        Already-stamped documents of a session whose hash is in `hashes`.

        Returns:
            Rows with id, content_hash, file_size_bytes, is_canonical,
            ordered by insertion
        """

    @abstractmethod
    def stamp_duplicate_groups(self, rows: List[dict]):
        """
        Write dedup results.

        Args:
            rows: Dicts with id, content_hash, duplicate_group_id, is_canonical
        """

    @abstractmethod
    def get_documents_needing_embedding(
        self,
        session_id: str,
        statuses: Sequence[str]
    ) -> List[dict]:
        """Canonical documents in the given statuses with no embedding (id, extracted_text)."""

    @abstractmethod
    def save_embeddings(self, embeddings: Dict[str, List[float]]):
        """Persist embedding vectors keyed by document ID."""

    @abstractmethod
    def get_session_embeddings(
        self,
        session_id: str,
        statuses: Sequence[str]
    ) -> List[Tuple[str, List[float]]]:
        """(document_id, vector) for canonical embedded documents, insertion order."""

    @abstractmethod
    def get_documents_by_ids(self, document_ids: Sequence[str]) -> List[dict]:
        """Documents (id, file_name, extracted_text, cluster_id) for the given IDs."""

    @abstractmethod
    def get_reclassified_documents(self, session_id: str) -> List[dict]:
        """Documents flagged `Reclassified` by a reviewer."""

    # =========================================================================
    # Clusters
    # =========================================================================

    @abstractmethod
    def get_clusters(
        self,
        session_id: str,
        include_rejected: bool = False
    ) -> List[dict]:
        """Non-deleted clusters of a session, largest first."""

    @abstractmethod
    def get_cluster(self, cluster_id: str) -> Optional[dict]:
        """Get a cluster by ID, or None."""

    @abstractmethod
    def clear_session_clusters(self, session_id: str):
        """Unassign every document of the session and delete its clusters."""

    @abstractmethod
    def create_cluster(
        self,
        session_id: str,
        fields: Dict[str, Any],
        document_ids: Sequence[str] = (),
        reset_validation: bool = False
    ) -> dict:
        """
        Create a cluster and assign documents to it in one transaction.

        Args:
            session_id: Owning session
            fields: Cluster columns (names, description, status, samples...)
            document_ids: Documents to point at the new cluster
            reset_validation: Also reset validation state of the moved documents

        Returns:
            The created cluster row
        """

    @abstractmethod
    def update_cluster_naming(
        self,
        cluster_id: str,
        name: str,
        name_en: str,
        description: str
    ):
        """Store a generated name; clears the auto-named flag."""

    @abstractmethod
    def merge_clusters(
        self,
        target_id: str,
        source_ids: Sequence[str],
        name: str,
        name_en: str,
        description: str,
        sample_ids: Sequence[str]
    ) -> int:
        """
        Merge source clusters into the target in one transaction.

        Documents are repointed, the target renamed and reset to Pending with
        its approved name cleared, sources soft-deleted.

        Returns:
            Target document count after the merge
        """

    @abstractmethod
    def move_documents_to_cluster(
        self,
        document_ids: Sequence[str],
        cluster_id: str
    ) -> int:
        """
        Reassign reclassified documents in one transaction.

        Documents return to Pending, their round is incremented and reviewer
        fields are cleared. Counts of the target and of the previous clusters
        are recomputed.

        Returns:
            Target document count after the move
        """
