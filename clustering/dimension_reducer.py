"""
Dimension reduction of document embeddings with UMAP.
First step of the clustering stage; the reduced vectors are never persisted.
"""
import logging
import numpy as np
import umap
from typing import Dict, List, Sequence

from config.settings import get_settings, ClusteringSettings

logger = logging.getLogger(__name__)

# Below this size a manifold projection is not meaningful
MIN_UMAP_POINTS = 4


class DimensionReducer:
    """
    Projects high-dimensional embeddings onto a lower-dimensional manifold
    that preserves local neighborhoods.
    """

    def __init__(self, settings: ClusteringSettings = None, store=None):
        """
        Initialize reducer.

        Args:
            settings: Clustering settings (UMAP parameters)
            store: DocumentStore, needed only for reduce_session()
        """
        self.settings = settings or get_settings().clustering
        self.store = store

    def _fallback(self, matrix: np.ndarray) -> np.ndarray:
        """Truncate or zero-pad to the target width."""
        width = self.settings.umap_n_components
        if matrix.shape[1] >= width:
            return matrix[:, :width].copy()
        padded = np.zeros((matrix.shape[0], width), dtype=matrix.dtype)
        padded[:, :matrix.shape[1]] = matrix
        return padded

    def reduce(
        self,
        document_ids: Sequence[str],
        embeddings: Sequence[Sequence[float]]
    ) -> Dict[str, np.ndarray]:
        """
        Reduce embeddings.

        Args:
            document_ids: Document IDs, aligned with embeddings
            embeddings: High-dimensional vectors

        Returns:
            Dict mapping document ID -> reduced vector, in input order
        """
        if len(document_ids) != len(embeddings):
            raise ValueError(
                f"{len(document_ids)} ids for {len(embeddings)} embeddings"
            )
        if not document_ids:
            return {}

        matrix = np.asarray(embeddings, dtype=np.float32)
        n_points = matrix.shape[0]

        if n_points < MIN_UMAP_POINTS:
            logger.info("Only %d point(s); skipping UMAP projection", n_points)
            reduced = self._fallback(matrix)
        else:
            n_neighbors = max(2, min(self.settings.umap_n_neighbors, n_points - 1))
            n_components = self.settings.umap_n_components

            reducer = umap.UMAP(
                n_components=n_components,
                n_neighbors=n_neighbors,
                min_dist=self.settings.umap_min_dist,
                metric=self.settings.umap_metric,
                random_state=self.settings.random_state,
                # Spectral init needs more points than output dimensions
                init="spectral" if n_points > n_components + 1 else "random"
            )
            logger.info(
                "UMAP: %d points, %d -> %d dims, n_neighbors=%d",
                n_points, matrix.shape[1], n_components, n_neighbors
            )
            reduced = np.asarray(reducer.fit_transform(matrix))

        return {
            doc_id: reduced[i]
            for i, doc_id in enumerate(document_ids)
        }

    def reduce_session(self, session_id: str) -> Dict[str, np.ndarray]:
        """
        Load the session's embedded canonical documents and reduce them.

        Args:
            session_id: Session to load

        Returns:
            Dict mapping document ID -> reduced vector
        """
        if self.store is None:
            raise ValueError("DimensionReducer needs a store to load a session")

        rows = self.store.get_session_embeddings(
            session_id,
            self.settings.eligible_statuses
        )
        document_ids: List[str] = [doc_id for doc_id, _ in rows]
        vectors = [vector for _, vector in rows]
        return self.reduce(document_ids, vectors)
