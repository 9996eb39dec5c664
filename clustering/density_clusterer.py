"""
Density-based clustering of reduced document vectors.
Unclustered points are collected into a single noise cluster.
"""
import logging
import numpy as np
import hdbscan
from sklearn.cluster import DBSCAN
from typing import Dict, List, Optional, Tuple
from dataclasses import dataclass, field

from config.settings import get_settings, Settings, ClusteringSettings
from clustering.dimension_reducer import DimensionReducer
from core.progress_tracker import ProgressTracker, PipelineStage

logger = logging.getLogger(__name__)

NOISE_LABEL = -1
NOISE_NAME = "Neclasificate"
NOISE_NAME_EN = "Uncategorized"
NOISE_DESCRIPTION = "Documente care nu au putut fi grupate automat"


@dataclass
class ClusterGroup:
    """A real cluster found in reduced space."""

    label: int
    member_ids: List[str]
    centroid: np.ndarray
    representative_id: str
    sample_ids: List[str]

    @property
    def size(self) -> int:
        return len(self.member_ids)


@dataclass
class DensityClusterResult:
    """Result of density clustering."""

    document_ids: List[str]
    labels: np.ndarray  # -1 indicates noise
    clusters: List[ClusterGroup] = field(default_factory=list)
    noise_ids: List[str] = field(default_factory=list)

    @property
    def n_clusters(self) -> int:
        return len(self.clusters)

    @property
    def n_noise(self) -> int:
        return len(self.noise_ids)

    def get_cluster_sizes(self) -> Dict[int, int]:
        """Get size of each cluster (excluding noise)."""
        return {group.label: group.size for group in self.clusters}

    def to_stats(self) -> dict:
        """Session-level clustering statistics; the noise cluster counts as a cluster."""
        sizes = [group.size for group in self.clusters]
        return {
            "clusterCount": self.n_clusters + (1 if self.noise_ids else 0),
            "noiseCount": self.n_noise,
            "averageClusterSize": round(float(np.mean(sizes)), 2) if sizes else 0.0,
            "largestClusterSize": max(sizes) if sizes else 0,
            "totalDocuments": len(self.document_ids)
        }


class DensityClusterer:
    """
    Groups reduced vectors by density reachability.
    DBSCAN by default; HDBSCAN when configured.
    """

    def __init__(self, settings: ClusteringSettings = None):
        """
        Initialize clusterer.

        Args:
            settings: Clustering settings (algorithm, eps, min_points, sample_count)
        """
        self.settings = settings or get_settings().clustering

    def _labels(self, matrix: np.ndarray) -> np.ndarray:
        min_points = self.settings.min_points

        if len(matrix) < min_points:
            return np.full(len(matrix), NOISE_LABEL, dtype=int)

        if self.settings.algorithm == "hdbscan":
            clusterer = hdbscan.HDBSCAN(
                min_cluster_size=min_points,
                min_samples=min_points,
                cluster_selection_epsilon=self.settings.eps,
                metric="euclidean"
            )
        elif self.settings.algorithm == "dbscan":
            clusterer = DBSCAN(
                eps=self.settings.eps,
                min_samples=min_points,
                metric="euclidean"
            )
        else:
            raise ValueError(f"Unknown clustering algorithm: {self.settings.algorithm}")

        return np.asarray(clusterer.fit_predict(matrix), dtype=int)

    def select_samples(
        self,
        member_ids: List[str],
        vectors: np.ndarray
    ) -> Tuple[str, np.ndarray, List[str]]:
        """
        Pick the representative and the review samples of one cluster.

        Args:
            member_ids: Member document IDs
            vectors: Member vectors, aligned with member_ids

        Returns:
            (representative_id, centroid, sample_ids)
        """
        centroid = vectors.mean(axis=0)
        rep_index = int(np.argmin(np.linalg.norm(vectors - centroid, axis=1)))
        representative_id = member_ids[rep_index]

        count = self.settings.sample_count
        if len(member_ids) <= count:
            return representative_id, centroid, list(member_ids)

        distances = np.linalg.norm(vectors - vectors[rep_index], axis=1)
        nearest = np.argsort(distances, kind="stable")[:count]
        return representative_id, centroid, [member_ids[i] for i in nearest]

    def fit(self, reduced: Dict[str, np.ndarray]) -> DensityClusterResult:
        """
        Cluster reduced vectors.

        Candidate clusters smaller than min_points are returned to noise.

        Args:
            reduced: Dict mapping document ID -> reduced vector

        Returns:
            DensityClusterResult with real clusters and noise members
        """
        document_ids = list(reduced.keys())
        if not document_ids:
            return DensityClusterResult(document_ids=[], labels=np.array([], dtype=int))

        matrix = np.vstack([np.asarray(reduced[d], dtype=np.float64) for d in document_ids])
        labels = self._labels(matrix)

        for label in set(labels.tolist()):
            if label == NOISE_LABEL:
                continue
            if np.sum(labels == label) < self.settings.min_points:
                labels[labels == label] = NOISE_LABEL

        result = DensityClusterResult(document_ids=document_ids, labels=labels)

        for label in sorted(set(labels.tolist()) - {NOISE_LABEL}):
            indices = np.where(labels == label)[0]
            member_ids = [document_ids[i] for i in indices]
            representative_id, centroid, sample_ids = self.select_samples(
                member_ids, matrix[indices]
            )
            result.clusters.append(ClusterGroup(
                label=label,
                member_ids=member_ids,
                centroid=centroid,
                representative_id=representative_id,
                sample_ids=sample_ids
            ))

        result.noise_ids = [
            document_ids[i] for i in np.where(labels == NOISE_LABEL)[0]
        ]

        logger.info(
            "Density clustering: %d cluster(s), %d noise point(s) from %d documents",
            result.n_clusters, result.n_noise, len(document_ids)
        )
        return result


class ClusteringStage:
    """
    Reduces a session's embeddings, clusters them and persists one cluster
    record per real cluster plus one noise cluster.
    """

    def __init__(
        self,
        store,
        reducer=None,
        clusterer: DensityClusterer = None,
        settings: Settings = None
    ):
        self.store = store
        self.settings = settings or get_settings()
        self.reducer = reducer or DimensionReducer(self.settings.clustering, store)
        self.clusterer = clusterer or DensityClusterer(self.settings.clustering)

    def run(
        self,
        session_id: str,
        tracker: Optional[ProgressTracker] = None
    ) -> DensityClusterResult:
        """
        Cluster a session from scratch.

        Previous clusters of the session are removed first, so re-running
        replaces the earlier result.
        """
        tracker = tracker or ProgressTracker(session_id, self.store)
        tracker.start_stage(PipelineStage.CLUSTERING, message="Reducing embeddings")

        reduced = self.reducer.reduce_session(session_id)
        result = self.clusterer.fit(reduced)

        self.store.clear_session_clusters(session_id)

        total = result.n_clusters + (1 if result.noise_ids else 0)
        tracker.update(0, total=total, message="Saving clusters")

        for number, group in enumerate(result.clusters, start=1):
            self.store.create_cluster(
                session_id,
                {
                    "suggested_name": f"Grup {number}",
                    "suggested_name_en": f"Group {number}",
                    "description": f"{group.size} documente grupate automat",
                    "sample_document_ids": group.sample_ids,
                    "status": "Pending",
                    "is_auto_named": True
                },
                group.member_ids
            )
            tracker.update(number, message=f"Saved {number}/{total} clusters")

        if result.noise_ids:
            self.store.create_cluster(
                session_id,
                {
                    "suggested_name": NOISE_NAME,
                    "suggested_name_en": NOISE_NAME_EN,
                    "description": NOISE_DESCRIPTION,
                    "sample_document_ids": result.noise_ids[:self.settings.clustering.sample_count],
                    "status": "Rejected",
                    "is_auto_named": False
                },
                result.noise_ids
            )

        stats = result.to_stats()
        self.store.update_session(session_id, {"clustering_stats": stats})
        tracker.complete_stage(
            f"{stats['clusterCount']} clusters, {stats['noiseCount']} uncategorized"
        )
        return result
