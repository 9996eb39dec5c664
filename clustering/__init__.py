"""
Clustering module for Legacy Document Clustering.

Stages:
1. Dimension reduction (UMAP)
2. Density clustering (DBSCAN / HDBSCAN) with a single noise cluster
3. Pipeline orchestration across dedup, embedding, naming and merge
"""
from clustering.dimension_reducer import DimensionReducer
from clustering.density_clusterer import (
    DensityClusterer,
    DensityClusterResult,
    ClusterGroup,
    ClusteringStage
)
from clustering.pipeline import (
    DocumentClusteringPipeline,
    PipelineResult,
    ALL_STAGES
)

__all__ = [
    # Pipeline
    "DocumentClusteringPipeline",
    "PipelineResult",
    "ALL_STAGES",
    # Reduction
    "DimensionReducer",
    # Density clustering
    "DensityClusterer",
    "DensityClusterResult",
    "ClusterGroup",
    "ClusteringStage",
]
