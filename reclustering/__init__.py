"""
Re-clustering module for Legacy Document Clustering.
Re-absorbs documents a reviewer marked as misclassified.
"""
from reclustering.reclusterer import (
    ReclusterEngine,
    ReclusterStats,
    MatchResult,
    DocumentGroup
)

__all__ = ["ReclusterEngine", "ReclusterStats", "MatchResult", "DocumentGroup"]
