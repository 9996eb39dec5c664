"""
Consolidation module for Legacy Document Clustering.
Merges over-fragmented clusters by name pattern or AI analysis.
"""
from consolidation.merge_rules import MergeRule, MergeRuleSet, ROMANIAN_LEGAL_RULES
from consolidation.smart_merger import (
    SmartMerger,
    ClusterInfo,
    MergeGroup,
    MergeAnalysis,
    MergeResult
)

__all__ = [
    "MergeRule",
    "MergeRuleSet",
    "ROMANIAN_LEGAL_RULES",
    "SmartMerger",
    "ClusterInfo",
    "MergeGroup",
    "MergeAnalysis",
    "MergeResult",
]
