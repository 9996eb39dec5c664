"""
Ingestion module for Legacy Document Clustering.
Handles content-hash deduplication of extracted documents.
"""
from ingestion.deduplicator import (
    DocumentDeduplicator,
    DeduplicationStage,
    DeduplicationResult,
    normalize_text,
    content_hash
)

__all__ = [
    "DocumentDeduplicator",
    "DeduplicationStage",
    "DeduplicationResult",
    "normalize_text",
    "content_hash"
]
