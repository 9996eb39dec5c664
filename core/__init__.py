"""
Core module for Legacy Document Clustering.
Contains session management, progress tracking, polling and exception handling.
"""
from core.exceptions import (
    ClusteringError,
    APIError,
    RateLimitError,
    ConfigurationError,
    DatabaseError,
    ProcessingError,
    EmbeddingError,
    EmbeddingDimensionError,
    BatchJobError,
    LabelingError,
    MergeError
)
from core.progress_tracker import ProgressTracker, PipelineStage, StageProgress
from core.session_manager import SessionManager, PipelineStatus
from core.polling import poll_until
from core.logger import configure_logging

__all__ = [
    "ClusteringError",
    "APIError",
    "RateLimitError",
    "ConfigurationError",
    "DatabaseError",
    "ProcessingError",
    "EmbeddingError",
    "EmbeddingDimensionError",
    "BatchJobError",
    "LabelingError",
    "MergeError",
    "ProgressTracker",
    "PipelineStage",
    "StageProgress",
    "SessionManager",
    "PipelineStatus",
    "poll_until",
    "configure_logging"
]
