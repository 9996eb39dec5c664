"""
Session status management for the clustering pipeline.
Handles status transitions and failure recording.
"""
import logging
from datetime import datetime, timezone
from enum import Enum
from typing import Optional

logger = logging.getLogger(__name__)


class PipelineStatus(Enum):
    """Import session pipeline status."""

    DEDUPLICATING = "Deduplicating"
    EMBEDDING = "Embedding"
    CLUSTERING = "Clustering"
    NAMING = "Naming"
    MERGING = "Merging"
    RECLUSTERING = "ReClustering"
    READY_FOR_VALIDATION = "ReadyForValidation"
    FAILED = "Failed"
    COMPLETED = "Completed"


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


class SessionManager:
    """
    Manages pipeline status on import sessions.
    Every transition is written through to the store.
    """

    def __init__(self, store):
        self.store = store

    def get_status(self, session_id: str) -> Optional[PipelineStatus]:
        """Get the current pipeline status of a session."""
        session = self.store.get_session(session_id)
        if not session or not session.get("pipeline_status"):
            return None
        return PipelineStatus(session["pipeline_status"])

    def mark_status(self, session_id: str, status: PipelineStatus):
        """Move a session to a running status and clear any previous error."""
        logger.info("Session %s -> %s", session_id, status.value)
        self.store.update_session(session_id, {
            "pipeline_status": status.value,
            "pipeline_error": None
        })

    def mark_ready(self, session_id: str):
        """Mark pipeline finished; documents await human validation."""
        logger.info("Session %s ready for validation", session_id)
        self.store.update_session(session_id, {
            "pipeline_status": PipelineStatus.READY_FOR_VALIDATION.value,
            "pipeline_completed_at": _now()
        })

    def fail(self, session_id: str, error: str):
        """Record a stage failure on the session."""
        logger.error("Session %s failed: %s", session_id, error)
        self.store.update_session(session_id, {
            "pipeline_status": PipelineStatus.FAILED.value,
            "pipeline_error": error
        })
