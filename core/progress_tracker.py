"""
Progress tracking for long-running pipeline stages.
Progress is persisted on the owning session's pipeline_progress field.
"""
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Optional, Callable, List
from enum import Enum

logger = logging.getLogger(__name__)


class PipelineStage(Enum):
    """Pipeline stages, in execution order."""

    DEDUPLICATION = "Deduplication"
    EMBEDDING = "Embedding"
    CLUSTERING = "Clustering"
    NAMING = "Naming"
    MERGING = "Merging"
    RECLUSTERING = "ReClustering"


@dataclass
class StageProgress:
    """Progress state for a single stage."""

    stage: PipelineStage
    current: int = 0
    total: int = 0
    message: str = ""
    updated_at: Optional[datetime] = None

    @property
    def progress(self) -> float:
        if self.total <= 0:
            return 0.0
        return min(1.0, self.current / self.total)

    def to_dict(self) -> dict:
        """Serialized form stored on the session record."""
        return {
            "stage": self.stage.value,
            "current": self.current,
            "total": self.total,
            "message": self.message,
            "updatedAt": (self.updated_at or datetime.now(timezone.utc)).isoformat()
        }


@dataclass
class ProgressTracker:
    """
    Tracks progress of the current stage of one session and writes every
    update through to the store.
    """

    session_id: str
    store: object = None
    current: Optional[StageProgress] = None
    _callbacks: List[Callable] = field(default_factory=list)

    def start_stage(
        self,
        stage: PipelineStage,
        total: int = 0,
        message: str = ""
    ):
        """Start a new stage."""
        self.current = StageProgress(stage=stage, total=total, message=message)
        self._notify()

    def update(
        self,
        current: int,
        message: str = "",
        total: int = None
    ):
        """Update current stage progress."""
        if not self.current:
            return
        self.current.current = current
        if total is not None:
            self.current.total = total
        if message:
            self.current.message = message
        self._notify()

    def complete_stage(self, message: str = ""):
        """Complete current stage."""
        if not self.current:
            return
        self.current.current = self.current.total
        if message:
            self.current.message = message
        self._notify()

    def add_callback(self, callback: Callable):
        """Add callback for progress updates."""
        self._callbacks.append(callback)

    def _notify(self):
        """Persist progress and notify callbacks."""
        self.current.updated_at = datetime.now(timezone.utc)
        payload = self.current.to_dict()

        if self.store is not None:
            self.store.update_session(
                self.session_id,
                {"pipeline_progress": payload}
            )

        for callback in self._callbacks:
            try:
                callback(self.current)
            except Exception as e:
                # Callback errors must not break tracking
                logger.warning("Progress callback failed: %s", e)
