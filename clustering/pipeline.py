"""
Main clustering pipeline orchestrator.
Coordinates all stages of the document clustering process.

Pipeline:
1. Deduplication (content hash)
2. Embedding (OpenAI)
3. Clustering (UMAP reduction + density clustering)
4. Naming (OpenRouter LLM)
5. Pattern-based merge (optional)

Each stage persists its output before the next one starts, so a run can be
resumed from any stage.
"""
import logging
from typing import Callable, List, Optional, Sequence
from dataclasses import dataclass

from config.settings import get_settings, Settings
from clustering.density_clusterer import ClusteringStage, DensityClusterResult
from consolidation.smart_merger import SmartMerger, MergeResult
from core.progress_tracker import ProgressTracker
from core.session_manager import SessionManager, PipelineStatus
from embedding.batch_processor import EmbeddingStage, EmbeddingProgress
from ingestion.deduplicator import DeduplicationStage, DeduplicationResult
from labeling.cluster_namer import ClusterNamer, NamingResult

logger = logging.getLogger(__name__)

STAGE_DEDUP = "dedup"
STAGE_EMBED = "embed"
STAGE_CLUSTER = "cluster"
STAGE_NAME = "name"
STAGE_MERGE = "merge"

ALL_STAGES = (STAGE_DEDUP, STAGE_EMBED, STAGE_CLUSTER, STAGE_NAME, STAGE_MERGE)

STAGE_STATUS = {
    STAGE_DEDUP: PipelineStatus.DEDUPLICATING,
    STAGE_EMBED: PipelineStatus.EMBEDDING,
    STAGE_CLUSTER: PipelineStatus.CLUSTERING,
    STAGE_NAME: PipelineStatus.NAMING,
    STAGE_MERGE: PipelineStatus.MERGING,
}


@dataclass
class PipelineResult:
    """Outputs of the stages that ran."""

    session_id: str
    deduplication: Optional[DeduplicationResult] = None
    embedding: Optional[EmbeddingProgress] = None
    clustering: Optional[DensityClusterResult] = None
    naming: Optional[NamingResult] = None
    merge: Optional[MergeResult] = None

    @property
    def completed_stages(self) -> List[str]:
        outputs = {
            STAGE_DEDUP: self.deduplication,
            STAGE_EMBED: self.embedding,
            STAGE_CLUSTER: self.clustering,
            STAGE_NAME: self.naming,
            STAGE_MERGE: self.merge,
        }
        return [stage for stage in ALL_STAGES if outputs[stage] is not None]


class DocumentClusteringPipeline:
    """
    Orchestrates the clustering stages for one import session.

    Collaborators are injected so each stage can be replaced by a test
    double.
    """

    def __init__(
        self,
        store,
        embedder,
        llm_client,
        settings: Settings = None,
        sessions: SessionManager = None
    ):
        """
        Initialize clustering pipeline.

        Args:
            store: DocumentStore implementation
            embedder: Embedding client (OpenAIEmbedder)
            llm_client: Text-generation client (OpenRouterClient)
            settings: Settings (defaults to get_settings())
            sessions: Session status manager
        """
        self.store = store
        self.settings = settings or get_settings()
        self.sessions = sessions or SessionManager(store)

        self.dedup = DeduplicationStage(store, self.settings)
        self.embedding = EmbeddingStage(store, embedder, self.settings)
        self.clustering = ClusteringStage(store, settings=self.settings)
        self.namer = ClusterNamer(store, llm_client, self.settings)
        self.merger = SmartMerger(store, llm_client, self.settings)

    async def run(
        self,
        session_id: str,
        stages: Sequence[str] = None,
        progress_callback: Callable = None
    ) -> PipelineResult:
        """
        Run the pipeline.

        Args:
            session_id: Session to process
            stages: Stages to run, in pipeline order (default: all); pass a
                suffix of ALL_STAGES to resume
            progress_callback: Optional callback receiving StageProgress

        Returns:
            PipelineResult with the output of every stage that ran
        """
        selected = list(stages) if stages is not None else list(ALL_STAGES)
        unknown = [s for s in selected if s not in ALL_STAGES]
        if unknown:
            raise ValueError(f"Unknown pipeline stage(s): {', '.join(unknown)}")

        tracker = ProgressTracker(session_id, self.store)
        if progress_callback:
            tracker.add_callback(progress_callback)

        result = PipelineResult(session_id=session_id)
        current = None

        try:
            for stage in ALL_STAGES:
                if stage not in selected:
                    continue
                current = stage
                self.sessions.mark_status(session_id, STAGE_STATUS[stage])
                logger.info("Session %s: running stage %s", session_id, stage)

                if stage == STAGE_DEDUP:
                    result.deduplication = self.dedup.run(session_id, tracker)
                elif stage == STAGE_EMBED:
                    result.embedding = await self.embedding.run(session_id, tracker)
                elif stage == STAGE_CLUSTER:
                    result.clustering = self.clustering.run(session_id, tracker)
                elif stage == STAGE_NAME:
                    result.naming = await self.namer.name_clusters(session_id, tracker)
                elif stage == STAGE_MERGE:
                    result.merge = await self.merger.quick_merge(session_id, tracker)

        except Exception as e:
            logger.error("Pipeline failed at stage %s: %s", current, e)
            self.sessions.fail(session_id, f"{current}: {e}")
            raise

        self.sessions.mark_ready(session_id)
        logger.info(
            "Session %s ready for validation (stages: %s)",
            session_id, ", ".join(result.completed_stages)
        )
        return result
