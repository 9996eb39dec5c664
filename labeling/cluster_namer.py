"""
Bilingual cluster naming from sample documents.
"""
import logging
from typing import Dict, List, Optional
from dataclasses import dataclass, field

from config.settings import get_settings, Settings
from core.progress_tracker import ProgressTracker, PipelineStage
from labeling.prompts import CLUSTER_NAMING_SYSTEM_PROMPT, format_naming_prompt
from labeling.response_parser import decode_json_object, ParseOk

logger = logging.getLogger(__name__)


@dataclass
class ClusterName:
    """Generated name for a cluster."""
    cluster_id: str
    name: str
    name_en: str
    description: str = ""

    def to_dict(self) -> dict:
        return {
            "cluster_id": self.cluster_id,
            "name": self.name,
            "name_en": self.name_en,
            "description": self.description
        }


@dataclass
class NamingResult:
    """Result of naming all placeholder clusters of a session."""
    names: Dict[str, ClusterName] = field(default_factory=dict)
    skipped: List[str] = field(default_factory=list)

    @property
    def named_count(self) -> int:
        return len(self.names)

    @property
    def skipped_count(self) -> int:
        return len(self.skipped)


class ClusterNamer:
    """
    Names clusters that still carry their auto-generated placeholder.

    Each cluster is named independently; a failed or unparseable response
    leaves that cluster's placeholder in place and naming moves on.
    """

    def __init__(self, store, llm_client, settings: Settings = None):
        """
        Initialize cluster namer.

        Args:
            store: DocumentStore implementation
            llm_client: Text-generation client with async generate()
            settings: Settings (defaults to get_settings())
        """
        self.store = store
        self.llm_client = llm_client
        self.settings = settings or get_settings()

    async def name_cluster(self, cluster: dict) -> Optional[ClusterName]:
        """
        Ask for a name for one cluster.

        Returns:
            ClusterName, or None when the response could not be used
        """
        labeling = self.settings.labeling
        samples = self.store.get_documents_by_ids(cluster.get("sample_document_ids") or [])
        if not samples:
            logger.warning("Cluster %s has no sample documents", cluster["id"])
            return None

        prompt = format_naming_prompt(
            samples,
            count=cluster.get("document_count", len(samples)),
            char_budget=labeling.sample_char_budget
        )

        try:
            response = await self.llm_client.generate(
                prompt=prompt,
                system_prompt=CLUSTER_NAMING_SYSTEM_PROMPT,
                max_tokens=labeling.max_tokens
            )
        except Exception as e:
            logger.warning("Naming request failed for cluster %s: %s", cluster["id"], e)
            return None

        parsed = decode_json_object(response)
        if not isinstance(parsed, ParseOk):
            logger.warning(
                "Unparseable name for cluster %s (%s): %s",
                cluster["id"], parsed.reason, parsed.raw[:200]
            )
            return None

        name = str(parsed.data.get("nameRo") or "").strip()
        if not name:
            logger.warning("Response for cluster %s has no nameRo", cluster["id"])
            return None

        return ClusterName(
            cluster_id=cluster["id"],
            name=name[:120],
            name_en=str(parsed.data.get("nameEn") or name).strip()[:120],
            description=str(parsed.data.get("description") or "").strip()
        )

    async def name_clusters(
        self,
        session_id: str,
        tracker: Optional[ProgressTracker] = None
    ) -> NamingResult:
        """
        Name every non-rejected placeholder cluster of a session.

        Args:
            session_id: Session to process
            tracker: Optional progress tracker

        Returns:
            NamingResult with named and skipped cluster IDs
        """
        tracker = tracker or ProgressTracker(session_id, self.store)
        clusters = [
            c for c in self.store.get_clusters(session_id)
            if c.get("is_auto_named")
        ]

        result = NamingResult()
        if not clusters:
            logger.info("No placeholder clusters to name for session %s", session_id)
            return result

        tracker.start_stage(
            PipelineStage.NAMING,
            total=len(clusters),
            message="Naming clusters"
        )

        for i, cluster in enumerate(clusters, start=1):
            cluster_name = await self.name_cluster(cluster)
            if cluster_name is None:
                result.skipped.append(cluster["id"])
            else:
                self.store.update_cluster_naming(
                    cluster["id"],
                    cluster_name.name,
                    cluster_name.name_en,
                    cluster_name.description
                )
                result.names[cluster["id"]] = cluster_name

            tracker.update(i, message=f"Named {i}/{len(clusters)} clusters")

        tracker.complete_stage(
            f"Named {result.named_count} clusters, {result.skipped_count} kept placeholder"
        )
        logger.info(
            "Naming done: %d named, %d skipped",
            result.named_count, result.skipped_count
        )
        return result
