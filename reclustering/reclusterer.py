"""
Re-clustering of documents a reviewer marked as misclassified.

Reclassified documents are matched to existing clusters by their reviewer
annotation; the rest are grouped into new clusters.
"""
import logging
from dataclasses import dataclass, field
from typing import Dict, List, Optional

from config.settings import get_settings, Settings
from core.progress_tracker import ProgressTracker, PipelineStage
from core.session_manager import SessionManager, PipelineStatus
from labeling.prompts import (
    MATCHING_SYSTEM_PROMPT,
    GROUPING_SYSTEM_PROMPT,
    format_matching_prompt,
    format_grouping_prompt
)
from labeling.response_parser import decode_json_object, ParseOk

logger = logging.getLogger(__name__)

NEEDS_REVIEW_NAME = "De revizuit"
NEEDS_REVIEW_NAME_EN = "Needs Review"
NEEDS_REVIEW_DESCRIPTION = "Documente reclasificate care necesită revizuire manuală"


@dataclass
class ReclusterStats:
    """Outcome of a re-clustering run."""
    total_reclassified: int = 0
    matched_to_existing: int = 0
    new_clusters_created: int = 0
    unmatched_docs: int = 0

    def to_dict(self) -> dict:
        return {
            "totalReclassified": self.total_reclassified,
            "matchedToExisting": self.matched_to_existing,
            "newClustersCreated": self.new_clusters_created,
            "unmatchedDocs": self.unmatched_docs
        }


@dataclass
class MatchResult:
    """Validated annotation-to-cluster matches."""
    matches: Dict[str, List[str]] = field(default_factory=dict)  # cluster id -> doc ids
    unmatched: List[str] = field(default_factory=list)

    @property
    def matched_count(self) -> int:
        return sum(len(ids) for ids in self.matches.values())


@dataclass
class DocumentGroup:
    """A new cluster proposed for unmatched documents."""
    name: str
    name_en: str
    document_ids: List[str]


class ReclusterEngine:
    """
    Re-absorbs reclassified documents into existing or new clusters.

    Collaborator failures never abort the run: a failed match makes every
    document unmatched and a failed grouping yields one "Needs Review"
    cluster.
    """

    def __init__(
        self,
        store,
        llm_client,
        settings: Settings = None,
        sessions: SessionManager = None
    ):
        """
        Initialize recluster engine.

        Args:
            store: DocumentStore implementation
            llm_client: Text-generation client with async generate()
            settings: Settings (defaults to get_settings())
            sessions: Session status manager
        """
        self.store = store
        self.llm_client = llm_client
        self.settings = settings or get_settings()
        self.sessions = sessions or SessionManager(store)

    # =========================================================================
    # Matching
    # =========================================================================

    async def match_documents(
        self,
        documents: List[dict],
        clusters: List[dict]
    ) -> MatchResult:
        """
        Match documents to existing clusters by annotation.

        Pairs naming an unknown document or cluster are dropped; a document
        matched twice keeps its first match. Any document without a valid
        match is unmatched.

        Args:
            documents: Reclassified document rows
            clusters: Dicts with id and resolved name

        Returns:
            MatchResult
        """
        all_ids = [d["id"] for d in documents]
        if not clusters:
            return MatchResult(unmatched=all_ids)

        try:
            response = await self.llm_client.generate(
                prompt=format_matching_prompt(documents, clusters),
                system_prompt=MATCHING_SYSTEM_PROMPT,
                max_tokens=2048
            )
        except Exception as e:
            logger.error("AI matching failed, marking all as unmatched: %s", e)
            return MatchResult(unmatched=all_ids)

        parsed = decode_json_object(response)
        if not isinstance(parsed, ParseOk):
            logger.error(
                "Unparseable matching response (%s), marking all as unmatched: %s",
                parsed.reason, parsed.raw[:200]
            )
            return MatchResult(unmatched=all_ids)

        raw_matches = parsed.data.get("matches")
        if not isinstance(raw_matches, list):
            raw_matches = []

        doc_ids = set(all_ids)
        cluster_ids = {c["id"] for c in clusters}
        result = MatchResult()
        matched = set()

        for pair in raw_matches:
            if not isinstance(pair, dict):
                continue
            doc_id = str(pair.get("docId"))
            cluster_id = str(pair.get("clusterId"))
            if doc_id not in doc_ids or cluster_id not in cluster_ids or doc_id in matched:
                continue
            result.matches.setdefault(cluster_id, []).append(doc_id)
            matched.add(doc_id)

        result.unmatched = [doc_id for doc_id in all_ids if doc_id not in matched]
        return result

    # =========================================================================
    # Grouping
    # =========================================================================

    def _needs_review_group(self, document_ids: List[str]) -> DocumentGroup:
        return DocumentGroup(
            name=NEEDS_REVIEW_NAME,
            name_en=NEEDS_REVIEW_NAME_EN,
            document_ids=list(document_ids)
        )

    async def group_documents(self, documents: List[dict]) -> List[DocumentGroup]:
        """
        Group unmatched documents by annotation similarity.

        Unknown document IDs are dropped, a document listed twice stays in
        its first group, empty groups are discarded and documents the
        response leaves out go to a "Needs Review" group.

        Returns:
            List of DocumentGroup; a single "Needs Review" group on failure
        """
        all_ids = [d["id"] for d in documents]

        try:
            response = await self.llm_client.generate(
                prompt=format_grouping_prompt(documents),
                system_prompt=GROUPING_SYSTEM_PROMPT,
                max_tokens=2048
            )
        except Exception as e:
            logger.error("AI grouping failed, creating single cluster: %s", e)
            return [self._needs_review_group(all_ids)]

        parsed = decode_json_object(response)
        if not isinstance(parsed, ParseOk) or not isinstance(parsed.data.get("groups"), list):
            reason = parsed.reason if not isinstance(parsed, ParseOk) else "missing groups"
            logger.error("Unusable grouping response (%s), creating single cluster", reason)
            return [self._needs_review_group(all_ids)]

        valid_ids = set(all_ids)
        assigned = set()
        groups: List[DocumentGroup] = []

        for raw in parsed.data["groups"]:
            if not isinstance(raw, dict) or not isinstance(raw.get("docIds"), list):
                continue
            member_ids = []
            for doc_id in raw["docIds"]:
                doc_id = str(doc_id)
                if doc_id in valid_ids and doc_id not in assigned:
                    member_ids.append(doc_id)
                    assigned.add(doc_id)
            if not member_ids:
                continue
            groups.append(DocumentGroup(
                name=str(raw.get("nameRo") or NEEDS_REVIEW_NAME),
                name_en=str(raw.get("nameEn") or NEEDS_REVIEW_NAME_EN),
                document_ids=member_ids
            ))

        leftover = [doc_id for doc_id in all_ids if doc_id not in assigned]
        if leftover:
            logger.warning("%d document(s) missing from grouping response", len(leftover))
            groups.append(self._needs_review_group(leftover))

        return groups

    def _create_cluster(self, session_id: str, group: DocumentGroup) -> dict:
        description = (
            NEEDS_REVIEW_DESCRIPTION if group.name == NEEDS_REVIEW_NAME
            else f"Documente reclasificate: {group.name}"
        )
        return self.store.create_cluster(
            session_id,
            {
                "suggested_name": group.name,
                "suggested_name_en": group.name_en,
                "description": description,
                "sample_document_ids": group.document_ids[:self.settings.clustering.sample_count],
                "status": "Pending",
                "is_auto_named": False
            },
            group.document_ids,
            reset_validation=True
        )

    async def create_clusters_for_unmatched(
        self,
        session_id: str,
        documents: List[dict]
    ) -> int:
        """
        Put unmatched documents into new clusters.

        Returns:
            Number of clusters created
        """
        if len(documents) <= self.settings.pipeline.needs_review_threshold:
            groups = [self._needs_review_group([d["id"] for d in documents])]
        else:
            groups = await self.group_documents(documents)

        for group in groups:
            self._create_cluster(session_id, group)
            logger.info(
                "Created cluster \"%s\" with %d reclassified document(s)",
                group.name, len(group.document_ids)
            )
        return len(groups)

    # =========================================================================
    # Entry point
    # =========================================================================

    async def recluster(
        self,
        session_id: str,
        tracker: Optional[ProgressTracker] = None
    ) -> ReclusterStats:
        """
        Re-cluster every reclassified document of a session.

        The session is ReClustering while this runs and ReadyForValidation
        afterwards. On an unexpected error the session is marked Failed with
        the message and the error is re-raised.

        Args:
            session_id: Session to process
            tracker: Optional progress tracker

        Returns:
            ReclusterStats
        """
        stats = ReclusterStats()
        tracker = tracker or ProgressTracker(session_id, self.store)
        logger.info("Starting re-clustering for session %s", session_id)

        try:
            self.sessions.mark_status(session_id, PipelineStatus.RECLUSTERING)

            documents = self.store.get_reclassified_documents(session_id)
            stats.total_reclassified = len(documents)

            if not documents:
                logger.info("No reclassified documents to process")
                self.sessions.mark_ready(session_id)
                return stats

            total = len(documents)
            tracker.start_stage(
                PipelineStage.RECLUSTERING,
                total=total,
                message="Matching documents to clusters"
            )

            clusters = [
                {"id": c["id"], "name": c.get("approved_name") or c.get("suggested_name")}
                for c in self.store.get_clusters(session_id, include_rejected=True)
            ]
            match = await self.match_documents(documents, clusters)
            tracker.update(
                match.matched_count,
                message=f"Matched {match.matched_count} documents to existing clusters"
            )

            for cluster_id, doc_ids in match.matches.items():
                count = self.store.move_documents_to_cluster(doc_ids, cluster_id)
                logger.info(
                    "Added %d docs to cluster %s (now %d)",
                    len(doc_ids), cluster_id, count
                )
            stats.matched_to_existing = match.matched_count

            if match.unmatched:
                stats.unmatched_docs = len(match.unmatched)
                tracker.update(
                    match.matched_count,
                    message=f"Creating new clusters for {len(match.unmatched)} unmatched documents"
                )
                unmatched_ids = set(match.unmatched)
                stats.new_clusters_created = await self.create_clusters_for_unmatched(
                    session_id,
                    [d for d in documents if d["id"] in unmatched_ids]
                )

            tracker.update(total, message="Re-clustering complete")
            self.sessions.mark_ready(session_id)

            logger.info(
                "Re-clustering complete: %d matched, %d new clusters",
                stats.matched_to_existing, stats.new_clusters_created
            )
            return stats

        except Exception as e:
            logger.error("Error during re-clustering: %s", e)
            self.sessions.fail(session_id, str(e))
            raise
