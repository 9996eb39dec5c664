"""
Smart cluster merge.

Reduces cluster fragmentation by merging clusters that hold the same type of
document, detected either by name patterns or by an AI review of the whole
cluster list.
"""
import logging
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence

from config.settings import get_settings, Settings
from consolidation.merge_rules import MergeRuleSet
from core.exceptions import MergeError
from core.progress_tracker import ProgressTracker, PipelineStage
from labeling.prompts import (
    MERGE_ANALYSIS_SYSTEM_PROMPT,
    format_merge_analysis_prompt,
    format_merge_name_prompt
)
from labeling.response_parser import decode_json_object, ParseOk

logger = logging.getLogger(__name__)


@dataclass
class ClusterInfo:
    """Cluster fields used by merge analysis."""
    id: str
    name: str
    name_en: Optional[str] = None
    description: Optional[str] = None
    document_count: int = 0
    status: str = "Pending"

    @classmethod
    def from_row(cls, row: dict) -> "ClusterInfo":
        """Build from a cluster row; the approved name wins over the suggestion."""
        return cls(
            id=row["id"],
            name=row.get("approved_name") or row.get("suggested_name") or "",
            name_en=row.get("suggested_name_en"),
            description=row.get("description"),
            document_count=row.get("document_count") or 0,
            status=row.get("status") or "Pending"
        )


@dataclass
class MergeGroup:
    """A proposed consolidation; the first cluster survives."""
    target_name: str
    target_name_en: str
    description: str
    clusters: List[ClusterInfo]
    reasoning: str = ""

    @property
    def total_documents(self) -> int:
        return sum(c.document_count for c in self.clusters)

    @property
    def cluster_ids(self) -> List[str]:
        return [c.id for c in self.clusters]


@dataclass
class MergeAnalysis:
    """Result of analyzing a session's clusters for merges."""
    session_id: str
    original_cluster_count: int
    merge_groups: List[MergeGroup] = field(default_factory=list)
    keep_separate: List[ClusterInfo] = field(default_factory=list)
    fallback_reason: Optional[str] = None  # set when the AI pass failed open

    @property
    def suggested_cluster_count(self) -> int:
        return len(self.merge_groups) + len(self.keep_separate)

    @property
    def estimated_reduction(self) -> int:
        return self.original_cluster_count - self.suggested_cluster_count


@dataclass
class MergeResult:
    """Result of executing merge groups."""
    success: bool = True
    merged_count: int = 0
    new_cluster_count: int = 0
    errors: List[str] = field(default_factory=list)


class SmartMerger:
    """
    Merges semantically duplicate clusters.

    Rejected clusters never take part in a merge.
    """

    def __init__(
        self,
        store,
        llm_client,
        settings: Settings = None,
        rules: MergeRuleSet = None
    ):
        """
        Initialize smart merger.

        Args:
            store: DocumentStore implementation
            llm_client: Text-generation client with async generate()
            settings: Settings (defaults to get_settings())
            rules: Pattern rule set (defaults to the Romanian legal table)
        """
        self.store = store
        self.llm_client = llm_client
        self.settings = settings or get_settings()
        self.rules = rules or MergeRuleSet.romanian_legal()

    def _load_clusters(self, session_id: str) -> List[ClusterInfo]:
        return [
            ClusterInfo.from_row(row)
            for row in self.store.get_clusters(session_id)
            if row.get("status") != "Rejected"
        ]

    # =========================================================================
    # Pattern-based detection
    # =========================================================================

    def find_pattern_based_merges(
        self,
        clusters: Sequence[ClusterInfo]
    ) -> Dict[str, List[ClusterInfo]]:
        """
        Group clusters whose resolved names match the same rule.

        Args:
            clusters: Candidate clusters

        Returns:
            Dict mapping category -> clusters, in rule order, only for
            categories with at least two clusters
        """
        groups: Dict[str, List[ClusterInfo]] = {}
        assigned = set()

        for rule in self.rules:
            for cluster in clusters:
                if cluster.id in assigned or cluster.status == "Rejected":
                    continue
                if rule.matches(cluster.name):
                    groups.setdefault(rule.category, []).append(cluster)
                    assigned.add(cluster.id)

        return {
            category: members
            for category, members in groups.items()
            if len(members) >= 2
        }

    async def get_merge_name(
        self,
        category: str,
        clusters: Sequence[ClusterInfo]
    ) -> Dict[str, str]:
        """
        Ask for a name for a pattern-detected group.

        Falls back to the category label when the request or the response
        fails.

        Returns:
            Dict with name, name_en and description
        """
        fallback = {"name": category, "name_en": category, "description": ""}

        try:
            response = await self.llm_client.generate(
                prompt=format_merge_name_prompt(category, clusters),
                max_tokens=200
            )
        except Exception as e:
            logger.warning("Merge naming failed for %s: %s", category, e)
            return fallback

        parsed = decode_json_object(response)
        if not isinstance(parsed, ParseOk):
            logger.warning("Unparseable merge name for %s: %s", category, parsed.reason)
            return fallback

        return {
            "name": parsed.data.get("nameRo") or category,
            "name_en": parsed.data.get("nameEn") or category,
            "description": parsed.data.get("description") or ""
        }

    # =========================================================================
    # AI-assisted analysis
    # =========================================================================

    def _keep_all(
        self,
        session_id: str,
        clusters: List[ClusterInfo],
        reason: str
    ) -> MergeAnalysis:
        return MergeAnalysis(
            session_id=session_id,
            original_cluster_count=len(clusters),
            keep_separate=list(clusters),
            fallback_reason=reason
        )

    async def analyze_clusters(
        self,
        session_id: str,
        target_ratio: float = None
    ) -> MergeAnalysis:
        """
        Ask for merge suggestions covering every cluster of a session.

        Cluster IDs in the response are checked against the session's
        clusters; unknown IDs are dropped, a cluster already claimed by an
        earlier group is not claimed again, and groups left with fewer than
        two clusters are discarded. Every unclaimed cluster is kept separate.

        Args:
            session_id: Session to analyze
            target_ratio: Desired final/original cluster ratio

        Returns:
            MergeAnalysis; when the request or parsing fails, no groups and
            fallback_reason set
        """
        target_ratio = target_ratio or self.settings.merge.target_ratio
        clusters = self._load_clusters(session_id)

        if not clusters:
            return MergeAnalysis(session_id=session_id, original_cluster_count=0)

        logger.info("Analyzing %d clusters for merges", len(clusters))

        try:
            response = await self.llm_client.generate(
                prompt=format_merge_analysis_prompt(clusters, target_ratio),
                system_prompt=MERGE_ANALYSIS_SYSTEM_PROMPT,
                max_tokens=self.settings.merge.analysis_max_tokens
            )
        except Exception as e:
            logger.error("Merge analysis request failed: %s", e)
            return self._keep_all(session_id, clusters, f"request failed: {e}")

        parsed = decode_json_object(response)
        if not isinstance(parsed, ParseOk):
            logger.error(
                "Failed to parse merge analysis (%s). Raw response: %s",
                parsed.reason, parsed.raw
            )
            return self._keep_all(session_id, clusters, f"unparseable response: {parsed.reason}")

        raw_groups = parsed.data.get("mergeGroups")
        if not isinstance(raw_groups, list):
            raw_groups = []

        by_id = {c.id: c for c in clusters}
        claimed = set()
        merge_groups = []

        for raw in raw_groups:
            if not isinstance(raw, dict) or not isinstance(raw.get("clusterIds"), list):
                continue

            members = []
            for cluster_id in raw["clusterIds"]:
                cluster = by_id.get(str(cluster_id))
                if cluster is None or cluster.id in claimed or cluster in members:
                    continue
                members.append(cluster)

            if len(members) < 2:
                continue

            claimed.update(c.id for c in members)
            target_name = str(raw.get("targetName") or members[0].name)
            merge_groups.append(MergeGroup(
                target_name=target_name,
                target_name_en=str(raw.get("targetNameEn") or target_name),
                description=str(raw.get("description") or ""),
                clusters=members,
                reasoning=str(raw.get("reasoning") or "")
            ))

        analysis = MergeAnalysis(
            session_id=session_id,
            original_cluster_count=len(clusters),
            merge_groups=merge_groups,
            keep_separate=[c for c in clusters if c.id not in claimed]
        )
        logger.info(
            "Analysis complete: %d -> %d clusters",
            analysis.original_cluster_count,
            analysis.suggested_cluster_count
        )
        return analysis

    # =========================================================================
    # Execution
    # =========================================================================

    def _collect_samples(self, cluster_ids: Sequence[str]) -> List[str]:
        """Union of stored sample IDs across the group, in cluster order."""
        limit = self.settings.merge.max_samples
        samples: List[str] = []
        for cluster_id in cluster_ids:
            cluster = self.store.get_cluster(cluster_id) or {}
            for doc_id in cluster.get("sample_document_ids") or []:
                if doc_id not in samples:
                    samples.append(doc_id)
            if len(samples) >= limit:
                break
        return samples[:limit]

    def _merge_group(self, group: MergeGroup) -> int:
        target_id, source_ids = group.cluster_ids[0], group.cluster_ids[1:]
        return self.store.merge_clusters(
            target_id,
            source_ids,
            group.target_name,
            group.target_name_en,
            group.description,
            self._collect_samples(group.cluster_ids)
        )

    async def execute_merges(
        self,
        session_id: str,
        merge_groups: Sequence[MergeGroup],
        tracker: Optional[ProgressTracker] = None
    ) -> MergeResult:
        """
        Execute merge groups, each in its own transaction.

        A failing group is recorded in errors and the remaining groups still
        run.

        Args:
            session_id: Owning session
            merge_groups: Groups to execute
            tracker: Optional progress tracker

        Returns:
            MergeResult
        """
        tracker = tracker or ProgressTracker(session_id, self.store)
        result = MergeResult()
        consumed = set()

        tracker.start_stage(
            PipelineStage.MERGING,
            total=len(merge_groups),
            message="Merging clusters"
        )

        for i, group in enumerate(merge_groups, start=1):
            if len(group.clusters) < 2:
                continue

            try:
                overlap = consumed.intersection(group.cluster_ids)
                if overlap:
                    raise MergeError(
                        group.target_name,
                        "clusters already merged: " + ", ".join(sorted(overlap)),
                        group.cluster_ids
                    )
                count = self._merge_group(group)
                consumed.update(group.cluster_ids)
                result.merged_count += 1
                logger.info(
                    "Merged %d clusters into \"%s\" (%d docs)",
                    len(group.clusters), group.target_name, count
                )
            except MergeError as e:
                result.errors.append(e.message)
                logger.error("%s", e.message)
            except Exception as e:
                error = MergeError(group.target_name, str(e), group.cluster_ids)
                result.errors.append(error.message)
                logger.error("%s", error.message)

            tracker.update(i, message=f"Merged {result.merged_count}/{len(merge_groups)} groups")

        result.success = not result.errors
        result.new_cluster_count = len(
            self.store.get_clusters(session_id, include_rejected=True)
        )
        tracker.complete_stage(f"{result.new_cluster_count} clusters after merge")
        return result

    async def quick_merge(
        self,
        session_id: str,
        tracker: Optional[ProgressTracker] = None
    ) -> MergeResult:
        """
        Pattern detection, AI naming and execution in one pass.
        Faster alternative to full AI analysis for obvious merge cases.
        """
        clusters = self._load_clusters(session_id)
        pattern_groups = self.find_pattern_based_merges(clusters)

        if not pattern_groups:
            return MergeResult(
                success=True,
                merged_count=0,
                new_cluster_count=len(self.store.get_clusters(session_id, include_rejected=True))
            )

        logger.info("Found %d pattern-based merge groups", len(pattern_groups))

        merge_groups = []
        for category, members in pattern_groups.items():
            name = await self.get_merge_name(category, members)
            merge_groups.append(MergeGroup(
                target_name=name["name"],
                target_name_en=name["name_en"],
                description=name["description"],
                clusters=members,
                reasoning=f"Pattern match: {category}"
            ))

        return await self.execute_merges(session_id, merge_groups, tracker)

    def preview_merges(self, analysis: MergeAnalysis) -> str:
        """Markdown summary of an analysis, without executing it."""
        reduction_pct = (
            round(analysis.estimated_reduction / analysis.original_cluster_count * 100)
            if analysis.original_cluster_count else 0
        )
        lines = [
            "# Cluster Merge Preview",
            "",
            f"**Current clusters:** {analysis.original_cluster_count}",
            f"**After merge:** {analysis.suggested_cluster_count}",
            f"**Reduction:** {analysis.estimated_reduction} clusters ({reduction_pct}%)",
            "",
        ]
        if analysis.fallback_reason:
            lines.extend([f"> AI analysis unavailable: {analysis.fallback_reason}", ""])

        lines.extend(["## Merge Groups", ""])
        for i, group in enumerate(analysis.merge_groups, start=1):
            lines.append(f"### {i}. {group.target_name} ({group.total_documents} docs)")
            lines.append(f"*{group.reasoning}*")
            lines.append("")
            lines.append("Merging:")
            for cluster in group.clusters:
                lines.append(f"- {cluster.name} ({cluster.document_count} docs)")
            lines.append("")

        lines.append(f"## Clusters Kept Separate ({len(analysis.keep_separate)})")
        lines.append("")
        for cluster in analysis.keep_separate:
            lines.append(f"- {cluster.name} ({cluster.document_count} docs)")

        return "\n".join(lines)
