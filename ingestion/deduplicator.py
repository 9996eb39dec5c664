"""
Content-hash deduplication of extracted documents.
"""
import hashlib
import logging
import re
import uuid
from dataclasses import dataclass, field
from typing import List, Dict, Optional, Tuple

from config.settings import get_settings, Settings
from core.progress_tracker import ProgressTracker, PipelineStage

logger = logging.getLogger(__name__)

# Whole-line page-number artifacts, matched after lowercasing
_PAGE_ARTIFACTS = [
    re.compile(r"^\s*(page|pagina|pag\.)\s*\d+\s*((of|din|/)\s*\d+)?\s*$"),
    re.compile(r"^\s*-\s*\d+\s*-\s*$"),
    re.compile(r"^\s*\d+\s*(/\s*\d+)?\s*$"),
]

_GROUP_NAMESPACE = uuid.UUID("6f1c1c1e-8a3b-4d2e-9b7f-2f4e5a6b7c8d")


def normalize_text(text: str) -> str:
    """
    Normalize document text for duplicate comparison.

    Lowercases, drops page-number lines, collapses whitespace and trims.
    """
    lines = text.lower().splitlines()
    kept = [
        line for line in lines
        if not any(pattern.match(line) for pattern in _PAGE_ARTIFACTS)
    ]
    return re.sub(r"\s+", " ", "\n".join(kept)).strip()


def content_hash(text: str) -> str:
    """SHA-256 hex digest of the normalized text."""
    return hashlib.sha256(normalize_text(text).encode("utf-8")).hexdigest()


def duplicate_group_id(session_id: str, digest: str) -> str:
    """Stable group identifier for a hash within a session."""
    return str(uuid.uuid5(_GROUP_NAMESPACE, f"{session_id}:{digest}"))


@dataclass
class DuplicateAssignment:
    """Dedup stamp for one document."""

    document_id: str
    content_hash: str
    duplicate_group_id: str
    is_canonical: bool

    def to_row(self) -> dict:
        return {
            "id": self.document_id,
            "content_hash": self.content_hash,
            "duplicate_group_id": self.duplicate_group_id,
            "is_canonical": self.is_canonical
        }


@dataclass
class DeduplicationResult:
    """Result of document deduplication."""

    assignments: List[DuplicateAssignment] = field(default_factory=list)
    groups: Dict[str, List[str]] = field(default_factory=dict)  # hash -> new document ids
    existing: Dict[str, List[str]] = field(default_factory=dict)  # hash -> already-stamped ids
    restamped: List[DuplicateAssignment] = field(default_factory=list)  # stamped docs whose flag changed
    skipped: List[str] = field(default_factory=list)  # documents with no text

    @property
    def total_count(self) -> int:
        return len(self.assignments)

    @property
    def unique_count(self) -> int:
        return sum(1 for digest in self.groups if digest not in self.existing)

    @property
    def duplicate_count(self) -> int:
        return self.total_count - self.unique_count

    @property
    def duplicate_group_count(self) -> int:
        return sum(
            1 for digest, members in self.groups.items()
            if len(members) + len(self.existing.get(digest, [])) > 1
        )

    @property
    def canonical_ids(self) -> List[str]:
        return [a.document_id for a in self.assignments if a.is_canonical]

    @property
    def rows(self) -> List[dict]:
        """Store rows for every new stamp and every changed flag."""
        return [a.to_row() for a in self.restamped + self.assignments]

    def to_stats(self) -> dict:
        """Session-level deduplication statistics."""
        return {
            "totalDocuments": self.total_count,
            "uniqueDocuments": self.unique_count,
            "duplicateDocuments": self.duplicate_count,
            "duplicateGroups": self.duplicate_group_count,
            "skippedDocuments": len(self.skipped)
        }


class DocumentDeduplicator:
    """
    Groups documents by the hash of their normalized text and picks one
    canonical document per group.
    """

    def group_by_hash(self, documents: List[dict]) -> Tuple[Dict[str, List[dict]], List[str]]:
        """
        Hash documents and group them.

        Returns:
            (hash -> documents in input order, ids of documents with no text)
        """
        members: Dict[str, List[dict]] = {}
        skipped = []
        for doc in documents:
            text = doc.get("extracted_text")
            if not text or not text.strip():
                skipped.append(doc["id"])
                continue
            members.setdefault(content_hash(text), []).append(doc)
        return members, skipped

    def deduplicate(
        self,
        documents: List[dict],
        session_id: str,
        existing: Optional[List[dict]] = None
    ) -> DeduplicationResult:
        """
        Deduplicate documents.

        The canonical member is the one with the largest raw byte size;
        ties go to the earliest document. Already-stamped members of the
        same groups come before the new documents, so an existing canonical
        only loses to a strictly larger newcomer.

        Args:
            documents: Rows with id, extracted_text, file_size_bytes, in
                insertion order
            session_id: Owning session, scopes the group identifiers
            existing: Already-stamped rows (id, content_hash,
                file_size_bytes, is_canonical) sharing a hash with the
                new documents

        Returns:
            DeduplicationResult with one assignment per document with text
        """
        members, skipped = self.group_by_hash(documents)
        return self.assign(members, skipped, session_id, existing or [])

    def assign(
        self,
        members: Dict[str, List[dict]],
        skipped: List[str],
        session_id: str,
        existing: List[dict]
    ) -> DeduplicationResult:
        """Pick canonicals for grouped documents; see deduplicate()."""
        result = DeduplicationResult(skipped=list(skipped))

        previous: Dict[str, List[dict]] = {}
        for row in existing:
            if row["content_hash"] in members:
                previous.setdefault(row["content_hash"], []).append(row)

        for digest, docs in members.items():
            stamped = previous.get(digest, [])
            candidates = stamped + docs
            canonical = candidates[0]
            for doc in candidates[1:]:
                # Strictly greater keeps the earliest on ties
                if (doc.get("file_size_bytes") or 0) > (canonical.get("file_size_bytes") or 0):
                    canonical = doc

            group_id = duplicate_group_id(session_id, digest)
            result.groups[digest] = [d["id"] for d in docs]
            if stamped:
                result.existing[digest] = [d["id"] for d in stamped]

            for doc in docs:
                result.assignments.append(DuplicateAssignment(
                    document_id=doc["id"],
                    content_hash=digest,
                    duplicate_group_id=group_id,
                    is_canonical=doc is canonical
                ))
            for doc in stamped:
                if bool(doc.get("is_canonical")) != (doc is canonical):
                    result.restamped.append(DuplicateAssignment(
                        document_id=doc["id"],
                        content_hash=digest,
                        duplicate_group_id=group_id,
                        is_canonical=doc is canonical
                    ))

        if result.skipped:
            logger.warning("Skipped %d document(s) with no text", len(result.skipped))
        if result.restamped:
            logger.info(
                "Canonical changed for %d already-stamped document(s)",
                len(result.restamped)
            )

        return result


class DeduplicationStage:
    """
    Runs deduplication for a session and persists the stamps in batches.
    """

    def __init__(self, store, settings: Settings = None):
        """
        Initialize stage.

        Args:
            store: DocumentStore implementation
            settings: Settings (defaults to get_settings())
        """
        self.store = store
        self.settings = settings or get_settings()
        self.deduplicator = DocumentDeduplicator()

    def run(
        self,
        session_id: str,
        tracker: Optional[ProgressTracker] = None
    ) -> DeduplicationResult:
        """
        Deduplicate every un-hashed document of a session.

        Already-hashed documents are only reloaded when a new document
        shares their hash, so the group keeps a single canonical. A second
        run with nothing new is a no-op and leaves the statistics untouched.
        """
        tracker = tracker or ProgressTracker(session_id, self.store)
        documents = self.store.get_documents_for_dedup(session_id)
        logger.info("Deduplicating %d document(s) for session %s", len(documents), session_id)

        members, skipped = self.deduplicator.group_by_hash(documents)
        existing = self.store.get_hashed_documents(session_id, list(members)) if members else []
        result = self.deduplicator.assign(members, skipped, session_id, existing)
        if not result.assignments:
            logger.info("Nothing to deduplicate for session %s", session_id)
            return result

        batch_size = self.settings.dedup.batch_size
        rows = result.rows
        total = len(rows)
        tracker.start_stage(
            PipelineStage.DEDUPLICATION,
            total=total,
            message="Stamping duplicate groups"
        )

        for start in range(0, total, batch_size):
            self.store.stamp_duplicate_groups(rows[start:start + batch_size])
            done = min(start + batch_size, total)
            tracker.update(done, message=f"Processed {done}/{total} documents")

        stats = result.to_stats()
        self.store.update_session(session_id, {"deduplication_stats": stats})
        tracker.complete_stage(
            f"{stats['uniqueDocuments']} unique of {stats['totalDocuments']} documents"
        )
        logger.info(
            "Deduplication done: %d unique, %d duplicates in %d group(s)",
            stats["uniqueDocuments"],
            stats["duplicateDocuments"],
            stats["duplicateGroups"]
        )
        return result
