"""
Application settings and configuration.
API credentials and threshold overrides are loaded from Streamlit secrets,
falling back to environment variables when no secrets file is present.
"""
import os
import streamlit as st
from dataclasses import dataclass, field, fields
from typing import Any, Tuple
from functools import lru_cache

from core.exceptions import ConfigurationError


@dataclass
class DedupSettings:
    """Settings for content-hash deduplication."""

    batch_size: int = 100  # Documents stamped per store call


@dataclass
class EmbeddingSettings:
    """Settings for embedding generation."""

    model: str = "text-embedding-3-large"
    dimensions: int = 1536  # Expected vector width, validated on every response
    batch_size: int = 100  # OpenAI API batch size
    chunk_size: int = 500  # Documents per processing chunk
    max_chars: int = 8000  # Text truncation before embedding
    use_batch_api: bool = False  # Submit via the asynchronous Batch API


@dataclass
class ClusteringSettings:
    """Settings for dimension reduction and density clustering."""

    # Dimension reduction (UMAP)
    umap_n_neighbors: int = 15  # Clamped to N-1 at runtime
    umap_min_dist: float = 0.0
    umap_n_components: int = 50  # Reduced vector width
    umap_metric: str = "cosine"
    random_state: int = 42

    # Density clustering
    algorithm: str = "dbscan"  # "dbscan" or "hdbscan"
    eps: float = 2.0  # Neighborhood radius in reduced space
    min_points: int = 3  # Minimum members for a real cluster
    sample_count: int = 5  # Representative documents per cluster

    # Documents eligible for clustering
    eligible_statuses: Tuple[str, ...] = ("Accepted",)


@dataclass
class LabelingSettings:
    """Settings for LLM-based cluster naming."""

    default_model: str = "anthropic/claude-3.5-haiku"
    temperature: float = 0.3  # Lower for consistent naming
    sample_char_budget: int = 2000  # Characters per sample document
    max_tokens: int = 500


@dataclass
class MergeSettings:
    """Settings for cluster consolidation."""

    target_ratio: float = 0.25  # Aim for ~25% of the original cluster count
    max_samples: int = 5
    analysis_max_tokens: int = 8000


@dataclass
class PipelineSettings:
    """Settings for stage orchestration."""

    poll_interval_seconds: float = 30.0  # Batch API polling interval
    max_poll_attempts: int = 0  # 0 = poll until the batch expires
    progress_every: int = 100  # Progress update cadence for bulk mutations
    needs_review_threshold: int = 3  # Unmatched docs collapsed into one cluster
    log_level: str = "INFO"


# Sections whose fields can be overridden from secrets or the environment
SECTIONS = ("dedup", "embedding", "clustering", "labeling", "merge", "pipeline")


def _coerce(value: Any, target: Any, name: str) -> Any:
    """Convert a secret or environment value to a settings field type."""
    try:
        if target is bool:
            return str(value).strip().lower() in ("1", "true", "yes", "on")
        if target in (int, float, str):
            return target(value)
        # Tuple fields accept a list or a comma-separated string
        if isinstance(value, str):
            return tuple(part.strip() for part in value.split(",") if part.strip())
        return tuple(value)
    except (TypeError, ValueError):
        raise ConfigurationError(f"Invalid value for {name}: {value!r}")


@dataclass
class Settings:
    """
    Main application settings.
    Loads API credentials and section overrides from Streamlit secrets
    (st.secrets) or the environment.
    """

    # App info
    app_name: str = "Legacy Document Clustering"
    app_version: str = "1.0.0"

    # Sub-settings
    dedup: DedupSettings = field(default_factory=DedupSettings)
    embedding: EmbeddingSettings = field(default_factory=EmbeddingSettings)
    clustering: ClusteringSettings = field(default_factory=ClusteringSettings)
    labeling: LabelingSettings = field(default_factory=LabelingSettings)
    merge: MergeSettings = field(default_factory=MergeSettings)
    pipeline: PipelineSettings = field(default_factory=PipelineSettings)

    def __post_init__(self):
        self._apply_overrides()

    def _apply_overrides(self):
        """
        Override section fields from secrets or the environment.

        Flat: CLUSTERING_EPS = 1.5
        Nested: [clustering]
                eps = 1.5
        """
        for section_name in SECTIONS:
            section = getattr(self, section_name)
            for section_field in fields(section):
                raw = self._get_secret(
                    f"{section_name}_{section_field.name}".upper(),
                    section_name,
                    section_field.name
                )
                if raw == "":
                    continue
                setattr(
                    section,
                    section_field.name,
                    _coerce(raw, section_field.type, f"{section_name}.{section_field.name}")
                )

    def _get_secret(self, flat_key: str, nested_section: str, nested_key: str) -> str:
        """
        Get secret supporting both flat and nested formats.

        Flat: SUPABASE_URL = "..."
        Nested: [supabase]
                url = "..."

        Falls back to the flat key in the environment.
        """
        try:
            if flat_key in st.secrets:
                return st.secrets[flat_key]
            if nested_section in st.secrets:
                section = st.secrets[nested_section]
                if nested_key in section:
                    return section[nested_key]
        except Exception:
            # No secrets.toml outside a Streamlit deployment
            pass

        return os.environ.get(flat_key, "")

    @property
    def supabase_url(self) -> str:
        """Get Supabase URL."""
        return self._get_secret("SUPABASE_URL", "supabase", "url")

    @property
    def supabase_key(self) -> str:
        """Get Supabase service key."""
        return self._get_secret("SUPABASE_KEY", "supabase", "key")

    @property
    def openai_api_key(self) -> str:
        """Get OpenAI API key."""
        return self._get_secret("OPENAI_API_KEY", "openai", "api_key")

    @property
    def openrouter_api_key(self) -> str:
        """Get OpenRouter API key."""
        return self._get_secret("OPENROUTER_API_KEY", "openrouter", "api_key")

    def validate_secrets(self) -> dict:
        """
        Validate that all required secrets are configured.
        Returns dict with service names and their status.
        """
        return {
            "Supabase": bool(self.supabase_url and self.supabase_key),
            "OpenAI": bool(self.openai_api_key),
            "OpenRouter": bool(self.openrouter_api_key)
        }

    def get_missing_secrets(self) -> list:
        """Return list of missing required secrets."""
        status = self.validate_secrets()
        return [service for service, configured in status.items() if not configured]


@lru_cache()
def get_settings() -> Settings:
    """
    Get cached settings instance.
    Uses lru_cache to avoid recreating settings on each call.
    """
    return Settings()
