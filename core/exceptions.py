"""
Exception hierarchy for Legacy Document Clustering.

Everything raised on purpose by the pipeline derives from ClusteringError
and carries a `details` dict that is safe to log or store on a session.
"""


class ClusteringError(Exception):
    """Root of all pipeline errors."""

    def __init__(self, message: str, details: dict = None):
        self.message = message
        self.details = details or {}
        super().__init__(self.message)


# =============================================================================
# External services
# =============================================================================

class APIError(ClusteringError):
    """A call to OpenAI or OpenRouter failed."""

    def __init__(
        self,
        message: str,
        service: str,
        status_code: int = None,
        response: str = None
    ):
        self.service = service
        self.status_code = status_code
        self.response = response
        super().__init__(
            message,
            {
                "service": service,
                "status_code": status_code,
                "response": response
            }
        )


class RateLimitError(APIError):
    """HTTP 429; `retry_after` is the advertised wait in seconds."""

    def __init__(self, service: str, retry_after: int = None):
        self.retry_after = retry_after
        super().__init__(
            f"Rate limit exceeded for {service}",
            service=service,
            status_code=429
        )


class EmbeddingError(APIError):
    """Embedding request failed or returned unusable vectors."""

    def __init__(self, message: str, batch_index: int = None):
        self.batch_index = batch_index
        super().__init__(message, service="OpenAI Embeddings")


class EmbeddingDimensionError(EmbeddingError):
    """Returned vector width differs from the configured width."""

    def __init__(self, expected: int, actual: int, batch_index: int = None):
        self.expected = expected
        self.actual = actual
        super().__init__(
            f"Embedding dimension mismatch: expected {expected}, got {actual}",
            batch_index=batch_index
        )


class BatchJobError(EmbeddingError):
    """An asynchronous embedding batch ended without usable output."""

    def __init__(self, batch_id: str, status: str):
        self.batch_id = batch_id
        self.status = status
        super().__init__(f"Embedding batch {batch_id} ended as {status}")
        self.details.update({"batch_id": batch_id, "batch_status": status})


class LabelingError(APIError):
    """Text generation failed for one model."""

    def __init__(self, message: str, model: str = None, status_code: int = None):
        self.model = model
        super().__init__(
            message,
            service="OpenRouter LLM",
            status_code=status_code
        )


# =============================================================================
# Configuration and storage
# =============================================================================

class ConfigurationError(ClusteringError):
    """Required credentials or settings are missing."""

    def __init__(self, message: str, missing_keys: list = None):
        self.missing_keys = missing_keys or []
        super().__init__(message, {"missing_keys": self.missing_keys})


class DatabaseError(ClusteringError):
    """A store read, update or rpc call failed."""

    def __init__(self, message: str, operation: str = None, table: str = None):
        self.operation = operation
        self.table = table
        super().__init__(message, {"operation": operation, "table": table})


# =============================================================================
# Pipeline stages
# =============================================================================

class ProcessingError(ClusteringError):
    """A stage could not finish; `recoverable` runs may be resumed."""

    def __init__(
        self,
        message: str,
        phase: str,
        progress: float = 0.0,
        recoverable: bool = True
    ):
        self.phase = phase
        self.progress = progress
        self.recoverable = recoverable
        super().__init__(
            message,
            {
                "phase": phase,
                "progress": progress,
                "recoverable": recoverable
            }
        )


class MergeError(ClusteringError):
    """A merge group could not be applied."""

    def __init__(self, group_name: str, reason: str, cluster_ids: list = None):
        self.group_name = group_name
        self.cluster_ids = list(cluster_ids or [])
        super().__init__(
            f"Failed to merge \"{group_name}\": {reason}",
            {"group": group_name, "cluster_ids": self.cluster_ids}
        )
