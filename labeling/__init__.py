"""
Labeling module for Legacy Document Clustering.

LLM-backed naming of clusters from their sample documents, plus the shared
OpenRouter client, prompts and response decoding.
"""
from labeling.cluster_namer import (
    ClusterNamer,
    ClusterName,
    NamingResult
)
from labeling.llm_client import (
    OpenRouterClient,
    LLMResponse
)
from labeling.response_parser import (
    decode_json_object,
    ParseOk,
    ParseFallback
)

__all__ = [
    # Cluster naming
    "ClusterNamer",
    "ClusterName",
    "NamingResult",
    # LLM client
    "OpenRouterClient",
    "LLMResponse",
    # Response decoding
    "decode_json_object",
    "ParseOk",
    "ParseFallback",
]
