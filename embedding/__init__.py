"""
Embedding module for Legacy Document Clustering.
Handles OpenAI embedding generation for documents.
"""
from embedding.openai_embedder import OpenAIEmbedder
from embedding.batch_processor import EmbeddingStage, EmbeddingProgress

__all__ = ["OpenAIEmbedder", "EmbeddingStage", "EmbeddingProgress"]
