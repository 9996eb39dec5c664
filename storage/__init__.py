"""
Storage module for Legacy Document Clustering.
Handles Supabase database operations.
"""
from storage.base import DocumentStore
from storage.supabase_client import SupabaseStore, get_supabase_store
from storage.vector_codec import to_vector_literal, parse_vector_literal

__all__ = [
    "DocumentStore",
    "SupabaseStore",
    "get_supabase_store",
    "to_vector_literal",
    "parse_vector_literal"
]
