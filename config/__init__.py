"""
Configuration module for Legacy Document Clustering.
"""
from config.settings import Settings, get_settings
from config.api_config import APIConfig, LLM_MODELS

__all__ = ["Settings", "get_settings", "APIConfig", "LLM_MODELS"]
