"""
NeuroCue Common Module

Shared infrastructure for the capture pipelines.
"""

from .config import NeuroCueConfig, load_config
from .llm_client import LLMClient

__all__ = [
    "NeuroCueConfig",
    "load_config",
    "LLMClient",
]
