"""
LLM integration: chat completions client and the services built on it.
"""

from .client import LLMClient, normalize_api_base
from .services import LLMExtractionService, LLMTutoringService

__all__ = [
    "LLMClient",
    "LLMExtractionService",
    "LLMTutoringService",
    "normalize_api_base",
]
