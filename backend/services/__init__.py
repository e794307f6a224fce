"""
Co-pilot Services - Shared infrastructure services.

- llm_client: OpenAI-compatible text generation with timeouts, retries and cancellation
- json_repair: Turning free-form model output into JSON values
- context_provider: Employee, meeting, profile, agreement and history reads
"""

from .llm_client import TextGenerationClient, get_text_client
from .context_provider import ContextProvider, InMemoryContextProvider, get_context_provider

__all__ = [
    "TextGenerationClient",
    "get_text_client",
    "ContextProvider",
    "InMemoryContextProvider",
    "get_context_provider",
]
