"""Text-generation providers."""

from promptloop.core.providers.base import BaseGenerationClient
from promptloop.core.providers.generation import GenerationClient

__all__ = ["BaseGenerationClient", "GenerationClient"]
