"""Base generation client — strategy pattern interface."""

from __future__ import annotations

import abc


class BaseGenerationClient(abc.ABC):
    """Abstract base for text-generation backends."""

    @abc.abstractmethod
    async def generate(
        self,
        prompt: str,
        allow_web_search: bool = False,
        timeout: float | None = None,
    ) -> str:
        """Return generated text, or raise GenerationError."""
        ...
