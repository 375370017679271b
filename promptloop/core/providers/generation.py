"""LiteLLM generation client — one Responses API call per run."""

from __future__ import annotations

import asyncio
import os
from typing import Any

import litellm
from loguru import logger

from promptloop.core.config.schema import DEFAULT_SYSTEM_PROMPT, Config
from promptloop.core.errors import GenerationError
from promptloop.core.providers.base import BaseGenerationClient

# Suppress litellm noise
litellm.suppress_debug_info = True

WEB_SEARCH_TOOL = {"type": "web_search_preview"}


def setup_provider(config: Config) -> None:
    """Set env vars for LiteLLM from config. Call once at startup."""
    _set_key("OPENAI_API_KEY", config.providers.openai.api_key)


class GenerationClient(BaseGenerationClient):
    """Calls the backend with a hard timeout; never returns empty text."""

    def __init__(
        self,
        api_key: str,
        model: str = "openai/gpt-5-mini",
        timeout: float = 60.0,
        instructions: str = DEFAULT_SYSTEM_PROMPT,
        api_base: str | None = None,
    ) -> None:
        self.api_key = api_key
        self.model = model
        self.timeout = timeout
        self.instructions = instructions
        self.api_base = api_base

    @classmethod
    def from_config(cls, config: Config) -> GenerationClient:
        setup_provider(config)
        return cls(
            api_key=config.providers.openai.api_key,
            model=config.generation.model,
            timeout=config.generation.timeout_s,
            instructions=config.generation.system_prompt,
            api_base=config.providers.openai.api_base,
        )

    async def generate(
        self,
        prompt: str,
        allow_web_search: bool = False,
        timeout: float | None = None,
    ) -> str:
        """Run ``prompt`` and return the generated text.

        Raises GenerationError carrying the backend status and body on an
        error response, and on timeout or whitespace-only output.
        """
        limit = timeout or self.timeout
        kwargs: dict[str, Any] = {
            "model": self.model,
            "input": prompt,
            "instructions": self.instructions,
            "api_key": self.api_key,
            "timeout": limit,
        }
        if allow_web_search:
            kwargs["tools"] = [WEB_SEARCH_TOOL]
        if self.api_base:
            kwargs["api_base"] = self.api_base

        try:
            response = await asyncio.wait_for(litellm.aresponses(**kwargs), timeout=limit)
        except asyncio.TimeoutError as e:
            raise GenerationError(f"llm timed out after {limit:g}s") from e
        except Exception as e:
            status = getattr(e, "status_code", None)
            body = str(getattr(e, "message", "") or e)
            logger.error(f"LLM error: {status} {body[:200]}")
            label = f"llm {status}" if status else "llm error"
            raise GenerationError(f"{label}: {body}", status=status, body=body) from e

        text = extract_output_text(response)
        if not text.strip():
            raise GenerationError("empty llm output")
        return text.strip()


def extract_output_text(response: Any) -> str:
    """Read ``output_text``, or join the ``output_text`` parts of message items."""
    direct = _field(response, "output_text")
    if isinstance(direct, str) and direct:
        return direct

    parts: list[str] = []
    for item in _field(response, "output") or []:
        if _field(item, "type") != "message":
            continue
        for content in _field(item, "content") or []:
            if _field(content, "type") == "output_text":
                parts.append(_field(content, "text") or "")
    return "".join(parts)


def _field(obj: Any, name: str) -> Any:
    if isinstance(obj, dict):
        return obj.get(name)
    return getattr(obj, name, None)


def _set_key(env_name: str, value: str) -> None:
    if value:
        os.environ.setdefault(env_name, value)
