"""Channel base — message framing, chunking and the shared HTTP post."""

from __future__ import annotations

from datetime import datetime, timezone, tzinfo
from typing import Any

import httpx
from loguru import logger

from promptloop.core.errors import DeliveryError


def format_run_title(name: str, at: datetime, tz: tzinfo | None = None) -> str:
    """Header line, e.g. ``[Morning brief] 2026-10-17 09:00``."""
    local = at.astimezone(tz or timezone.utc)
    return f"[{name}] {local:%Y-%m-%d %H:%M}"


def build_message(name: str, text: str, at: datetime, tz: tzinfo | None = None) -> str:
    return f"{format_run_title(name, at, tz)}\n\n{text}"


def chunk_message(text: str, limit: int) -> list[str]:
    """Split into consecutive pieces of at most ``limit`` characters.

    Order is preserved and ``"".join(chunks) == text``. Text within the limit
    (including the empty string) is a single chunk.
    """
    if limit <= 0:
        raise ValueError("limit must be positive")
    if len(text) <= limit:
        return [text]
    return [text[i : i + limit] for i in range(0, len(text), limit)]


async def post_json(
    client: httpx.AsyncClient, url: str, payload: dict[str, Any], channel: str
) -> None:
    """POST ``payload``; any non-2xx status or transport error is a DeliveryError."""
    try:
        resp = await client.post(url, json=payload)
    except (httpx.HTTPError, httpx.InvalidURL) as e:
        raise DeliveryError(f"{channel} request failed: {e}") from e
    if resp.status_code >= 300:
        body = resp.text
        logger.debug(f"{channel} rejected message: {resp.status_code} {body[:200]}")
        raise DeliveryError(
            f"{channel} post failed {resp.status_code}: {body}",
            status=resp.status_code,
            body=body,
        )
