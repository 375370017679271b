"""Discord channel — webhook delivery."""

from __future__ import annotations

import httpx
from loguru import logger

from promptloop.core.channels.base import chunk_message, post_json

DISCORD_MAX = 1900


async def send_webhook(client: httpx.AsyncClient, webhook_url: str, text: str) -> int:
    """Post ``text`` to a Discord webhook in order, stopping at the first failure.

    Returns the number of chunks sent.
    """
    chunks = chunk_message(text, DISCORD_MAX)
    for i, chunk in enumerate(chunks, 1):
        await post_json(client, webhook_url, {"content": chunk}, "discord")
        logger.debug(f"Discord chunk {i}/{len(chunks)} sent ({len(chunk)} chars)")
    return len(chunks)
