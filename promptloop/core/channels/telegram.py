"""Telegram channel — Bot API send helper."""

from __future__ import annotations

import httpx
from loguru import logger

from promptloop.core.channels.base import chunk_message, post_json

TELEGRAM_API = "https://api.telegram.org/bot{token}"
TELEGRAM_MAX = 4000


async def send_message(
    client: httpx.AsyncClient, token: str, chat_id: str, text: str
) -> int:
    """Send ``text`` via sendMessage in order, stopping at the first failure.

    Returns the number of chunks sent.
    """
    url = f"{TELEGRAM_API.format(token=token)}/sendMessage"
    chunks = chunk_message(text, TELEGRAM_MAX)
    for i, chunk in enumerate(chunks, 1):
        await post_json(client, url, {"chat_id": chat_id, "text": chunk}, "telegram")
        logger.debug(
            f"Telegram chunk {i}/{len(chunks)} sent: chat_id={chat_id}, "
            f"token={token[:10]}..."
        )
    return len(chunks)
