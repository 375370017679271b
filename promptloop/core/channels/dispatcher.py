"""DeliveryDispatcher — decrypt channel credentials and send generated text."""

from __future__ import annotations

from datetime import datetime, timezone, tzinfo

import httpx
from loguru import logger

from promptloop.core.channels.base import build_message
from promptloop.core.channels.discord import send_webhook
from promptloop.core.channels.telegram import send_message
from promptloop.core.cron.types import Job
from promptloop.core.errors import DeliveryError
from promptloop.core.vault import SecretVault


class DeliveryDispatcher:
    """Routes a job's output to its channel.

    ``discord`` jobs carry ``webhookUrlEnc``; every other kind is treated as
    Telegram and carries ``botTokenEnc`` + ``chatIdEnc``. Chunks go out
    sequentially with no retry, so a failure part-way leaves the earlier
    chunks delivered and the whole delivery reported as failed.
    """

    def __init__(
        self,
        vault: SecretVault,
        timeout_s: float = 30.0,
        tz: tzinfo | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.vault = vault
        self.timeout_s = timeout_s
        self.tz = tz or timezone.utc
        self._transport = transport

    async def deliver(self, job: Job, text: str, now: datetime | None = None) -> int:
        """Send ``text`` with a run-title header. Returns the chunk count."""
        message = build_message(job.name, text, now or datetime.now(timezone.utc), self.tz)
        async with httpx.AsyncClient(
            timeout=httpx.Timeout(self.timeout_s), transport=self._transport
        ) as client:
            if job.channel_type == "discord":
                webhook_url = self._credential(job, "webhookUrlEnc")
                sent = await send_webhook(client, webhook_url, message)
            else:
                token = self._credential(job, "botTokenEnc")
                chat_id = self._credential(job, "chatIdEnc")
                sent = await send_message(client, token, chat_id, message)
        logger.info(f"Job {job.id} delivered via {job.channel_type} ({sent} chunk(s))")
        return sent

    def _credential(self, job: Job, key: str) -> str:
        if not isinstance(job.channel_config, dict):
            raise DeliveryError(f"channel config for job {job.id} is not a JSON object")
        raw = job.channel_config.get(key)
        if not isinstance(raw, str) or not raw:
            raise DeliveryError(f"channel config for job {job.id} is missing {key}")
        return self.vault.decrypt(raw)
