"""Delivery channels — Discord webhooks and Telegram bots."""

from promptloop.core.channels.base import build_message, chunk_message
from promptloop.core.channels.dispatcher import DeliveryDispatcher

__all__ = ["DeliveryDispatcher", "build_message", "chunk_message"]
