"""Concrete implementations of provider interfaces."""

from .alerts.webhook import WebhookAlertSink
from .llm.anthropic import AnthropicAdapter
from .store.postgres import PostgresStore

__all__ = [
    "AnthropicAdapter",
    "PostgresStore",
    "WebhookAlertSink",
]
