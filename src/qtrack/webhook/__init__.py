"""Webhook ingestion: envelope validation, result storage and processing."""

from qtrack.webhook.envelope import enrich_result, validate_bulk_envelope, validate_envelope
from qtrack.webhook.processor import WebhookProcessor, WebhookResponse
from qtrack.webhook.store import InMemoryWebhookResultStore, WebhookResultStore, storage_key

__all__ = [
    "validate_envelope",
    "validate_bulk_envelope",
    "enrich_result",
    "WebhookProcessor",
    "WebhookResponse",
    "WebhookResultStore",
    "InMemoryWebhookResultStore",
    "storage_key",
]
