"""qtrack.server - REST API for webhook ingestion and metrics."""

from qtrack.server.app import create_app

__all__ = ["create_app"]
