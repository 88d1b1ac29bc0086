"""kiosk-rag: retrieval and ingestion core for a resource-navigator kiosk."""

__version__ = "0.1.0"
