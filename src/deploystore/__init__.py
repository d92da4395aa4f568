"""deploystore: content-addressed ingestion and garbage collection for site deployments."""

__version__ = "0.1.0"
