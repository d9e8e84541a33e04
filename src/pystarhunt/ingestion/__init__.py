"""Ingestion layer.

This package contains the adapters that turn received bytes (broadcast
messages, legacy API responses) into typed records.
"""

__all__: list[str] = []
