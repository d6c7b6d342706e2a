"""
Infrastructure layer for external integrations.

This module contains clients for external services: the ClickHouse HTTP
interface and the OpenRouter LLM provider.
"""

from .clickhouse_client import ClickHouseClient, StoreQueryResult
from .llm_client import LLMClient

__all__ = ["ClickHouseClient", "LLMClient", "StoreQueryResult"]
