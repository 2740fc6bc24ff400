"""Core module initialization."""

from wafaudit.core.config import Settings, get_settings
from wafaudit.core.retry import (
    ARM_FETCH_POLICY,
    GRAPH_API_POLICY,
    RESOURCE_GRAPH_POLICY,
    RetryPolicy,
    is_retryable_error,
    retry_with_backoff,
)

__all__ = [
    # Config
    "Settings",
    "get_settings",
    # Retry
    "RetryPolicy",
    "retry_with_backoff",
    "is_retryable_error",
    "ARM_FETCH_POLICY",
    "RESOURCE_GRAPH_POLICY",
    "GRAPH_API_POLICY",
]
