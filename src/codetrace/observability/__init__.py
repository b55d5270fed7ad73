"""Observability — structured logging and run correlation ids."""

from codetrace.observability.logging import correlation_scope, get_correlation_id, setup_logging

__all__ = ["correlation_scope", "get_correlation_id", "setup_logging"]
