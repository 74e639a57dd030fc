"""Monitoring and observability package."""
from .logging import get_logger, setup_logging
from .metrics import MetricsCollector, metrics

__all__ = ["metrics", "MetricsCollector", "setup_logging", "get_logger"]
