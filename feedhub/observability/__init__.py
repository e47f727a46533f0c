"""Observability: logging and in-process metrics for the feed hub."""

from feedhub.observability.logger import get_logger
from feedhub.observability.metrics import Metrics

__all__ = ["get_logger", "Metrics"]
