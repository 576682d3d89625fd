"""
Structured logging system for the UN jobs cache.

Provides centralized logging with console and file outputs, plus metrics
tracking for monitoring sync and analytics health.
"""

import logging
import sys
from pathlib import Path
from typing import Optional
from datetime import datetime
import json


def _empty_metrics() -> dict:
    return {
        "postings_fetched": 0,
        "postings_processed": 0,
        "postings_skipped": 0,
        "batches_committed": 0,
        "batches_failed": 0,
        "classification_fallbacks": 0,
        "aggregates_cached": 0,
        "aggregates_failed": 0,
        "errors_by_type": {},
        "skip_reasons": {},
    }


class StructuredLogger:
    """
    Centralized logger with support for console and file outputs.
    Tracks metrics for monitoring sync runs.
    """

    def __init__(
        self,
        name: str = "unjobs",
        level: str = "INFO",
        log_dir: Optional[Path] = None,
        enable_file: bool = True,
        enable_console: bool = True,
    ):
        """
        Initialize the structured logger.

        Args:
            name: Logger name
            level: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
            log_dir: Directory for log files (default: logs/)
            enable_file: Write logs to file
            enable_console: Output logs to console
        """
        self.logger = logging.getLogger(name)
        self.logger.setLevel(getattr(logging, level.upper()))
        self.logger.handlers.clear()  # Remove existing handlers

        self.metrics = _empty_metrics()

        # Console handler
        if enable_console:
            console_handler = logging.StreamHandler(sys.stdout)
            console_handler.setLevel(getattr(logging, level.upper()))
            console_formatter = logging.Formatter(
                fmt='%(asctime)s | %(levelname)-8s | %(name)s | %(message)s',
                datefmt='%Y-%m-%d %H:%M:%S'
            )
            console_handler.setFormatter(console_formatter)
            self.logger.addHandler(console_handler)

        # File handler
        if enable_file:
            if log_dir is None:
                log_dir = Path("logs")
            log_dir.mkdir(parents=True, exist_ok=True)

            log_file = log_dir / f"unjobs_{datetime.now().strftime('%Y%m%d')}.log"
            file_handler = logging.FileHandler(log_file, encoding='utf-8')
            file_handler.setLevel(logging.DEBUG)  # Always log everything to file
            file_formatter = logging.Formatter(
                fmt='%(asctime)s | %(levelname)-8s | %(name)s:%(lineno)d | %(message)s',
                datefmt='%Y-%m-%d %H:%M:%S'
            )
            file_handler.setFormatter(file_formatter)
            self.logger.addHandler(file_handler)

    def debug(self, message: str, **kwargs):
        """Log debug message with optional context."""
        self._log(logging.DEBUG, message, kwargs)

    def info(self, message: str, **kwargs):
        """Log info message with optional context."""
        self._log(logging.INFO, message, kwargs)

    def warning(self, message: str, **kwargs):
        """Log warning message with optional context."""
        self._log(logging.WARNING, message, kwargs)

    def error(self, message: str, **kwargs):
        """Log error message with optional context."""
        self._log(logging.ERROR, message, kwargs)

    def critical(self, message: str, **kwargs):
        """Log critical message with optional context."""
        self._log(logging.CRITICAL, message, kwargs)

    def _log(self, level: int, message: str, context: dict):
        """Internal logging method with context."""
        if context:
            message = f"{message} | Context: {json.dumps(context, default=str)}"
        self.logger.log(level, message)

    # Metric tracking methods

    def reset_metrics(self):
        """Clear counters at the start of a sync."""
        self.metrics = _empty_metrics()

    def record_fetch(self, count: int):
        """Record postings read from the source."""
        self.metrics["postings_fetched"] += count

    def record_processed(self, count: int = 1):
        self.metrics["postings_processed"] += count

    def record_skipped(self, reason: str):
        """Record a posting dropped before loading."""
        self.metrics["postings_skipped"] += 1
        reasons = self.metrics["skip_reasons"]
        reasons[reason] = reasons.get(reason, 0) + 1

    def record_batch(self, committed: bool):
        if committed:
            self.metrics["batches_committed"] += 1
        else:
            self.metrics["batches_failed"] += 1

    def record_fallback(self):
        """Record a posting that got the fallback classification."""
        self.metrics["classification_fallbacks"] += 1

    def record_aggregate(self, success: bool):
        if success:
            self.metrics["aggregates_cached"] += 1
        else:
            self.metrics["aggregates_failed"] += 1

    def record_error(self, error_type: str):
        """Count an error by exception type name."""
        errors = self.metrics["errors_by_type"]
        errors[error_type] = errors.get(error_type, 0) + 1

    def get_metrics(self) -> dict:
        """Return current metrics."""
        metrics_copy = self.metrics.copy()
        fetched = metrics_copy["postings_fetched"]
        metrics_copy["processed_rate"] = (
            round(metrics_copy["postings_processed"] / fetched, 3) if fetched else 0
        )
        return metrics_copy

    def log_metrics_summary(self):
        """Log a summary of current metrics."""
        metrics = self.get_metrics()

        self.info("=== Sync Session Metrics ===")
        self.info(
            f"Postings: {metrics['postings_processed']}/{metrics['postings_fetched']} processed "
            f"({metrics['processed_rate'] * 100:.1f}%), {metrics['postings_skipped']} skipped"
        )
        self.info(f"Batches: {metrics['batches_committed']} committed, {metrics['batches_failed']} failed")
        self.info(f"Fallback classifications: {metrics['classification_fallbacks']}")
        self.info(f"Aggregates: {metrics['aggregates_cached']} cached, {metrics['aggregates_failed']} failed")

        if metrics["skip_reasons"]:
            self.info("Skip Reasons:")
            for reason, count in metrics["skip_reasons"].items():
                self.info(f"  {reason}: {count}")

        if metrics["errors_by_type"]:
            self.info("Error Types:")
            for error_type, count in metrics["errors_by_type"].items():
                self.info(f"  {error_type}: {count}")


# Global logger instance
_global_logger: Optional[StructuredLogger] = None


def get_logger(
    name: str = "unjobs",
    level: str = "INFO",
    **kwargs
) -> StructuredLogger:
    """
    Get or create the global logger instance.

    Args:
        name: Logger name
        level: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        **kwargs: Additional arguments passed to StructuredLogger

    Returns:
        StructuredLogger instance
    """
    global _global_logger

    if _global_logger is None:
        _global_logger = StructuredLogger(name=name, level=level, **kwargs)

    return _global_logger


def reset_logger():
    """Reset the global logger (useful for testing)."""
    global _global_logger
    _global_logger = None
