"""
Logging configuration for the Hydrus Auto-Tagger.
"""

import logging
import threading
from typing import Any, Dict, Optional
from rich.logging import RichHandler
from .config import settings


def setup_logging(level: Optional[str] = None) -> None:
    """Configure clean, simple logging output."""

    logging.basicConfig(
        format="%(message)s",
        level=getattr(logging, level or settings.log_level),
        handlers=[RichHandler(
            rich_tracebacks=True,
            show_time=True,
            show_path=False,
            show_level=False,
            markup=True
        )],
        force=True  # Override any existing configuration
    )

    # Silence noisy third-party loggers
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)
    logging.getLogger("aiohttp.access").setLevel(logging.WARNING)
    logging.getLogger("PIL").setLevel(logging.WARNING)
    logging.getLogger("onnxruntime").setLevel(logging.WARNING)


def get_logger(name: str):
    """Get a standard logger instance."""
    return logging.getLogger(name)


class MetricsLogger:
    """Logger for tracking processing metrics across worker threads."""

    def __init__(self):
        self.logger = get_logger("metrics")
        self._lock = threading.Lock()
        self.metrics: Dict[str, Any] = {
            "images_processed": 0,
            "tags_assigned": 0,
            "failures": 0,
            "processing_time": 0.0,
            "cycles": 0,
        }

    def log_image_processed(self, file_hash: str, tags_count: int, processing_time: float) -> None:
        """Log a successfully processed image."""
        with self._lock:
            self.metrics["images_processed"] += 1
            self.metrics["tags_assigned"] += tags_count
            self.metrics["processing_time"] += processing_time
            processed = self.metrics["images_processed"]
            assigned = self.metrics["tags_assigned"]

        # Only log individual images at DEBUG level to avoid spam
        self.logger.debug(
            f"Image processed: {file_hash} | Tags: {tags_count} | Time: {processing_time:.3f}s | "
            f"Total: {processed} images, {assigned} tags"
        )

    def log_image_failure(self, file_hash: str, error: str) -> None:
        """Log a failed image."""
        with self._lock:
            self.metrics["failures"] += 1

        self.logger.warning(f"Image processing failed: {file_hash} | Error: {error}")

    def log_cycle(self) -> None:
        """Count one daemon cycle."""
        with self._lock:
            self.metrics["cycles"] += 1

    def get_metrics(self) -> Dict[str, Any]:
        """Get current metrics."""
        with self._lock:
            return self.metrics.copy()
