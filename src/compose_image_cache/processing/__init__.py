"""Image cache decision logic."""

from .batch import BatchCoordinator, BatchSummary
from .processor import EventRecorder, ImageProcessor

__all__ = ["BatchCoordinator", "BatchSummary", "EventRecorder", "ImageProcessor"]
