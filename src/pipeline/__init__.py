"""Pipeline orchestration components for the tenderLens query pipeline."""

from src.pipeline.orchestrator import DocumentQueryPipeline
from src.pipeline.progress_tracker import ProgressTracker

__all__ = [
    "DocumentQueryPipeline",
    "ProgressTracker",
]
