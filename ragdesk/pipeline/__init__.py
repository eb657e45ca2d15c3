"""Background document processing: the status state machine and the worker pool."""

from ragdesk.pipeline.processing_pipeline import ProcessingPipeline
from ragdesk.pipeline.task_queue import TaskQueue

__all__ = [
    "ProcessingPipeline",
    "TaskQueue",
]
