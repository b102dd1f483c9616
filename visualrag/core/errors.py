class VisualRAGError(Exception):
    """Base error for all VisualRAG exceptions."""


class TaskNotFoundError(VisualRAGError):
    """Raised when a task id is unknown to the pipeline."""


class StageExecutionError(VisualRAGError):
    """Raised when an ingestion stage fails; the task becomes failed."""

    def __init__(self, stage: str, message: str):
        super().__init__(f"{stage}: {message}")
        self.stage = stage
        self.message = message


class EmbeddingUnavailableError(VisualRAGError):
    """Raised when no embedding backend is configured."""


class SearchBackendUnavailableError(VisualRAGError):
    """Raised when the query embedding cannot be produced."""


class GenerationRequestError(VisualRAGError):
    """Raised when a request to the generation backend keeps failing."""


class PersistenceError(VisualRAGError):
    """Raised when the document store rejects a write or cannot be read."""
