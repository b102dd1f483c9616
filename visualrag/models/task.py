from datetime import datetime, timezone
from enum import Enum
from typing import Any
from pydantic import BaseModel, Field
from visualrag.models.document import TextPage, LayoutPage, TextEmbedding, ImageEmbedding

class IngestionStage(str, Enum):
    queued = "queued"
    extracting_text = "extracting_text"
    layout_analysis = "layout_analysis"
    generating_text_embeddings = "generating_text_embeddings"
    generating_image_embeddings = "generating_image_embeddings"
    writing_database = "writing_database"
    completed = "completed"
    failed = "failed"

# Progress baseline when a stage is entered
STAGE_BASE_PROGRESS: dict[IngestionStage, float] = {
    IngestionStage.queued: 0.0,
    IngestionStage.extracting_text: 5.0,
    IngestionStage.layout_analysis: 25.0,
    IngestionStage.generating_text_embeddings: 45.0,
    IngestionStage.generating_image_embeddings: 65.0,
    IngestionStage.writing_database: 85.0,
    IngestionStage.completed: 100.0,
}

TERMINAL_STAGES = (IngestionStage.completed, IngestionStage.failed)

class TaskMeta(BaseModel):
    """Per-stage outputs. Each stage fills in its own field exactly once."""
    text_pages: list[TextPage] | None = None
    layout_pages: list[LayoutPage] | None = None
    text_embeddings: list[TextEmbedding] | None = None
    image_embeddings: list[ImageEmbedding] | None = None

    def attach(self, field: str, value: Any) -> None:
        if field not in TaskMeta.model_fields:
            raise KeyError(f"Unknown task meta field: {field}")
        if getattr(self, field) is not None:
            raise ValueError(f"Task meta field '{field}' is already set")
        setattr(self, field, value)

def _now() -> str:
    return datetime.now(timezone.utc).isoformat()

class IngestionTask(BaseModel):
    id: str
    user_id: str
    file_name: str
    file_type: str                   # "pdf" | "image" | "zip"
    source_path: str
    created_at: str = Field(default_factory=_now)
    updated_at: str = Field(default_factory=_now)
    stage: IngestionStage = IngestionStage.queued
    progress: float = 0.0            # 0–100
    error: str | None = None
    meta: TaskMeta = Field(default_factory=TaskMeta)

    @property
    def is_terminal(self) -> bool:
        return self.stage in TERMINAL_STAGES

    def touch(self) -> None:
        self.updated_at = _now()

class ProgressMeta(BaseModel):
    page: int | None = None
    total_pages: int | None = None
    current_region_index: int | None = None
    total_regions: int | None = None

class ProgressEvent(BaseModel):
    task_id: str
    stage: IngestionStage
    progress: float
    message: str | None = None
    meta: ProgressMeta | None = None
