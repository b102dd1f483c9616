import asyncio
import logging
import uuid
from typing import Awaitable, Callable, Dict, List, Optional, Tuple
from visualrag.config.settings import settings
from visualrag.core.embed.generator import EmbeddingGenerator
from visualrag.core.errors import EmbeddingUnavailableError, StageExecutionError, TaskNotFoundError
from visualrag.core.parse.layout_analyzer import LayoutAnalyzer
from visualrag.core.parse.line_clustering import LineClusterer
from visualrag.core.parse.text_extractor import TextExtractor
from visualrag.core.pipeline.progress import NullProgressPublisher, ProgressPublisher
from visualrag.models.document import ImageEmbedding, LayoutPage, PageRecord, TextEmbedding, TextPage
from visualrag.models.task import (
    STAGE_BASE_PROGRESS,
    IngestionStage,
    IngestionTask,
    ProgressEvent,
    ProgressMeta,
)
from visualrag.storage.base import DocumentStore, VectorStore

logger = logging.getLogger(__name__)

StageHandler = Callable[[IngestionTask], Awaitable[None]]

class IngestionPipeline:
    """
    Owns ingestion tasks and drives each one through the fixed stage sequence:
    extract text -> layout analysis -> text embeddings -> image embeddings -> write database

    A single worker drains a FIFO queue, so exactly one task runs at a time.
    Any exception raised by a stage marks that task failed; the worker itself
    never stops on a task failure and moves straight on to the next task.
    """

    def __init__(self,
                 document_store: DocumentStore,
                 vector_store: VectorStore,
                 embedding_generator: Optional[EmbeddingGenerator] = None,
                 progress_publisher: Optional[ProgressPublisher] = None,
                 text_extractor: Optional[TextExtractor] = None,
                 layout_analyzer: Optional[LayoutAnalyzer] = None):
        self.document_store = document_store
        self.vector_store = vector_store
        self.embedding_generator = embedding_generator or EmbeddingGenerator(text_embedder=None)
        self.publisher = progress_publisher or NullProgressPublisher()
        self.progress_span = settings.ingestion.progress_span

        # Text and layout must cluster lines identically
        clusterer = LineClusterer()
        self.text_extractor = text_extractor or TextExtractor(clusterer=clusterer)
        self.layout_analyzer = layout_analyzer or LayoutAnalyzer(clusterer=clusterer)

        self.stages: List[Tuple[IngestionStage, StageHandler]] = [
            (IngestionStage.extracting_text, self._extract_text),
            (IngestionStage.layout_analysis, self._analyze_layout),
            (IngestionStage.generating_text_embeddings, self._generate_text_embeddings),
            (IngestionStage.generating_image_embeddings, self._generate_image_embeddings),
            (IngestionStage.writing_database, self._write_database),
        ]

        self._tasks: Dict[str, IngestionTask] = {}
        self._queue: Optional[asyncio.Queue] = None
        self._worker: Optional[asyncio.Task] = None

    def start(self) -> None:
        """Starts the worker on the running event loop. Safe to call twice."""
        if self._queue is None:
            self._queue = asyncio.Queue()
        if self._worker is None or self._worker.done():
            self._worker = asyncio.create_task(self._run_loop(), name="ingestion-worker")
            logger.info("Ingestion worker started")

    async def stop(self) -> None:
        if self._worker is None:
            return
        self._worker.cancel()
        try:
            await self._worker
        except asyncio.CancelledError:
            pass
        self._worker = None
        logger.info("Ingestion worker stopped")

    async def join(self) -> None:
        """Waits until every submitted task has reached a terminal stage."""
        if self._queue is not None:
            await self._queue.join()

    def create_task(self, user_id: str, file_name: str, file_type: str, source_path: str) -> IngestionTask:
        task = IngestionTask(
            id=str(uuid.uuid4()),
            user_id=user_id,
            file_name=file_name,
            file_type=file_type,
            source_path=source_path
        )
        self.submit(task)
        return task.model_copy(deep=True)

    def submit(self, task: IngestionTask) -> None:
        if task.id in self._tasks:
            raise ValueError(f"Task {task.id} was already submitted")
        self.start()
        self._tasks[task.id] = task
        self._emit(task, message="queued")
        self._queue.put_nowait(task)
        logger.info(f"[{task.id}] Queued {task.file_name} ({self._queue.qsize()} waiting)")

    def get_task(self, task_id: str) -> Optional[IngestionTask]:
        task = self._tasks.get(task_id)
        return task.model_copy(deep=True) if task else None

    def require_task(self, task_id: str) -> IngestionTask:
        task = self.get_task(task_id)
        if task is None:
            raise TaskNotFoundError(f"Task {task_id} not found")
        return task

    async def _run_loop(self) -> None:
        while True:
            task = await self._queue.get()
            try:
                await self._run_task(task)
            except Exception:
                logger.exception(f"[{task.id}] Unexpected error outside stage handling")
            finally:
                self._queue.task_done()

    async def _run_task(self, task: IngestionTask) -> None:
        logger.info(f"[{task.id}] Starting ingestion of {task.file_name}")
        try:
            for stage, handler in self.stages:
                self._enter_stage(task, stage)
                try:
                    await handler(task)
                except Exception as e:
                    raise StageExecutionError(stage.value, str(e) or e.__class__.__name__) from e
            self._enter_stage(task, IngestionStage.completed)
            logger.info(f"[{task.id}] Ingestion completed")
        except StageExecutionError as e:
            logger.error(f"[{task.id}] Ingestion failed during {e.stage}: {e.message}", exc_info=e.__cause__)
            task.error = e.message
            task.stage = IngestionStage.failed
            task.touch()
            self._emit(task, message=e.message)

    def _enter_stage(self, task: IngestionTask, stage: IngestionStage) -> None:
        task.stage = stage
        task.progress = max(task.progress, STAGE_BASE_PROGRESS[stage])
        task.touch()
        self._emit(task)

    def _report(self, task: IngestionTask, progress: float, meta: Optional[ProgressMeta] = None) -> None:
        task.progress = max(task.progress, min(progress, 100.0))
        task.touch()
        self._emit(task, meta=meta)

    def _emit(self, task: IngestionTask, message: Optional[str] = None, meta: Optional[ProgressMeta] = None) -> None:
        event = ProgressEvent(
            task_id=task.id,
            stage=task.stage,
            progress=task.progress,
            message=message,
            meta=meta
        )
        try:
            self.publisher.publish(event)
        except Exception as e:
            logger.warning(f"[{task.id}] Progress publish failed: {e}")

    async def _extract_text(self, task: IngestionTask) -> None:
        pages: List[TextPage] = await asyncio.to_thread(self.text_extractor.extract, task.source_path)
        task.meta.attach("text_pages", pages)
        logger.info(f"[{task.id}] Extracted text from {len(pages)} pages")

    async def _analyze_layout(self, task: IngestionTask) -> None:
        if not task.meta.text_pages:
            return
        layout_pages: List[LayoutPage] = await asyncio.to_thread(
            self.layout_analyzer.analyze, task.source_path, task.id
        )
        task.meta.attach("layout_pages", layout_pages)
        region_count = sum(len(p.regions) for p in layout_pages)
        logger.info(f"[{task.id}] Derived {region_count} regions")

    async def _generate_text_embeddings(self, task: IngestionTask) -> None:
        if not task.meta.text_pages:
            return
        base = STAGE_BASE_PROGRESS[IngestionStage.generating_text_embeddings]
        try:
            embeddings = await self.embedding_generator.embed_text_pages(
                task.meta.text_pages,
                base_progress=base,
                on_progress=lambda progress, meta: self._report(task, progress, meta)
            )
        except EmbeddingUnavailableError as e:
            logger.info(f"[{task.id}] Skipping text embeddings: {e}")
            return
        task.meta.attach("text_embeddings", embeddings)

    async def _generate_image_embeddings(self, task: IngestionTask) -> None:
        if not task.meta.layout_pages:
            return
        base = STAGE_BASE_PROGRESS[IngestionStage.generating_image_embeddings]
        try:
            embeddings = await self.embedding_generator.embed_regions(
                task.meta.layout_pages,
                file_path=task.source_path,
                document_id=task.id,
                base_progress=base,
                on_progress=lambda progress, meta: self._report(task, progress, meta)
            )
        except EmbeddingUnavailableError as e:
            logger.info(f"[{task.id}] Skipping image embeddings: {e}")
            return
        if embeddings:
            task.meta.attach("image_embeddings", embeddings)

    async def _write_database(self, task: IngestionTask) -> None:
        text_pages = task.meta.text_pages
        if not text_pages:
            return

        layout_by_page = {p.page_number: p for p in task.meta.layout_pages or []}
        text_by_page = {e.page_number: e for e in task.meta.text_embeddings or []}
        image_by_region = {e.region_id: e for e in task.meta.image_embeddings or []}

        await asyncio.to_thread(
            self.document_store.create_document, task.id, task.user_id, task.file_name
        )

        base = STAGE_BASE_PROGRESS[IngestionStage.writing_database]
        total = len(text_pages)
        for index, page in enumerate(text_pages):
            await asyncio.to_thread(
                self._persist_page,
                task.id,
                page,
                layout_by_page.get(page.page_number),
                text_by_page.get(page.page_number),
                image_by_region
            )
            self._report(
                task,
                base + ((index + 1) / total) * self.progress_span,
                ProgressMeta(page=page.page_number, total_pages=total)
            )
        logger.info(f"[{task.id}] Persisted {total} pages")

    def _persist_page(self,
                      document_id: str,
                      page: TextPage,
                      layout: Optional[LayoutPage],
                      text_embedding: Optional[TextEmbedding],
                      image_by_region: Dict[str, ImageEmbedding]) -> None:
        self.document_store.create_page(PageRecord(
            document_id=document_id,
            page_number=page.page_number,
            width=layout.width if layout else page.width,
            height=layout.height if layout else page.height
        ))
        text_page = self.document_store.create_text_page(document_id, page.page_number, page.text)

        if text_embedding and text_embedding.embedding:
            self.vector_store.upsert_text_embedding(
                document_id, text_page.id, page.page_number, text_embedding.embedding
            )

        if layout is None:
            return
        for region in layout.regions:
            self.document_store.create_region(region)
            image_embedding = image_by_region.get(region.id)
            if image_embedding and image_embedding.embedding:
                self.vector_store.upsert_image_embedding(
                    document_id, region.id, region.page_number, image_embedding.embedding
                )
