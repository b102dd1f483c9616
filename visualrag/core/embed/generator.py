import logging
from typing import Callable, List, Optional
from visualrag.config.settings import settings
from visualrag.core.embed.base import ImageEmbedder, TextEmbedder
from visualrag.core.errors import EmbeddingUnavailableError, GenerationRequestError
from visualrag.models.document import IMAGE_REGION_TYPES, ImageEmbedding, LayoutPage, TextEmbedding, TextPage
from visualrag.models.task import ProgressMeta

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[float, ProgressMeta], None]

class EmbeddingGenerator:
    """
    Requests page and region embeddings one at a time, in document order.
    After each item the caller is told the fractional progress
    ``base_progress + (index + 1) / total * progress_span``.
    """

    def __init__(self,
                 text_embedder: Optional[TextEmbedder],
                 image_embedder: Optional[ImageEmbedder] = None,
                 max_chars: Optional[int] = None,
                 progress_span: Optional[float] = None):
        self.text_embedder = text_embedder
        self.image_embedder = image_embedder
        self.max_chars = max_chars if max_chars is not None else settings.ingestion.max_embedding_chars
        self.progress_span = progress_span if progress_span is not None else settings.ingestion.progress_span

    def truncate(self, text: str) -> str:
        # Character budget, not token-aware
        return text[:self.max_chars]

    def _progress(self, base_progress: float, index: int, total: int) -> float:
        return base_progress + ((index + 1) / total) * self.progress_span

    async def embed_text_pages(self,
                               pages: List[TextPage],
                               base_progress: float,
                               on_progress: Optional[ProgressCallback] = None) -> List[TextEmbedding]:
        if self.text_embedder is None:
            raise EmbeddingUnavailableError("No text embedding backend configured")

        embeddings = []
        total = len(pages)
        for index, page in enumerate(pages):
            content = self.truncate(page.text)
            vector = await self.text_embedder.embed(content) if content.strip() else []
            embeddings.append(TextEmbedding(
                page_number=page.page_number,
                text=page.text,
                embedding=vector
            ))
            if on_progress:
                on_progress(
                    self._progress(base_progress, index, total),
                    ProgressMeta(page=page.page_number, total_pages=total)
                )

        return embeddings

    async def embed_regions(self,
                            layout_pages: List[LayoutPage],
                            file_path: str,
                            document_id: str,
                            base_progress: float,
                            on_progress: Optional[ProgressCallback] = None) -> List[ImageEmbedding]:
        if self.image_embedder is None:
            raise EmbeddingUnavailableError("No image embedding backend configured")

        regions = [
            r for page in layout_pages for r in page.regions
            if r.type in IMAGE_REGION_TYPES
        ]
        embeddings = []
        total = len(regions)
        for index, region in enumerate(regions):
            try:
                vector = await self.image_embedder.embed_region(file_path, document_id, region)
            except GenerationRequestError as e:
                logger.warning(f"Skipping region {region.id}: {e}")
                vector = []

            if vector:
                embeddings.append(ImageEmbedding(region_id=region.id, embedding=vector))
            if on_progress:
                on_progress(
                    self._progress(base_progress, index, total),
                    ProgressMeta(current_region_index=index, total_regions=total)
                )

        return embeddings
