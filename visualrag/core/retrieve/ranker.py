import asyncio
import logging
from typing import Dict, List, Optional, Tuple
from visualrag.config.settings import settings
from visualrag.core.embed.base import TextEmbedder
from visualrag.core.errors import SearchBackendUnavailableError
from visualrag.models.query import SearchResult
from visualrag.storage.base import DocumentStore, VectorStore

logger = logging.getLogger(__name__)

ELLIPSIS = "…"


def build_snippet(text: str, query: str, window: Optional[int] = None) -> str:
    """
    Cuts ``window`` characters either side of the first case-insensitive hit,
    marking truncated edges with an ellipsis. Without a hit, returns the first
    ``2 * window`` characters.
    """
    window = window if window is not None else settings.search.snippet_window
    idx = text.lower().find(query.lower())
    if idx == -1:
        return text[:window * 2]

    start = max(0, idx - window)
    end = min(len(text), idx + len(query) + window)
    return (
        (ELLIPSIS if start > 0 else "")
        + text[start:end]
        + (ELLIPSIS if end < len(text) else "")
    )


def pick_region_ids(text: str, query: str, region_ids: List[str]) -> List[str]:
    """
    Maps a hit on a page to the regions to highlight.

    ``region_ids`` are the page's regions in reading order, one per text line.
    Without a hit the middle region stands in for the page; with one, the
    line holding the hit plus one line either side is returned.
    """
    if not region_ids:
        return []

    idx = text.lower().find(query.lower())
    if idx == -1:
        return [region_ids[len(region_ids) // 2]]

    last = len(region_ids) - 1
    line_index = text.count("\n", 0, idx)
    start = min(max(0, line_index - 1), last)
    end = max(min(last, line_index + 1), start)
    return region_ids[start:end + 1]


class SearchRanker:
    """
    Two-path page search over one document:
    1. literal, case-sensitive substring match over stored page text;
    2. only when (1) finds nothing, vector similarity between the query
       embedding and stored page embeddings.
    An unavailable or failing embedding backend falls back to the literal
    results instead of raising. Every hit is mapped back onto page regions.
    """

    def __init__(self,
                 document_store: DocumentStore,
                 vector_store: VectorStore,
                 text_embedder: Optional[TextEmbedder]):
        self.document_store = document_store
        self.vector_store = vector_store
        self.text_embedder = text_embedder
        self.config = settings.search

    def clamp_limit(self, limit: Optional[int]) -> int:
        if limit is None:
            return self.config.default_limit
        return max(1, min(limit, self.config.max_limit))

    async def keyword_search(self, document_id: str, query: str, limit: Optional[int] = None) -> List[SearchResult]:
        limit = limit if limit is not None else self.config.keyword_limit
        pages = await asyncio.to_thread(self.document_store.find_text_pages, document_id, query, limit)
        return await self._build_results(document_id, query, [(p.page_number, p.text) for p in pages])

    async def search(self, document_id: str, query: str, limit: Optional[int] = None) -> List[SearchResult]:
        limit = self.clamp_limit(limit)

        keyword_pages = await asyncio.to_thread(self.document_store.find_text_pages, document_id, query, limit)
        keyword_matches = [(p.page_number, p.text) for p in keyword_pages]
        if keyword_matches:
            return await self._build_results(document_id, query, keyword_matches)

        try:
            ranked = await self._rank_by_embedding(document_id, query, limit)
        except SearchBackendUnavailableError as e:
            logger.info(f"Semantic search unavailable for {document_id}: {e}")
            ranked = []

        if not ranked:
            return await self._build_results(document_id, query, keyword_matches)
        return await self._build_results(document_id, query, ranked)

    async def _rank_by_embedding(self, document_id: str, query: str, limit: int) -> List[Tuple[int, str]]:
        if self.text_embedder is None:
            raise SearchBackendUnavailableError("No text embedding backend configured")
        try:
            vector = await self.text_embedder.embed_query(query)
        except Exception as e:
            raise SearchBackendUnavailableError(f"Query embedding failed: {e}") from e
        if not vector:
            raise SearchBackendUnavailableError("Query embedding was empty")

        rows = await asyncio.to_thread(self.vector_store.rank_text_pages, document_id, vector, limit)
        if not rows:
            return []

        pages = await asyncio.to_thread(self.document_store.find_text_pages, document_id)
        text_by_page = {p.page_number: p.text for p in pages}
        return [
            (page_number, text_by_page[page_number])
            for page_number, _similarity in rows
            if page_number in text_by_page
        ]

    async def _build_results(self,
                             document_id: str,
                             query: str,
                             matches: List[Tuple[int, str]]) -> List[SearchResult]:
        if not matches:
            return []

        page_numbers = sorted({page_number for page_number, _ in matches})
        regions = await asyncio.to_thread(self.document_store.find_regions, document_id, page_numbers)
        regions_by_page: Dict[int, List[str]] = {}
        for r in regions:
            regions_by_page.setdefault(r.page_number, []).append(r.id)

        return [
            SearchResult(
                document_id=document_id,
                page_number=page_number,
                snippet=build_snippet(text, query, self.config.snippet_window),
                region_ids=pick_region_ids(text, query, regions_by_page.get(page_number, []))
            )
            for page_number, text in matches
        ]
