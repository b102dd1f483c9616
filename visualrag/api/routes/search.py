import logging
from fastapi import APIRouter, Depends, Query, Request

from visualrag.config.settings import settings
from visualrag.core.retrieve.citations import CitationBuilder
from visualrag.core.retrieve.ranker import SearchRanker
from visualrag.models.query import CitationResponse, SearchResponse

router = APIRouter()
logger = logging.getLogger(__name__)

def get_search_ranker(request: Request) -> SearchRanker:
    return request.app.state.search_ranker

def get_citation_builder(request: Request) -> CitationBuilder:
    return request.app.state.citation_builder

@router.get("/documents/{document_id}/search", response_model=SearchResponse, summary="Literal full-text search within a document")
async def keyword_search(
    document_id: str,
    q: str = Query(..., min_length=1),
    ranker: SearchRanker = Depends(get_search_ranker)
):
    results = await ranker.keyword_search(document_id, q)
    return SearchResponse(document_id=document_id, query=q, results=results)

@router.get("/documents/{document_id}/search/semantic", response_model=SearchResponse, summary="Keyword-first search with embedding fallback")
async def semantic_search(
    document_id: str,
    q: str = Query(..., min_length=1),
    limit: int | None = Query(default=None, ge=1, le=settings.search.max_limit),
    ranker: SearchRanker = Depends(get_search_ranker)
):
    """
    Search failures never surface as errors: the response carries an empty
    result list instead.
    """
    try:
        results = await ranker.search(document_id, q, limit)
    except Exception:
        logger.exception(f"Semantic search failed for {document_id}")
        results = []
    return SearchResponse(document_id=document_id, query=q, results=results)

@router.get("/documents/{document_id}/citations", response_model=CitationResponse, summary="Retrieve cited passages for answering a question")
async def get_citations(
    document_id: str,
    q: str = Query(..., min_length=1),
    limit: int | None = Query(default=None, ge=1, le=settings.search.citation_max_limit),
    builder: CitationBuilder = Depends(get_citation_builder)
):
    try:
        return await builder.build(document_id, q, limit)
    except Exception:
        logger.exception(f"Citation retrieval failed for {document_id}")
        return CitationResponse(
            document_id=document_id,
            query=q,
            context=builder.build_context([]),
            messages=builder.build_messages(q, builder.build_context([])),
            citations=[]
        )
