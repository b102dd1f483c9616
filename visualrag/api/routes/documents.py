import asyncio
import logging
from fastapi import APIRouter, Depends, Request, HTTPException

from visualrag.storage.base import DocumentStore

router = APIRouter()
logger = logging.getLogger(__name__)

def get_document_store(request: Request) -> DocumentStore:
    return request.app.state.document_store

async def _require_document(document_store: DocumentStore, document_id: str) -> None:
    if await asyncio.to_thread(document_store.get_document, document_id) is None:
        raise HTTPException(status_code=404, detail="Document not found.")

@router.get("/documents/{document_id}/text", summary="Get the stored page texts of a document")
async def get_document_text(document_id: str, document_store: DocumentStore = Depends(get_document_store)):
    await _require_document(document_store, document_id)
    pages = await asyncio.to_thread(document_store.find_text_pages, document_id)
    return {"document_id": document_id, "pages": pages}

@router.get("/documents/{document_id}/regions", summary="Get the pages of a document with their regions in reading order")
async def get_document_regions(document_id: str, document_store: DocumentStore = Depends(get_document_store)):
    await _require_document(document_store, document_id)
    pages = await asyncio.to_thread(document_store.find_pages, document_id)
    regions = await asyncio.to_thread(document_store.find_regions, document_id)

    regions_by_page = {}
    for region in regions:
        regions_by_page.setdefault(region.page_number, []).append(region)

    return {
        "document_id": document_id,
        "pages": [
            {
                "page_number": p.page_number,
                "width": p.width,
                "height": p.height,
                "regions": regions_by_page.get(p.page_number, [])
            }
            for p in pages
        ]
    }
