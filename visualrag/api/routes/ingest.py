import asyncio
import logging
from fastapi import APIRouter, UploadFile, File, Depends, Header, HTTPException, Request

from visualrag.core.pipeline.ingestion import IngestionPipeline
from visualrag.models.task import IngestionTask
from visualrag.storage.base import DocumentStore

router = APIRouter()
logger = logging.getLogger(__name__)

# Dependencies to get components from app state
def get_ingestion_pipeline(request: Request) -> IngestionPipeline:
    return request.app.state.ingestion_pipeline

def get_document_store(request: Request) -> DocumentStore:
    return request.app.state.document_store

@router.post("/upload", response_model=IngestionTask, summary="Upload a PDF and queue it for ingestion")
async def upload_file(
    file: UploadFile = File(...),
    x_user_id: str | None = Header(default=None),
    pipeline: IngestionPipeline = Depends(get_ingestion_pipeline),
    document_store: DocumentStore = Depends(get_document_store)
):
    """
    1. Saves the upload via the DocumentStore.
    2. Creates an ingestion task; the pipeline worker picks it up in FIFO order.
    3. Returns the queued task immediately.
    """
    if not file.filename or not file.filename.lower().endswith(".pdf"):
        raise HTTPException(status_code=400, detail="Only PDF files are supported.")

    try:
        file_bytes = await file.read()
        if not file_bytes:
            raise HTTPException(status_code=400, detail="Uploaded file is empty.")

        saved_path = await asyncio.to_thread(document_store.save_upload, file.filename, file_bytes)
        task = pipeline.create_task(
            user_id=x_user_id or "anonymous",
            file_name=file.filename,
            file_type="pdf",
            source_path=saved_path
        )
        logger.info(f"Uploaded '{file.filename}' as task {task.id}")
        return task

    except HTTPException:
        raise
    except Exception as e:
        logger.exception(f"Ingestion initiation failed for {file.filename}")
        raise HTTPException(status_code=500, detail=str(e))

    finally:
        await file.close()
