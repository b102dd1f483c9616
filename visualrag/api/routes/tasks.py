import logging
from fastapi import APIRouter, Depends, HTTPException, Request, WebSocket, WebSocketDisconnect, status

from visualrag.core.errors import TaskNotFoundError
from visualrag.core.pipeline.ingestion import IngestionPipeline
from visualrag.models.task import IngestionTask, TERMINAL_STAGES

router = APIRouter()
ws_router = APIRouter()
logger = logging.getLogger(__name__)

def get_ingestion_pipeline(request: Request) -> IngestionPipeline:
    return request.app.state.ingestion_pipeline

def _require_task(pipeline: IngestionPipeline, task_id: str) -> IngestionTask:
    try:
        return pipeline.require_task(task_id)
    except TaskNotFoundError:
        raise HTTPException(status_code=404, detail="Task not found.")

@router.get("/tasks/{task_id}", response_model=IngestionTask, summary="Get the current state of an ingestion task")
def get_task(task_id: str, pipeline: IngestionPipeline = Depends(get_ingestion_pipeline)):
    return _require_task(pipeline, task_id)

@router.get("/tasks/{task_id}/text", summary="Get the extracted text pages of a task")
def get_task_text(task_id: str, pipeline: IngestionPipeline = Depends(get_ingestion_pipeline)):
    task = _require_task(pipeline, task_id)
    if task.meta.text_pages is None:
        raise HTTPException(status_code=404, detail="Text not extracted yet.")
    return {"task_id": task.id, "pages": task.meta.text_pages}

@router.get("/tasks/{task_id}/layout", summary="Get the layout regions of a task")
def get_task_layout(task_id: str, pipeline: IngestionPipeline = Depends(get_ingestion_pipeline)):
    task = _require_task(pipeline, task_id)
    if task.meta.layout_pages is None:
        raise HTTPException(status_code=404, detail="Layout not analyzed yet.")
    return {"task_id": task.id, "pages": task.meta.layout_pages}

@ws_router.websocket("/ws/tasks/{task_id}")
async def stream_task_progress(websocket: WebSocket, task_id: str):
    """
    Streams progress events for one task until it completes or fails.
    The latest known event is sent first so late joiners see the current stage.
    """
    pipeline: IngestionPipeline = websocket.app.state.ingestion_pipeline
    broker = websocket.app.state.progress_broker

    await websocket.accept()
    if pipeline.get_task(task_id) is None:
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION, reason="Task not found")
        return

    queue = broker.subscribe(task_id)
    try:
        while True:
            event = await queue.get()
            await websocket.send_json(event.model_dump(mode="json"))
            if event.stage in TERMINAL_STAGES:
                break
        await websocket.close()
    except WebSocketDisconnect:
        logger.debug(f"[{task_id}] Progress subscriber disconnected")
    finally:
        broker.unsubscribe(task_id, queue)
