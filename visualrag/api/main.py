import logging
from contextlib import asynccontextmanager
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from visualrag.config.settings import settings
from visualrag.core.embed.embedder import build_image_embedder, build_text_embedder
from visualrag.core.embed.generator import EmbeddingGenerator
from visualrag.core.pipeline.ingestion import IngestionPipeline
from visualrag.core.pipeline.progress import ProgressBroker
from visualrag.core.retrieve.citations import CitationBuilder
from visualrag.core.retrieve.ranker import SearchRanker
from visualrag.storage.file_store import LocalDocumentStore
from visualrag.storage.qdrant_store import QdrantVectorStore

# Configure logging
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

@asynccontextmanager
async def lifespan(app: FastAPI):
    # --- Startup: build the object graph once ---
    logger.info("Initializing VisualRAG storage and pipelines...")

    # 1. Storage implementations
    document_store = LocalDocumentStore()
    vector_store = QdrantVectorStore()

    # 2. Generation backends (either may be None when not configured)
    text_embedder = build_text_embedder(settings)
    image_embedder = build_image_embedder(settings)

    # 3. Pipeline and search
    progress_broker = ProgressBroker()
    ingestion_pipeline = IngestionPipeline(
        document_store=document_store,
        vector_store=vector_store,
        embedding_generator=EmbeddingGenerator(text_embedder, image_embedder),
        progress_publisher=progress_broker
    )
    ingestion_pipeline.start()

    ranker = SearchRanker(document_store, vector_store, text_embedder)

    # 4. Store in app.state for dependency injection
    app.state.document_store = document_store
    app.state.vector_store = vector_store
    app.state.progress_broker = progress_broker
    app.state.ingestion_pipeline = ingestion_pipeline
    app.state.search_ranker = ranker
    app.state.citation_builder = CitationBuilder(ranker)

    logger.info("Initialization complete. All systems ready.")

    yield

    # --- Shutdown ---
    logger.info("Shutting down VisualRAG backend...")
    await ingestion_pipeline.stop()

def create_app() -> FastAPI:
    app = FastAPI(
        title="VisualRAG Insight API",
        description="PDF ingestion with line regions, cited search and progress streaming",
        version="1.0.0",
        lifespan=lifespan
    )

    origins = settings.allowed_origins()
    app.add_middleware(
        CORSMiddleware,
        allow_origins=origins,
        allow_credentials="*" not in origins,
        allow_methods=["GET", "POST", "PUT", "OPTIONS"],
        allow_headers=["Content-Type", "x-user-id"],
    )

    @app.get("/health", tags=["System"])
    def health_check():
        return {"status": "ok"}

    from visualrag.api.routes import ingest, tasks, documents, search

    app.include_router(ingest.router, prefix="/api", tags=["Ingestion"])
    app.include_router(tasks.router, prefix="/api", tags=["Tasks"])
    app.include_router(tasks.ws_router, tags=["Tasks"])
    app.include_router(documents.router, prefix="/api", tags=["Documents"])
    app.include_router(search.router, prefix="/api", tags=["Search"])

    return app

app = create_app()

def run(host: str = "127.0.0.1", port: int = 8000, reload: bool = False) -> None:
    import uvicorn
    uvicorn.run("visualrag.api.main:app", host=host, port=port, reload=reload)

if __name__ == "__main__":
    run()
