import logging
import threading
from typing import List, Optional, Tuple
from qdrant_client import QdrantClient
from qdrant_client.http import models as rest
from visualrag.config.settings import settings
from visualrag.storage.base import VectorStore

logger = logging.getLogger(__name__)


def _document_filter(document_id: str) -> rest.Filter:
    return rest.Filter(
        must=[
            rest.FieldCondition(
                key="document_id",
                match=rest.MatchValue(value=document_id)
            )
        ]
    )


class QdrantVectorStore(VectorStore):
    """
    Implements VectorStore using Qdrant in local (on-disk) or in-memory mode.
    Page and region vectors live in separate collections, both with COSINE
    distance, so a query score is directly 1 - cosine distance.
    Collections are created on first write, sized to the first vector seen.
    """

    def __init__(self, client: Optional[QdrantClient] = None):
        self.config = settings.storage
        if client is None:
            if self.config.qdrant_mode == "memory":
                client = QdrantClient(":memory:")
            else:
                client = QdrantClient(path=self.config.qdrant_path)
        self.client = client
        self.text_collection = self.config.text_collection
        self.image_collection = self.config.image_collection
        # The embedded client is not safe for concurrent use from worker threads
        self._lock = threading.Lock()

    def collection_exists(self, name: str) -> bool:
        collections = self.client.get_collections().collections
        return any(c.name == name for c in collections)

    def _ensure_collection(self, name: str, size: int) -> None:
        if self.collection_exists(name):
            return
        logger.info(f"Creating Qdrant collection: {name} (dim={size})")
        self.client.create_collection(
            collection_name=name,
            vectors_config=rest.VectorParams(
                size=size,
                distance=rest.Distance.COSINE
            )
        )

    def _upsert(self, collection: str, point_id: str, vector: List[float], payload: dict) -> None:
        if not vector:
            return
        with self._lock:
            self._ensure_collection(collection, len(vector))
            self.client.upsert(
                collection_name=collection,
                points=[rest.PointStruct(id=point_id, vector=vector, payload=payload)]
            )

    def upsert_text_embedding(self, document_id: str, text_page_id: str, page_number: int, vector: List[float]) -> None:
        self._upsert(self.text_collection, text_page_id, vector, {
            "document_id": document_id,
            "text_page_id": text_page_id,
            "page_number": page_number
        })

    def upsert_image_embedding(self, document_id: str, region_id: str, page_number: int, vector: List[float]) -> None:
        self._upsert(self.image_collection, region_id, vector, {
            "document_id": document_id,
            "region_id": region_id,
            "page_number": page_number
        })

    def rank_text_pages(self, document_id: str, vector: List[float], limit: int) -> List[Tuple[int, float]]:
        with self._lock:
            if not self.collection_exists(self.text_collection):
                return []
            results = self.client.query_points(
                collection_name=self.text_collection,
                query=vector,
                limit=limit,
                query_filter=_document_filter(document_id),
                with_payload=True
            ).points

        return [
            (int(r.payload["page_number"]), float(r.score))
            for r in results
            if r.payload and "page_number" in r.payload
        ]

    def delete_document(self, document_id: str) -> None:
        with self._lock:
            for collection in (self.text_collection, self.image_collection):
                if not self.collection_exists(collection):
                    continue
                self.client.delete(
                    collection_name=collection,
                    points_selector=rest.FilterSelector(filter=_document_filter(document_id))
                )
        logger.info(f"Deleted vectors for document {document_id}")
