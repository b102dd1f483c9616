import os
from typing import List

import fitz
import pytest
from qdrant_client import QdrantClient

from visualrag.core.embed.base import ImageEmbedder, TextEmbedder
from visualrag.core.pipeline.progress import ProgressPublisher
from visualrag.models.document import NormalizedBBox, PageRecord, VisualRegion
from visualrag.models.task import ProgressEvent
from visualrag.storage.file_store import LocalDocumentStore
from visualrag.storage.qdrant_store import QdrantVectorStore

VOCABULARY = ["neural", "network", "harvest", "wheat", "orbit", "planet"]


class RecordingPublisher(ProgressPublisher):
    def __init__(self):
        self.events: List[ProgressEvent] = []

    def publish(self, event: ProgressEvent) -> None:
        self.events.append(event)

    def for_task(self, task_id: str) -> List[ProgressEvent]:
        return [e for e in self.events if e.task_id == task_id]


class KeywordEmbedder(TextEmbedder):
    """Bag-of-words over a tiny vocabulary; deterministic and good enough for cosine ranking."""

    def __init__(self):
        self.inputs: List[str] = []

    async def embed(self, text: str) -> List[float]:
        self.inputs.append(text)
        lowered = text.lower()
        return [float(lowered.count(word)) + 0.01 for word in VOCABULARY]


class FailingEmbedder(TextEmbedder):
    async def embed(self, text: str) -> List[float]:
        raise RuntimeError("backend down")


class FixedImageEmbedder(ImageEmbedder):
    def __init__(self):
        self.regions: List[str] = []

    async def embed_region(self, file_path, document_id, region):
        self.regions.append(region.id)
        return [1.0, 0.0, 0.5]


def write_pdf(path: str, pages: List[List[str]]) -> str:
    """One text line every 30pt from the top of an A4 page."""
    doc = fitz.open()
    for lines in pages:
        page = doc.new_page()
        for i, line in enumerate(lines):
            page.insert_text((50, 60 + i * 30), line, fontsize=12)
    doc.save(path)
    doc.close()
    return path


def seed_document(store: LocalDocumentStore, document_id: str, page_texts: List[str]) -> dict:
    """Stores pages with one region per text line; returns {page_number: [region ids]}."""
    store.create_document(document_id, "tester", "seed.pdf")
    region_ids = {}
    for page_number, text in enumerate(page_texts, start=1):
        store.create_page(PageRecord(document_id=document_id, page_number=page_number, width=600, height=800))
        store.create_text_page(document_id, page_number, text)
        lines = text.split("\n")
        ids = []
        # Insert bottom-up to prove the store orders by top edge
        for line_index in reversed(range(len(lines))):
            region_id = f"{document_id}-p{page_number}-l{line_index}"
            y0 = 0.1 + line_index * 0.05
            store.create_region(VisualRegion(
                id=region_id,
                document_id=document_id,
                page_number=page_number,
                bbox=NormalizedBBox(x0=0.1, y0=y0, x1=0.9, y1=y0 + 0.03)
            ))
            ids.insert(0, region_id)
        region_ids[page_number] = ids
    return region_ids


@pytest.fixture
def make_pdf(tmp_path):
    def _make(pages: List[List[str]], name: str = "sample.pdf") -> str:
        return write_pdf(os.path.join(str(tmp_path), name), pages)
    return _make


@pytest.fixture
def document_store(tmp_path):
    return LocalDocumentStore(
        documents_path=str(tmp_path / "documents"),
        uploads_path=str(tmp_path / "uploads")
    )


@pytest.fixture
def vector_store():
    return QdrantVectorStore(client=QdrantClient(":memory:"))
