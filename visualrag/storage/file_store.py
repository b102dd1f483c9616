import os
import json
import threading
import uuid
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional
from visualrag.config.settings import settings
from visualrag.core.errors import PersistenceError
from visualrag.models.document import DocumentRecord, PageRecord, TextPageRecord, VisualRegion
from visualrag.storage.base import DocumentStore

class LocalDocumentStore(DocumentStore):
    """
    Implements DocumentStore using the local disk.
    - One JSON file per document holding its pages, text pages and regions.
    - Stores raw uploads next to it.
    Every create call is written through immediately; there is no transaction
    spanning several calls.
    """

    def __init__(self,
                 documents_path: Optional[str] = None,
                 uploads_path: Optional[str] = None):
        self.documents_path = documents_path or settings.storage.documents_path
        self.uploads_path = uploads_path or settings.storage.uploads_path
        os.makedirs(self.documents_path, exist_ok=True)
        os.makedirs(self.uploads_path, exist_ok=True)
        self._lock = threading.Lock()

    def _path(self, document_id: str) -> str:
        return os.path.join(self.documents_path, f"{document_id}.json")

    def _load(self, document_id: str) -> Optional[Dict[str, Any]]:
        path = self._path(document_id)
        if not os.path.exists(path):
            return None
        try:
            with open(path, "r", encoding="utf-8") as f:
                return json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            raise PersistenceError(f"Could not read document {document_id}: {e}") from e

    def _load_existing(self, document_id: str) -> Dict[str, Any]:
        data = self._load(document_id)
        if data is None:
            raise PersistenceError(f"Document {document_id} does not exist")
        return data

    def _write(self, document_id: str, data: Dict[str, Any]) -> None:
        path = self._path(document_id)
        tmp_path = f"{path}.tmp"
        try:
            with open(tmp_path, "w", encoding="utf-8") as f:
                json.dump(data, f, ensure_ascii=False)
            os.replace(tmp_path, path)
        except OSError as e:
            raise PersistenceError(f"Could not write document {document_id}: {e}") from e

    def create_document(self, document_id: str, user_id: str, file_name: str) -> DocumentRecord:
        record = DocumentRecord(
            id=document_id,
            user_id=user_id,
            file_name=file_name,
            created_at=datetime.now(timezone.utc).isoformat()
        )
        with self._lock:
            if self._load(document_id) is not None:
                raise PersistenceError(f"Document {document_id} already exists")
            self._write(document_id, {
                "document": record.model_dump(),
                "pages": [],
                "text_pages": [],
                "regions": []
            })
        return record

    def get_document(self, document_id: str) -> Optional[DocumentRecord]:
        with self._lock:
            data = self._load(document_id)
        return DocumentRecord(**data["document"]) if data else None

    def create_page(self, page: PageRecord) -> PageRecord:
        with self._lock:
            data = self._load_existing(page.document_id)
            data["pages"].append(page.model_dump())
            self._write(page.document_id, data)
        return page

    def create_text_page(self, document_id: str, page_number: int, text: str) -> TextPageRecord:
        record = TextPageRecord(
            id=str(uuid.uuid4()),
            document_id=document_id,
            page_number=page_number,
            text=text
        )
        with self._lock:
            data = self._load_existing(document_id)
            data["text_pages"].append(record.model_dump())
            self._write(document_id, data)
        return record

    def create_region(self, region: VisualRegion) -> VisualRegion:
        with self._lock:
            data = self._load_existing(region.document_id)
            data["regions"].append(region.model_dump())
            self._write(region.document_id, data)
        return region

    def find_pages(self, document_id: str) -> List[PageRecord]:
        with self._lock:
            data = self._load(document_id)
        if not data:
            return []
        pages = [PageRecord(**p) for p in data["pages"]]
        return sorted(pages, key=lambda p: p.page_number)

    def find_text_pages(self,
                        document_id: str,
                        contains: Optional[str] = None,
                        limit: Optional[int] = None) -> List[TextPageRecord]:
        with self._lock:
            data = self._load(document_id)
        if not data:
            return []

        pages = sorted(
            (TextPageRecord(**p) for p in data["text_pages"]),
            key=lambda p: p.page_number
        )
        if contains is not None:
            pages = [p for p in pages if contains in p.text]
        if limit is not None:
            pages = pages[:limit]
        return pages

    def find_regions(self,
                     document_id: str,
                     page_numbers: Optional[List[int]] = None) -> List[VisualRegion]:
        with self._lock:
            data = self._load(document_id)
        if not data:
            return []

        regions = [VisualRegion(**r) for r in data["regions"]]
        if page_numbers is not None:
            wanted = set(page_numbers)
            regions = [r for r in regions if r.page_number in wanted]
        return sorted(regions, key=lambda r: (r.page_number, r.bbox.y0))

    def save_upload(self, file_name: str, file_bytes: bytes) -> str:
        safe_name = os.path.basename(file_name) or "upload.pdf"
        path = os.path.join(self.uploads_path, f"{uuid.uuid4().hex}-{safe_name}")
        with open(path, "wb") as f:
            f.write(file_bytes)
        return path
