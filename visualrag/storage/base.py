from abc import ABC, abstractmethod
from typing import List, Optional, Tuple
from visualrag.models.document import DocumentRecord, PageRecord, TextPageRecord, VisualRegion

class DocumentStore(ABC):
    @abstractmethod
    def create_document(self, document_id: str, user_id: str, file_name: str) -> DocumentRecord:
        pass

    @abstractmethod
    def get_document(self, document_id: str) -> Optional[DocumentRecord]:
        pass

    @abstractmethod
    def create_page(self, page: PageRecord) -> PageRecord:
        pass

    @abstractmethod
    def create_text_page(self, document_id: str, page_number: int, text: str) -> TextPageRecord:
        pass

    @abstractmethod
    def create_region(self, region: VisualRegion) -> VisualRegion:
        pass

    @abstractmethod
    def find_pages(self, document_id: str) -> List[PageRecord]:
        pass

    @abstractmethod
    def find_text_pages(self,
                        document_id: str,
                        contains: Optional[str] = None,
                        limit: Optional[int] = None) -> List[TextPageRecord]:
        """Text pages in ascending page order, optionally filtered by a case-sensitive substring."""
        pass

    @abstractmethod
    def find_regions(self,
                     document_id: str,
                     page_numbers: Optional[List[int]] = None) -> List[VisualRegion]:
        """Regions ordered by page number, then ascending top edge (y0)."""
        pass

    @abstractmethod
    def save_upload(self, file_name: str, file_bytes: bytes) -> str:
        """Persists an uploaded file and returns its local path."""
        pass

class VectorStore(ABC):
    @abstractmethod
    def upsert_text_embedding(self, document_id: str, text_page_id: str, page_number: int, vector: List[float]) -> None:
        pass

    @abstractmethod
    def upsert_image_embedding(self, document_id: str, region_id: str, page_number: int, vector: List[float]) -> None:
        pass

    @abstractmethod
    def rank_text_pages(self, document_id: str, vector: List[float], limit: int) -> List[Tuple[int, float]]:
        """Returns (page_number, similarity) pairs, best first. similarity = 1 - cosine distance."""
        pass

    @abstractmethod
    def delete_document(self, document_id: str) -> None:
        """Removes every page and region vector of a document."""
        pass
