from abc import ABC, abstractmethod
from typing import List
from visualrag.models.document import VisualRegion

class TextEmbedder(ABC):
    @abstractmethod
    async def embed(self, text: str) -> List[float]:
        """Returns the embedding of a passage, or an empty list if none was produced."""
        pass

    async def embed_query(self, query: str) -> List[float]:
        return await self.embed(query)

class ImageEmbedder(ABC):
    @abstractmethod
    async def embed_region(self, file_path: str, document_id: str, region: VisualRegion) -> List[float]:
        """Returns the embedding of a page region, or an empty list if the backend declined."""
        pass
