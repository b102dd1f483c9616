from pydantic import BaseModel, Field

REGION_TYPES = ("figure", "table", "chart", "image", "other")
IMAGE_REGION_TYPES = ("figure", "table", "image")

class Token(BaseModel):
    text: str
    x: float                         # baseline x, PDF space
    y: float                         # baseline y, PDF space (grows upward)
    width: float = 0.0
    height: float = 0.0

class PageTokens(BaseModel):
    page_number: int
    width: float
    height: float
    tokens: list[Token]

class TextPage(BaseModel):
    page_number: int
    width: float
    height: float
    text: str                        # lines joined by "\n"

class NormalizedBBox(BaseModel):
    x0: float
    y0: float
    x1: float
    y1: float

class VisualRegion(BaseModel):
    id: str
    document_id: str
    page_number: int
    type: str = "other"              # one of REGION_TYPES
    bbox: NormalizedBBox

class LayoutPage(BaseModel):
    page_number: int
    width: float
    height: float
    regions: list[VisualRegion] = Field(default_factory=list)

class TextEmbedding(BaseModel):
    page_number: int
    text: str
    embedding: list[float]

class ImageEmbedding(BaseModel):
    region_id: str
    embedding: list[float]

class DocumentRecord(BaseModel):
    id: str
    user_id: str
    file_name: str
    created_at: str

class PageRecord(BaseModel):
    document_id: str
    page_number: int
    width: float
    height: float

class TextPageRecord(BaseModel):
    id: str
    document_id: str
    page_number: int
    text: str
