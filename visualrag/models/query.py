from pydantic import BaseModel, Field

class SearchResult(BaseModel):
    document_id: str
    page_number: int
    snippet: str
    region_ids: list[str] = Field(default_factory=list)   # reading order

class SearchResponse(BaseModel):
    document_id: str
    query: str
    results: list[SearchResult]

class Citation(BaseModel):
    page_number: int
    region_ids: list[str]

class CitationResponse(BaseModel):
    document_id: str
    query: str
    context: str                     # passages handed to the answering model
    messages: list[dict]             # chat messages ready for a completion call
    citations: list[Citation]
