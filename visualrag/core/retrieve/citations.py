from typing import List, Optional
from visualrag.config.settings import settings
from visualrag.core.retrieve.ranker import SearchRanker
from visualrag.models.query import Citation, CitationResponse, SearchResult

SYSTEM_PROMPT = """You are a document question-answering assistant.
Answer only from the provided passages and keep the answer short and clear.
If the passages do not contain the answer, say that the document does not answer it."""

NO_CONTEXT = "No document passages related to the question were found."

class CitationBuilder:
    """
    Retrieval half of document chat: runs the same search as the search
    endpoint, turns hits into numbered passages for the answering model and
    returns the (page, regions) citations the viewer highlights.
    """

    def __init__(self, ranker: SearchRanker):
        self.ranker = ranker
        self.config = settings.search

    async def build(self, document_id: str, question: str, limit: Optional[int] = None) -> CitationResponse:
        limit = min(limit or self.config.default_limit, self.config.citation_max_limit)
        results = await self.ranker.search(document_id, question, limit)
        context = self.build_context(results)

        return CitationResponse(
            document_id=document_id,
            query=question,
            context=context,
            messages=self.build_messages(question, context),
            citations=[Citation(page_number=r.page_number, region_ids=r.region_ids) for r in results]
        )

    @staticmethod
    def build_context(results: List[SearchResult]) -> str:
        if not results:
            return NO_CONTEXT
        return "\n\n".join(
            f"Passage {i + 1} (page {r.page_number}):\n{r.snippet}"
            for i, r in enumerate(results)
        )

    @staticmethod
    def build_messages(question: str, context: str) -> List[dict]:
        user_content = f"Question: {question}\n\nDocument passages:\n{context}"
        return [
            {"role": "system", "content": SYSTEM_PROMPT},
            {"role": "user", "content": user_content}
        ]
