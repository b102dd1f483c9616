from typing import List, Optional
from visualrag.core.parse.line_clustering import LineClusterer, line_text
from visualrag.core.parse.pdf_reader import PDFTokenReader
from visualrag.models.document import PageTokens, TextPage

class TextExtractor:
    """
    Produces reading-order plain text per page.
    Each clustered line becomes one row of text; rows are joined with newlines.
    """

    def __init__(self,
                 reader: Optional[PDFTokenReader] = None,
                 clusterer: Optional[LineClusterer] = None):
        self.reader = reader or PDFTokenReader()
        self.clusterer = clusterer or LineClusterer()

    def extract(self, file_path: str) -> List[TextPage]:
        return [self.extract_page(p) for p in self.reader.read(file_path)]

    def extract_page(self, page: PageTokens) -> TextPage:
        lines = self.clusterer.cluster(page.tokens, page.height)
        return TextPage(
            page_number=page.page_number,
            width=page.width,
            height=page.height,
            text="\n".join(line_text(line) for line in lines)
        )
