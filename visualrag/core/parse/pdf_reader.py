import logging
from typing import List
import fitz  # PyMuPDF
from visualrag.models.document import PageTokens, Token

logger = logging.getLogger(__name__)

class PDFTokenReader:
    """
    Reads positioned text runs (spans) from every page of a PDF using PyMuPDF.

    PyMuPDF reports coordinates with the origin at the top-left corner. Tokens are
    converted to PDF user space (origin bottom-left, y growing upward) so that
    the line clustering works on baseline positions the way a PDF viewer lays
    them out: x is the span origin, y is the baseline measured from the bottom.
    """

    def read(self, file_path: str) -> List[PageTokens]:
        doc = fitz.open(file_path)
        pages = []
        try:
            for page_index, page in enumerate(doc):
                pages.append(self._read_page(page, page_index + 1))
        finally:
            doc.close()

        logger.debug(f"Read {len(pages)} pages from {file_path}")
        return pages

    def _read_page(self, page, page_number: int) -> PageTokens:
        width = page.rect.width
        height = page.rect.height
        tokens = []

        page_dict = page.get_text("dict")
        for b in page_dict["blocks"]:
            if b["type"] != 0:  # Image block
                continue
            for line in b["lines"]:
                for span in line["spans"]:
                    text = span["text"]
                    if not text:
                        continue
                    x0, y0, x1, y1 = span["bbox"]
                    origin_x, origin_y = span["origin"]
                    tokens.append(Token(
                        text=text,
                        x=origin_x,
                        y=height - origin_y,
                        width=max(0.0, x1 - x0),
                        height=max(0.0, y1 - y0)
                    ))

        return PageTokens(page_number=page_number, width=width, height=height, tokens=tokens)
