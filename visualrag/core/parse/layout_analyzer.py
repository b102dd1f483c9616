import math
import uuid
from typing import List, Optional
from visualrag.config.settings import settings
from visualrag.core.parse.line_clustering import LineClusterer
from visualrag.core.parse.pdf_reader import PDFTokenReader
from visualrag.models.document import LayoutPage, NormalizedBBox, PageTokens, Token, VisualRegion


def _clamp(value: float) -> float:
    return min(1.0, max(0.0, value))


class LayoutAnalyzer:
    """
    Turns every clustered text line into a normalized bounding-box region.

    Geometry is computed in PDF space (y up): min/max over each token's
    (x, x + width, y, y + height), divided by the page size, padded vertically
    and clamped to [0, 1]. The box is then flipped to a top-left origin so
    y0 is the top edge and ascending y0 follows reading order.

    Region classification (figure/table/chart) is not performed; every region
    is tagged "other".
    """

    def __init__(self,
                 reader: Optional[PDFTokenReader] = None,
                 clusterer: Optional[LineClusterer] = None,
                 padding_ratio: Optional[float] = None):
        self.reader = reader or PDFTokenReader()
        self.clusterer = clusterer or LineClusterer()
        self.padding_ratio = (
            padding_ratio if padding_ratio is not None
            else settings.ingestion.region_padding_ratio
        )

    def analyze(self, file_path: str, document_id: str) -> List[LayoutPage]:
        return [self.analyze_page(p, document_id) for p in self.reader.read(file_path)]

    def analyze_page(self, page: PageTokens, document_id: str) -> LayoutPage:
        regions = []
        for line in self.clusterer.cluster(page.tokens, page.height):
            bbox = self._line_bbox(line, page.width, page.height)
            if bbox is None:
                continue
            regions.append(VisualRegion(
                id=str(uuid.uuid4()),
                document_id=document_id,
                page_number=page.page_number,
                type="other",
                bbox=bbox
            ))

        return LayoutPage(
            page_number=page.page_number,
            width=page.width,
            height=page.height,
            regions=regions
        )

    def _line_bbox(self, line: List[Token], page_width: float, page_height: float) -> Optional[NormalizedBBox]:
        width = page_width or 1
        height = page_height or 1

        min_x = min(min(t.x, t.x + t.width) for t in line)
        max_x = max(max(t.x, t.x + t.width) for t in line)
        min_y = min(min(t.y, t.y + t.height) for t in line)
        max_y = max(max(t.y, t.y + t.height) for t in line)
        if not all(math.isfinite(v) for v in (min_x, max_x, min_y, max_y)):
            return None

        padding = height * self.padding_ratio
        x0 = _clamp(min_x / width)
        x1 = _clamp(max_x / width)
        bottom = _clamp((min_y - padding) / height)
        top = _clamp((max_y + padding) / height)

        return NormalizedBBox(x0=x0, y0=1.0 - top, x1=x1, y1=1.0 - bottom)
