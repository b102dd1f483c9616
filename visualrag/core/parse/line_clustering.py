from typing import List, Optional
from visualrag.models.document import Token
from visualrag.config.settings import settings


def sort_reading_order(tokens: List[Token]) -> List[Token]:
    """Top-to-bottom (y descending in PDF space), then left-to-right."""
    return sorted(tokens, key=lambda t: (-t.y, t.x))


def line_text(line: List[Token]) -> str:
    return "".join(t.text for t in line).strip()


class LineClusterer:
    """
    Groups page tokens into visual text lines.

    A token joins the current line when its baseline lies within
    ``page_height * threshold_ratio`` of the running mean baseline of every
    token already placed on that line. Text extraction and layout analysis
    must share one clusterer so their line counts agree.
    """

    def __init__(self, threshold_ratio: Optional[float] = None):
        self.threshold_ratio = (
            threshold_ratio if threshold_ratio is not None
            else settings.ingestion.line_threshold_ratio
        )

    def threshold(self, page_height: float) -> float:
        return (page_height or 1) * self.threshold_ratio

    def cluster(self, tokens: List[Token], page_height: float) -> List[List[Token]]:
        """Returns the non-empty lines of a page in reading order."""
        threshold = self.threshold(page_height)
        lines: List[List[Token]] = []
        current: Optional[List[Token]] = None
        current_y = 0.0

        for token in sort_reading_order(tokens):
            if current is not None and abs(token.y - current_y) <= threshold:
                current.append(token)
                # Incremental mean over all tokens on the line
                current_y = (current_y * (len(current) - 1) + token.y) / len(current)
            else:
                current = [token]
                current_y = token.y
                lines.append(current)

        return [line for line in lines if line_text(line)]
