"""PDF text-layer extraction with a rasterized fallback for scanned documents.

pdfplumber returns words with coordinates. Words are regrouped into lines
by their rounded ``top`` coordinate and ordered left to right, which brings
back the row structure of roster tables that a plain text dump loses.

Two renderings of each line are kept:

* ``text``: single-spaced, for classification and for the model
* ``layout_text``: a wide horizontal gap between two words becomes a double
  space. Rosters separate surname from given names this way, and the
  heuristic grammars rely on it.
"""

import asyncio
import re
import time
from dataclasses import dataclass, field
from io import BytesIO
from itertools import groupby
from typing import Dict, List, Optional, Tuple

import pdfplumber

from aportes.core.config import settings
from aportes.utils.logging import get_logger

LOGGER = get_logger(__name__)

# Gap (in multiples of the average glyph width) that counts as a column break
WIDE_GAP_FACTOR = 1.5

_SPACES_RE = re.compile(r"[ \t\f\v]+")
_MULTI_SPACE_RE = re.compile(r"\s{2,}")


@dataclass
class ExtractionResult:
    """Text layer of a PDF, or page images when there is none."""

    has_text: bool
    text: str = ""
    layout_text: str = ""
    page_images: List[bytes] = field(default_factory=list)
    page_count: int = 0

    @property
    def is_empty(self) -> bool:
        return not self.has_text and not self.page_images


def clean_text_for_ai(text: str) -> str:
    """Collapse runs of spaces and drop blank lines before sending to a model."""
    lines = (_SPACES_RE.sub(" ", line).strip() for line in (text or "").splitlines())
    return "\n".join(line for line in lines if line)


def _line_layout(words: List[Dict]) -> str:
    """Join the words of one visual line, keeping wide gaps as double spaces."""
    parts: List[str] = []
    previous: Optional[Dict] = None
    for word in words:
        if previous is not None:
            text = previous["text"]
            glyph_width = (previous["x1"] - previous["x0"]) / max(len(text), 1)
            gap = word["x0"] - previous["x1"]
            parts.append("  " if gap > glyph_width * WIDE_GAP_FACTOR else " ")
        parts.append(word["text"])
        previous = word
    return "".join(parts).strip()


def words_to_lines(words: List[Dict]) -> List[str]:
    """Group pdfplumber words into layout lines, top to bottom."""
    ordered = sorted(words, key=lambda w: (round(w["top"]), w["x0"]))
    lines = []
    for _, group in groupby(ordered, key=lambda w: round(w["top"])):
        line = _line_layout(list(group))
        if line:
            lines.append(line)
    return lines


class ContentExtractor:
    """Pulls the text layer out of a PDF, rasterizing pages when it is missing."""

    def __init__(self, min_text_length: Optional[int] = None, raster_dpi: Optional[int] = None):
        self.min_text_length = min_text_length or settings.pipeline.min_text_length
        self.raster_dpi = raster_dpi or settings.pipeline.raster_dpi

    async def extract(self, data: bytes) -> ExtractionResult:
        """Extract text, or page images for scanned documents.

        Never raises: an unreadable PDF yields an empty result and callers
        decide how to fall back.

        Args:
            data: Raw PDF bytes

        Returns:
            ExtractionResult with either text or page images
        """
        start_time = time.time()

        try:
            layout_pages, page_count = await asyncio.to_thread(self._read_text_layer, data)
        except Exception as e:
            LOGGER.error(
                f"Text layer extraction failed: {e}",
                extra={"size_bytes": len(data), "error_type": type(e).__name__},
                exc_info=True
            )
            layout_pages, page_count = [], 0

        layout_text = "\n".join(layout_pages)
        text = "\n".join(_MULTI_SPACE_RE.sub(" ", line) for line in layout_text.splitlines())

        if len(text.strip()) >= self.min_text_length:
            LOGGER.info(
                f"Text layer extracted in {time.time() - start_time:.2f}s",
                extra={"page_count": page_count, "text_length": len(text)}
            )
            return ExtractionResult(has_text=True, text=text, layout_text=layout_text, page_count=page_count)

        LOGGER.info(
            "Text layer missing or too short, rasterizing pages",
            extra={"text_length": len(text.strip()), "min_text_length": self.min_text_length}
        )
        try:
            images = await asyncio.to_thread(self._rasterize, data)
        except Exception as e:
            LOGGER.error(f"Rasterization failed: {e}", extra={"dpi": self.raster_dpi}, exc_info=True)
            images = []

        return ExtractionResult(
            has_text=False,
            text=text,
            layout_text=layout_text,
            page_images=images,
            page_count=page_count or len(images),
        )

    def _read_text_layer(self, data: bytes) -> Tuple[List[str], int]:
        lines: List[str] = []
        with pdfplumber.open(BytesIO(data)) as pdf:
            for page in pdf.pages:
                words = page.extract_words()
                lines.extend(words_to_lines(words))
            return lines, len(pdf.pages)

    def _rasterize(self, data: bytes) -> List[bytes]:
        images: List[bytes] = []
        with pdfplumber.open(BytesIO(data)) as pdf:
            for page_num, page in enumerate(pdf.pages, start=1):
                buffer = BytesIO()
                page.to_image(resolution=self.raster_dpi).original.save(buffer, format="PNG")
                images.append(buffer.getvalue())
                LOGGER.debug(f"Rasterized page {page_num}", extra={"bytes": len(images[-1])})
        return images
