"""
Extractor - Text extraction for slide decks and PDFs.

Routes each file to a format-specific pipeline:
- .pptx: python-pptx, slide by slide (a broken package is an error)
- .ppt:  printable-ASCII scrape of the binary stream
- .pdf:  tier chain (native parse → pdftotext → OCR), see tiers.py

Every pipeline tolerates partial failure: a PDF that yields no text from
any tier still produces a valid, empty result.
"""

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Iterator, List, Optional

from pptx import Presentation
from pptx.enum.shapes import MSO_SHAPE_TYPE

from .config import get_config, IndexerConfig
from .errors import ExtractionError, ToolUnavailable, UnsupportedFormat, handle_error
from .models import DocumentType, EntryKind, ScanStatus, UnitPreview
from .text import (
    build_previews, clean_text, derive_keywords, has_meaningful_text,
    truncate_snippet,
)
from .tiers import ExtractionTier, default_pdf_tiers


logger = logging.getLogger(__name__)


# Tab, LF, CR and printable ASCII survive; every other byte becomes a space
_LEGACY_TABLE = bytes(
    b if b in (0x09, 0x0A, 0x0D) or 0x20 <= b <= 0x7E else 0x20
    for b in range(256)
)

StatusCallback = Callable[[ScanStatus], None]


@dataclass
class ExtractionResult:
    """Everything extraction contributes to an IndexEntry."""
    kind: EntryKind
    snippet: str = ""
    keywords: List[str] = field(default_factory=list)
    unit_previews: List[UnitPreview] = field(default_factory=list)
    unit_count: Optional[int] = None
    document_type: Optional[DocumentType] = None
    tier: Optional[str] = None             # PDF tier that produced the text
    warnings: List[str] = field(default_factory=list)


def _shape_texts(shape) -> Iterator[str]:
    """Text runs of a shape, descending into groups and tables."""
    if shape.shape_type == MSO_SHAPE_TYPE.GROUP:
        for child in shape.shapes:
            yield from _shape_texts(child)
        return

    if shape.has_text_frame:
        for paragraph in shape.text_frame.paragraphs:
            for run in paragraph.runs:
                if run.text.strip():
                    yield run.text.strip()

    if getattr(shape, "has_table", False):
        for row in shape.table.rows:
            for cell in row.cells:
                if cell.text.strip():
                    yield cell.text.strip()


class Extractor:
    """
    Format router plus the PDF tier chain.

    Tiers are injectable so tests (and machines without poppler) can swap
    in their own strategies.
    """

    def __init__(
        self,
        config: IndexerConfig | None = None,
        pdf_tiers: Optional[List[ExtractionTier]] = None,
    ):
        self.config = config or get_config()
        self.pdf_tiers = pdf_tiers if pdf_tiers is not None else default_pdf_tiers(self.config)

    def kind_for(self, path: Path) -> EntryKind:
        kind = self.config.kind_by_extension.get(Path(path).suffix.lower())
        if kind is None:
            raise UnsupportedFormat(path)
        return EntryKind(kind)

    def extract(self, path: Path, on_status: Optional[StatusCallback] = None) -> ExtractionResult:
        """
        Extract text from one file.

        Raises:
            UnsupportedFormat: extension is not a known kind
            ExtractionError: a modern slide deck could not be opened
            OSError: the file could not be read
        """
        path = Path(path)
        kind = self.kind_for(path)

        if kind is EntryKind.PPTX:
            result = self._extract_pptx(path)
        elif kind is EntryKind.PPT:
            result = self._extract_ppt(path)
        else:
            result = self._extract_pdf(path, on_status)

        logger.debug(
            f"Extracted {path.name}: {len(result.unit_previews)} units, "
            f"{len(result.keywords)} keywords"
            + (f" via {result.tier}" if result.tier else "")
        )
        return result

    # ------------------------------------------------------------------
    # Slide decks
    # ------------------------------------------------------------------

    def _extract_pptx(self, path: Path) -> ExtractionResult:
        if not path.is_file():
            raise FileNotFoundError(f"No such file: {path}")
        try:
            presentation = Presentation(str(path))
        except OSError:
            raise
        except Exception as e:
            raise ExtractionError(f"Cannot open slide deck: {e}") from e

        slides = list(presentation.slides)
        if not slides:
            raise ExtractionError("Slide deck contains no slides")

        previews: List[UnitPreview] = []
        notes: List[str] = []
        for index, slide in enumerate(slides, start=1):
            text = clean_text(" ".join(run for shape in slide.shapes for run in _shape_texts(shape)))
            if text:
                previews.append(UnitPreview(index=index, text=text))
            if slide.has_notes_slide:
                notes.append(slide.notes_slide.notes_text_frame.text)

        combined = " ".join(preview.text for preview in previews)
        # Speaker notes are searchable but never shown as slide text
        keyword_source = " ".join([combined, clean_text(" ".join(notes))])

        return ExtractionResult(
            kind=EntryKind.PPTX,
            snippet=truncate_snippet(combined, self.config.max_snippet_length),
            keywords=derive_keywords(keyword_source, previews, self.config.max_keywords),
            unit_previews=previews,
            unit_count=len(slides),
            document_type=DocumentType.PRESENTATION,
        )

    def _extract_ppt(self, path: Path) -> ExtractionResult:
        data = path.read_bytes()
        text = clean_text(data.translate(_LEGACY_TABLE).decode("ascii"))

        previews: List[UnitPreview] = []
        if has_meaningful_text(text):
            previews.append(UnitPreview(index=1, text=text))
        else:
            text = ""

        return ExtractionResult(
            kind=EntryKind.PPT,
            snippet=truncate_snippet(text, self.config.max_snippet_length),
            keywords=derive_keywords(text, previews, self.config.max_keywords),
            unit_previews=previews,
            document_type=DocumentType.PRESENTATION,
        )

    # ------------------------------------------------------------------
    # PDF tier chain
    # ------------------------------------------------------------------

    def _extract_pdf(self, path: Path, on_status: Optional[StatusCallback]) -> ExtractionResult:
        if not path.is_file():
            raise FileNotFoundError(f"No such file: {path}")

        result = ExtractionResult(kind=EntryKind.PDF)
        landscape: Optional[bool] = None
        keyword_source = ""

        for tier in self.pdf_tiers:
            try:
                tier.check_available()
                if tier.progress_status is not None and on_status is not None:
                    on_status(tier.progress_status)
                output = tier.extract_pages(path)
            except ToolUnavailable as e:
                handle_error(e, path, tier.name)
                result.warnings.append(str(e))
                continue
            except ExtractionError as e:
                handle_error(e, path, tier.name)
                continue

            if result.unit_count is None:
                result.unit_count = output.page_count
            if landscape is None:
                landscape = output.landscape

            previews, combined = build_previews(output.pages)
            if has_meaningful_text(combined):
                result.unit_previews = previews
                result.snippet = truncate_snippet(combined, self.config.max_snippet_length)
                result.tier = tier.name
                if result.unit_count is None:
                    result.unit_count = len(output.pages)
                keyword_source = clean_text(" ".join(output.pages))
                break

            logger.debug(f"Tier {tier.name} found no meaningful text in {path.name}")

        if result.tier is None:
            logger.info(f"No extractable text in {path.name}; indexing as empty")
        else:
            result.keywords = derive_keywords(
                keyword_source, result.unit_previews, self.config.max_keywords
            )

        if landscape is not None:
            result.document_type = DocumentType.PRESENTATION if landscape else DocumentType.BOOK
        return result
