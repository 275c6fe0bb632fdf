"""
Test Configuration - Shared fixtures for slides indexer tests.

Uses pytest fixtures to create isolated test environments: a private
catalog file, generated slide decks (python-pptx) and hand-built PDFs.
External tools are never invoked; PDF fallbacks are fake tiers.
"""

import os
import shutil
import tempfile
import zlib
from pathlib import Path
from typing import Callable, Generator, List, Optional

import pytest
from pptx import Presentation
from pptx.util import Inches

from slides_indexer.config import IndexerConfig, set_config
from slides_indexer.errors import ToolUnavailable
from slides_indexer.models import ScanStatus
from slides_indexer.tiers import ExtractionTier, TierOutput
from slides_indexer.tools import KNOWN_TOOLS, ToolStatus


@pytest.fixture
def temp_dir() -> Generator[Path, None, None]:
    """Create a temporary directory for test files."""
    tmp = tempfile.mkdtemp(prefix="slides_indexer_test_")
    # Resolve to handle macOS /var -> /private/var symlink
    resolved = Path(tmp).resolve()
    yield resolved
    shutil.rmtree(str(resolved), ignore_errors=True)


@pytest.fixture
def docs_dir(temp_dir: Path) -> Path:
    """Directory that gets linked and scanned."""
    docs = temp_dir / "docs"
    docs.mkdir()
    return docs


@pytest.fixture
def test_config(temp_dir: Path) -> IndexerConfig:
    """Create an isolated test configuration."""
    config = IndexerConfig(state_path=temp_dir / "state" / "index.json")
    set_config(config)
    return config


@pytest.fixture
def all_tools() -> ToolStatus:
    """Every external tool reported present (no missing-tool warning)."""
    return ToolStatus({tool: Path("/usr/bin") / tool for tool in KNOWN_TOOLS})


@pytest.fixture
def no_tools() -> ToolStatus:
    return ToolStatus({})


def set_mtime(path: Path, seconds: int) -> None:
    os.utime(path, (seconds, seconds))


@pytest.fixture
def touch() -> Callable[[Path, int], None]:
    """Set a file's mtime to whole seconds so mtime_ms is predictable."""
    return set_mtime


# ---------------------------------------------------------------------------
# Slide decks
# ---------------------------------------------------------------------------

def build_pptx(path: Path, slides: List[str], notes: Optional[List[str]] = None) -> Path:
    presentation = Presentation()
    blank = presentation.slide_layouts[6]
    for index, text in enumerate(slides):
        slide = presentation.slides.add_slide(blank)
        if text:
            box = slide.shapes.add_textbox(Inches(1), Inches(1), Inches(6), Inches(1))
            box.text_frame.text = text
        if notes and index < len(notes) and notes[index]:
            slide.notes_slide.notes_text_frame.text = notes[index]
    path.parent.mkdir(parents=True, exist_ok=True)
    presentation.save(str(path))
    return path


@pytest.fixture
def make_pptx() -> Callable[..., Path]:
    return build_pptx


# ---------------------------------------------------------------------------
# PDFs
# ---------------------------------------------------------------------------

def pdf_bytes(
    pages: List[str],
    width: int = 612,
    height: int = 792,
    compress: bool = False,
) -> bytes:
    """A minimal valid PDF with one Tj text operator per page."""
    count = len(pages)
    font_number = 3 + 2 * count
    kids = " ".join(f"{3 + 2 * i} 0 R" for i in range(count))

    objects = [
        b"<< /Type /Catalog /Pages 2 0 R >>",
        f"<< /Type /Pages /Kids [{kids}] /Count {count} >>".encode(),
    ]
    for i, text in enumerate(pages):
        content_number = 4 + 2 * i
        objects.append(
            f"<< /Type /Page /Parent 2 0 R /MediaBox [0 0 {width} {height}] "
            f"/Resources << /Font << /F1 {font_number} 0 R >> >> "
            f"/Contents {content_number} 0 R >>".encode()
        )
        escaped = text.replace("\\", "\\\\").replace("(", "\\(").replace(")", "\\)")
        stream = f"BT /F1 12 Tf 72 720 Td ({escaped}) Tj ET".encode("latin-1")
        if compress:
            stream = zlib.compress(stream)
            header = f"<< /Length {len(stream)} /Filter /FlateDecode >>"
        else:
            header = f"<< /Length {len(stream)} >>"
        objects.append(header.encode() + b"\nstream\n" + stream + b"\nendstream")
    objects.append(b"<< /Type /Font /Subtype /Type1 /BaseFont /Helvetica >>")

    out = bytearray(b"%PDF-1.4\n")
    offsets = []
    for number, body in enumerate(objects, start=1):
        offsets.append(len(out))
        out += f"{number} 0 obj\n".encode() + body + b"\nendobj\n"

    xref_position = len(out)
    out += f"xref\n0 {len(objects) + 1}\n".encode()
    out += b"0000000000 65535 f \n"
    for offset in offsets:
        out += f"{offset:010d} 00000 n \n".encode()
    out += (
        f"trailer\n<< /Size {len(objects) + 1} /Root 1 0 R >>\n"
        f"startxref\n{xref_position}\n%%EOF\n"
    ).encode()
    return bytes(out)


def build_pdf(path: Path, pages: List[str], **kwargs) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_bytes(pdf_bytes(pages, **kwargs))
    return path


@pytest.fixture
def make_pdf() -> Callable[..., Path]:
    return build_pdf


# ---------------------------------------------------------------------------
# Fake tiers
# ---------------------------------------------------------------------------

class FakeTier(ExtractionTier):
    """Scripted PDF tier that records how often it ran."""

    def __init__(
        self,
        name: str,
        pages: Optional[List[str]] = None,
        page_count: Optional[int] = None,
        landscape: Optional[bool] = None,
        missing_tool: Optional[str] = None,
        progress_status: Optional[ScanStatus] = None,
    ):
        self._name = name
        self.pages = pages or []
        self.page_count = page_count
        self.landscape = landscape
        self.missing_tool = missing_tool
        self.progress_status = progress_status
        self.calls = 0

    @property
    def name(self) -> str:
        return self._name

    def check_available(self) -> None:
        if self.missing_tool:
            raise ToolUnavailable(self.missing_tool, "testing")

    def extract_pages(self, path: Path) -> TierOutput:
        self.calls += 1
        return TierOutput(
            pages=list(self.pages),
            page_count=self.page_count,
            landscape=self.landscape,
        )


@pytest.fixture
def fake_tier() -> Callable[..., FakeTier]:
    return FakeTier


@pytest.fixture
def fake_ocr() -> FakeTier:
    """OCR stand-in that never recovers any text."""
    return FakeTier("ocr", pages=[""], progress_status=ScanStatus.OCR)
