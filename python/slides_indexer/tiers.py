"""
PDF extraction tiers.

Each tier turns a PDF into a list of raw page texts. The Extractor walks
the tiers in order and stops at the first one whose text passes the
meaningful-text heuristic:

    native (pypdf) → pdftotext CLI → pdftoppm + tesseract OCR

To add a tier:
1. Subclass ExtractionTier and implement name and extract_pages
2. Raise ToolUnavailable when the tier cannot run on this machine
3. Insert it into default_pdf_tiers() at the right cost position
"""

import logging
import re
import subprocess
import tempfile
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional

import pytesseract
from PIL import Image
from pypdf import PdfReader

from .config import get_config, IndexerConfig
from .errors import ExtractionError, ToolUnavailable
from .models import ScanStatus
from .tools import PDFTOPPM, PDFTOTEXT, TESSERACT, ToolStatus, get_tool_status


logger = logging.getLogger(__name__)


# Literal strings "(...)" with escapes, hex strings "<...>", and TJ array brackets
STREAM_TOKEN_RE = re.compile(
    rb"(?P<literal>\((?:\\.|[^\\)])*\))"
    rb"|<(?P<hex>[0-9A-Fa-f\s]+)>"
    rb"|(?P<open>\[)"
    rb"|(?P<close>\])",
    re.DOTALL,
)

SIMPLE_ESCAPES = {
    ord("n"): b"\n",
    ord("r"): b"\r",
    ord("t"): b"\t",
    ord("b"): b"\x08",
    ord("f"): b"\x0c",
    ord("("): b"(",
    ord(")"): b")",
    ord("\\"): b"\\",
}


@dataclass
class TierOutput:
    """Raw page texts from one tier plus whatever geometry it could read."""
    pages: List[str] = field(default_factory=list)
    page_count: Optional[int] = None
    landscape: Optional[bool] = None


class ExtractionTier(ABC):
    """
    One strategy in the PDF fallback chain.

    Tiers return raw text; cleanup and the meaningful-text check happen in
    the Extractor so every tier is judged the same way.
    """

    # Progress status announced before the tier runs (None = silent)
    progress_status: Optional[ScanStatus] = None

    @property
    @abstractmethod
    def name(self) -> str:
        """Short tier name used in logs and warnings."""
        pass

    def check_available(self) -> None:
        """Raise ToolUnavailable if this tier cannot run here."""

    @abstractmethod
    def extract_pages(self, path: Path) -> TierOutput:
        """
        Extract raw per-page text.

        Raises:
            ToolUnavailable: the tier cannot run on this system
            ExtractionError: the tier ran but could not parse the file
            OSError: the file itself could not be read
        """
        pass


# ---------------------------------------------------------------------------
# Tier 1: native structural parse
# ---------------------------------------------------------------------------

def decode_pdf_bytes(raw: bytes) -> str:
    """Decode string bytes: UTF-16 with BOM, else UTF-8, else Latin-1."""
    if raw[:2] == b"\xfe\xff":
        return raw[2:].decode("utf-16-be", errors="replace")
    if raw[:2] == b"\xff\xfe":
        return raw[2:].decode("utf-16-le", errors="replace")
    try:
        return raw.decode("utf-8")
    except UnicodeDecodeError:
        return raw.decode("latin-1")


def unescape_literal(body: bytes) -> bytes:
    """Resolve backslash escapes inside a PDF literal string body."""
    out = bytearray()
    i = 0
    while i < len(body):
        ch = body[i]
        if ch != 0x5C:  # backslash
            out.append(ch)
            i += 1
            continue
        i += 1
        if i >= len(body):
            break
        nxt = body[i]
        if nxt in SIMPLE_ESCAPES:
            out += SIMPLE_ESCAPES[nxt]
            i += 1
        elif 0x30 <= nxt <= 0x37:
            digits = body[i:i + 3]
            octal = re.match(rb"[0-7]{1,3}", digits).group(0)
            out.append(int(octal, 8) & 0xFF)
            i += len(octal)
        else:
            # Unknown escape or line continuation: keep the character
            out.append(nxt)
            i += 1
    return bytes(out)


def decode_hex_string(body: bytes) -> bytes:
    digits = re.sub(rb"\s+", b"", body)
    if len(digits) % 2:
        digits += b"0"
    return bytes.fromhex(digits.decode("ascii"))


def extract_stream_text(stream: bytes) -> str:
    """
    Pull the string operands out of a decoded content stream.

    Strings inside one TJ array are glued together (they are one run split
    for kerning); separate operators are separated by spaces.
    """
    segments: List[str] = []
    current: List[str] = []
    in_array = False

    for match in STREAM_TOKEN_RE.finditer(stream):
        if match.group("open"):
            in_array = True
            continue
        if match.group("close"):
            if current:
                segments.append("".join(current))
                current = []
            in_array = False
            continue

        if match.group("literal") is not None:
            raw = unescape_literal(match.group("literal")[1:-1])
        else:
            raw = decode_hex_string(match.group("hex"))
        text = decode_pdf_bytes(raw)
        if not text:
            continue

        if in_array:
            current.append(text)
        else:
            segments.append(text)

    if current:
        segments.append("".join(current))
    return " ".join(segments)


class NativePdfTier(ExtractionTier):
    """Parse the PDF with pypdf and pattern-match text out of content streams."""

    @property
    def name(self) -> str:
        return "native"

    def extract_pages(self, path: Path) -> TierOutput:
        try:
            reader = PdfReader(str(path))
            pages = list(reader.pages)
        except OSError:
            raise
        except Exception as e:
            raise ExtractionError(f"PDF structure unreadable: {e}") from e

        output = TierOutput(page_count=len(pages))
        if pages:
            output.landscape = self._is_landscape(pages[0])

        for page in pages:
            try:
                contents = page.get_contents()
                data = contents.get_data() if contents is not None else b""
            except Exception as e:
                # One broken stream should not cost us the rest of the book
                logger.debug(f"Unreadable content stream in {path.name}: {e}")
                data = b""
            output.pages.append(extract_stream_text(data))

        return output

    @staticmethod
    def _is_landscape(page) -> Optional[bool]:
        try:
            box = page.mediabox
            width, height = float(box.width), float(box.height)
            if (page.rotation or 0) % 180 == 90:
                width, height = height, width
        except Exception as e:
            logger.debug(f"Page geometry unavailable: {e}")
            return None
        return width > height


# ---------------------------------------------------------------------------
# Tier 2: pdftotext
# ---------------------------------------------------------------------------

class PdftotextTier(ExtractionTier):
    """Run poppler's pdftotext and split its output on form feeds."""

    def __init__(self, config: IndexerConfig | None = None, tools: ToolStatus | None = None):
        self.config = config or get_config()
        self.tools = tools or get_tool_status(self.config)

    @property
    def name(self) -> str:
        return "pdftotext"

    def check_available(self) -> None:
        if not self.tools.available(PDFTOTEXT):
            raise ToolUnavailable(PDFTOTEXT, "plain-text extraction")

    def extract_pages(self, path: Path) -> TierOutput:
        self.check_available()
        tool = self.tools.path(PDFTOTEXT)

        try:
            result = subprocess.run(
                [str(tool), "-layout", "-enc", "UTF-8", str(path), "-"],
                capture_output=True,
                timeout=self.config.tool_timeout,
            )
        except subprocess.TimeoutExpired as e:
            raise ExtractionError(f"pdftotext timed out after {e.timeout}s") from e

        if result.returncode != 0:
            logger.debug(
                f"pdftotext failed for {path.name}: "
                f"{result.stderr.decode('utf-8', errors='replace').strip()}"
            )
            return TierOutput()

        raw = result.stdout.decode("utf-8", errors="replace")
        # Keep empty pages so page numbers stay aligned
        pages = raw.split("\f")
        if pages and not pages[-1].strip():
            pages.pop()
        return TierOutput(pages=pages)


# ---------------------------------------------------------------------------
# Tier 3: rasterize + OCR
# ---------------------------------------------------------------------------

class OcrTier(ExtractionTier):
    """Rasterize pages with pdftoppm and read them back with tesseract."""

    progress_status = ScanStatus.OCR

    def __init__(self, config: IndexerConfig | None = None, tools: ToolStatus | None = None):
        self.config = config or get_config()
        self.tools = tools or get_tool_status(self.config)

    @property
    def name(self) -> str:
        return "ocr"

    def check_available(self) -> None:
        if not self.tools.available(PDFTOPPM):
            raise ToolUnavailable(PDFTOPPM, "page rasterization for OCR")
        if not self.tools.available(TESSERACT):
            raise ToolUnavailable(TESSERACT, "OCR")

    def extract_pages(self, path: Path) -> TierOutput:
        self.check_available()
        rasterizer = self.tools.path(PDFTOPPM)
        tesseract = self.tools.path(TESSERACT)
        pytesseract.pytesseract.tesseract_cmd = str(tesseract)

        with tempfile.TemporaryDirectory(prefix="slides_ocr_") as tmp:
            prefix = Path(tmp) / "page"
            try:
                result = subprocess.run(
                    [
                        str(rasterizer), "-png",
                        "-r", str(self.config.ocr_dpi),
                        "-l", str(self.config.max_ocr_pages),
                        str(path), str(prefix),
                    ],
                    capture_output=True,
                    timeout=self.config.tool_timeout,
                )
            except subprocess.TimeoutExpired as e:
                raise ExtractionError(f"pdftoppm timed out after {e.timeout}s") from e

            if result.returncode != 0:
                logger.debug(f"pdftoppm failed for {path.name} (exit {result.returncode})")
                return TierOutput()

            # pdftoppm zero-pads page numbers, so name order is page order
            images = sorted(Path(tmp).glob("*.png"))[: self.config.max_ocr_pages]
            logger.info(f"OCR: {len(images)} pages of {path.name}")
            return TierOutput(pages=[self._recognize(image) for image in images])

    def _recognize(self, image_path: Path) -> str:
        try:
            with Image.open(image_path) as image:
                return pytesseract.image_to_string(
                    image,
                    lang=self.config.ocr_language,
                    config=f"--psm {self.config.ocr_psm}",
                    timeout=self.config.tool_timeout or 0,
                )
        except (pytesseract.TesseractError, RuntimeError) as e:
            # RuntimeError is pytesseract's timeout signal
            logger.debug(f"Tesseract failed on {image_path.name}: {e}")
            return ""


def default_pdf_tiers(
    config: IndexerConfig | None = None,
    tools: ToolStatus | None = None,
) -> List[ExtractionTier]:
    """The standard chain, cheapest first."""
    config = config or get_config()
    tools = tools or get_tool_status(config)
    return [NativePdfTier(), PdftotextTier(config, tools), OcrTier(config, tools)]
