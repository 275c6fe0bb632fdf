"""
Indexing Configuration - Centralized settings for the slide indexer.

Uses environment variables with sensible defaults. All paths are resolved
to absolute paths for reliability.
"""

import os
import sys
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Optional, Set


def _default_tool_dirs() -> List[Path]:
    """Extra places poppler/tesseract are commonly installed outside PATH."""
    if sys.platform == "darwin":
        dirs = ["/opt/homebrew/bin", "/usr/local/bin", "/usr/bin", "/bin", "/opt/local/bin"]
    elif sys.platform.startswith("win"):
        dirs = [
            r"C:\Program Files\Tesseract-OCR",
            r"C:\Program Files (x86)\Tesseract-OCR",
            r"C:\Program Files\poppler\bin",
            r"C:\Program Files (x86)\poppler\bin",
        ]
    else:
        dirs = ["/usr/local/bin", "/usr/bin", "/bin", "/snap/bin"]
    return [Path(d) for d in dirs]


@dataclass
class IndexerConfig:
    """
    Configuration for the indexing system.

    The catalog lives in a single JSON file under ~/.slides-indexer.
    Extraction limits mirror what is practical on desktop hardware.
    """

    # --- Paths ---
    state_path: Path = field(
        default_factory=lambda: Path.home() / ".slides-indexer" / "index.json"
    )

    # --- Supported File Types (extension -> kind value) ---
    kind_by_extension: Dict[str, str] = field(default_factory=lambda: {
        ".pptx": "pptx",
        ".ppt": "ppt",
        ".pdf": "pdf",
    })

    # --- Skip Patterns ---
    skip_dirs: Set[str] = field(default_factory=lambda: {
        # Version control
        ".git", ".svn", ".hg",
        # Dependencies
        "node_modules", "__pycache__", ".venv", "venv",
        # macOS
        ".Trash", ".Spotlight-V100", ".fseventsd",
        # Cache
        ".cache",
    })
    # Office lock files ("~$deck.pptx") are never real documents
    skip_prefixes: Set[str] = field(default_factory=lambda: {"~$", "."})

    # --- Checksum ---
    checksum_chunk_size: int = 65536  # 64KB streaming reads

    # --- Extraction Limits ---
    max_snippet_length: int = 240
    max_keywords: int = 40
    max_ocr_pages: int = 40
    ocr_dpi: int = 120
    ocr_language: str = "eng"
    ocr_psm: int = 6  # Tesseract page segmentation: single uniform block

    # --- External Tools ---
    tool_timeout: Optional[float] = None  # None = wait for the tool to exit
    tool_dirs: List[Path] = field(default_factory=_default_tool_dirs)

    def __post_init__(self):
        """Ensure the state path is absolute and its parent directory exists."""
        self.state_path = Path(self.state_path).expanduser().resolve()
        self.state_path.parent.mkdir(parents=True, exist_ok=True)

    @property
    def supported_extensions(self) -> Set[str]:
        return set(self.kind_by_extension)

    @classmethod
    def from_env(cls) -> "IndexerConfig":
        """
        Create config from environment variables.

        Supported env vars:
            SLIDES_INDEXER_STATE_PATH: Path to the catalog JSON file
            SLIDES_INDEXER_MAX_OCR_PAGES: Page cap for the OCR tier
            SLIDES_INDEXER_OCR_DPI: Rasterization resolution
            SLIDES_INDEXER_OCR_LANGUAGE: Tesseract language code
            SLIDES_INDEXER_TOOL_TIMEOUT: Seconds before an external tool is killed
        """
        config = cls()

        if state_path := os.environ.get("SLIDES_INDEXER_STATE_PATH"):
            config.state_path = Path(state_path)

        if max_pages := os.environ.get("SLIDES_INDEXER_MAX_OCR_PAGES"):
            config.max_ocr_pages = int(max_pages)

        if dpi := os.environ.get("SLIDES_INDEXER_OCR_DPI"):
            config.ocr_dpi = int(dpi)

        if language := os.environ.get("SLIDES_INDEXER_OCR_LANGUAGE"):
            config.ocr_language = language

        if timeout := os.environ.get("SLIDES_INDEXER_TOOL_TIMEOUT"):
            config.tool_timeout = float(timeout)

        config.__post_init__()
        return config


# Singleton default config
_default_config: IndexerConfig | None = None


def get_config() -> IndexerConfig:
    """Get the default configuration (singleton)."""
    global _default_config
    if _default_config is None:
        _default_config = IndexerConfig.from_env()
    return _default_config


def set_config(config: IndexerConfig) -> None:
    """Override the default configuration (for testing)."""
    global _default_config
    _default_config = config
