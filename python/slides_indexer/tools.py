"""
External tool discovery.

poppler (pdftotext, pdftoppm) and tesseract are optional. Desktop apps are
often launched without the user's shell PATH, so besides PATH we also look
in the usual install locations for each platform.
"""

import logging
import os
import shutil
from dataclasses import dataclass, field
from functools import lru_cache
from pathlib import Path
from typing import Dict, List, Optional, Tuple

from .config import get_config, IndexerConfig


logger = logging.getLogger(__name__)


PDFTOTEXT = "pdftotext"
PDFTOPPM = "pdftoppm"
TESSERACT = "tesseract"
KNOWN_TOOLS = (PDFTOPPM, TESSERACT, PDFTOTEXT)


@dataclass
class ToolStatus:
    """Resolved paths for the optional extraction tools."""
    paths: Dict[str, Optional[Path]] = field(default_factory=dict)

    def path(self, tool: str) -> Optional[Path]:
        return self.paths.get(tool)

    def available(self, tool: str) -> bool:
        return self.paths.get(tool) is not None

    @property
    def missing(self) -> List[str]:
        return [tool for tool in KNOWN_TOOLS if self.paths.get(tool) is None]

    def status_message(self) -> Optional[str]:
        """User-facing warning listing missing tools, or None."""
        if not self.missing:
            return None
        return (
            f"PDF extraction tools missing: {', '.join(self.missing)}. "
            "Install them to enable full PDF scanning (e.g. `brew install poppler tesseract`)."
        )


def resolve_tool(name: str, extra_dirs: List[Path]) -> Optional[Path]:
    """Find an executable on PATH, then in the extra directories."""
    found = shutil.which(name)
    if found:
        return Path(found)

    search_path = os.pathsep.join(str(d) for d in extra_dirs)
    if search_path:
        found = shutil.which(name, path=search_path)
        if found:
            return Path(found)
    return None


@lru_cache(maxsize=8)
def _resolve_all(extra_dirs: Tuple[Path, ...]) -> ToolStatus:
    status = ToolStatus({tool: resolve_tool(tool, list(extra_dirs)) for tool in KNOWN_TOOLS})
    if status.missing:
        logger.warning(f"External tools not found: {', '.join(status.missing)}")
    return status


def get_tool_status(config: IndexerConfig | None = None) -> ToolStatus:
    """Tool lookup is cached per search-directory set for the process lifetime."""
    config = config or get_config()
    return _resolve_all(tuple(config.tool_dirs))
