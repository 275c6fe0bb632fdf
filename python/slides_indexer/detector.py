"""
Change Detector - Decide whether a cached entry can be reused.

Cheapest check first:
- Filter 1: stored mtime equals current mtime (stat only, no reads)
- Filter 2: stored checksum equals current checksum (one streaming read)
- Otherwise the file must be extracted again.

Presence or absence of extracted text plays no part in the decision. A
file with no recoverable text is cached exactly like any other file.
"""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Optional

from .hasher import Hasher
from .models import FileInfo, IndexEntry
from .errors import handle_error


logger = logging.getLogger(__name__)


class ChangeOutcome(Enum):
    """Result of comparing a file on disk with its catalog entry."""
    QUICK_HIT = "quick"        # mtime unchanged
    VERIFIED_HIT = "verified"  # mtime changed, checksum unchanged
    MISS = "miss"              # new file, changed content, or no checksum


@dataclass
class ChangeDecision:
    outcome: ChangeOutcome
    checksum: Optional[str] = None
    reason: str = ""

    @property
    def is_hit(self) -> bool:
        return self.outcome is not ChangeOutcome.MISS


class ChangeDetector:
    """Two-tier cache check against an existing catalog entry."""

    def __init__(self, hasher: Hasher):
        self.hasher = hasher

    def check(self, file_info: FileInfo, existing: Optional[IndexEntry]) -> ChangeDecision:
        if existing is not None and existing.modified_at == file_info.mtime_ms:
            return ChangeDecision(ChangeOutcome.QUICK_HIT, existing.checksum, "modification time unchanged")

        checksum = self._checksum(file_info)

        if existing is None:
            return ChangeDecision(ChangeOutcome.MISS, checksum, "new file")

        if existing.checksum is not None and checksum is not None:
            if existing.checksum == checksum:
                # Also covers mtime moving backwards (restored backups)
                return ChangeDecision(ChangeOutcome.VERIFIED_HIT, checksum, "content unchanged")
            reason = f"checksum changed: {existing.checksum[:8]}.. -> {checksum[:8]}.."
        elif checksum is None:
            reason = "checksum unavailable"
        else:
            reason = "cached entry has no checksum"

        logger.debug(f"Re-scanning {file_info.name}: {reason}")
        return ChangeDecision(ChangeOutcome.MISS, checksum, reason)

    def _checksum(self, file_info: FileInfo) -> Optional[str]:
        try:
            return self.hasher.compute(file_info.path)
        except OSError as e:
            handle_error(e, file_info.path, "checksum")
            return None
