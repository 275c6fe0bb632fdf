"""
Hasher - Streaming content checksums.

Hashes raw file bytes only, in fixed-size chunks so a multi-gigabyte book
never has to fit in memory. Text extraction is handled separately by the
Extractor module and only runs when the checksum says content changed.
"""

import hashlib
import logging
from pathlib import Path

from .config import get_config, IndexerConfig


logger = logging.getLogger(__name__)


class Hasher:
    """
    SHA-256 content hasher.

    The digest is the authoritative identity of a file's content: two files
    with the same bytes always produce the same hex string.
    """

    def __init__(self, config: IndexerConfig | None = None):
        self.config = config or get_config()

    def compute(self, path: Path) -> str:
        """
        Compute the hex digest of the file's bytes.

        Raises:
            OSError: the file could not be read (missing, permissions,
                truncated mid-read). Callers treat this as "no checksum".
        """
        hasher = hashlib.sha256()
        chunk_size = self.config.checksum_chunk_size

        with open(path, "rb") as f:
            while chunk := f.read(chunk_size):
                hasher.update(chunk)

        digest = hasher.hexdigest()
        logger.debug(f"Checksum {digest[:12]}.. for {Path(path).name}")
        return digest


def compute_checksum(path: Path, config: IndexerConfig | None = None) -> str:
    """
    Convenience function to hash a single file.

    Usage:
        digest = compute_checksum(Path("deck.pptx"))
    """
    return Hasher(config).compute(path)
