"""
Scanner - File system traversal for supported documents.

Walks each linked directory depth-first in name order so repeated scans
enumerate files in the same sequence, keeping only .pptx/.ppt/.pdf files
and skipping hidden entries, Office lock files and tool directories.
"""

import logging
import os
import time
from pathlib import Path
from typing import AsyncGenerator, List

from .config import get_config, IndexerConfig
from .models import FileInfo, ScanResult
from .errors import handle_error


logger = logging.getLogger(__name__)


class Scanner:
    """
    Document file scanner.

    Yields FileInfo objects for each supported file found. Only stat() is
    performed here; content is never read.
    """

    def __init__(self, config: IndexerConfig | None = None):
        self.config = config or get_config()
        self._skipped = 0
        self._errors = 0

    async def scan(self, roots: List[Path]) -> ScanResult:
        """
        Scan directories and return all found files.

        Args:
            roots: Directories to scan

        Returns:
            ScanResult with list of FileInfo and statistics
        """
        start_time = time.monotonic()
        self._skipped = 0
        self._errors = 0
        files: List[FileInfo] = []

        async for file_info in self.scan_iter(roots):
            files.append(file_info)

        duration = time.monotonic() - start_time
        logger.info(f"Found {len(files)} documents in {duration:.1f}s")

        return ScanResult(
            files=files,
            skipped_count=self._skipped,
            error_count=self._errors,
            duration_seconds=duration,
        )

    async def scan_iter(self, roots: List[Path]) -> AsyncGenerator[FileInfo, None]:
        """
        Iterate over supported files under the given directories.

        Missing roots are logged and skipped; callers that need to know
        about them check existence themselves.
        """
        for root in roots:
            root = Path(root)
            if not root.is_dir():
                logger.warning(f"Root directory not found: {root}")
                continue

            async for file_info in self._scan_directory(root):
                yield file_info

    async def _scan_directory(self, directory: Path) -> AsyncGenerator[FileInfo, None]:
        """Recursively scan a single directory: files first, then subdirectories."""
        try:
            with os.scandir(directory) as it:
                entries = sorted(it, key=lambda e: e.name)
        except OSError as e:
            self._errors += 1
            handle_error(e, directory, "scan_directory")
            return

        subdirs: List[Path] = []

        for entry in entries:
            try:
                if entry.is_dir(follow_symlinks=False):
                    if self._should_skip_dir(entry.name):
                        continue
                    subdirs.append(Path(entry.path))

                elif entry.is_file(follow_symlinks=False):
                    if self._should_skip_file(entry.name):
                        self._skipped += 1
                        continue

                    file_info = self._get_file_info(entry)
                    if file_info:
                        yield file_info

            except OSError as e:
                self._errors += 1
                handle_error(e, Path(entry.path), "scan_entry")
                continue

        for subdir in subdirs:
            async for file_info in self._scan_directory(subdir):
                yield file_info

    def _get_file_info(self, entry: os.DirEntry) -> FileInfo | None:
        try:
            stat = entry.stat(follow_symlinks=False)
            return FileInfo.from_path(
                path=Path(entry.path),
                mtime=stat.st_mtime,
                size=stat.st_size,
            )
        except OSError as e:
            self._errors += 1
            handle_error(e, Path(entry.path), "stat")
            return None

    def _should_skip_dir(self, name: str) -> bool:
        if name.startswith("."):
            return True
        return name in self.config.skip_dirs

    def _should_skip_file(self, name: str) -> bool:
        if any(name.startswith(prefix) for prefix in self.config.skip_prefixes):
            return True
        return Path(name).suffix.lower() not in self.config.supported_extensions


async def scan_directories(
    roots: List[Path],
    config: IndexerConfig | None = None,
) -> ScanResult:
    """
    Convenience function to scan directories.

    Usage:
        result = await scan_directories([Path.home() / "Slides"])
        for file in result.files:
            print(file.path)
    """
    scanner = Scanner(config)
    return await scanner.scan(roots)
