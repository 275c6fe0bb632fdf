"""
Orchestrator - Drives a scan over linked directories.

Implements the cache cascade per file:
- Filter 1: stored mtime matches (instant)
- Filter 2: stored checksum matches (one streaming read)
- Otherwise: extract (native → pdftotext → OCR for PDFs) and save

Files are processed one at a time on a single worker thread. Each new or
updated entry is saved before the next file starts, so stopping or
crashing mid-scan loses at most one file's work. After all files are
handled, entries whose files vanished from disk are evicted.
"""

import asyncio
import logging
import time
from concurrent.futures import ThreadPoolExecutor
from dataclasses import replace
from enum import Enum
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Set

from .config import get_config, IndexerConfig
from .detector import ChangeDecision, ChangeDetector, ChangeOutcome
from .errors import (
    ErrorAction, PersistError, ScanInProgress, UnsupportedFormat, handle_error,
)
from .extractor import ExtractionResult, Extractor
from .hasher import Hasher
from .models import (
    FileInfo, IndexEntry, ScanStatus, ScanSummary, current_timestamp, entry_id_for,
)
from .progress import CancellationToken, ProgressObserver, ProgressReporter
from .scanner import Scanner
from .store import IndexStore, path_within
from .tools import ToolStatus, get_tool_status


logger = logging.getLogger(__name__)


class ScanState(Enum):
    """Lifecycle of the orchestrator."""
    IDLE = "idle"
    SCANNING = "scanning"
    COMPLETED = "completed"
    STOPPED = "stopped"
    FAILED = "failed"


class ScanOrchestrator:
    """
    Main orchestrator for a scan.

    Scanner → ChangeDetector → Extractor → IndexStore

    Collaborators are injectable so tests can count checksum and
    extraction calls or substitute PDF tiers.
    """

    def __init__(
        self,
        store: IndexStore,
        config: Optional[IndexerConfig] = None,
        hasher: Optional[Hasher] = None,
        extractor: Optional[Extractor] = None,
        tools: Optional[ToolStatus] = None,
    ):
        self.config = config or get_config()
        self.store = store
        self.hasher = hasher or Hasher(self.config)
        self.extractor = extractor or Extractor(self.config)
        self.tools = tools or get_tool_status(self.config)
        self.detector = ChangeDetector(self.hasher)
        self._scanner = Scanner(self.config)
        self._executor: ThreadPoolExecutor | None = None
        self.state = ScanState.IDLE

    def _get_executor(self) -> ThreadPoolExecutor:
        # One worker: extraction spawns OCR processes and saves must stay ordered
        if self._executor is None:
            self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="scan")
        return self._executor

    async def run_scan(
        self,
        directories: List[str],
        *,
        full: bool = True,
        observers: Iterable[ProgressObserver] = (),
        token: Optional[CancellationToken] = None,
    ) -> ScanSummary:
        """
        Scan directories, updating the store as each file completes.

        Args:
            directories: Directories to traverse
            full: True when directories are all linked directories; entries
                outside every one of them are then evicted as well
            observers: Progress callbacks (called off the scan worker)
            token: Cooperative stop flag, polled between files

        Returns:
            Summary of the work done before completion or stop
        """
        if self.state is ScanState.SCANNING:
            raise ScanInProgress("A scan is already running")

        token = token or CancellationToken()
        reporter = ProgressReporter(observers)
        self.state = ScanState.SCANNING

        try:
            summary = await self._scan(directories, full, reporter, token)
        except Exception:
            self.state = ScanState.FAILED
            logger.exception("Scan failed")
            raise
        except BaseException:
            # Cancelled or interrupted: everything saved so far stays saved
            self.state = ScanState.STOPPED
            raise
        finally:
            reporter.finish()

        self.state = ScanState.STOPPED if summary.stopped else ScanState.COMPLETED
        logger.info(str(summary))
        return summary

    async def _scan(
        self,
        directories: List[str],
        full: bool,
        reporter: ProgressReporter,
        token: CancellationToken,
    ) -> ScanSummary:
        start_time = time.monotonic()
        summary = ScanSummary()
        loop = asyncio.get_running_loop()
        executor = self._get_executor()

        logger.info(f"Starting scan of {len(directories)} directories...")

        # Snapshot of what the catalog knew before this scan, keyed by path
        existing: Dict[str, IndexEntry] = {
            entry.path: entry for entry in self.store.entries_within(directories)
        }

        # Enumerate everything first: the found set must be complete before
        # any eviction decision, even if the scan is stopped early
        files: List[FileInfo] = []
        found: Set[str] = set()
        missing_dirs: List[str] = []
        for directory in directories:
            if not Path(directory).is_dir():
                missing_dirs.append(directory)
                summary.add_warning(f"Directory not found: {directory}")
                continue
            async for file_info in self._scanner.scan_iter([Path(directory)]):
                files.append(file_info)
                found.add(str(file_info.path))

        logger.info(f"Enumerated {len(files)} documents ({len(existing)} previously cached)")

        changed = False
        for file_info in files:
            if token.cancelled:
                summary.stopped = True
                logger.info("Scan stopped by request")
                break
            changed |= await loop.run_in_executor(
                executor,
                self._process_file,
                file_info,
                existing.get(str(file_info.path)),
                reporter,
                summary,
            )

        removed = await loop.run_in_executor(
            executor,
            self._reconcile,
            existing,
            found,
            missing_dirs,
            directories if full else None,
            reporter,
            summary,
        )
        changed |= removed > 0

        tool_message = self.tools.status_message()
        if tool_message:
            summary.add_warning(tool_message)

        try:
            summary.last_indexed_at = self.store.finish_scan(changed, summary.warnings)
        except PersistError as e:
            handle_error(e, self.store.path, "finish_scan")
            summary.add_warning(f"Persist failed: {e}")
            summary.last_indexed_at = self.store.last_indexed_at

        summary.indexed = len(self.store)
        summary.duration_seconds = time.monotonic() - start_time
        return summary

    # ------------------------------------------------------------------
    # Per-file work (runs on the scan worker thread)
    # ------------------------------------------------------------------

    def _process_file(
        self,
        file_info: FileInfo,
        existing: Optional[IndexEntry],
        reporter: ProgressReporter,
        summary: ScanSummary,
    ) -> bool:
        """Handle one file. Returns True if the catalog was modified."""
        path_str = str(file_info.path)

        decision = self.detector.check(file_info, existing)
        if decision.is_hit:
            summary.cached += 1
            reporter.emit(path_str, ScanStatus.CACHED, f"{decision.outcome.value}: {decision.reason}")
            if decision.outcome is ChangeOutcome.VERIFIED_HIT:
                # Same bytes, new mtime: remember the mtime so the quick check hits next time
                refreshed = replace(existing, modified_at=file_info.mtime_ms, updated_at=current_timestamp())
                return self._save(refreshed, summary)
            return False

        reporter.emit(path_str, ScanStatus.SCANNING, self._scan_detail(existing, decision))

        try:
            result = self.extractor.extract(
                file_info.path,
                on_status=lambda status: reporter.emit(path_str, status, "extracting text from page images"),
            )
        except UnsupportedFormat as e:
            handle_error(e, file_info.path, "extract")
            return False
        except Exception as e:
            action = handle_error(e, file_info.path, "extract")
            summary.failed += 1
            if action is not ErrorAction.SKIP:
                summary.add_warning(f"Failed to index {file_info.extension.lstrip('.').upper()} {path_str}: {e}")
            return False

        entry = self._build_entry(file_info, existing, decision, result)
        changed = self._save(entry, summary)
        summary.scanned += 1
        reporter.emit(path_str, ScanStatus.SAVED, f"{len(entry.unit_previews)} units indexed")
        return changed

    def _save(self, entry: IndexEntry, summary: ScanSummary) -> bool:
        try:
            self.store.upsert(entry)
        except PersistError as e:
            # The in-memory catalog is still correct; the file is lagging
            handle_error(e, Path(entry.path), "upsert")
            summary.add_warning(f"Persist failed: {e}")
        return True

    @staticmethod
    def _scan_detail(existing: Optional[IndexEntry], decision: ChangeDecision) -> str:
        if existing is None:
            return "new file: first time indexing"
        return f"content changed: {decision.reason}"

    def _build_entry(
        self,
        file_info: FileInfo,
        existing: Optional[IndexEntry],
        decision: ChangeDecision,
        result: ExtractionResult,
    ) -> IndexEntry:
        now = current_timestamp()
        path_str = str(file_info.path)
        return IndexEntry(
            id=entry_id_for(path_str),
            path=path_str,
            display_name=file_info.name,
            kind=result.kind,
            document_type=result.document_type,
            unit_count=result.unit_count,
            snippet=result.snippet,
            keywords=result.keywords,
            unit_previews=result.unit_previews,
            modified_at=file_info.mtime_ms,
            checksum=decision.checksum,
            created_at=existing.created_at if existing else now,
            updated_at=now,
        )

    # ------------------------------------------------------------------
    # Deleted-file reconciliation
    # ------------------------------------------------------------------

    def _reconcile(
        self,
        existing: Dict[str, IndexEntry],
        found: Set[str],
        missing_dirs: List[str],
        linked_dirs: Optional[List[str]],
        reporter: ProgressReporter,
        summary: ScanSummary,
    ) -> int:
        """
        Evict entries whose files are gone. Returns the number removed.

        Entries under a directory that could not be traversed at all are
        kept: an unmounted drive is not a deletion.
        """
        stale = [
            path for path in existing
            if path not in found and not any(path_within(path, d) for d in missing_dirs)
        ]
        if linked_dirs is not None:
            stale.extend(
                entry.path for entry in self.store.entries()
                if entry.path not in existing
                and not any(path_within(entry.path, d) for d in linked_dirs)
            )

        removed = 0
        for path in stale:
            try:
                if not self.store.remove(path):
                    continue
            except PersistError as e:
                handle_error(e, Path(path), "remove")
                summary.add_warning(f"Persist failed: {e}")
            removed += 1
            summary.removed += 1
            logger.info(f"Removed from catalog (deleted): {Path(path).name}")
            reporter.emit(path, ScanStatus.REMOVED, "file no longer on disk")
        return removed

    def close(self):
        """Shutdown the worker thread."""
        if self._executor:
            self._executor.shutdown(wait=False)
            self._executor = None
