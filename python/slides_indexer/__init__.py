"""
Slides Indexer - Incremental indexing of slide decks and PDFs.

Modules:
    - config: Centralized configuration
    - scanner: Ordered file system traversal
    - hasher: SHA-256 content checksums (streaming)
    - detector: Two-tier cache check (mtime, then checksum)
    - extractor: Text extraction (python-pptx, legacy scrape, PDF tiers)
    - tiers: PDF strategies (native parse, pdftotext, OCR)
    - store: JSON catalog with per-item durable writes
    - orchestrator: Scan loop, progress and deleted-file reconciliation
    - service: Facade and command line

Scan Flow:
    Scan → Check (mtime → checksum) → Extract (lazy, OCR last) → Save → Reconcile

Usage:
    from slides_indexer import IndexService

    service = IndexService()
    service.submit_directories(["/Users/me/Lectures"])
    summary = await service.run_scan()
"""

from .orchestrator import ScanOrchestrator
from .service import IndexService
from .store import IndexStore

__all__ = ["IndexService", "ScanOrchestrator", "IndexStore"]
