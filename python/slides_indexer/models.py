"""
Data Models - Type definitions for the indexing pipeline.

These dataclasses represent the data flowing between the scanner, the
change detector, the extractor and the catalog store, plus the persisted
catalog layout itself.
"""

import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional
from enum import Enum

import xxhash


class EntryKind(Enum):
    """File format of an indexed document."""
    PPTX = "pptx"   # Modern (zip/XML) slide deck
    PPT = "ppt"     # Legacy binary slide deck
    PDF = "pdf"     # Page-based document


class DocumentType(Enum):
    """Inferred use of a document, never set by the user."""
    PRESENTATION = "presentation"
    BOOK = "book"


class ScanStatus(Enum):
    """Status tag carried by a progress event."""
    SCANNING = "scanning"
    CACHED = "cached"
    OCR = "ocr"
    SAVED = "saved"
    REMOVED = "removed"


def current_timestamp() -> int:
    """Wall-clock time in integer milliseconds."""
    return int(time.time() * 1000)


def entry_id_for(path: str | Path) -> str:
    """Stable entry id: a pure function of the path, never of the content."""
    return xxhash.xxh3_128_hexdigest(str(path).encode("utf-8"))


@dataclass
class FileInfo:
    """
    Basic file information from the scanner.

    Only what we get from stat() without reading file content.
    """
    path: Path
    name: str
    extension: str
    size: int
    mtime_ms: int

    @classmethod
    def from_path(cls, path: Path, mtime: float, size: int) -> "FileInfo":
        """Create FileInfo from a path and stat result (mtime in seconds)."""
        return cls(
            path=path,
            name=path.name,
            extension=path.suffix.lower(),
            size=size,
            mtime_ms=int(mtime * 1000),
        )


@dataclass
class UnitPreview:
    """Text found on one slide or page (1-based index)."""
    index: int
    text: str

    def to_dict(self) -> Dict[str, Any]:
        return {"index": self.index, "text": self.text}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "UnitPreview":
        return cls(index=int(data["index"]), text=str(data.get("text", "")))


@dataclass
class IndexEntry:
    """
    One indexed document.

    An entry with an empty snippet and no previews is still a complete
    entry: it describes a file with no extractable text.
    """
    id: str
    path: str
    display_name: str
    kind: EntryKind
    modified_at: int
    snippet: str = ""
    keywords: List[str] = field(default_factory=list)
    unit_previews: List[UnitPreview] = field(default_factory=list)
    unit_count: Optional[int] = None
    document_type: Optional[DocumentType] = None
    checksum: Optional[str] = None
    created_at: int = 0
    updated_at: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "path": self.path,
            "display_name": self.display_name,
            "kind": self.kind.value,
            "document_type": self.document_type.value if self.document_type else None,
            "unit_count": self.unit_count,
            "snippet": self.snippet,
            "keywords": list(self.keywords),
            "unit_previews": [p.to_dict() for p in self.unit_previews],
            "modified_at": self.modified_at,
            "checksum": self.checksum,
            "created_at": self.created_at,
            "updated_at": self.updated_at,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "IndexEntry":
        document_type = data.get("document_type")
        path = str(data["path"])
        return cls(
            id=data.get("id") or entry_id_for(path),
            path=path,
            display_name=data.get("display_name") or Path(path).name,
            kind=EntryKind(data["kind"]),
            document_type=DocumentType(document_type) if document_type else None,
            unit_count=data.get("unit_count"),
            snippet=data.get("snippet", ""),
            keywords=list(data.get("keywords", [])),
            unit_previews=[UnitPreview.from_dict(p) for p in data.get("unit_previews", [])],
            modified_at=int(data["modified_at"]),
            checksum=data.get("checksum"),
            created_at=int(data.get("created_at", 0)),
            updated_at=int(data.get("updated_at", 0)),
        )


@dataclass
class Catalog:
    """
    Everything the application persists: linked directories, all entries,
    the last scan time and the warnings of the last scan.
    """
    directories: List[str] = field(default_factory=list)
    entries: List[IndexEntry] = field(default_factory=list)
    last_indexed_at: Optional[int] = None
    warnings: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "directories": list(self.directories),
            "entries": [e.to_dict() for e in self.entries],
            "last_indexed_at": self.last_indexed_at,
            "warnings": list(self.warnings),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Catalog":
        return cls(
            directories=[str(d) for d in data.get("directories", [])],
            entries=[IndexEntry.from_dict(e) for e in data.get("entries", [])],
            last_indexed_at=data.get("last_indexed_at"),
            warnings=[str(w) for w in data.get("warnings", [])],
        )


@dataclass(frozen=True)
class ProgressEvent:
    """
    A progress notification. The all-None event marks the end of a scan.
    """
    path: Optional[str] = None
    status: Optional[ScanStatus] = None
    detail: Optional[str] = None

    @property
    def is_sentinel(self) -> bool:
        return self.path is None and self.status is None and self.detail is None


@dataclass
class ScanResult:
    """Result of enumerating a directory tree."""
    files: List[FileInfo]
    skipped_count: int
    error_count: int
    duration_seconds: float


@dataclass
class ScanSummary:
    """Statistics from a scan run."""
    scanned: int = 0     # Files extracted and saved
    cached: int = 0      # Quick or verified cache hits
    removed: int = 0     # Entries evicted (file gone from disk)
    failed: int = 0      # Files whose extraction failed
    indexed: int = 0     # Entries in the catalog after the scan
    warnings: List[str] = field(default_factory=list)
    last_indexed_at: Optional[int] = None
    stopped: bool = False
    duration_seconds: float = 0.0

    def add_warning(self, message: str) -> None:
        if message not in self.warnings:
            self.warnings.append(message)

    def __str__(self) -> str:
        state = "stopped" if self.stopped else "complete"
        return (
            f"Scan {state}: {self.scanned} scanned, "
            f"{self.cached} cached, "
            f"{self.removed} removed, "
            f"{self.failed} failed "
            f"({self.indexed} indexed, {len(self.warnings)} warnings) "
            f"in {self.duration_seconds:.1f}s"
        )
