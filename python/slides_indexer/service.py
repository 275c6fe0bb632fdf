"""
Index Service - The facade the application talks to.

Owns the catalog store and the scan orchestrator, and exposes the handful
of operations a frontend needs: link directories, scan, stop, clear,
query and read state. Also provides the `slides-indexer` command line.

Usage:
    service = IndexService()
    service.submit_directories(["~/Slides"])
    summary = await service.run_scan()
    for entry in service.query_catalog('"linear algebra" week*').items:
        print(entry.display_name)
"""

import asyncio
import logging
import os
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Iterable, List, Optional

from .config import get_config, IndexerConfig
from .errors import DirectoryNotLinked, ScanInProgress
from .extractor import Extractor
from .hasher import Hasher
from .models import Catalog, IndexEntry, ProgressEvent, ScanSummary
from .orchestrator import ScanOrchestrator, ScanState
from .progress import CancellationToken, ProgressObserver, ProgressStream
from .search import SearchPattern, matches_query
from .store import IndexStore
from .tools import ToolStatus


logger = logging.getLogger(__name__)


@dataclass
class SearchResponse:
    """Entries matching a query, in catalog order."""
    items: List[IndexEntry] = field(default_factory=list)
    total: int = 0
    last_indexed_at: Optional[int] = None


def normalize_directories(paths: Iterable[str]) -> List[str]:
    """Trim, expand ~, drop empties and de-duplicate, keeping first-seen order."""
    seen = set()
    result = []
    for path in paths:
        path = (path or "").strip()
        if not path:
            continue
        path = os.path.expanduser(path)
        if path not in seen:
            seen.add(path)
            result.append(path)
    return result


class IndexService:
    """
    Single entry point for the indexing engine.

    Only one scan runs at a time; a second request while one is running
    raises ScanInProgress.
    """

    def __init__(
        self,
        config: IndexerConfig | None = None,
        extractor: Optional[Extractor] = None,
        hasher: Optional[Hasher] = None,
        tools: Optional[ToolStatus] = None,
    ):
        self.config = config or get_config()
        self.store = IndexStore(self.config)
        self.orchestrator = ScanOrchestrator(
            self.store,
            config=self.config,
            hasher=hasher,
            extractor=extractor,
            tools=tools,
        )
        self._token: Optional[CancellationToken] = None
        self._pending_streams: List[ProgressStream] = []

    @property
    def scanning(self) -> bool:
        return self.orchestrator.state is ScanState.SCANNING

    def submit_directories(self, paths: Iterable[str]) -> List[str]:
        """Replace the linked directories. Does not scan."""
        directories = normalize_directories(paths)
        self.store.set_directories(directories)
        logger.info(f"Linked {len(directories)} directories")
        return directories

    async def run_scan(
        self,
        directory: Optional[str] = None,
        observer: Optional[ProgressObserver] = None,
    ) -> ScanSummary:
        """
        Scan every linked directory, or just one of them.

        Raises:
            ScanInProgress: another scan is running
            DirectoryNotLinked: directory is not one of the linked directories
        """
        if self.scanning:
            raise ScanInProgress("A scan is already running")

        linked = self.store.directories()
        if directory is None:
            directories, full = linked, True
        else:
            directory = os.path.expanduser(directory.strip())
            if directory not in linked:
                raise DirectoryNotLinked(directory)
            directories, full = [directory], False

        observers: List[ProgressObserver] = [observer] if observer else []
        observers.extend(self._pending_streams)
        self._pending_streams = []

        self._token = CancellationToken()
        try:
            return await self.orchestrator.run_scan(
                directories, full=full, observers=observers, token=self._token
            )
        finally:
            self._token = None

    def progress_stream(self) -> ProgressStream:
        """
        Async iterator over the events of the next scan, ending with it.

        Must be called from the event loop that will run the scan.
        """
        stream = ProgressStream()
        self._pending_streams.append(stream)
        return stream

    def stop_scan(self) -> bool:
        """Ask the running scan to stop after the current file."""
        if self._token is None:
            return False
        self._token.cancel()
        logger.info("Stop requested")
        return True

    def clear_catalog(self) -> None:
        """Drop every entry and warning. Linked directories are kept."""
        if self.scanning:
            raise ScanInProgress("Cannot clear the catalog while a scan is running")
        self.store.clear()

    def query_catalog(self, query: str = "") -> SearchResponse:
        pattern = SearchPattern.parse(query)
        items = self.store.filter(lambda entry: matches_query(entry, pattern))
        return SearchResponse(
            items=items,
            total=len(items),
            last_indexed_at=self.store.last_indexed_at,
        )

    def fetch_state(self) -> Catalog:
        """A consistent copy of the catalog, plus any missing-tool warning."""
        catalog = self.store.snapshot()
        tool_message = self.orchestrator.tools.status_message()
        if tool_message and tool_message not in catalog.warnings:
            catalog.warnings.append(tool_message)
        return catalog

    def get_entry(self, entry_id: str) -> Optional[IndexEntry]:
        return self.store.get_by_id(entry_id)

    def close(self):
        if self._token is not None:
            self._token.cancel()
        self.orchestrator.close()


def _format_timestamp(value: Optional[int]) -> str:
    if value is None:
        return "never"
    return datetime.fromtimestamp(value / 1000).strftime("%Y-%m-%d %H:%M:%S")


def _print_event(event: ProgressEvent) -> None:
    if event.is_sentinel:
        return
    detail = f" ({event.detail})" if event.detail else ""
    print(f"  [{event.status.value}] {Path(event.path).name}{detail}")


def main():
    """CLI entry point."""
    import argparse

    parser = argparse.ArgumentParser(description="Incremental slide deck and PDF indexer")
    parser.add_argument("--state", help="Path to the catalog JSON file")
    parser.add_argument("--verbose", "-v", action="store_true", help="Verbose output")
    subparsers = parser.add_subparsers(dest="command", required=True)

    link_parser = subparsers.add_parser("link", help="Set the linked directories")
    link_parser.add_argument("directories", nargs="+", help="Directories to index")

    scan_parser = subparsers.add_parser("scan", help="Scan linked directories")
    scan_parser.add_argument("directory", nargs="?", help="Rescan only this linked directory")
    scan_parser.add_argument("--quiet", "-q", action="store_true", help="Hide per-file progress")

    search_parser = subparsers.add_parser("search", help="Search the catalog")
    search_parser.add_argument("query", nargs="*", help='Terms, "quoted phrases" or wild*cards')

    subparsers.add_parser("clear", help="Drop all indexed entries")
    subparsers.add_parser("status", help="Show linked directories and catalog state")

    args = parser.parse_args()

    # Configure logging
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="[%(levelname)s] %(name)s: %(message)s"
    )

    config = get_config()
    if args.state:
        config.state_path = Path(args.state)
        config.__post_init__()

    service = IndexService(config)

    async def _main():
        try:
            if args.command == "link":
                directories = [str(Path(d).expanduser().resolve()) for d in args.directories]
                for directory in service.submit_directories(directories):
                    print(directory)

            elif args.command == "scan":
                directory = str(Path(args.directory).expanduser().resolve()) if args.directory else None
                summary = await service.run_scan(
                    directory, observer=None if args.quiet else _print_event
                )
                print(f"\n{summary}")
                for warning in summary.warnings:
                    print(f"  ! {warning}")

            elif args.command == "search":
                response = service.query_catalog(" ".join(args.query))
                for entry in response.items:
                    print(f"{entry.display_name}\t{entry.path}")
                print(f"\n{response.total} matches (indexed {_format_timestamp(response.last_indexed_at)})")

            elif args.command == "clear":
                service.clear_catalog()
                print("Catalog cleared.")

            elif args.command == "status":
                state = service.fetch_state()
                print("Linked directories:")
                for directory in state.directories:
                    print(f"  {directory}")
                print(f"Entries: {len(state.entries)}")
                print(f"Last indexed: {_format_timestamp(state.last_indexed_at)}")
                for warning in state.warnings:
                    print(f"  ! {warning}")

        except KeyboardInterrupt:
            service.stop_scan()
            print("\nStopped.")
        finally:
            service.close()

    try:
        asyncio.run(_main())
    except (DirectoryNotLinked, ScanInProgress) as e:
        parser.exit(1, f"error: {e}\n")


if __name__ == "__main__":
    main()
