"""
Service Tests - The facade used by frontends and the CLI.
"""

import asyncio

import pytest

from slides_indexer.errors import DirectoryNotLinked, ScanInProgress
from slides_indexer.extractor import Extractor
from slides_indexer.models import ScanStatus
from slides_indexer.service import IndexService, normalize_directories
from slides_indexer.store import IndexStore
from slides_indexer.tiers import NativePdfTier


@pytest.fixture
def service(test_config, fake_ocr, all_tools):
    service = IndexService(
        test_config,
        extractor=Extractor(test_config, pdf_tiers=[NativePdfTier(), fake_ocr]),
        tools=all_tools,
    )
    yield service
    service.close()


@pytest.fixture
def library(temp_dir, make_pptx, make_pdf):
    """Two linked directories with a couple of documents each."""
    lectures = temp_dir / "lectures"
    books = temp_dir / "books"
    make_pptx(lectures / "thermo.pptx", ["Thermodynamics lecture overview", "Entropy and the second law"])
    make_pptx(lectures / "fourier.pptx", ["Fourier series", "Heat equation solutions"])
    make_pdf(books / "linear.pdf", ["Eigenvalues and eigenvectors of symmetric matrices"])
    return {"lectures": lectures, "books": books}


class TestDirectories:

    def test_normalize_trims_and_dedupes(self):
        assert normalize_directories([" /a ", "", "/b", "/a", "   "]) == ["/a", "/b"]

    def test_normalize_expands_home(self, temp_dir, monkeypatch):
        monkeypatch.setenv("HOME", str(temp_dir))

        assert normalize_directories(["~/Slides", str(temp_dir / "Slides")]) == [
            str(temp_dir / "Slides")
        ]

    def test_submit_persists_without_scanning(self, service, test_config, library):
        linked = service.submit_directories([str(library["lectures"]), str(library["books"])])

        assert linked == [str(library["lectures"]), str(library["books"])]
        state = service.fetch_state()
        assert state.directories == linked
        assert state.entries == []
        assert IndexStore(test_config).directories() == linked


class TestScanning:

    @pytest.mark.asyncio
    async def test_scan_all_linked(self, service, library):
        service.submit_directories([str(library["lectures"]), str(library["books"])])

        summary = await service.run_scan()

        assert summary.scanned == 3
        assert summary.indexed == 3
        assert not service.scanning

    @pytest.mark.asyncio
    async def test_scan_unlinked_directory_rejected(self, service, library):
        service.submit_directories([str(library["lectures"])])

        with pytest.raises(DirectoryNotLinked):
            await service.run_scan(str(library["books"]))

    @pytest.mark.asyncio
    async def test_directory_rescan_only_touches_that_directory(self, service, library):
        service.submit_directories([str(library["lectures"]), str(library["books"])])
        await service.run_scan()
        (library["books"] / "linear.pdf").unlink()
        (library["lectures"] / "fourier.pptx").unlink()

        summary = await service.run_scan(str(library["lectures"]))

        assert summary.removed == 1
        paths = [entry.path for entry in service.fetch_state().entries]
        assert str(library["books"] / "linear.pdf") in paths

    @pytest.mark.asyncio
    async def test_unlinking_a_directory_drops_its_entries(self, service, library):
        service.submit_directories([str(library["lectures"]), str(library["books"])])
        await service.run_scan()

        service.submit_directories([str(library["lectures"])])
        summary = await service.run_scan()

        assert summary.removed == 1
        assert summary.indexed == 2

    @pytest.mark.asyncio
    async def test_observer_receives_sentinel(self, service, library):
        service.submit_directories([str(library["lectures"])])
        events = []

        await service.run_scan(observer=events.append)

        assert events[-1].is_sentinel
        assert {e.status for e in events[:-1]} == {ScanStatus.SCANNING, ScanStatus.SAVED}

    @pytest.mark.asyncio
    async def test_progress_stream(self, service, library):
        service.submit_directories([str(library["lectures"])])
        stream = service.progress_stream()

        task = asyncio.create_task(service.run_scan())
        events = [event async for event in stream]
        summary = await task

        assert summary.scanned == 2
        assert [e.status for e in events] == [
            ScanStatus.SCANNING, ScanStatus.SAVED, ScanStatus.SCANNING, ScanStatus.SAVED,
        ]

    @pytest.mark.asyncio
    async def test_stop_scan(self, service, library):
        service.submit_directories([str(library["lectures"])])
        assert service.stop_scan() is False

        task = asyncio.create_task(service.run_scan())
        await asyncio.sleep(0)
        assert service.stop_scan() is True
        summary = await task

        assert summary.stopped
        assert summary.scanned <= 1

    @pytest.mark.asyncio
    async def test_clear_while_scanning_rejected(self, service, library):
        service.submit_directories([str(library["lectures"])])

        task = asyncio.create_task(service.run_scan())
        await asyncio.sleep(0)
        with pytest.raises(ScanInProgress):
            service.clear_catalog()
        await task


class TestQueries:

    @pytest.mark.asyncio
    async def test_query_catalog(self, service, library):
        service.submit_directories([str(library["lectures"]), str(library["books"])])
        await service.run_scan()

        assert service.query_catalog("").total == 3
        assert [e.display_name for e in service.query_catalog("entropy").items] == ["thermo.pptx"]
        assert service.query_catalog('"heat equation"').total == 1
        assert service.query_catalog("eigen*").items[0].display_name == "linear.pdf"
        assert service.query_catalog("entropy fourier").total == 0

        response = service.query_catalog("lecture")
        assert response.last_indexed_at == service.fetch_state().last_indexed_at

    @pytest.mark.asyncio
    async def test_get_entry_by_id(self, service, library):
        service.submit_directories([str(library["books"])])
        await service.run_scan()

        entry = service.fetch_state().entries[0]

        assert service.get_entry(entry.id) == entry
        assert service.get_entry("unknown") is None

    @pytest.mark.asyncio
    async def test_clear_catalog_keeps_directories(self, service, library):
        service.submit_directories([str(library["lectures"])])
        await service.run_scan()

        service.clear_catalog()

        state = service.fetch_state()
        assert state.entries == []
        assert state.warnings == []
        assert state.directories == [str(library["lectures"])]

    def test_fetch_state_reports_missing_tools(self, test_config, no_tools):
        service = IndexService(test_config, extractor=Extractor(test_config, pdf_tiers=[]), tools=no_tools)

        warnings = service.fetch_state().warnings
        service.close()

        assert len(warnings) == 1
        assert warnings[0].startswith("PDF extraction tools missing:")
