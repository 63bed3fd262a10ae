"""Shared pytest fixtures for pdfforge tests."""

import os
from pathlib import Path
from typing import Callable, List

import pytest
from PyPDF2 import PdfReader, PdfWriter

from pdfforge import config
from pdfforge.config import Settings
from pdfforge.lifecycle import DelayQueue, FileLifecycleManager

# Page k (1-based) of a generated PDF is BASE_WIDTH + k points wide, so the
# source page behind any output page can be read back from its width.
BASE_WIDTH = 200
PAGE_HEIGHT = 792


class FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self, start: float = 1000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


def _write_pdf(path: Path, pages: int) -> Path:
    writer = PdfWriter()
    for number in range(1, pages + 1):
        writer.add_blank_page(width=BASE_WIDTH + number, height=PAGE_HEIGHT)
    with open(path, "wb") as f:
        writer.write(f)
    return path


def page_widths(path: Path) -> List[int]:
    """Source page numbers of every page in ``path``, decoded from widths."""
    reader = PdfReader(str(path))
    return [round(float(page.mediabox.width)) - BASE_WIDTH for page in reader.pages]


@pytest.fixture
def make_pdf(tmp_path: Path) -> Callable[..., Path]:
    """Factory for PDFs whose pages identify themselves by width."""

    def factory(pages: int, name: str = "doc.pdf") -> Path:
        return _write_pdf(tmp_path / name, pages)

    return factory


@pytest.fixture
def read_pages() -> Callable[[Path], List[int]]:
    """Decode source page numbers from a generated PDF."""
    return page_widths


@pytest.fixture
def sample_pdf(make_pdf: Callable[..., Path]) -> Path:
    """A 10-page PDF."""
    return make_pdf(10, "sample.pdf")


@pytest.fixture
def minimal_pdf(tmp_path: Path) -> Path:
    """Create a minimal valid PDF file using PyPDF2."""
    writer = PdfWriter()
    # Add a blank page (standard letter size)
    writer.add_blank_page(width=612, height=792)

    pdf_path = tmp_path / "minimal.pdf"
    with open(pdf_path, "wb") as f:
        writer.write(f)
    return pdf_path


@pytest.fixture
def letter_pdf(tmp_path: Path) -> Path:
    """A 3-page letter-size PDF for overlay tests."""
    writer = PdfWriter()
    for _ in range(3):
        writer.add_blank_page(width=612, height=792)
    pdf_path = tmp_path / "letter.pdf"
    with open(pdf_path, "wb") as f:
        writer.write(f)
    return pdf_path


@pytest.fixture
def corrupt_pdf(tmp_path: Path) -> Path:
    """A file with a .pdf name that is not a PDF."""
    path = tmp_path / "corrupt.pdf"
    path.write_bytes(b"This is definitely not a PDF document.\n" * 10)
    return path


@pytest.fixture
def fake_clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def manager(tmp_path: Path, fake_clock: FakeClock) -> FileLifecycleManager:
    """Lifecycle manager whose deferred releases run only on run_due()."""
    return FileLifecycleManager(
        tmp_path / "staging",
        grace_delay=30.0,
        retention=3600.0,
        sweep_interval=3600.0,
        scheduler=DelayQueue(clock=fake_clock),
    )


@pytest.fixture
def settings(tmp_path: Path) -> Settings:
    """Settings pointing at the test staging directory, no real Ghostscript."""
    return Settings(
        staging_dir=tmp_path / "staging",
        ghostscript_candidates=("pdfforge-test-missing-gs",),
    )


@pytest.fixture(autouse=True)
def _fresh_settings(monkeypatch: pytest.MonkeyPatch) -> None:
    """Never leak cached settings or PDFFORGE_* variables between tests."""
    monkeypatch.setattr(config, "_settings", None)
    for name in list(os.environ):
        if name.startswith(config.ENV_PREFIX):
            monkeypatch.delenv(name)


@pytest.fixture
def staged_files() -> Callable[[FileLifecycleManager], List[Path]]:
    """Lists every file currently in a manager's staging directories."""

    def list_files(manager: FileLifecycleManager) -> List[Path]:
        return sorted(p for d in manager.directories for p in d.iterdir() if p.is_file())

    return list_files
