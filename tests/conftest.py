# ABOUTME: Shared pytest fixtures for bibliomerge tests.
# ABOUTME: Builds sample EPUB files (valid, mangled, corrupt) whose embedded metadata acts as a provider.

from pathlib import Path

import pytest
from ebooklib import epub


def _write_book(book: epub.EpubBook, path: Path) -> Path:
    """Add a minimal chapter and navigation, then write the EPUB to path."""
    chapter = epub.EpubHtml(title="Chapter 1", file_name="chap01.xhtml", lang="en")
    chapter.content = b"<html><body><h1>Chapter 1</h1><p>Content.</p></body></html>"
    book.add_item(chapter)

    book.toc = [epub.Link("chap01.xhtml", "Chapter 1", "chap01")]
    book.add_item(epub.EpubNcx())
    book.add_item(epub.EpubNav())
    book.spine = ["nav", chapter]

    epub.write_epub(str(path), book)
    return path


@pytest.fixture
def fixtures_dir() -> Path:
    """Path to the test fixtures directory."""
    return Path(__file__).parent / "fixtures"


@pytest.fixture
def sample_epub(tmp_path: Path) -> Path:
    """Create a valid EPUB with an ISBN, series and full Dublin Core metadata."""
    book = epub.EpubBook()

    book.set_identifier("urn:isbn:9780156001311")
    book.set_title("The Name of the Rose")
    book.set_language("en")
    book.add_author("Umberto Eco")

    book.add_metadata("DC", "publisher", "Harcourt")
    book.add_metadata("DC", "date", "1983-10-01")
    book.add_metadata("DC", "description", "A mystery set in a medieval monastery.")
    book.add_metadata("DC", "subject", "Fiction")
    book.add_metadata("DC", "subject", "Mystery")
    book.add_metadata(None, "meta", "", {"name": "calibre:series", "content": "Monastery Mysteries"})
    book.add_metadata(None, "meta", "", {"name": "calibre:series_index", "content": "1"})

    return _write_book(book, tmp_path / "name_of_the_rose.epub")


@pytest.fixture
def minimal_epub(tmp_path: Path) -> Path:
    """Create an EPUB with minimal metadata (only title)."""
    book = epub.EpubBook()
    book.set_identifier("minimal-id")
    book.set_title("Untitled Book")
    book.set_language("en")
    return _write_book(book, tmp_path / "minimal.epub")


@pytest.fixture
def mangled_epub(tmp_path: Path) -> Path:
    """Create an EPUB whose title is a concatenated author-and-title string."""
    book = epub.EpubBook()
    book.set_identifier("calibre-uuid-1234")
    book.set_title("UmbertoEco-TheNameOfTheRose")
    book.set_language("en")
    book.add_author("Unknown")
    return _write_book(book, tmp_path / "UmbertoEco-TheNameOfTheRose.epub")


@pytest.fixture
def corrupt_epub(tmp_path: Path) -> Path:
    """Create a corrupt file that is not a valid EPUB."""
    filepath = tmp_path / "corrupt.epub"
    filepath.write_text("this is not a valid epub file")
    return filepath
