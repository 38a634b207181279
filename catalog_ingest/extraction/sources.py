# catalog_ingest/extraction/sources.py
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable, List, Union

import pymupdf

from ..utils.error_handler import SourceReadError

logger = logging.getLogger(__name__)

PAGE_BREAK = "\f"


@dataclass(frozen=True)
class SourceText:
    text: str
    page_count: int

    def sample(self, pages: int) -> str:
        """Roughly the first `pages` pages of text."""
        if pages <= 0 or not self.text:
            return ""
        if pages >= self.page_count:
            return self.text
        return self.text[:len(self.text) * pages // self.page_count]


def discover_sources(directory: Union[str, Path], extension: str = ".pdf") -> List[Path]:
    """All files in `directory` (not its subdirectories) with the given extension, sorted."""
    directory = Path(directory)
    if not directory.is_dir():
        raise SourceReadError(f"Source directory not found: {directory}")
    extension = extension.lower() if extension.startswith(".") else f".{extension.lower()}"
    return sorted(p for p in directory.iterdir() if p.is_file() and p.suffix.lower() == extension)


def resolve_sources(sources: Union[str, Path, Iterable[Union[str, Path]]], extension: str = ".pdf") -> List[Path]:
    """A directory is discovered; an explicit file list is taken as given."""
    if isinstance(sources, (str, Path)):
        path = Path(sources)
        return discover_sources(path, extension) if path.is_dir() else [path]
    return [Path(s) for s in sources]


def load_source_text(path: Union[str, Path]) -> SourceText:
    """
    Extract the text of one source document.

    PDFs are read page by page through pymupdf. Plain-text files hold text that
    was already extracted, with form feeds between pages.

    Raises:
        SourceReadError: If the file is missing, corrupt or unreadable
    """
    path = Path(path)
    if not path.is_file():
        raise SourceReadError(f"Source file not found: {path}")

    try:
        if path.suffix.lower() == ".pdf":
            return _load_pdf(path)
        text = path.read_text(encoding="utf-8")
    except SourceReadError:
        raise
    except Exception as e:
        raise SourceReadError(f"Could not read {path.name}: {e}") from e

    return SourceText(text=text.replace(PAGE_BREAK, "\n"), page_count=text.count(PAGE_BREAK) + 1)


def _load_pdf(path: Path) -> SourceText:
    doc = pymupdf.open(str(path))
    try:
        pages = [page.get_text() for page in doc]
    finally:
        doc.close()

    if not pages:
        raise SourceReadError(f"{path.name} has no pages")

    logger.info(f"Extracted {len(pages)} pages from {path.name}")
    return SourceText(text="\n".join(pages), page_count=len(pages))
