"""Source loading — Markdown as-is, PDFs converted to Markdown first.

PDF conversion uses docling (which keeps headings as ``#`` lines, so the
section parser has something to work with) and can fall back to plain pypdf
text.  The converted Markdown is cached as ``{stem}.md`` next to the PDF and
reused on later runs; a zero-byte cache file counts as missing.
"""

import logging
import threading
from pathlib import Path

from docling.document_converter import DocumentConverter
from pypdf import PdfReader

from papersum.models import ParseError

logger = logging.getLogger(__name__)

MARKDOWN_SUFFIXES = frozenset({".md", ".markdown"})

# docling is not reliably thread-safe; serialize conversions.
_DOCLING_LOCK = threading.Lock()


def load_markdown(source: Path, reparse: bool = False, extractor: str = "auto") -> str:
    """Return the Markdown text for ``source``.

    Args:
        source:    A ``.md``/``.markdown`` file or a ``.pdf``.
        reparse:   Convert a PDF again even if a cached ``.md`` exists.
        extractor: ``auto`` (docling, then pypdf on failure), ``docling`` or
                   ``pypdf``.

    Raises:
        ParseError: unsupported suffix, unreadable file, or failed conversion.
    """
    suffix = source.suffix.lower()
    if suffix in MARKDOWN_SUFFIXES:
        return _read_text(source)
    if suffix == ".pdf":
        return _pdf_to_markdown(source, reparse=reparse, extractor=extractor)
    raise ParseError(f"Unsupported source type {source.suffix!r}: {source}")


def cache_path_for(pdf_path: Path) -> Path:
    return pdf_path.with_suffix(".md")


def _read_text(path: Path) -> str:
    try:
        return path.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as e:
        raise ParseError(f"Cannot read {path}: {e}") from e


def _pdf_to_markdown(pdf_path: Path, reparse: bool, extractor: str) -> str:
    cached = cache_path_for(pdf_path)
    if not reparse and cached.exists() and cached.stat().st_size > 0:
        logger.info("Using cached Markdown: %s", cached.name)
        return _read_text(cached)

    logger.info("Converting %s to Markdown (%s)", pdf_path.name, extractor)
    if extractor == "docling":
        markdown = _convert_with_docling(pdf_path)
    elif extractor == "pypdf":
        markdown = _convert_with_pypdf(pdf_path)
    else:
        markdown = _convert_auto(pdf_path)

    cached.write_text(markdown, encoding="utf-8")
    logger.info("Conversion complete: %s chars -> %s", f"{len(markdown):,}", cached.name)
    return markdown


def _convert_auto(pdf_path: Path) -> str:
    try:
        return _convert_with_docling(pdf_path)
    except ParseError as docling_exc:
        logger.warning(
            "docling failed for %s, falling back to pypdf: %s", pdf_path.name, docling_exc
        )
        try:
            return _convert_with_pypdf(pdf_path)
        except ParseError as pypdf_exc:
            raise ParseError(
                f"Cannot convert {pdf_path}: docling and pypdf both failed ({pypdf_exc})"
            ) from (docling_exc.__cause__ or docling_exc)


def _convert_with_docling(pdf_path: Path) -> str:
    try:
        with _DOCLING_LOCK:
            result = DocumentConverter().convert(str(pdf_path))
        return result.document.export_to_markdown()
    except Exception as e:
        raise ParseError(f"docling could not convert {pdf_path}: {e}") from e


def _convert_with_pypdf(pdf_path: Path) -> str:
    """Plain text extraction; pages separated by blank lines, no headings."""
    try:
        reader = PdfReader(str(pdf_path))
        text = "\n\n".join(page.extract_text() or "" for page in reader.pages).strip()
    except Exception as e:
        raise ParseError(f"pypdf could not read {pdf_path}: {e}") from e
    if not text:
        raise ParseError(f"pypdf extracted no text from {pdf_path}")
    return text
