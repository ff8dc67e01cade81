"""Native PDF text extraction and page rasterization with PyMuPDF."""
import threading
from typing import Optional

import fitz  # PyMuPDF
from loguru import logger

from resume_review.config import get_render_scale
from resume_review.errors import ExtractionError

CORRUPTED_PDF_MESSAGE = "Failed to extract text from PDF. The file may be corrupted or password-protected."

# MuPDF's global context is not thread-safe; every worker-thread pass holds this.
mupdf_lock = threading.Lock()


def open_pdf(data: bytes) -> fitz.Document:
    """Open a PDF from memory, translating PyMuPDF failures into ExtractionError.

    Callers must hold ``mupdf_lock``.
    """
    try:
        doc = fitz.open(stream=data, filetype="pdf")
    except (fitz.FileDataError, RuntimeError, ValueError) as e:
        logger.warning(f"PDF could not be opened: {e}")
        raise ExtractionError(CORRUPTED_PDF_MESSAGE) from e

    if doc.needs_pass:
        doc.close()
        raise ExtractionError(CORRUPTED_PDF_MESSAGE)
    if doc.page_count == 0:
        doc.close()
        raise ExtractionError("PDF has no pages")
    return doc


def _page_text(page: fitz.Page) -> str:
    """Join the page's text spans with single spaces, in reading order."""
    runs = []
    for block in page.get_text("dict", sort=True)["blocks"]:
        if block.get("type") != 0:
            continue
        for line in block["lines"]:
            for span in line["spans"]:
                text = span["text"].strip()
                if text:
                    runs.append(text)
    return " ".join(runs)


def extract_pdf_text(data: bytes) -> str:
    """Extract embedded text from every page; pages are separated by a blank line."""
    with mupdf_lock:
        doc = open_pdf(data)
        try:
            page_texts = [_page_text(page) for page in doc]
        except RuntimeError as e:
            raise ExtractionError(CORRUPTED_PDF_MESSAGE) from e
        finally:
            doc.close()

    text = "\n\n".join(page_texts).strip()
    logger.info(f"Native extraction read {len(text)} chars from {len(page_texts)} page(s)")
    if not text:
        raise ExtractionError(
            "No text could be extracted from the PDF. Please ensure your resume contains readable text."
        )
    return text


def count_pages(data: bytes) -> int:
    with mupdf_lock:
        doc = open_pdf(data)
        try:
            return doc.page_count
        finally:
            doc.close()


def _render(page: fitz.Page, scale: float) -> bytes:
    pix = page.get_pixmap(matrix=fitz.Matrix(scale, scale), alpha=False)
    return pix.tobytes("png")


def render_page_image(data: bytes, page_index: int, scale: Optional[float] = None) -> bytes:
    """Render one page to PNG bytes."""
    scale = scale if scale is not None else get_render_scale("ocr")
    with mupdf_lock:
        doc = open_pdf(data)
        try:
            if not 0 <= page_index < doc.page_count:
                raise ExtractionError(f"Page {page_index + 1} does not exist")
            return _render(doc[page_index], scale)
        finally:
            doc.close()


def render_pdf_pages(data: bytes, scale: Optional[float] = None) -> list[bytes]:
    """Render every page to PNG bytes, in page order."""
    scale = scale if scale is not None else get_render_scale("ocr")
    with mupdf_lock:
        doc = open_pdf(data)
        try:
            page_count = doc.page_count
            images = []
            for page_num in range(page_count):
                logger.debug(f"Rendering page {page_num + 1}/{page_count} at {scale}x")
                images.append(_render(doc[page_num], scale))
            return images
        finally:
            doc.close()


def generate_pdf_preview(data: bytes, scale: Optional[float] = None) -> bytes:
    """Render the first page as a preview image."""
    scale = scale if scale is not None else get_render_scale("preview")
    return render_page_image(data, 0, scale)
