"""Extraction orchestrator: native PDF text first, OCR when that is not enough."""
import asyncio
import time
from typing import Optional

from loguru import logger

from resume_review import pdf_extractor
from resume_review.config import get_render_scale, settings
from resume_review.errors import ExtractionError
from resume_review.models import Document, ExtractionResult
from resume_review.ocr_adapter import ProgressCallback, ProgressReporter, TesseractOCRAdapter, get_ocr_adapter

INSUFFICIENT_TEXT_MESSAGE = "Unable to extract sufficient text. Please ensure your resume contains readable text."


class ExtractionOrchestrator:
    """Turns an uploaded document into text.

    Images go straight to OCR. PDFs try native extraction (concurrently with
    the preview render) and fall back to page-by-page OCR when the native
    text is missing or shorter than ``min_native_chars``.
    """

    def __init__(
        self,
        ocr: Optional[TesseractOCRAdapter] = None,
        min_native_chars: Optional[int] = None,
        min_absolute_chars: Optional[int] = None,
        preview_scale: Optional[float] = None,
        ocr_scale: Optional[float] = None,
    ):
        self.ocr = ocr or get_ocr_adapter()
        self.min_native_chars = min_native_chars if min_native_chars is not None else settings.min_native_chars
        self.min_absolute_chars = (
            min_absolute_chars if min_absolute_chars is not None else settings.min_absolute_chars
        )
        self.preview_scale = preview_scale or get_render_scale("preview")
        self.ocr_scale = ocr_scale or get_render_scale("ocr")

    async def extract(self, document: Document, on_progress: Optional[ProgressCallback] = None) -> ExtractionResult:
        start_time = time.time()
        if document.kind == "pdf":
            result = await self._extract_pdf(document, on_progress)
        else:
            result = await self._extract_image(document, on_progress)

        elapsed = int((time.time() - start_time) * 1000)
        logger.info(
            f"Extraction finished in {elapsed}ms via {result.source_strategy}: "
            f"{len(result.text)} chars, {result.page_count} page(s)"
        )
        return result

    def ensure_usable_text(self, result: ExtractionResult) -> str:
        """Apply the absolute floor every path must clear."""
        if not result.confidence_met:
            raise ExtractionError(INSUFFICIENT_TEXT_MESSAGE)
        return result.text

    def _build_result(
        self,
        text: str,
        strategy: str,
        preview: Optional[bytes],
        page_count: int,
        media_type: str = "image/png",
    ) -> ExtractionResult:
        text = text.strip()
        return ExtractionResult(
            text=text,
            confidence_met=len(text) >= self.min_absolute_chars,
            source_strategy=strategy,
            preview_image=preview,
            preview_media_type=media_type,
            page_count=page_count,
        )

    async def _extract_image(self, document: Document, on_progress: Optional[ProgressCallback]) -> ExtractionResult:
        logger.info(f"Processing image upload ({document.size} bytes) with OCR")
        text = await self.ocr.extract_image_text(document.data, ProgressReporter(on_progress))
        # The original bytes double as the preview.
        return self._build_result(
            text, "ocr", document.data, page_count=1, media_type=document.media_type or "image/png"
        )

    async def _try_native(self, data: bytes) -> Optional[str]:
        try:
            return await asyncio.to_thread(pdf_extractor.extract_pdf_text, data)
        except ExtractionError as e:
            logger.info(f"Native PDF extraction failed, will try OCR fallback: {e}")
            return None

    async def _try_preview(self, data: bytes) -> Optional[bytes]:
        try:
            return await asyncio.to_thread(pdf_extractor.generate_pdf_preview, data, self.preview_scale)
        except ExtractionError as e:
            logger.warning(f"Preview generation failed: {e}")
            return None

    async def _extract_pdf(self, document: Document, on_progress: Optional[ProgressCallback]) -> ExtractionResult:
        native, preview = await asyncio.gather(
            self._try_native(document.data),
            self._try_preview(document.data),
        )

        if native is not None and len(native.strip()) >= self.min_native_chars:
            page_count = await asyncio.to_thread(pdf_extractor.count_pages, document.data)
            return self._build_result(native, "native", preview, page_count)

        if native is not None:
            logger.info(
                f"Native PDF text too short ({len(native.strip())} < {self.min_native_chars} chars), "
                "falling back to OCR"
            )
        return await self._ocr_fallback(document, on_progress)

    async def _ocr_fallback(self, document: Document, on_progress: Optional[ProgressCallback]) -> ExtractionResult:
        ProgressReporter(on_progress)(0, "PDF not readable, using OCR...")

        page_images = await asyncio.to_thread(pdf_extractor.render_pdf_pages, document.data, self.ocr_scale)
        total = len(page_images)
        logger.info(f"OCR fallback over {total} page(s) at {self.ocr_scale}x")

        page_texts = []
        for idx, image in enumerate(page_images):
            page_num = idx + 1
            logger.info(f"Processing page {page_num}/{total}")
            reporter = ProgressReporter(on_progress, prefix=f"Page {page_num}/{total}: ")
            page_texts.append(await self.ocr.recognize(image, reporter))

        preview = await self._try_preview(document.data)
        return self._build_result("\n\n".join(page_texts), "ocr", preview, page_count=total)
