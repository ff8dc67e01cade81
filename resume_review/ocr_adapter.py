"""Adapter for Tesseract OCR (reads text out of rendered pages and photos)."""
import asyncio
import time
from typing import Callable, Optional

import pytesseract
from loguru import logger

from resume_review.config import settings
from resume_review.errors import ExtractionError
from resume_review.preprocessor import prepare_for_ocr

ProgressCallback = Callable[[int, str], None]

INSUFFICIENT_TEXT_MESSAGE = (
    "Unable to extract sufficient text from image. "
    "Please ensure the image is clear and contains readable text."
)


class ProgressReporter:
    """Forwards (percent, status) to a callback, clamped to [0, 100] and never decreasing."""

    def __init__(self, callback: Optional[ProgressCallback] = None, prefix: str = ""):
        self.callback = callback
        self.prefix = prefix
        self.percent = 0

    def __call__(self, percent: int, status: str):
        self.percent = max(self.percent, min(100, max(0, int(percent))))
        if self.callback is not None:
            self.callback(self.percent, f"{self.prefix}{status}")


class TesseractOCRAdapter:
    """Wrapper around pytesseract with progress reporting."""

    def __init__(
        self,
        language: Optional[str] = None,
        tesseract_cmd: Optional[str] = None,
        min_dimension: Optional[int] = None,
        min_chars: Optional[int] = None,
    ):
        self.language = language or settings.ocr_language
        self.min_dimension = min_dimension or settings.min_ocr_dimension
        self.min_chars = min_chars if min_chars is not None else settings.min_absolute_chars
        cmd = tesseract_cmd or settings.tesseract_cmd
        if cmd:
            pytesseract.pytesseract.tesseract_cmd = cmd
        self._engine_loaded = False

    def is_available(self) -> bool:
        """Check if the tesseract binary can be found."""
        try:
            pytesseract.get_tesseract_version()
            return True
        except (pytesseract.TesseractNotFoundError, OSError):
            return False

    def _load_engine(self):
        try:
            version = pytesseract.get_tesseract_version()
            installed = set(pytesseract.get_languages(config=""))
        except (pytesseract.TesseractNotFoundError, OSError) as e:
            logger.error(f"Tesseract is not installed: {e}")
            raise ExtractionError("OCR engine is not available.") from e

        missing = [lang for lang in self.language.split("+") if lang not in installed]
        if missing:
            raise ExtractionError(f"OCR language data not installed: {', '.join(missing)}")
        logger.info(f"Tesseract {version} loaded with language(s): {self.language}")
        self._engine_loaded = True

    def _run_inference_sync(self, image_bytes: bytes) -> str:
        """Preprocess and recognize one image (called via asyncio.to_thread)."""
        img = prepare_for_ocr(image_bytes, min_dimension=self.min_dimension)
        try:
            return pytesseract.image_to_string(img, lang=self.language)
        except (pytesseract.TesseractError, RuntimeError) as e:
            logger.error(f"Tesseract failed: {e}")
            raise ExtractionError("Failed to extract text from image. Please try a different file.") from e

    async def recognize(self, image_bytes: bytes, on_progress: Optional[ProgressCallback] = None) -> str:
        """Recognize text in one image. No minimum length is enforced."""
        progress = on_progress if isinstance(on_progress, ProgressReporter) else ProgressReporter(on_progress)
        progress(0, "Initializing...")

        if not self._engine_loaded:
            progress(0, "Loading OCR engine...")
            await asyncio.to_thread(self._load_engine)

        progress(0, "Scanning text...")
        start_time = time.time()
        text = await asyncio.to_thread(self._run_inference_sync, image_bytes)
        text = text.strip()
        progress(100, "Scanning text...")

        elapsed = int((time.time() - start_time) * 1000)
        logger.info(f"OCR completed in {elapsed}ms, recognized {len(text)} chars")
        return text

    async def extract_image_text(self, image_bytes: bytes, on_progress: Optional[ProgressCallback] = None) -> str:
        """Recognize text and reject results too short to be useful."""
        text = await self.recognize(image_bytes, on_progress)
        if len(text) < self.min_chars:
            raise ExtractionError(INSUFFICIENT_TEXT_MESSAGE)
        return text


# Global instance
ocr_adapter: Optional[TesseractOCRAdapter] = None


def get_ocr_adapter() -> TesseractOCRAdapter:
    """Get the global OCR adapter instance."""
    global ocr_adapter
    if ocr_adapter is None:
        ocr_adapter = TesseractOCRAdapter()
    return ocr_adapter
