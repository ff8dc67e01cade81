"""Shared fixtures and fakes for the resume review tests."""
import json
from typing import List, Optional

import fitz
import pytest

from resume_review.rate_limiter import InMemoryRateLimitBackend, RateLimiter

FEEDBACK_JSON = {
    "overallScore": 72,
    "ATS": {"score": 80, "tips": [{"type": "good", "tip": "Clear headings", "explanation": "Parsable"}]},
    "toneAndStyle": {"score": 65, "tips": []},
    "content": {"score": 70, "tips": [{"type": "improve", "tip": "Quantify impact", "explanation": ""}]},
    "structure": {"score": 75, "tips": []},
    "skills": {"score": 68, "tips": []},
}


def make_pdf(page_texts: List[str]) -> bytes:
    """Build a real PDF with one page per entry (empty string = blank page)."""
    doc = fitz.open()
    for text in page_texts:
        page = doc.new_page()
        if text:
            page.insert_text((72, 72), text, fontsize=10)
    data = doc.tobytes()
    doc.close()
    return data


def make_png(width: int = 200, height: int = 100) -> bytes:
    pix = fitz.Pixmap(fitz.csRGB, fitz.IRect(0, 0, width, height), False)
    pix.set_rect(pix.irect, (255, 255, 255))
    return pix.tobytes("png")


class FakeClock:
    """Millisecond clock the tests advance by hand."""

    def __init__(self, start: int = 1_700_000_000_000):
        self.now = start

    def __call__(self) -> int:
        return self.now

    def advance(self, ms: int):
        self.now += ms


class FakeOCR:
    """Stands in for TesseractOCRAdapter; returns scripted text per call."""

    def __init__(self, texts: Optional[List[str]] = None, min_chars: int = 10):
        self.texts = list(texts or [])
        self.min_chars = min_chars
        self.calls: List[bytes] = []

    def is_available(self) -> bool:
        return True

    async def recognize(self, image_bytes, on_progress=None) -> str:
        self.calls.append(image_bytes)
        if on_progress is not None:
            on_progress(0, "Scanning text...")
            on_progress(100, "Scanning text...")
        return self.texts.pop(0).strip() if self.texts else ""

    async def extract_image_text(self, image_bytes, on_progress=None) -> str:
        from resume_review.errors import ExtractionError

        text = await self.recognize(image_bytes, on_progress)
        if len(text) < self.min_chars:
            raise ExtractionError("Unable to extract sufficient text from image.")
        return text


class FakeChatClient:
    """Scripted model client: each call pops the next response or raises it."""

    def __init__(self, responses=None):
        self.responses = list(responses or [json.dumps(FEEDBACK_JSON)])
        self.calls = []

    async def chat(self, messages, temperature=None, max_tokens=None) -> str:
        self.calls.append({"messages": list(messages), "temperature": temperature, "max_tokens": max_tokens})
        response = self.responses.pop(0) if len(self.responses) > 1 else self.responses[0]
        if isinstance(response, Exception):
            raise response
        return response


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def memory_limiter(clock):
    backend = InMemoryRateLimitBackend(max_requests=10, window_ms=60_000, clock=clock)
    return RateLimiter(backend)


@pytest.fixture
def fake_chat():
    return FakeChatClient()


@pytest.fixture
def text_pdf():
    return make_pdf(["Experienced engineer with 8 years building distributed systems in Python and Go."])


@pytest.fixture
def scanned_pdf():
    return make_pdf(["1", "2", "3"])
