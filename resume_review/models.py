"""Pydantic models for documents, extraction results and resume feedback."""
from pathlib import Path
from typing import List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field

PDF_MEDIA_TYPE = "application/pdf"
IMAGE_EXTENSIONS = (".png", ".jpg", ".jpeg", ".webp")

DocumentKind = Literal["pdf", "image"]
SourceStrategy = Literal["native", "ocr"]
ChatRole = Literal["system", "user", "assistant"]


class Document(BaseModel):
    """An uploaded resume file. Immutable once created."""
    model_config = ConfigDict(frozen=True)

    data: bytes
    kind: DocumentKind
    size: int
    filename: Optional[str] = None
    media_type: Optional[str] = None

    @classmethod
    def from_upload(
        cls,
        data: bytes,
        filename: Optional[str] = None,
        media_type: Optional[str] = None,
    ) -> "Document":
        """Build a document, inferring its kind from media type, magic bytes, then extension."""
        if media_type == PDF_MEDIA_TYPE:
            kind = "pdf"
        elif media_type and media_type.startswith("image/"):
            kind = "image"
        elif data[:4] == b"%PDF":
            kind = "pdf"
        elif filename and Path(filename).suffix.lower() == ".pdf":
            kind = "pdf"
        else:
            kind = "image"
        return cls(data=data, kind=kind, size=len(data), filename=filename, media_type=media_type)


class ExtractionResult(BaseModel):
    """Text pulled out of a document, plus how it was obtained."""
    text: str
    confidence_met: bool
    source_strategy: SourceStrategy
    preview_image: Optional[bytes] = None
    preview_media_type: str = "image/png"
    page_count: int = 1


class ChatMessage(BaseModel):
    role: ChatRole
    content: str


class Tip(BaseModel):
    type: Literal["good", "improve"] = "improve"
    tip: str
    explanation: str = ""


class CategoryFeedback(BaseModel):
    score: int = 0
    tips: List[Tip] = Field(default_factory=list)


class Feedback(BaseModel):
    """Validated scorecard. Every category is always present."""
    model_config = ConfigDict(populate_by_name=True)

    overall_score: int = Field(default=0, alias="overallScore")
    ats: CategoryFeedback = Field(default_factory=CategoryFeedback, alias="ATS")
    tone_and_style: CategoryFeedback = Field(default_factory=CategoryFeedback, alias="toneAndStyle")
    content: CategoryFeedback = Field(default_factory=CategoryFeedback)
    structure: CategoryFeedback = Field(default_factory=CategoryFeedback)
    skills: CategoryFeedback = Field(default_factory=CategoryFeedback)


class RateLimitResult(BaseModel):
    """Outcome of one admission check. Times are epoch milliseconds."""
    allowed: bool
    remaining: int
    reset_time: int
    limit: int


class AnalyzeRequest(BaseModel):
    """Body of POST /api/analyze."""
    model_config = ConfigDict(populate_by_name=True)

    resume_text: str = Field(default="", alias="resumeText")
    job_title: Optional[str] = Field(default=None, alias="jobTitle")
    job_description: Optional[str] = Field(default=None, alias="jobDescription")


class ExtractResponse(BaseModel):
    """Response of POST /api/extract."""
    model_config = ConfigDict(populate_by_name=True)

    text: str
    source_strategy: SourceStrategy = Field(alias="sourceStrategy")
    confidence_met: bool = Field(alias="confidenceMet")
    page_count: int = Field(alias="pageCount")
    preview: Optional[str] = None


class ReviewResponse(BaseModel):
    """Response of POST /api/review."""
    feedback: Feedback
    extraction: ExtractResponse


class HealthResponse(BaseModel):
    """Health check response."""
    status: str
    tesseract_available: bool
    redis_connected: bool
    ram_total: int
    ram_used: int
