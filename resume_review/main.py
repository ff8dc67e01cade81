"""Main FastAPI application."""
import base64
from contextlib import asynccontextmanager
from typing import Optional

import psutil
from fastapi import Depends, FastAPI, File, Form, Request, UploadFile
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, PlainTextResponse
from loguru import logger

from resume_review.config import settings
from resume_review.errors import (
    ExtractionError,
    RateLimitError,
    ReviewError,
    ValidationError,
)
from resume_review.llm_client import get_chat_client
from resume_review.models import (
    Document,
    ExtractionResult,
    ExtractResponse,
    HealthResponse,
    RateLimitResult,
    ReviewResponse,
)
from resume_review.pipeline import FeedbackPipeline
from resume_review.rate_limiter import create_rate_limiter, get_client_identifier
from resume_review.security import SecurityHeadersMiddleware
from resume_review.validation import validate_upload

ANALYSIS_FAILED_MESSAGE = "Failed to analyze resume. Please try again."


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Manage application lifecycle."""
    logger.info(f"Starting {settings.app_name} {settings.version}")

    rate_limiter = create_rate_limiter()
    rate_limiter.start()
    app.state.pipeline = FeedbackPipeline(rate_limiter, get_chat_client())

    yield

    logger.info("Shutting down application")
    await rate_limiter.stop()


app = FastAPI(
    title=settings.app_name,
    version=settings.version,
    lifespan=lifespan
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)
app.add_middleware(SecurityHeadersMiddleware)


def get_pipeline(request: Request) -> FeedbackPipeline:
    return request.app.state.pipeline


def rate_limit_headers(rate_limit: RateLimitResult) -> dict[str, str]:
    return {
        "X-RateLimit-Limit": str(rate_limit.limit),
        "X-RateLimit-Remaining": str(rate_limit.remaining),
        "X-RateLimit-Reset": str(rate_limit.reset_time),
    }


@app.exception_handler(RateLimitError)
async def rate_limit_error_handler(request: Request, exc: RateLimitError):
    headers = {
        "Retry-After": str(exc.retry_after),
        "X-RateLimit-Limit": str(exc.limit),
        "X-RateLimit-Remaining": "0",
        "X-RateLimit-Reset": str(exc.reset_time),
    }
    return PlainTextResponse(exc.message, status_code=429, headers=headers)


@app.exception_handler(ValidationError)
async def validation_error_handler(request: Request, exc: ValidationError):
    return PlainTextResponse(exc.message, status_code=400)


@app.exception_handler(ExtractionError)
async def extraction_error_handler(request: Request, exc: ExtractionError):
    logger.warning(f"Extraction failed: {exc.message}")
    return PlainTextResponse(exc.message, status_code=422)


@app.exception_handler(ReviewError)
async def review_error_handler(request: Request, exc: ReviewError):
    # ConfigurationError and UpstreamError (ParseError arrives wrapped as UpstreamError)
    logger.error(f"Analysis error: {exc.to_dict()}")
    return PlainTextResponse(ANALYSIS_FAILED_MESSAGE, status_code=500)


def _extract_response(result: ExtractionResult) -> ExtractResponse:
    preview = None
    if result.preview_image:
        encoded = base64.b64encode(result.preview_image).decode("ascii")
        preview = f"data:{result.preview_media_type};base64,{encoded}"
    return ExtractResponse(
        text=result.text,
        source_strategy=result.source_strategy,
        confidence_met=result.confidence_met,
        page_count=result.page_count,
        preview=preview,
    )


async def _read_upload(file: UploadFile) -> Document:
    file.file.seek(0, 2)
    file_size = file.file.tell()
    file.file.seek(0)

    validate_upload(file.filename, file.content_type, file_size)
    data = await file.read()
    return Document.from_upload(data, filename=file.filename, media_type=file.content_type)


@app.get("/")
async def root():
    """Root endpoint."""
    return {
        "message": "Resume Review API",
        "version": settings.version,
        "docs": "/docs"
    }


@app.get("/api/health", response_model=HealthResponse)
async def health_check(pipeline: FeedbackPipeline = Depends(get_pipeline)):
    """Health check with OCR engine, Redis and RAM status."""
    durable = pipeline.rate_limiter.durable
    redis_connected = await durable.ping() if durable is not None else False
    ram = psutil.virtual_memory()
    return HealthResponse(
        status="healthy",
        tesseract_available=pipeline.orchestrator.ocr.is_available(),
        redis_connected=redis_connected,
        ram_total=ram.total // (1024 * 1024),
        ram_used=ram.used // (1024 * 1024),
    )


@app.post("/api/analyze")
async def analyze(request: Request, pipeline: FeedbackPipeline = Depends(get_pipeline)):
    """Score already-extracted resume text."""
    logger.info("API analyze called")
    body = await request.body()
    outcome = await pipeline.analyze(get_client_identifier(request), body)
    return JSONResponse(
        content=outcome.feedback.model_dump(by_alias=True),
        headers=rate_limit_headers(outcome.rate_limit),
    )


@app.post("/api/extract", response_model=ExtractResponse)
async def extract_only(
    file: UploadFile = File(...),
    pipeline: FeedbackPipeline = Depends(get_pipeline),
):
    """Extract resume text (native or OCR) without calling the model."""
    document = await _read_upload(file)
    logger.info(f"Extracting text from: {file.filename} ({document.kind}, {document.size} bytes)")

    result = await pipeline.orchestrator.extract(document)
    pipeline.orchestrator.ensure_usable_text(result)
    return JSONResponse(content=_extract_response(result).model_dump(by_alias=True))


@app.post("/api/review", response_model=ReviewResponse)
async def review_file(
    request: Request,
    file: UploadFile = File(...),
    job_title: Optional[str] = Form(None, alias="jobTitle"),
    job_description: Optional[str] = Form(None, alias="jobDescription"),
    pipeline: FeedbackPipeline = Depends(get_pipeline),
):
    """
    Full pipeline on an uploaded file:
    1. Extract text (native PDF text, OCR fallback)
    2. Score it with the language model
    """
    document = await _read_upload(file)
    logger.info(f"Processing file: {file.filename} ({document.kind})")

    outcome = await pipeline.review_document(
        get_client_identifier(request),
        document,
        job_title=job_title,
        job_description=job_description,
    )
    response = ReviewResponse(feedback=outcome.feedback, extraction=_extract_response(outcome.extraction))
    return JSONResponse(
        content=response.model_dump(by_alias=True),
        headers=rate_limit_headers(outcome.rate_limit),
    )


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "resume_review.main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.debug
    )
