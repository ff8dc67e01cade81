"""Input validation for request bodies and uploaded files."""
import json
from pathlib import Path
from typing import Optional

from loguru import logger
from pydantic import ValidationError as PydanticValidationError

from resume_review.config import settings
from resume_review.errors import ValidationError
from resume_review.models import AnalyzeRequest


def parse_analyze_body(raw: bytes) -> AnalyzeRequest:
    """Decode a JSON analyze body. Field contents are checked separately."""
    try:
        body = json.loads(raw)
    except ValueError as e:
        logger.error(f"Invalid JSON body: {e}")
        raise ValidationError("Invalid JSON body") from e

    try:
        return AnalyzeRequest.model_validate(body)
    except PydanticValidationError as e:
        logger.warning(f"Analyze body failed schema validation: {e.error_count()} error(s)")
        raise ValidationError("Invalid request body") from e


def validate_resume_text(text: Optional[str]) -> str:
    if not text or not text.strip():
        raise ValidationError("Resume text cannot be empty", field="resumeText")
    limit = settings.max_resume_text_length
    if len(text) > limit:
        raise ValidationError(f"Resume text exceeds maximum length of {limit} characters", field="resumeText")
    return text


def validate_job_title(title: Optional[str]) -> Optional[str]:
    limit = settings.max_job_title_length
    if title and len(title) > limit:
        raise ValidationError(f"Job title exceeds maximum length of {limit} characters", field="jobTitle")
    return title


def validate_job_description(description: Optional[str]) -> Optional[str]:
    limit = settings.max_job_description_length
    if description and len(description) > limit:
        raise ValidationError(
            f"Job description exceeds maximum length of {limit} characters", field="jobDescription"
        )
    return description


def validate_upload(filename: Optional[str], media_type: Optional[str], size: int):
    """Reject uploads that are not PDF/JPG/PNG/WEBP, are empty, or exceed the size limit."""
    suffix = Path(filename or "").suffix.lower()
    if media_type not in settings.allowed_media_types and suffix not in settings.allowed_extensions:
        raise ValidationError("Only PDF and image files (JPG, PNG, WEBP) are allowed", field="file")

    if size == 0:
        raise ValidationError("File is empty", field="file")

    if size > settings.max_file_size:
        max_mb = settings.max_file_size / 1024 / 1024
        raise ValidationError(f"File size must be less than {max_mb:g}MB", field="file")
