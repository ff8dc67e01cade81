"""Configuration for the resume review service."""
from typing import Optional

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings."""

    # App
    app_name: str = "ResumeReview"
    version: str = "0.3.0"
    debug: bool = False

    # Server
    host: str = "0.0.0.0"
    port: int = 8000

    # Language model (resolved at call time, see llm_client)
    llm_base_url: str = "http://localhost:11434"
    llm_model: Optional[str] = None
    llm_api_key: Optional[str] = None
    llm_timeout_seconds: float = 30.0
    llm_temperature: float = 0.2
    llm_max_tokens: int = 3000
    llm_max_attempts: int = 3
    llm_retry_initial_delay: float = 1.0

    # Rate limiting
    rate_limit_max: int = 10
    rate_limit_window_ms: int = 60_000
    rate_limit_sweep_interval_seconds: float = 300.0
    redis_url: Optional[str] = None

    # Extraction policy
    min_native_chars: int = 50
    min_absolute_chars: int = 10
    ocr_language: str = "eng"
    tesseract_cmd: Optional[str] = None
    min_ocr_dimension: int = 1024

    # Uploads
    max_file_size: int = 10 * 1024 * 1024
    allowed_media_types: list[str] = [
        "application/pdf",
        "image/jpeg",
        "image/jpg",
        "image/png",
        "image/webp",
    ]
    allowed_extensions: list[str] = [".pdf", ".png", ".jpg", ".jpeg", ".webp"]

    # Request body limits
    max_resume_text_length: int = 50_000
    max_job_title_length: int = 200
    max_job_description_length: int = 10_000

    class Config:
        env_file = ".env"
        case_sensitive = False


settings = Settings()


# Page rasterization presets. OCR renders at a higher scale than the preview
# because Tesseract accuracy drops quickly on small glyphs.
RENDER_SCALES = {
    "preview": {
        "scale": 1.4,
        "description": "First-page thumbnail shown next to the feedback",
    },
    "ocr": {
        "scale": 2.0,
        "description": "Input for text recognition",
    },
}


def get_render_scale(name: str) -> float:
    """Get the scale factor for a rasterization preset."""
    return RENDER_SCALES.get(name, RENDER_SCALES["ocr"])["scale"]
