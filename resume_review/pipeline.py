"""End-to-end feedback pipeline: admission, validation, model call, parsing."""
from dataclasses import dataclass
from typing import Optional, Union

from loguru import logger

from resume_review.config import settings
from resume_review.errors import MALFORMED_RESPONSE, ParseError, RateLimitError, UpstreamError
from resume_review.extraction import ExtractionOrchestrator
from resume_review.feedback_parser import parse_feedback
from resume_review.llm_client import ChatClient
from resume_review.models import AnalyzeRequest, Document, ExtractionResult, Feedback, RateLimitResult
from resume_review.ocr_adapter import ProgressCallback
from resume_review.prompts import build_messages
from resume_review.rate_limiter import RateLimiter
from resume_review.retry import RetryConfig, retry_with_backoff
from resume_review.validation import (
    parse_analyze_body,
    validate_job_description,
    validate_job_title,
    validate_resume_text,
)


@dataclass
class AnalysisOutcome:
    feedback: Feedback
    rate_limit: RateLimitResult


@dataclass
class ReviewOutcome:
    extraction: ExtractionResult
    feedback: Feedback
    rate_limit: RateLimitResult


class FeedbackPipeline:
    """Composes the rate limiter, extraction, the model client and the parser.

    Any failing step raises and nothing partial is returned.
    """

    def __init__(
        self,
        rate_limiter: RateLimiter,
        chat_client: ChatClient,
        orchestrator: Optional[ExtractionOrchestrator] = None,
        retry_config: Optional[RetryConfig] = None,
    ):
        self.rate_limiter = rate_limiter
        self.chat_client = chat_client
        self._orchestrator = orchestrator
        self.retry_config = retry_config or RetryConfig(
            max_attempts=settings.llm_max_attempts,
            initial_delay_seconds=settings.llm_retry_initial_delay,
        )

    @property
    def orchestrator(self) -> ExtractionOrchestrator:
        if self._orchestrator is None:
            self._orchestrator = ExtractionOrchestrator()
        return self._orchestrator

    async def admit(self, client_id: str) -> RateLimitResult:
        rate_limit = await self.rate_limiter.check(client_id)
        logger.info(
            f"Rate limit check: client={client_id} allowed={rate_limit.allowed} remaining={rate_limit.remaining}"
        )
        if not rate_limit.allowed:
            raise RateLimitError(rate_limit.reset_time, rate_limit.limit, now_ms=self.rate_limiter.now())
        return rate_limit

    async def generate_feedback(
        self,
        resume_text: str,
        job_title: Optional[str] = None,
        job_description: Optional[str] = None,
    ) -> Feedback:
        """Validate input, call the model (with retries) and parse its answer."""
        validate_resume_text(resume_text)
        validate_job_title(job_title)
        validate_job_description(job_description)

        messages = build_messages(resume_text, job_title, job_description)

        async def call_model() -> str:
            return await self.chat_client.chat(
                messages,
                temperature=settings.llm_temperature,
                max_tokens=settings.llm_max_tokens,
            )

        raw = await retry_with_backoff(call_model, self.retry_config)
        try:
            feedback = parse_feedback(raw)
        except ParseError as e:
            raise UpstreamError(MALFORMED_RESPONSE) from e

        logger.info(f"Feedback parsed, overall score {feedback.overall_score}")
        return feedback

    async def analyze(self, client_id: str, request: Union[AnalyzeRequest, bytes]) -> AnalysisOutcome:
        """Review already-extracted resume text.

        A raw JSON body is decoded only after admission, so malformed
        requests count against the client's window.
        """
        rate_limit = await self.admit(client_id)
        if not isinstance(request, AnalyzeRequest):
            request = parse_analyze_body(request)
        logger.info(
            f"Analyze request: text_length={len(request.resume_text)} "
            f"has_job_title={bool(request.job_title)} has_job_description={bool(request.job_description)}"
        )
        feedback = await self.generate_feedback(request.resume_text, request.job_title, request.job_description)
        return AnalysisOutcome(feedback=feedback, rate_limit=rate_limit)

    async def review_document(
        self,
        client_id: str,
        document: Document,
        job_title: Optional[str] = None,
        job_description: Optional[str] = None,
        on_progress: Optional[ProgressCallback] = None,
    ) -> ReviewOutcome:
        """Extract text from an uploaded document, then review it."""
        rate_limit = await self.admit(client_id)

        extraction = await self.orchestrator.extract(document, on_progress)
        resume_text = self.orchestrator.ensure_usable_text(extraction)
        logger.info(f"Resume text extracted, length: {len(resume_text)}")

        feedback = await self.generate_feedback(resume_text, job_title, job_description)
        return ReviewOutcome(extraction=extraction, feedback=feedback, rate_limit=rate_limit)
