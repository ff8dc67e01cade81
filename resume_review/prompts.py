"""Prompt text sent to the language model."""
from typing import List, Optional

from resume_review.models import ChatMessage

SYSTEM_PROMPT = (
    "You are a professional resume reviewer. "
    "Follow instructions strictly and return valid JSON only."
)

RESPONSE_FORMAT = """{
  "overallScore": number, // 0-100, overall quality of the resume
  "ATS": {
    "score": number, // 0-100, how well the resume passes applicant tracking systems
    "tips": [{"type": "good" | "improve", "tip": string, "explanation": string}]
  },
  "toneAndStyle": {"score": number, "tips": [{"type": "good" | "improve", "tip": string, "explanation": string}]},
  "content": {"score": number, "tips": [{"type": "good" | "improve", "tip": string, "explanation": string}]},
  "structure": {"score": number, "tips": [{"type": "good" | "improve", "tip": string, "explanation": string}]},
  "skills": {"score": number, "tips": [{"type": "good" | "improve", "tip": string, "explanation": string}]}
}"""


def prepare_instructions(job_title: Optional[str] = None, job_description: Optional[str] = None) -> str:
    """Task instructions for one review, tailored to the target job when given."""
    return f"""You are an expert in ATS (Applicant Tracking System) and resume analysis.
Please analyze and rate this resume and suggest how to improve it.
The rating can be low if the resume is bad.
Be thorough and detailed. Don't be afraid to point out any mistakes or areas for improvement.
If there is a lot to improve, don't hesitate to give low scores.
If available, use the job description for the job the user is applying to give more detailed feedback.
The job title is: {job_title or ""}
The job description is: {job_description or ""}
Provide the feedback using the following format:
{RESPONSE_FORMAT}
Give 3-4 tips per category.
Return the analysis as a JSON object, without any other text and without the backticks.
Do not include any other text or comments."""


def build_messages(
    resume_text: str,
    job_title: Optional[str] = None,
    job_description: Optional[str] = None,
) -> List[ChatMessage]:
    """System instruction first, then one user message with instructions and the resume."""
    prompt = prepare_instructions(job_title, job_description)
    return [
        ChatMessage(role="system", content=SYSTEM_PROMPT),
        ChatMessage(role="user", content=f"{prompt}\n\nResume:\n{resume_text}"),
    ]
