"""Structured email classification: one LLM call returning JSON, plus a rejection-language override."""
import json
import re
from dataclasses import dataclass
from typing import Optional

import openai

from .config import settings
from .errors import ClassificationError
from .status_machine import (
    TYPE_APPLICATION_CONFIRMATION,
    TYPE_INTERVIEW_INVITATION,
    TYPE_OFFER,
    TYPE_REJECTION,
)

TYPE_CALENDAR_EVENT = "calendar_event"
TYPE_RECRUITER_OUTREACH = "recruiter_outreach"
TYPE_UNKNOWN = "unknown"

EMAIL_TYPES = {
    TYPE_APPLICATION_CONFIRMATION,
    TYPE_INTERVIEW_INVITATION,
    TYPE_REJECTION,
    TYPE_OFFER,
    TYPE_CALENDAR_EVENT,
    TYPE_RECRUITER_OUTREACH,
    TYPE_UNKNOWN,
}

_TYPE_ALIASES = {
    "application": TYPE_APPLICATION_CONFIRMATION,
    "application_received": TYPE_APPLICATION_CONFIRMATION,
    "confirmation": TYPE_APPLICATION_CONFIRMATION,
    "interview": TYPE_INTERVIEW_INVITATION,
    "interview_request": TYPE_INTERVIEW_INVITATION,
    "screening_request": TYPE_INTERVIEW_INVITATION,
    "rejected": TYPE_REJECTION,
    "job_offer": TYPE_OFFER,
    "calendar": TYPE_CALENDAR_EVENT,
    "outreach": TYPE_RECRUITER_OUTREACH,
}

BODY_PROMPT_CHARS = 1500


@dataclass(frozen=True)
class Classification:
    type: str
    company: Optional[str] = None
    role: Optional[str] = None
    location: Optional[str] = None
    confidence: float = 0.0


UNKNOWN = Classification(type=TYPE_UNKNOWN)


def _get_client():
    api_key = settings.openai_api_key
    if not api_key:
        raise ValueError("OPENAI_API_KEY not set. Add to .env or environment.")
    return openai.OpenAI(api_key=api_key, timeout=settings.openai_timeout_s)


def normalize_type(raw: str) -> str:
    raw = (raw or "").strip().lower()
    raw = re.sub(r"[\s\-]+", "_", raw)
    if raw in EMAIL_TYPES:
        return raw
    return _TYPE_ALIASES.get(raw, TYPE_UNKNOWN)


def _clean_str(value, max_len: int = 255) -> Optional[str]:
    if not isinstance(value, str):
        return None
    value = value.strip()
    if not value or value.lower() in ("null", "none", "unknown", "n/a"):
        return None
    return value[:max_len]


def _clamp_confidence(value) -> float:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return 0.0
    return max(0.0, min(1.0, float(value)))


_REJECTION_PHRASES = [
    r"unfortunately",
    r"regret\s+to\s+inform",
    r"not\s+moving\s+forward",
    r"will\s+not\s+be\s+moving\s+forward",
    r"decided\s+to\s+(?:move\s+forward\s+with|pursue)\s+other\s+candidates?",
    r"position\s+has\s+been\s+filled",
    r"malheureusement",
    r"ne\s+pas\s+donner\s+suite",
]


def _has_rejection_language(text: str) -> bool:
    text = (text or "").lower()
    return any(re.search(p, text) for p in _REJECTION_PHRASES)


def apply_type_overrides(result: Classification, subject: str, body: str) -> Classification:
    """Confirmation-style emails that carry rejection language are rejections."""
    if result.type == TYPE_APPLICATION_CONFIRMATION and _has_rejection_language(f"{subject} {body}"):
        return Classification(
            type=TYPE_REJECTION,
            company=result.company,
            role=result.role,
            location=result.location,
            confidence=result.confidence,
        )
    return result


def parse_classification(data: dict) -> Classification:
    """Build a Classification from the model's JSON object."""
    return Classification(
        type=normalize_type(str(data.get("type") or "")),
        company=_clean_str(data.get("company")),
        role=_clean_str(data.get("role")),
        location=_clean_str(data.get("location")),
        confidence=_clamp_confidence(data.get("confidence")),
    )


def classify_email(subject: str, sender: str, body: str) -> Classification:
    """
    Classify a job email into (type, company, role, location, confidence).

    Unparseable model output is UNKNOWN (skipped by the sync). API failures raise
    ClassificationError so the email is retried on the next run.
    """
    body_sample = (body or "")[:BODY_PROMPT_CHARS]
    prompt = f"""You are parsing a job application email. Analyze the email and extract information.

Email From: {sender}
Email Subject: {subject}
Email Body (first {BODY_PROMPT_CHARS} chars):
{body_sample}

Determine:
1. type: What kind of email is this?
   - "application_confirmation" = confirmation that an application was received/submitted
   - "interview_invitation" = interview invitation, scheduling, or confirmation
   - "rejection" = rejection or "not moving forward" message
   - "offer" = job offer
   - "calendar_event" = calendar invite/acceptance notification, not a recruiter message
   - "recruiter_outreach" = unsolicited outreach about a role you did not apply to
   - "unknown" = not job-related or can't determine
2. company: What company is hiring? Extract from the email domain or content.
3. role: What job position/role is mentioned? (null if not clear)
4. location: Job location if mentioned (city, country, or "Remote"). null if not mentioned.
5. confidence: How confident are you? (0.0 to 1.0)

Return a JSON object with exactly these keys: type, company, role, location, confidence."""

    try:
        client = _get_client()
        response = client.chat.completions.create(
            model=settings.openai_model,
            temperature=settings.openai_temperature,
            max_tokens=200,
            response_format={"type": "json_object"},
            messages=[
                {"role": "system", "content": "Return strict JSON only. Do not add markdown or commentary."},
                {"role": "user", "content": prompt},
            ],
        )
    except openai.OpenAIError as e:
        raise ClassificationError(f"Classifier call failed: {e}") from e

    text = (response.choices[0].message.content or "").strip()
    # Strip markdown code block if present
    if text.startswith("```"):
        text = re.sub(r"^```\w*\n?", "", text).replace("```", "").strip()
    match = re.search(r"\{[\s\S]*\}", text)
    if not match:
        return UNKNOWN
    try:
        data = json.loads(match.group(0))
    except json.JSONDecodeError:
        return UNKNOWN
    if not isinstance(data, dict):
        return UNKNOWN
    return apply_type_overrides(parse_classification(data), subject, body)
