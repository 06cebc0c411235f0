"""Subject heuristics that drop non-application noise before classification."""
import re

CALENDAR_SUBJECT_PREFIXES = (
    "Invitation from",
    "Updated invitation",
)

CALENDAR_SUBJECT_PATTERNS = [
    r"has been added to your calendar",
    r"\b(?:Accepted|Declined):",
    r"^Tentatively accepted:",
]


def is_calendar_artifact(subject: str) -> bool:
    """True for calendar notifications (invites, accept/decline receipts), which never carry application state."""
    subject = (subject or "").strip()
    if not subject:
        return False
    if subject.startswith(CALENDAR_SUBJECT_PREFIXES):
        return True
    return any(re.search(p, subject) for p in CALENDAR_SUBJECT_PATTERNS)
