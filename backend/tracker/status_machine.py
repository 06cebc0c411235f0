"""Application status progression.

applied -> interviewing -> offer -> closed, compared by rank. Forward moves only,
except that a rejection always closes the application regardless of its stage.
"""
from dataclasses import dataclass
from typing import Optional

STATUS_APPLIED = "applied"
STATUS_INTERVIEWING = "interviewing"
STATUS_OFFER = "offer"
STATUS_CLOSED = "closed"

STATUS_RANK = {
    STATUS_APPLIED: 0,
    STATUS_INTERVIEWING: 1,
    STATUS_OFFER: 2,
    STATUS_CLOSED: 3,
}

TYPE_APPLICATION_CONFIRMATION = "application_confirmation"
TYPE_INTERVIEW_INVITATION = "interview_invitation"
TYPE_REJECTION = "rejection"
TYPE_OFFER = "offer"

TYPE_TO_STATUS = {
    TYPE_APPLICATION_CONFIRMATION: STATUS_APPLIED,
    TYPE_INTERVIEW_INVITATION: STATUS_INTERVIEWING,
    TYPE_OFFER: STATUS_OFFER,
    TYPE_REJECTION: STATUS_CLOSED,
}

# Email types that can create or move an Application.
JOB_EMAIL_TYPES = frozenset(TYPE_TO_STATUS)


@dataclass(frozen=True)
class Transition:
    status: str
    close_reason: Optional[str]


def status_for_type(email_type: str) -> str:
    """Status implied by a classified email type. Non-job types fall back to applied."""
    return TYPE_TO_STATUS.get(email_type, STATUS_APPLIED)


def close_reason_for_type(email_type: str) -> Optional[str]:
    return "rejected" if email_type == TYPE_REJECTION else None


def initial_transition(email_type: str) -> Transition:
    """Status and close reason for an Application created from this email."""
    return Transition(status_for_type(email_type), close_reason_for_type(email_type))


def decide_transition(
    current_status: str,
    email_type: str,
) -> Optional[Transition]:
    """
    Return the Transition to write for an existing Application, or None when the
    email must leave its status untouched.
    A rejection is always written, even onto an application already closed.
    """
    target = initial_transition(email_type)
    old_rank = STATUS_RANK.get(current_status, 0)
    new_rank = STATUS_RANK[target.status]

    if email_type == TYPE_REJECTION:
        return target
    if new_rank > old_rank:
        return target
    return None
