"""Unit tests for status ranks and transitions."""
import pytest

from tracker.status_machine import (
    STATUS_APPLIED,
    STATUS_CLOSED,
    STATUS_INTERVIEWING,
    STATUS_OFFER,
    Transition,
    decide_transition,
    initial_transition,
)


@pytest.mark.parametrize(
    "email_type,expected",
    [
        ("application_confirmation", Transition(STATUS_APPLIED, None)),
        ("interview_invitation", Transition(STATUS_INTERVIEWING, None)),
        ("offer", Transition(STATUS_OFFER, None)),
        ("rejection", Transition(STATUS_CLOSED, "rejected")),
    ],
)
def test_initial_transition(email_type, expected):
    assert initial_transition(email_type) == expected


def test_forward_move_applies():
    assert decide_transition(STATUS_APPLIED, "interview_invitation") == Transition(STATUS_INTERVIEWING, None)
    assert decide_transition(STATUS_INTERVIEWING, "offer") == Transition(STATUS_OFFER, None)


def test_no_regression_from_offer():
    assert decide_transition(STATUS_OFFER, "application_confirmation") is None
    assert decide_transition(STATUS_OFFER, "interview_invitation") is None


def test_same_rank_is_noop():
    assert decide_transition(STATUS_INTERVIEWING, "interview_invitation") is None


@pytest.mark.parametrize("current", [STATUS_APPLIED, STATUS_INTERVIEWING, STATUS_OFFER])
def test_rejection_always_closes(current):
    assert decide_transition(current, "rejection") == Transition(STATUS_CLOSED, "rejected")


def test_rejection_on_closed_is_written_again():
    assert decide_transition(STATUS_CLOSED, "rejection") == Transition(STATUS_CLOSED, "rejected")


def test_closed_application_not_reopened():
    assert decide_transition(STATUS_CLOSED, "interview_invitation") is None
    assert decide_transition(STATUS_CLOSED, "offer") is None
