"""Tests for the course result state machine."""

from datetime import date

import pytest

from results.errors import InvalidTransition, PublishPreconditionNotMet, ResultFinalized
from results.lifecycle import (
    Action, PublishConfirmation, allowed_actions, check_publish, next_status, publish_notification,
)
from results.models import ResultStatus


@pytest.mark.parametrize("current, action, expected", [
    ("draft", "calculate", ResultStatus.CALCULATED),
    ("calculated", "calculate", ResultStatus.CALCULATED),
    ("calculated", "publish", ResultStatus.PUBLISHED),
    ("calculated", "revert", ResultStatus.DRAFT),
    ("published", "finalize", ResultStatus.FINALIZED),
])
def test_legal_transitions(current, action, expected):
    assert next_status(current, action) == expected


@pytest.mark.parametrize("current, action", [
    ("draft", "publish"),
    ("draft", "finalize"),
    ("draft", "revert"),
    ("calculated", "finalize"),
    ("published", "calculate"),
    ("published", "revert"),
])
def test_illegal_transitions_name_both_states(current, action):
    with pytest.raises(InvalidTransition) as exc:
        next_status(current, action)
    assert (exc.value.current, exc.value.requested) == (current, action)


@pytest.mark.parametrize("action", list(Action))
def test_finalized_is_terminal(action):
    with pytest.raises(ResultFinalized):
        next_status(ResultStatus.FINALIZED, action, course_offering_id=7)


def test_allowed_actions():
    assert set(allowed_actions("calculated")) == {Action.CALCULATE, Action.PUBLISH, Action.REVERT}
    assert allowed_actions("finalized") == []


def test_publish_preconditions():
    full = PublishConfirmation(True, True, True)
    check_publish(full, date(2026, 1, 15))

    with pytest.raises(PublishPreconditionNotMet) as exc:
        check_publish(PublishConfirmation(True, False, True), date(2026, 1, 15))
    assert exc.value.missing == ["grades_reviewed"]

    with pytest.raises(PublishPreconditionNotMet) as exc:
        check_publish(full, None)
    assert exc.value.missing == ["publish_date"]

    with pytest.raises(PublishPreconditionNotMet):
        check_publish(None, date(2026, 1, 15))


def test_publish_notification_payload():
    request = publish_notification(3, ["stu-1", "stu-2"], date(2026, 1, 15), 2, course_code="CS101")
    assert request.event == "results_published"
    assert request.recipients == ["stu-1", "stu-2"]
    assert request.payload == {"course_code": "CS101", "publish_date": "2026-01-15", "students": 2}
