# results/lifecycle.py
"""
Course result lifecycle.

    draft ──calculate──▶ calculated ──publish──▶ published ──finalize──▶ finalized
      ▲                    │  ▲  │
      └──────revert────────┘  └──┘ calculate (recalculate)

``TRANSITIONS`` is the only place legality is decided; ``next_status`` is
the single check every caller goes through.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from datetime import date, datetime
from enum import Enum
from typing import Any, Dict, List, Optional, Union

from results.errors import InvalidTransition, PublishPreconditionNotMet, ResultFinalized
from results.models import ResultStatus


class Action(str, Enum):
    CALCULATE = "calculate"
    PUBLISH = "publish"
    FINALIZE = "finalize"
    REVERT = "revert"


TRANSITIONS: Dict[tuple, ResultStatus] = {
    (ResultStatus.DRAFT, Action.CALCULATE): ResultStatus.CALCULATED,
    (ResultStatus.CALCULATED, Action.CALCULATE): ResultStatus.CALCULATED,
    (ResultStatus.CALCULATED, Action.PUBLISH): ResultStatus.PUBLISHED,
    (ResultStatus.CALCULATED, Action.REVERT): ResultStatus.DRAFT,
    (ResultStatus.PUBLISHED, Action.FINALIZE): ResultStatus.FINALIZED,
}


def next_status(current: Union[ResultStatus, str], action: Union[Action, str],
                course_offering_id: Optional[int] = None) -> ResultStatus:
    current = ResultStatus(current)
    action = Action(action)
    if current == ResultStatus.FINALIZED:
        raise ResultFinalized(course_offering_id, action.value)
    try:
        return TRANSITIONS[(current, action)]
    except KeyError:
        raise InvalidTransition(current.value, action.value)


def allowed_actions(current: Union[ResultStatus, str]) -> List[Action]:
    current = ResultStatus(current)
    return [a for (s, a) in TRANSITIONS if s == current]


# ============================================================================
# PUBLISH
# ============================================================================

@dataclass
class PublishConfirmation:
    """Checklist the publisher must assert before results go out."""
    marks_verified: bool = False
    grades_reviewed: bool = False
    approval_obtained: bool = False
    note: Optional[str] = None

    def missing(self) -> List[str]:
        return [name for name in ("marks_verified", "grades_reviewed", "approval_obtained")
                if getattr(self, name) is not True]

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


def check_publish(confirmation: Optional[PublishConfirmation],
                  publish_date: Optional[Union[date, datetime]]) -> None:
    missing = (confirmation.missing() if confirmation is not None
               else ["marks_verified", "grades_reviewed", "approval_obtained"])
    if publish_date is None:
        missing.append("publish_date")
    if missing:
        raise PublishPreconditionNotMet(missing)


@dataclass
class NotificationRequest:
    """What to announce and to whom; delivery belongs to the notifier."""
    event: str
    course_offering_id: int
    recipients: List[str] = field(default_factory=list)
    payload: Dict[str, Any] = field(default_factory=dict)


def publish_notification(course_offering_id: int, recipients: List[str],
                         publish_date: Union[date, datetime], student_count: int,
                         course_code: Optional[str] = None) -> NotificationRequest:
    return NotificationRequest(
        event="results_published",
        course_offering_id=course_offering_id,
        recipients=list(recipients),
        payload={
            "course_code": course_code,
            "publish_date": publish_date.isoformat(),
            "students": student_count,
        },
    )
