"""
System invariants and validation utilities.

Enforces critical system constraints:
1. Every completed task is justified by a ground-truth completion reason
2. A persisted timeline has exactly the required phases
3. Orchestrator requests carry a valid request_id and orchestrator name

Fail fast with explicit errors.
"""

import re
from typing import Iterable

from app.services.timeline_schema import REQUIRED_PHASE_COUNT, TimelineDraft

JUSTIFIED_COMPLETION_REASON = re.compile(
    r"^(?:(?:gmat|gre|ielts|toefl)_completed"
    r"|essay_\d+_completed"
    r"|calendar_event_completed"
    r"|user_marked)$"
)


class InvariantViolationError(Exception):
    """Base exception for invariant violations."""

    def __init__(self, invariant_name: str, message: str, details: dict = None):
        self.invariant_name = invariant_name
        self.details = details or {}
        super().__init__(f"[INVARIANT VIOLATION: {invariant_name}] {message}")


class UnjustifiedCompletionError(InvariantViolationError):
    """Raised when a task is completed without a ground-truth reason."""

    def __init__(self, message: str, details: dict = None):
        super().__init__("unjustified_task_completion", message, details)


class PhaseCountError(InvariantViolationError):
    """Raised when a timeline about to be persisted has the wrong phases."""

    def __init__(self, message: str, details: dict = None):
        super().__init__("timeline_phase_count", message, details)


def is_justified_reason(reason: str) -> bool:
    """Whether ``reason`` names a ground-truth completion signal."""
    return bool(JUSTIFIED_COMPLETION_REASON.match(reason or ""))


def check_completion_is_justified(draft: TimelineDraft) -> None:
    """
    Invariant: completed=True only with a ground-truth completion_reason.

    Raises:
        UnjustifiedCompletionError: Listing offending tasks
    """
    offending = [
        {"phase_id": phase.id, "task_id": str(task.id), "reason": task.completion_reason}
        for phase, task in draft.iter_tasks()
        if task.completed and not is_justified_reason(task.completion_reason)
    ]
    if offending:
        raise UnjustifiedCompletionError(
            f"{len(offending)} task(s) marked completed without ground truth",
            details={"tasks": offending}
        )


def check_phase_structure(draft: TimelineDraft, expected_ids: Iterable[int] = None) -> None:
    """
    Invariant: phases are exactly 1..N in order.

    Raises:
        PhaseCountError: If ids differ from the expected sequence
    """
    expected = list(expected_ids) if expected_ids is not None else list(range(1, REQUIRED_PHASE_COUNT + 1))
    if draft.phase_ids != expected:
        raise PhaseCountError(
            f"Expected phases {expected}, got {draft.phase_ids}",
            details={"expected": expected, "received": draft.phase_ids}
        )


def validate_request_id(request_id: str) -> None:
    """
    Validate request_id format.

    Raises:
        ValueError: If request_id is invalid
    """
    if not request_id:
        raise ValueError("request_id cannot be empty")

    if len(request_id) > 255:
        raise ValueError("request_id too long (max 255 characters)")

    if not request_id.replace('-', '').replace('_', '').replace('.', '').isalnum():
        raise ValueError("request_id must contain only alphanumeric characters, hyphens, underscores, and dots")


def validate_orchestrator_name(orchestrator_name: str) -> None:
    """
    Validate orchestrator name.

    Raises:
        ValueError: If orchestrator_name is invalid
    """
    if not orchestrator_name:
        raise ValueError("orchestrator_name cannot be empty")

    if len(orchestrator_name) > 100:
        raise ValueError("orchestrator_name too long (max 100 characters)")
