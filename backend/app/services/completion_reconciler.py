"""
Completion reconciler.

Recomputes every task's ``completed`` flag from ground truth. The value the
model produced is never kept: it is overwritten on every task, and tasks
whose value changed are counted as fixes.

Rules, first match wins:
1. Task requires a test and the user has a score for it
   -> completed, reason "<test>_completed"
2. Task title names an essay number within range
   -> the essay's completion flag, in both directions,
      reason "essay_<n>_completed" / "essay_<n>_not_completed"
3. Task title fuzzy-matches a completed calendar event
   -> completed, reason "calendar_event_completed"
4. Task was ticked off by the user on a stored timeline
   -> completed, reason "user_marked"
5. Otherwise -> not completed, reason "not_started"
"""

import logging
import re
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from app.services.fuzzy_matcher import DEFAULT_MIN_LENGTH, DEFAULT_THRESHOLD, match_event_to_task
from app.services.timeline_schema import (
    TEST_TYPES,
    DraftTask,
    GroundTruthSignals,
    TimelineDraft,
)
from app.utils.observability import EventSink, LoggingEventSink

logger = logging.getLogger(__name__)

ESSAY_NUMBER_PATTERNS = (
    re.compile(r"essay\s*#?(\d+)", re.IGNORECASE),
    re.compile(r"(\d+)(?:st|nd|rd|th)?\s*essay", re.IGNORECASE),
    re.compile(r"prompt\s*#?(\d+)", re.IGNORECASE),
)

REASON_NOT_STARTED = "not_started"
REASON_CALENDAR = "calendar_event_completed"
REASON_USER_MARKED = "user_marked"


def essay_number_from_title(title: str) -> Optional[int]:
    """Essay number referenced by a task title ("Essay #2: ...", "2nd essay"), if any."""
    for pattern in ESSAY_NUMBER_PATTERNS:
        match = pattern.search(title or "")
        if match:
            return int(match.group(1))
    return None


@dataclass
class TaskDecision:
    completed: bool
    reason: str
    related_essay_id: Any = None
    related_calendar_event_id: Any = None


@dataclass
class ReconciliationSummary:
    """
    Outcome of a reconciliation pass.

    Attributes:
        total_tasks: Tasks examined
        completed_tasks: Tasks completed after reconciliation
        fixed_count: Tasks whose completed flag differed from the incoming value
        changes: One entry per fixed task
        reasons: Count of tasks per completion reason
    """
    total_tasks: int = 0
    completed_tasks: int = 0
    fixed_count: int = 0
    changes: List[Dict[str, Any]] = field(default_factory=list)
    reasons: Dict[str, int] = field(default_factory=dict)


class CompletionReconciler:
    """Applies ground truth to every task of a draft."""

    def __init__(
        self,
        match_threshold: float = DEFAULT_THRESHOLD,
        min_title_length: int = DEFAULT_MIN_LENGTH,
        events: Optional[EventSink] = None,
    ):
        self.match_threshold = match_threshold
        self.min_title_length = min_title_length
        self.events = events or LoggingEventSink(logger)

    def reconcile(self, draft: TimelineDraft, signals: GroundTruthSignals) -> ReconciliationSummary:
        """
        Overwrite ``completed``, ``status`` and ``completion_reason`` of every task.

        Never raises for well-formed drafts; tasks without applicable ground
        truth end up not completed.

        Args:
            draft: Draft to update in place
            signals: Ground truth

        Returns:
            ReconciliationSummary
        """
        summary = ReconciliationSummary()

        for phase, task in draft.iter_tasks():
            decision = self.decide(task, signals)
            previous = task.completed if task.declared_completed is None else task.declared_completed

            task.completed = decision.completed
            task.declared_completed = None
            task.status = "completed" if decision.completed else "pending"
            task.completion_reason = decision.reason
            if decision.related_essay_id is not None:
                task.related_essay_id = decision.related_essay_id
            if decision.related_calendar_event_id is not None:
                task.related_calendar_event_id = decision.related_calendar_event_id

            summary.total_tasks += 1
            if decision.completed:
                summary.completed_tasks += 1
            summary.reasons[decision.reason] = summary.reasons.get(decision.reason, 0) + 1
            if previous != decision.completed:
                summary.fixed_count += 1
                summary.changes.append({
                    "phase_id": phase.id,
                    "task_id": str(task.id),
                    "title": (task.title or "")[:80],
                    "was_completed": previous,
                    "now_completed": decision.completed,
                    "reason": decision.reason,
                })

        self.events.emit(
            "reconciliation.finished",
            total=summary.total_tasks,
            completed=summary.completed_tasks,
            fixed=summary.fixed_count,
        )
        return summary

    def decide(self, task: DraftTask, signals: GroundTruthSignals) -> TaskDecision:
        """Completion decision for a single task."""
        for test in TEST_TYPES:
            if task.requires_test(test) and signals.test_status.has(test):
                return TaskDecision(True, f"{test}_completed")

        essay_number = essay_number_from_title(task.title)
        flags = signals.essay_completion_flags
        if essay_number is not None and 1 <= essay_number <= len(flags):
            done = flags[essay_number - 1]
            return TaskDecision(
                done,
                f"essay_{essay_number}_{'completed' if done else 'not_completed'}",
                related_essay_id=signals.essay_id(essay_number),
            )

        event = match_event_to_task(
            task.title,
            signals.calendar_events,
            threshold=self.match_threshold,
            min_length=self.min_title_length,
        )
        if event is not None and event.is_completed:
            return TaskDecision(True, REASON_CALENDAR, related_calendar_event_id=event.id)

        if task.completion_reason == REASON_USER_MARKED:
            return TaskDecision(True, REASON_USER_MARKED)

        return TaskDecision(
            False,
            REASON_NOT_STARTED,
            related_calendar_event_id=event.id if event is not None else None,
        )
