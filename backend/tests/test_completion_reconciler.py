"""
Tests for completion reconciliation against ground truth.

Verifies:
- The model's completed flag is never trusted
- Test, essay, calendar-event rules apply in priority order
- Essay flags override in both directions and accept "true"/"false" strings
- Tasks ticked off by the user stay completed
- Every completed task carries a justified reason
"""
import json
import os

os.environ.setdefault("DATABASE_URL", "sqlite:///:memory:")
os.environ.setdefault("SECRET_KEY", "test-secret-key-for-testing-only")

import pytest

from app.services.completion_reconciler import (
    CompletionReconciler,
    essay_number_from_title,
)
from app.services.timeline_parser import TimelineResponseParser
from app.services.timeline_schema import (
    CalendarEventSignal,
    DraftPhase,
    DraftTask,
    GroundTruthSignals,
    TestStatus,
    TimelineDraft,
)
from app.utils.invariants import check_completion_is_justified
from app.utils.observability import RecordingEventSink


def draft_with(timeline_payload, phase_payload, *tasks):
    payload = timeline_payload(phases=[phase_payload(1, tasks=list(tasks))])
    return TimelineResponseParser().parse(json.dumps(payload)).draft


@pytest.fixture
def reconciler():
    return CompletionReconciler(events=RecordingEventSink())


class TestEssayNumber:
    """Test essay_number_from_title()."""

    @pytest.mark.parametrize("title,expected", [
        ("Essay #2: Draft", 2),
        ("essay 3 final review", 3),
        ("Polish the 2nd essay", 2),
        ("Answer prompt #4", 4),
        ("Request recommendation letters", None),
    ])
    def test_patterns(self, title, expected):
        assert essay_number_from_title(title) == expected


class TestReconciliationScenarios:
    """Test the documented reconciliation scenarios."""

    def test_required_test_without_score(self, reconciler, task_payload, timeline_payload, phase_payload):
        draft = draft_with(
            timeline_payload, phase_payload,
            task_payload(1, "Take the GMAT exam", requiresGMAT=True, completed=True),
        )
        signals = GroundTruthSignals(test_status=TestStatus(has_gmat=False))

        summary = reconciler.reconcile(draft, signals)

        task = draft.phases[0].tasks[0]
        assert task.completed is False
        assert task.completion_reason == "not_started"
        assert task.status == "pending"
        assert summary.fixed_count == 1
        print("✅ VERIFIED: model-declared GMAT completion overridden")

    def test_essay_flag_strings(self, reconciler, task_payload, timeline_payload, phase_payload):
        draft = draft_with(
            timeline_payload, phase_payload,
            task_payload(1, "Essay #2: Draft", completed=False),
        )
        signals = GroundTruthSignals(essay_completion_flags=["false", "true", "true"])

        summary = reconciler.reconcile(draft, signals)

        task = draft.phases[0].tasks[0]
        assert task.completed is True
        assert task.completion_reason == "essay_2_completed"
        assert summary.fixed_count == 1
        print("✅ VERIFIED: essay flag forces completion")


class TestRules:
    """Test rule priority."""

    def test_test_score_completes_task(self, reconciler):
        task = DraftTask(id=1, task_number=1, title="Take the IELTS exam", requires_ielts=True)
        decision = reconciler.decide(task, GroundTruthSignals(test_status=TestStatus(has_ielts=True)))

        assert decision.completed
        assert decision.reason == "ielts_completed"

    def test_essay_flag_forces_false(self, reconciler):
        task = DraftTask(id=1, task_number=1, title="Essay #1: Career goals", completed=True)
        decision = reconciler.decide(task, GroundTruthSignals(essay_completion_flags=[False]))

        assert not decision.completed
        assert decision.reason == "essay_1_not_completed"

    def test_essay_number_out_of_range_falls_through(self, reconciler):
        task = DraftTask(id=1, task_number=1, title="Essay #3: Optional essay", completed=True)
        decision = reconciler.decide(task, GroundTruthSignals(essay_completion_flags=[True]))

        assert not decision.completed
        assert decision.reason == "not_started"

    def test_essay_links_stored_essay(self, reconciler):
        task = DraftTask(id=1, task_number=1, title="Essay #2: Leadership")
        signals = GroundTruthSignals(essay_completion_flags=[False, True], essay_ids=[None, "essay-2"])

        decision = reconciler.decide(task, signals)

        assert decision.related_essay_id == "essay-2"

    def test_test_rule_wins_over_essay_rule(self, reconciler):
        task = DraftTask(id=1, task_number=1, title="Essay #1 for GMAT waiver", requires_gmat=True)
        signals = GroundTruthSignals(
            essay_completion_flags=[False],
            test_status=TestStatus(has_gmat=True),
        )
        assert reconciler.decide(task, signals).reason == "gmat_completed"

    def test_completed_calendar_event(self, reconciler):
        task = DraftTask(id=1, task_number=1, title="Request recommendation letters")
        signals = GroundTruthSignals(calendar_events=[
            CalendarEventSignal(id="evt-1", title="Request Recommendation Letters", completion_status="completed"),
        ])

        decision = reconciler.decide(task, signals)

        assert decision.completed
        assert decision.reason == "calendar_event_completed"
        assert decision.related_calendar_event_id == "evt-1"

    def test_pending_calendar_event_is_linked_but_not_completed(self, reconciler):
        task = DraftTask(id=1, task_number=1, title="Request recommendation letters", completed=True)
        signals = GroundTruthSignals(calendar_events=[
            CalendarEventSignal(id="evt-1", title="Request recommendation letters", completion_status="pending"),
        ])

        decision = reconciler.decide(task, signals)

        assert not decision.completed
        assert decision.reason == "not_started"
        assert decision.related_calendar_event_id == "evt-1"

    def test_user_marked_task_stays_completed(self, reconciler):
        task = DraftTask(
            id=1, task_number=1, title="Order official transcripts",
            completed=True, completion_reason="user_marked",
        )
        assert reconciler.decide(task, GroundTruthSignals()).reason == "user_marked"


class TestSummary:
    """Test the reconciliation summary and invariant."""

    def test_summary_counts_and_invariant(self, task_payload, timeline_payload, phase_payload):
        events = RecordingEventSink()
        reconciler = CompletionReconciler(events=events)
        draft = draft_with(
            timeline_payload, phase_payload,
            task_payload(1, "Take the GMAT exam", requiresGMAT=True),
            task_payload(2, "Essay #1: Goals", completed=True),
            task_payload(3, "Research program curriculum", completed=True),
        )
        signals = GroundTruthSignals(
            essay_completion_flags=[True],
            test_status=TestStatus(has_gmat=True),
        )

        summary = reconciler.reconcile(draft, signals)

        assert summary.total_tasks == 3
        assert summary.completed_tasks == 2
        assert summary.fixed_count == 2
        assert summary.reasons == {"gmat_completed": 1, "essay_1_completed": 1, "not_started": 1}
        assert [change["task_id"] for change in summary.changes] == ["1", "3"]
        assert events.names() == ["reconciliation.finished"]
        check_completion_is_justified(draft)

    def test_empty_draft(self, reconciler):
        summary = reconciler.reconcile(TimelineDraft(), GroundTruthSignals())
        assert summary.total_tasks == 0
        assert summary.fixed_count == 0

    def test_string_claim_counts_as_fix(self, reconciler, task_payload, timeline_payload, phase_payload):
        draft = draft_with(
            timeline_payload, phase_payload,
            task_payload(1, "Take the GMAT exam", requiresGMAT=True, completed="true"),
        )
        task = draft.phases[0].tasks[0]
        assert task.completed is False
        assert task.declared_completed is True

        summary = reconciler.reconcile(draft, GroundTruthSignals(test_status=TestStatus(has_gmat=False)))

        assert summary.fixed_count == 1
        assert summary.changes[0]["was_completed"] is True
        assert summary.changes[0]["now_completed"] is False
        assert task.declared_completed is None

    def test_second_pass_compares_against_reconciled_state(self, reconciler, task_payload, timeline_payload, phase_payload):
        draft = draft_with(
            timeline_payload, phase_payload,
            task_payload(1, "Take the GMAT exam", requiresGMAT=True, completed="yes"),
        )
        signals = GroundTruthSignals(test_status=TestStatus(has_gmat=False))

        reconciler.reconcile(draft, signals)
        assert reconciler.reconcile(draft, signals).fixed_count == 0

    def test_task_without_title_does_not_raise(self, reconciler):
        task = DraftTask(id=1, task_number=1, title=None, completed=True)
        draft = TimelineDraft(phases=[DraftPhase(id=1, name="Research", tasks=[task])])

        summary = reconciler.reconcile(draft, GroundTruthSignals())

        assert task.completed is False
        assert task.completion_reason == "not_started"
        assert summary.changes[0]["title"] == ""
