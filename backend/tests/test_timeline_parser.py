"""
Tests for the recovering timeline parser.

Verifies:
- Well-formed JSON parses via the direct strategy with exact field values
- Code fences are stripped before parsing
- Trailing commentary falls back to the boundary strategy
- Text truncated inside phase 4 yields phases 1-3 via phase salvage
- Model-declared completion is kept only for literal true
- Unrecoverable text raises TimelineParseError with per-strategy diagnostics
"""
import json
import os

os.environ.setdefault("DATABASE_URL", "sqlite:///:memory:")
os.environ.setdefault("SECRET_KEY", "test-secret-key-for-testing-only")

import pytest

from app.services.timeline_parser import TimelineParseError, TimelineResponseParser
from app.services.timeline_schema import PhaseStatus, TaskPriority


@pytest.fixture
def parser():
    return TimelineResponseParser()


class TestDirectStrategy:
    """Test parsing of well-formed responses."""

    def test_exact_phase_count_and_fields(self, parser, timeline_text):
        result = parser.parse(timeline_text())

        assert result.strategy == "direct"
        draft = result.draft
        assert draft.phase_ids == [1, 2, 3, 4, 5]
        assert draft.overview == "Personalized application plan"
        assert draft.total_duration == "4-6 months"
        assert draft.current_progress == 35

        phase = draft.phases[1]
        assert phase.name == "Standardized Testing"
        assert phase.status == PhaseStatus.UPCOMING
        assert phase.objectives == ["Objective A", "Objective B"]
        assert phase.pro_tips == ["Tip"]

        task = phase.tasks[0]
        assert task.title == "Take the GMAT exam"
        assert task.priority == TaskPriority.CRITICAL
        assert task.requires_gmat is True
        assert task.requires_ielts is False
        assert task.action_steps == ["Plan", "Do"]

    def test_code_fences_are_stripped(self, parser, timeline_text):
        result = parser.parse("```json\n" + timeline_text() + "\n```")
        assert result.strategy == "direct"
        assert len(result.draft.phases) == 5

    def test_declared_completion_requires_literal_true(self, parser, timeline_payload, phase_payload, task_payload):
        payload = timeline_payload(phases=[phase_payload(1, tasks=[
            task_payload(1, "Research program curriculum", completed=True),
            task_payload(2, "Attend information session", completed="true"),
            task_payload(3, "Shortlist universities", completed=1),
        ])])
        draft = parser.parse(json.dumps(payload)).draft

        assert [task.completed for task in draft.phases[0].tasks] == [True, False, False]
        assert all(task.completion_reason == "model_declared" for task in draft.phases[0].tasks)


class TestBoundaryStrategy:
    """Test parsing with noise around the JSON object."""

    def test_trailing_commentary(self, parser, timeline_text):
        text = "Here is your timeline:\n" + timeline_text() + "\n\nLet me know if you need changes {ok}."
        result = parser.parse(text)

        assert result.strategy == "boundary"
        assert result.draft.phase_ids == [1, 2, 3, 4, 5]

    def test_braces_inside_strings(self, parser, timeline_payload, phase_payload, task_payload):
        payload = timeline_payload(phases=[phase_payload(1, tasks=[
            task_payload(1, "Draft outline {intro} [body]"),
        ])])
        result = parser.parse(json.dumps(payload) + " trailing }")

        assert result.strategy == "boundary"
        assert result.draft.phases[0].tasks[0].title == "Draft outline {intro} [body]"


class TestPhaseSalvageStrategy:
    """Test recovery of truncated responses."""

    def test_truncated_mid_phase_four(self, parser, timeline_text):
        text = timeline_text()
        phase_four = text.index('"id": 4')
        cut = text.index('"tasks"', phase_four) + 30
        truncated = text[:cut]

        result = parser.parse(truncated)

        assert result.strategy == "phase_salvage"
        assert result.draft.phase_ids == [1, 2, 3]
        assert result.skipped_phases == 1
        assert result.draft.overview == "Personalized application plan"
        assert result.draft.total_duration == "4-6 months"
        assert result.draft.current_progress == 35
        print("✅ VERIFIED: truncated response salvaged to phases 1-3")

    def test_duplicate_phases_keep_first(self, parser, phase_payload):
        first = json.dumps(phase_payload(1))
        duplicate = json.dumps(phase_payload(1, name="Research duplicate"))
        second = json.dumps(phase_payload(2))
        text = '{"phases": [' + ", ".join([second, first, duplicate]) + ', {"id": 3, "name": "Ess'

        result = parser.parse(text)

        assert result.draft.phase_ids == [1, 2]
        assert result.draft.phases[0].name == "Research & Strategic Planning"
        assert result.draft.total_duration == "4-6 months"

    def test_nested_id_name_object_is_not_a_phase(self, parser, phase_payload, task_payload):
        research = phase_payload(1, tasks=[
            task_payload(1, "Compare rankings", resources=[{"id": 2, "name": "QS ranking"}]),
        ])
        phases = [json.dumps(research)] + [json.dumps(phase_payload(pid)) for pid in (2, 3)]
        text = '{"phases": [' + ", ".join(phases) + ', {"id": 4, "name": "Recommend'

        result = parser.parse(text)

        assert result.strategy == "phase_salvage"
        assert [(phase.id, phase.name) for phase in result.draft.phases] == [
            (1, "Research & Strategic Planning"),
            (2, "Standardized Testing"),
            (3, "Essay Writing"),
        ]
        assert result.skipped_phases == 1


class TestParseFailure:
    """Test that unrecoverable responses raise."""

    def test_no_json_at_all(self, parser):
        with pytest.raises(TimelineParseError) as exc_info:
            parser.parse("I'm sorry, I cannot help with that.")

        diagnostics = exc_info.value.diagnostics
        assert set(diagnostics) == {"direct", "boundary", "phase_salvage"}
        assert diagnostics["boundary"] == "No JSON object found"

    def test_truncated_before_any_phase_closes(self, parser):
        with pytest.raises(TimelineParseError) as exc_info:
            parser.parse('{"overview": "x", "phases": [{"id": 1, "name": "Research", "tasks": [')

        assert exc_info.value.diagnostics["boundary"] == "Unterminated JSON object"

    def test_top_level_array_rejected(self, parser):
        with pytest.raises(TimelineParseError):
            parser.parse("[1, 2, 3]")

    def test_empty_text(self, parser):
        with pytest.raises(TimelineParseError):
            parser.parse("")
