"""
Tests for completeness detection.

Verifies:
- A full five-phase response with closing sequence is complete
- Syntactically complete JSON missing the "Essay" phase is incomplete
- Truncated responses report the missing phase labels
- Phase signatures tie the id to the name prefix
"""
import json
import os

os.environ.setdefault("DATABASE_URL", "sqlite:///:memory:")
os.environ.setdefault("SECRET_KEY", "test-secret-key-for-testing-only")

import pytest

from app.services.completeness_detector import CompletenessDetector
from app.services.timeline_schema import PhaseSignature


@pytest.fixture
def detector():
    return CompletenessDetector()


class TestCompleteness:
    """Test CompletenessDetector.check()."""

    def test_complete_response(self, detector, timeline_text):
        report = detector.check(timeline_text())

        assert report.is_complete
        assert report.missing_phases == []
        assert report.has_closing_sequence

    def test_compact_and_fenced_response(self, detector, timeline_payload):
        text = "```json\n" + json.dumps(timeline_payload()) + "\n```"
        assert detector.is_response_complete(text)

    def test_missing_essay_phase_is_incomplete(self, detector, timeline_payload, phase_payload):
        payload = timeline_payload()
        payload["phases"][2] = phase_payload(3, name="Writing Workshop")
        text = json.dumps(payload)

        json.loads(text)  # syntactically complete
        report = detector.check(text)

        assert not report.is_complete
        assert report.has_closing_sequence
        assert report.missing_phases == ["Phase 3: Essay Writing"]
        print("✅ VERIFIED: missing Essay marker makes the response incomplete")

    def test_truncated_response_lists_missing_phases(self, detector, truncated_response):
        original, _ = truncated_response
        report = detector.check(original)

        assert not report.is_complete
        assert not report.has_closing_sequence
        assert report.missing_phases == [
            "Phase 4: Recommendations & Documents",
            "Phase 5: Application Assembly & Submission",
        ]

    def test_all_phases_but_unclosed(self, detector, timeline_payload):
        text = json.dumps(timeline_payload())[:-1]
        report = detector.check(text)

        assert report.missing_phases == []
        assert not report.is_complete

    def test_name_prefix_must_belong_to_same_phase(self, detector, timeline_payload, phase_payload):
        payload = timeline_payload()
        payload["phases"][4] = phase_payload(5, name="Final Steps")
        report = detector.check(json.dumps(payload))

        assert report.missing_phases == ["Phase 5: Application Assembly & Submission"]

    def test_custom_signatures(self):
        detector = CompletenessDetector(signatures=[PhaseSignature(1, "Kickoff", "Phase 1: Kickoff")])
        assert detector.is_response_complete('{"phases": [{"id": 1, "name": "Kickoff week", "tasks": []}]}')
        assert not detector.is_response_complete('{"phases": [{"id": 1, "name": "Research", "tasks": []}]}')
