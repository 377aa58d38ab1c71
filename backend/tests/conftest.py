"""
Shared test helpers.

Builders for model-style timeline payloads and fake collaborators
(text generator, sleep recorder). Database fixtures live in the test
modules that need them.
"""
import json

import pytest


PHASE_NAMES = {
    1: "Research & Strategic Planning",
    2: "Standardized Testing",
    3: "Essay Writing",
    4: "Recommendations & Documents",
    5: "Application Assembly & Submission",
}

DEFAULT_TASKS = {
    1: [("Research program curriculum", {"completed": True, "priority": "high"}),
        ("Attend an online information session", {})],
    2: [("Take the GMAT exam", {"requiresGMAT": True, "priority": "critical"}),
        ("Take the IELTS exam", {"requiresIELTS": True})],
    3: [("Essay #1: Career Goals Statement", {}),
        ("Essay #2: Leadership Experience", {"completed": True})],
    4: [("Request recommendation letters", {}),
        ("Order official transcripts", {})],
    5: [("Complete the online application form", {}),
        ("Pay application fee and submit", {})],
}


def make_task(task_id, title, **fields):
    task = {
        "id": task_id,
        "title": title,
        "description": f"Details for {title.lower()}",
        "estimatedTime": "2-3 hours",
        "priority": "medium",
        "completed": False,
        "actionSteps": ["Plan", "Do"],
        "tips": ["Start early"],
        "resources": ["Admissions website"],
        "requiresGMAT": False,
        "requiresGRE": False,
        "requiresIELTS": False,
        "requiresTOEFL": False,
    }
    task.update(fields)
    return task


def make_phase(phase_id, tasks=None, name=None):
    if tasks is None:
        tasks = [
            make_task(index, title, **fields)
            for index, (title, fields) in enumerate(DEFAULT_TASKS.get(phase_id, []), start=1)
        ]
    return {
        "id": phase_id,
        "name": name or PHASE_NAMES.get(phase_id, f"Extra Phase {phase_id}"),
        "description": f"Phase {phase_id} description",
        "duration": "3-4 weeks",
        "timeframe": f"Weeks {phase_id * 4 - 3}-{phase_id * 4}",
        "status": "upcoming",
        "objectives": ["Objective A", "Objective B"],
        "milestones": ["Milestone"],
        "proTips": ["Tip"],
        "commonMistakes": ["Mistake"],
        "tasks": tasks,
    }


def make_timeline(phase_ids=(1, 2, 3, 4, 5), phases=None):
    return {
        "overview": "Personalized application plan",
        "totalDuration": "4-6 months",
        "currentProgress": 35,
        "phases": phases if phases is not None else [make_phase(pid) for pid in phase_ids],
    }


def truncated_after_phase_three():
    """
    Split a complete timeline into a response cut off right after phase 3
    and the continuation that finishes it.
    """
    phases = [json.dumps(make_phase(pid)) for pid in (1, 2, 3, 4, 5)]
    head = (
        '{"overview": "Personalized application plan", "totalDuration": "4-6 months", '
        '"currentProgress": 35, "phases": ['
    )
    original = head + ", ".join(phases[:3]) + ', {"id": 4, "na'
    continuation = ", ".join(phases[3:]) + "]}"
    return original, continuation


class FakeGenerator:
    """TextGenerator returning canned responses; exceptions are raised."""

    model_name = "fake-model"

    def __init__(self, responses):
        self.responses = list(responses)
        self.prompts = []

    def generate(self, prompt):
        self.prompts.append(prompt)
        if not self.responses:
            raise RuntimeError("No canned response left")
        response = self.responses.pop(0)
        if isinstance(response, Exception):
            raise response
        return response


class SleepRecorder:
    """Replacement for time.sleep that records delays."""

    def __init__(self):
        self.delays = []

    def __call__(self, seconds):
        self.delays.append(seconds)


@pytest.fixture
def timeline_payload():
    """Builder for model-style timeline dicts."""
    return make_timeline


@pytest.fixture
def timeline_text():
    """Builder for model-style timeline JSON text."""
    def build(**kwargs):
        return json.dumps(make_timeline(**kwargs), indent=2)
    return build


@pytest.fixture
def phase_payload():
    return make_phase


@pytest.fixture
def task_payload():
    return make_task


@pytest.fixture
def truncated_response():
    return truncated_after_phase_three()


@pytest.fixture
def fake_generator():
    """Factory: fake_generator([text, error, ...])."""
    return FakeGenerator


@pytest.fixture
def sleep_recorder():
    return SleepRecorder()
