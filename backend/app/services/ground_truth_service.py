"""Ground truth service: verified application progress read from the database."""
import json
import logging
import re
from dataclasses import dataclass, field
from datetime import date
from typing import Any, Dict, List, Optional
from uuid import UUID

from sqlalchemy.orm import Session

from app.config import get_settings
from app.models.calendar_event import CalendarEvent
from app.models.essay import Essay, EssayPrompt, EssayStatus
from app.models.university import University
from app.models.user import User
from app.services.timeline_schema import (
    TEST_TYPES,
    CalendarEventSignal,
    GroundTruthSignals,
    TestStatus,
)

logger = logging.getLogger(__name__)

# Valid score ranges for free-text parsing: (exclusive lower, inclusive upper)
SCORE_RANGES = {
    "gmat": (200, 800),
    "gre": (260, 340),
    "ielts": (0, 9),
    "toefl": (0, 120),
}

_FREE_TEXT_SCORE = {
    test: re.compile(r"\b%s\b[:\s]*(\d+(?:\.\d+)?)" % test, re.IGNORECASE)
    for test in TEST_TYPES
}


class GroundTruthServiceError(Exception):
    """Base exception for ground truth errors."""
    pass


def parse_test_scores(raw: Any) -> TestStatus:
    """
    Parse a user's stored test scores.

    Accepts a dict, a JSON object string (``{"gmat": 700, "ielts": 7.5}``;
    any positive value counts) or free text (``"GMAT: 700, IELTS 7.5"``;
    values must fall within the official score range).

    Args:
        raw: Stored value (None, dict or str)

    Returns:
        TestStatus (all False when nothing usable is found)
    """
    status = TestStatus()
    if not raw:
        return status

    parsed = raw
    if isinstance(raw, str):
        try:
            parsed = json.loads(raw)
        except ValueError:
            parsed = None

    if isinstance(parsed, dict):
        lowered = {str(key).lower(): value for key, value in parsed.items()}
        for test in TEST_TYPES:
            score = _to_number(lowered.get(test))
            if score is not None and score > 0:
                setattr(status, f"has_{test}", True)
                setattr(status, f"{test}_score", score)
        return status

    if not isinstance(raw, str):
        return status

    for test, pattern in _FREE_TEXT_SCORE.items():
        match = pattern.search(raw)
        if not match:
            continue
        score = float(match.group(1))
        lower, upper = SCORE_RANGES[test]
        if lower < score <= upper:
            setattr(status, f"has_{test}", True)
            setattr(status, f"{test}_score", score)
    return status


def _to_number(value: Any) -> Optional[float]:
    if isinstance(value, bool) or value is None:
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def _percent(part: int, whole: int) -> int:
    if whole <= 0:
        return 0
    return int(part * 100 / whole + 0.5)


def essay_completion_basis(
    essay: Optional[Essay],
    prompt_word_limit: Optional[int],
    ratio: float,
) -> str:
    """
    Explain whether an essay counts as complete.

    Returns one of "flag", "status", "word_count" (complete) or
    "not_complete", "not_started".
    """
    if essay is None:
        return "not_started"
    if essay.is_completed:
        return "flag"
    if essay.status in (EssayStatus.COMPLETED, EssayStatus.SUBMITTED):
        return "status"
    word_limit = essay.word_limit or prompt_word_limit or 0
    if word_limit > 0 and (essay.word_count or 0) / word_limit >= ratio:
        return "word_count"
    return "not_complete"


@dataclass
class EssayPromptStatus:
    """Essay prompt numbered in display order, with the user's progress on it."""
    number: int
    prompt_id: UUID
    title: str
    prompt_text: str = ""
    word_limit: Optional[int] = None
    is_mandatory: bool = True
    essay_id: Optional[UUID] = None
    word_count: int = 0
    completion_basis: str = "not_started"

    @property
    def completed(self) -> bool:
        return self.completion_basis in ("flag", "status", "word_count")


@dataclass
class ProgressSnapshot:
    """Progress percentages derived from ground truth."""
    essay_progress: int = 0
    event_progress: int = 0
    test_progress: int = 0
    overall_progress: int = 0


@dataclass
class ApplicationContext:
    """Everything known about one user's application to one university."""
    user_id: UUID
    university_id: UUID
    university_name: str
    location: Optional[str] = None
    deadline: Optional[date] = None
    acceptance_rate: Optional[float] = None
    application_fee: Optional[float] = None
    currency: Optional[str] = None
    required_tests: Dict[str, bool] = field(default_factory=dict)
    study_level: Optional[str] = None
    gpa: Optional[float] = None
    work_experience: bool = False
    essays: List[EssayPromptStatus] = field(default_factory=list)
    signals: GroundTruthSignals = field(default_factory=GroundTruthSignals)
    progress: ProgressSnapshot = field(default_factory=ProgressSnapshot)

    @property
    def tests_needed(self) -> List[str]:
        return [
            test.upper() for test in TEST_TYPES
            if self.required_tests.get(test) and not self.signals.test_status.has(test)
        ]

    @property
    def tests_completed(self) -> List[str]:
        return [test.upper() for test in TEST_TYPES if self.signals.test_status.has(test)]

    @property
    def essays_completed(self) -> int:
        return sum(1 for essay in self.essays if essay.completed)

    @property
    def days_until_deadline(self) -> Optional[int]:
        if self.deadline is None:
            return None
        return (self.deadline - date.today()).days

    def university_snapshot(self) -> Dict[str, Any]:
        return {
            "universityName": self.university_name,
            "location": self.location,
            "deadline": self.deadline.isoformat() if self.deadline else None,
            "acceptanceRate": self.acceptance_rate,
            "requiresGMAT": bool(self.required_tests.get("gmat")),
            "requiresGRE": bool(self.required_tests.get("gre")),
            "requiresIELTS": bool(self.required_tests.get("ielts")),
            "requiresTOEFL": bool(self.required_tests.get("toefl")),
        }

    def metadata(self) -> Dict[str, Any]:
        """Response metadata computed from fresh ground truth."""
        events = self.signals.calendar_events
        completed_events = sum(1 for event in events if event.is_completed)
        total_essays = len(self.essays)
        status = self.signals.test_status
        result = self.university_snapshot()
        result.update({
            "daysUntilDeadline": self.days_until_deadline,
            "applicationFee": self.application_fee,
            "essaysRequired": total_essays,
            "essaysCompleted": self.essays_completed,
            "essaysRemaining": max(0, total_essays - self.essays_completed),
            "essaysNotStarted": sum(1 for essay in self.essays if essay.essay_id is None),
            "essayCompletionRate": _percent(self.essays_completed, total_essays),
            "calendarEventsTotal": len(events),
            "calendarEventsCompleted": completed_events,
            "calendarEventsPending": len(events) - completed_events,
            "testsCompleted": self.tests_completed,
            "testsNeeded": self.tests_needed,
            "allTestsComplete": not self.tests_needed,
            "userHasGMAT": status.has_gmat,
            "userHasGRE": status.has_gre,
            "userHasIELTS": status.has_ielts,
            "userHasTOEFL": status.has_toefl,
            "userGPA": self.gpa,
            "userStudyLevel": self.study_level,
            "userHasWorkExperience": self.work_experience,
            "overallProgress": self.progress.overall_progress,
            "essayProgress": self.progress.essay_progress,
            "eventProgress": self.progress.event_progress,
            "testProgress": self.progress.test_progress,
        })
        return result


def compute_progress(
    signals: GroundTruthSignals,
    required_tests: Dict[str, bool],
) -> ProgressSnapshot:
    """
    Progress percentages from ground truth.

    - essay: completed essays / essay prompts
    - event: completed calendar events / events
    - test: tests taken / (tests taken + required tests still missing),
      100 when nothing is missing
    - overall: rounded mean of the three
    """
    flags = signals.essay_completion_flags
    essay_progress = _percent(sum(1 for flag in flags if flag), len(flags))

    events = signals.calendar_events
    event_progress = _percent(sum(1 for event in events if event.is_completed), len(events))

    status = signals.test_status
    taken = sum(1 for test in TEST_TYPES if status.has(test))
    needed = sum(1 for test in TEST_TYPES if required_tests.get(test) and not status.has(test))
    test_progress = 100 if needed == 0 else _percent(taken, taken + needed)

    overall = int((essay_progress + event_progress + test_progress) / 3 + 0.5)
    return ProgressSnapshot(
        essay_progress=essay_progress,
        event_progress=event_progress,
        test_progress=test_progress,
        overall_progress=overall,
    )


class GroundTruthService:
    """
    Loads verified signals for a (user, university) pair.

    Read-only: never writes to the database.
    """

    def __init__(self, db: Session, essay_completion_ratio: Optional[float] = None):
        """
        Initialize ground truth service.

        Args:
            db: Database session
            essay_completion_ratio: Word-count share at which an essay counts
                as complete (defaults to ESSAY_COMPLETION_RATIO)
        """
        self.db = db
        self.essay_completion_ratio = (
            essay_completion_ratio
            if essay_completion_ratio is not None
            else get_settings().ESSAY_COMPLETION_RATIO
        )

    def load_context(self, user: User, university: University) -> ApplicationContext:
        """
        Build the application context for a user and university.

        Steps:
        1. Parse the user's test scores
        2. Number active essay prompts and attach the user's essays
        3. Load visible calendar events for the university
        4. Compute progress

        Args:
            user: Applicant
            university: Target university

        Returns:
            ApplicationContext
        """
        test_status = parse_test_scores(user.test_scores)
        essays = self._load_essay_statuses(user.id, university.id)
        events = self._load_calendar_events(user.id, university.id)

        signals = GroundTruthSignals(
            essay_completion_flags=[essay.completed for essay in essays],
            essay_ids=[essay.essay_id for essay in essays],
            test_status=test_status,
            calendar_events=events,
        )
        required_tests = {
            test: bool(getattr(university, f"requires_{test}")) for test in TEST_TYPES
        }
        progress = compute_progress(signals, required_tests)

        logger.info(
            "Loaded ground truth for user %s / university %s: %d/%d essays, %d events, tests=%s",
            user.id, university.id,
            sum(1 for essay in essays if essay.completed), len(essays),
            len(events), [t.upper() for t in TEST_TYPES if test_status.has(t)],
        )

        return ApplicationContext(
            user_id=user.id,
            university_id=university.id,
            university_name=university.name,
            location=university.location,
            deadline=university.application_deadline,
            acceptance_rate=university.acceptance_rate,
            application_fee=university.application_fee,
            currency=university.currency,
            required_tests=required_tests,
            study_level=(user.study_level or "").lower() or None,
            gpa=user.gpa,
            work_experience=bool(user.work_experience),
            essays=essays,
            signals=signals,
            progress=progress,
        )

    def _load_essay_statuses(self, user_id: UUID, university_id: UUID) -> List[EssayPromptStatus]:
        prompts = self.db.query(EssayPrompt).filter(
            EssayPrompt.university_id == university_id,
            EssayPrompt.is_active.is_(True)
        ).order_by(EssayPrompt.display_order, EssayPrompt.created_at).all()

        if not prompts:
            return []

        essays = self.db.query(Essay).filter(
            Essay.user_id == user_id,
            Essay.essay_prompt_id.in_([prompt.id for prompt in prompts])
        ).order_by(Essay.updated_at.desc()).all()

        # Most recently updated essay per prompt
        essay_by_prompt: Dict[UUID, Essay] = {}
        for essay in essays:
            essay_by_prompt.setdefault(essay.essay_prompt_id, essay)

        statuses = []
        for number, prompt in enumerate(prompts, start=1):
            essay = essay_by_prompt.get(prompt.id)
            statuses.append(EssayPromptStatus(
                number=number,
                prompt_id=prompt.id,
                title=prompt.prompt_title,
                prompt_text=prompt.prompt_text or "",
                word_limit=prompt.word_limit,
                is_mandatory=prompt.is_mandatory,
                essay_id=essay.id if essay else None,
                word_count=essay.word_count if essay else 0,
                completion_basis=essay_completion_basis(
                    essay, prompt.word_limit, self.essay_completion_ratio
                ),
            ))
        return statuses

    def _load_calendar_events(self, user_id: UUID, university_id: UUID) -> List[CalendarEventSignal]:
        events = self.db.query(CalendarEvent).filter(
            CalendarEvent.user_id == user_id,
            CalendarEvent.university_id == university_id,
            CalendarEvent.is_visible.is_(True)
        ).order_by(CalendarEvent.start_date).all()

        return [
            CalendarEventSignal(
                id=event.id,
                title=event.title,
                start_date=event.start_date,
                completion_status=event.completion_status,
            )
            for event in events
        ]
