"""
Timeline draft types.

In-memory representation of a generated timeline between parsing and
persistence, plus the ground-truth signals used to reconcile it.

Model output is loosely typed: numbers arrive as strings, lists are missing,
``completed`` may be ``"true"``. ``from_payload`` constructors normalise all
of that so downstream code can rely on the declared types.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional, Union
from uuid import UUID


class PhaseStatus(str, Enum):
    """Phase lifecycle status."""
    UPCOMING = "upcoming"
    IN_PROGRESS = "in-progress"
    COMPLETED = "completed"


class TaskPriority(str, Enum):
    """Task priority."""
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


TEST_TYPES = ("gmat", "gre", "ielts", "toefl")

TaskId = Union[int, str, UUID]


@dataclass(frozen=True)
class PhaseSignature:
    """
    Identifies one of the five required phases in raw model output.

    Attributes:
        phase_number: 1-based business order
        name_prefix: Prefix the phase name must start with
        label: Human-readable label used in continuation prompts
    """
    phase_number: int
    name_prefix: str
    label: str


DEFAULT_PHASE_SIGNATURES = (
    PhaseSignature(1, "Research", "Phase 1: Research & Strategic Planning"),
    PhaseSignature(2, "Standardized", "Phase 2: Standardized Testing"),
    PhaseSignature(3, "Essay", "Phase 3: Essay Writing"),
    PhaseSignature(4, "Recommendation", "Phase 4: Recommendations & Documents"),
    PhaseSignature(5, "Application", "Phase 5: Application Assembly & Submission"),
)

REQUIRED_PHASE_COUNT = len(DEFAULT_PHASE_SIGNATURES)


def coerce_bool(value: Any) -> bool:
    """Interpret model/DB truthiness strictly: only True, "true", 1 count."""
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        return value.strip().lower() == "true"
    if isinstance(value, (int, float)):
        return value == 1
    return False


def _coerce_int(value: Any, default: int) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        return default


def _string_list(value: Any) -> List[str]:
    if not isinstance(value, list):
        return []
    return [str(item) for item in value if item is not None]


def _claims_completion(value: Any) -> bool:
    """Whether a loosely typed ``completed`` value reads as a claim of completion."""
    if isinstance(value, bool):
        return value
    if isinstance(value, (int, float)):
        return value != 0
    if isinstance(value, str):
        return value.strip().lower() in ("true", "yes", "done", "completed")
    return False


def _text(value: Any, default: str = "") -> str:
    if value is None:
        return default
    return str(value)


@dataclass
class DraftTask:
    """A task as produced by the model (or loaded from the store)."""
    id: TaskId
    task_number: int
    title: str
    description: str = ""
    estimated_time: str = ""
    priority: TaskPriority = TaskPriority.MEDIUM
    completed: bool = False
    status: str = "pending"
    action_steps: List[str] = field(default_factory=list)
    tips: List[str] = field(default_factory=list)
    resources: List[str] = field(default_factory=list)
    requires_gmat: bool = False
    requires_gre: bool = False
    requires_ielts: bool = False
    requires_toefl: bool = False
    related_calendar_event_id: Optional[TaskId] = None
    related_essay_id: Optional[TaskId] = None
    completion_reason: str = "model_declared"
    # What the model claimed, before the literal-true rule; None for stored tasks
    declared_completed: Optional[bool] = None

    def requires_test(self, test: str) -> bool:
        return bool(getattr(self, f"requires_{test}"))

    @classmethod
    def from_payload(cls, payload: Dict[str, Any], index: int) -> "DraftTask":
        """
        Build a task from a model-produced dict.

        Args:
            payload: Raw task object
            index: 0-based position within the phase (used for defaults)
        """
        try:
            priority = TaskPriority(str(payload.get("priority", "medium")).lower())
        except ValueError:
            priority = TaskPriority.MEDIUM
        claim = payload.get("completed")
        completed = claim is True
        return cls(
            id=payload.get("id") or index + 1,
            task_number=index + 1,
            title=_text(payload.get("title"), f"Task {index + 1}"),
            description=_text(payload.get("description")),
            estimated_time=_text(payload.get("estimatedTime")),
            priority=priority,
            completed=completed,
            declared_completed=_claims_completion(claim),
            status="completed" if completed else "pending",
            action_steps=_string_list(payload.get("actionSteps")),
            tips=_string_list(payload.get("tips")),
            resources=_string_list(payload.get("resources")),
            requires_gmat=payload.get("requiresGMAT") is True,
            requires_gre=payload.get("requiresGRE") is True,
            requires_ielts=payload.get("requiresIELTS") is True,
            requires_toefl=payload.get("requiresTOEFL") is True,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": str(self.id) if isinstance(self.id, UUID) else self.id,
            "taskNumber": self.task_number,
            "title": self.title,
            "description": self.description,
            "estimatedTime": self.estimated_time,
            "priority": self.priority.value,
            "completed": self.completed,
            "status": self.status,
            "actionSteps": list(self.action_steps),
            "tips": list(self.tips),
            "resources": list(self.resources),
            "requiresGMAT": self.requires_gmat,
            "requiresGRE": self.requires_gre,
            "requiresIELTS": self.requires_ielts,
            "requiresTOEFL": self.requires_toefl,
            "relatedCalendarEventId": _id_or_none(self.related_calendar_event_id),
            "relatedEssayId": _id_or_none(self.related_essay_id),
            "completionReason": self.completion_reason,
        }


@dataclass
class DraftPhase:
    """A phase of the draft timeline."""
    id: int
    name: str
    description: str = ""
    duration: str = ""
    timeframe: str = ""
    status: PhaseStatus = PhaseStatus.UPCOMING
    objectives: List[str] = field(default_factory=list)
    milestones: List[str] = field(default_factory=list)
    pro_tips: List[str] = field(default_factory=list)
    common_mistakes: List[str] = field(default_factory=list)
    tasks: List[DraftTask] = field(default_factory=list)
    completion_percentage: int = 0
    record_id: Optional[UUID] = None

    @classmethod
    def from_payload(cls, payload: Dict[str, Any], index: int) -> "DraftPhase":
        try:
            status = PhaseStatus(str(payload.get("status", "upcoming")).lower())
        except ValueError:
            status = PhaseStatus.UPCOMING
        tasks_payload = payload.get("tasks")
        if not isinstance(tasks_payload, list):
            tasks_payload = []
        return cls(
            id=_coerce_int(payload.get("id"), index + 1),
            name=_text(payload.get("name"), f"Phase {index + 1}"),
            description=_text(payload.get("description")),
            duration=_text(payload.get("duration")),
            timeframe=_text(payload.get("timeframe")),
            status=status,
            objectives=_string_list(payload.get("objectives")),
            milestones=_string_list(payload.get("milestones")),
            pro_tips=_string_list(payload.get("proTips")),
            common_mistakes=_string_list(payload.get("commonMistakes")),
            tasks=[
                DraftTask.from_payload(task, task_index)
                for task_index, task in enumerate(t for t in tasks_payload if isinstance(t, dict))
            ],
        )

    def to_dict(self) -> Dict[str, Any]:
        result = {
            "id": self.id,
            "phaseNumber": self.id,
            "name": self.name,
            "description": self.description,
            "duration": self.duration,
            "timeframe": self.timeframe,
            "status": self.status.value,
            "completionPercentage": self.completion_percentage,
            "objectives": list(self.objectives),
            "milestones": list(self.milestones),
            "proTips": list(self.pro_tips),
            "commonMistakes": list(self.common_mistakes),
            "tasks": [task.to_dict() for task in self.tasks],
        }
        if self.record_id is not None:
            result["recordId"] = str(self.record_id)
        return result


@dataclass
class TimelineDraft:
    """
    A complete (or partially recovered) timeline.

    After structural validation ``phases`` holds exactly five phases
    ordered by ``id``.
    """
    overview: str = ""
    total_duration: str = "4-6 months"
    current_progress: int = 0
    phases: List[DraftPhase] = field(default_factory=list)

    @classmethod
    def from_payload(cls, payload: Dict[str, Any]) -> "TimelineDraft":
        phases_payload = payload.get("phases")
        if not isinstance(phases_payload, list):
            phases_payload = []
        progress = max(0, min(100, _coerce_int(payload.get("currentProgress"), 0)))
        return cls(
            overview=_text(payload.get("overview")),
            total_duration=_text(payload.get("totalDuration"), "4-6 months") or "4-6 months",
            current_progress=progress,
            phases=[
                DraftPhase.from_payload(phase, index)
                for index, phase in enumerate(p for p in phases_payload if isinstance(p, dict))
            ],
        )

    @property
    def phase_ids(self) -> List[int]:
        return [phase.id for phase in self.phases]

    def iter_tasks(self):
        """Yield (phase, task) pairs in display order."""
        for phase in self.phases:
            for task in phase.tasks:
                yield phase, task

    def task_counts(self):
        """Return (total_tasks, completed_tasks)."""
        total = 0
        completed = 0
        for _, task in self.iter_tasks():
            total += 1
            if task.completed:
                completed += 1
        return total, completed

    def to_dict(self) -> Dict[str, Any]:
        return {
            "overview": self.overview,
            "totalDuration": self.total_duration,
            "currentProgress": self.current_progress,
            "phases": [phase.to_dict() for phase in self.phases],
        }


def _id_or_none(value: Optional[TaskId]):
    if value is None:
        return None
    return str(value) if isinstance(value, UUID) else value


# Ground truth


@dataclass
class TestStatus:
    """Which standardized tests the user has a valid score for."""
    __test__ = False  # not a pytest test class

    has_gmat: bool = False
    has_gre: bool = False
    has_ielts: bool = False
    has_toefl: bool = False
    gmat_score: Optional[float] = None
    gre_score: Optional[float] = None
    ielts_score: Optional[float] = None
    toefl_score: Optional[float] = None

    def has(self, test: str) -> bool:
        return bool(getattr(self, f"has_{test}"))

    def score(self, test: str) -> Optional[float]:
        return getattr(self, f"{test}_score")


@dataclass
class CalendarEventSignal:
    """A calendar event as seen by the reconciler."""
    id: Optional[TaskId]
    title: str
    start_date: Optional[datetime] = None
    completion_status: str = "pending"

    @property
    def is_completed(self) -> bool:
        return self.completion_status == "completed"


@dataclass
class GroundTruthSignals:
    """
    Verified facts about the user's application progress.

    Attributes:
        essay_completion_flags: One flag per essay prompt, in prompt order.
            String values "true"/"false" are accepted and coerced.
        essay_ids: Stored essay id per prompt (None if not started), aligned
            with ``essay_completion_flags``
        test_status: Test score availability
        calendar_events: User's calendar events for the target university
    """
    essay_completion_flags: List[bool] = field(default_factory=list)
    essay_ids: List[Optional[TaskId]] = field(default_factory=list)
    test_status: TestStatus = field(default_factory=TestStatus)
    calendar_events: List[CalendarEventSignal] = field(default_factory=list)

    def __post_init__(self):
        self.essay_completion_flags = [coerce_bool(flag) for flag in self.essay_completion_flags]

    def essay_id(self, essay_number: int) -> Optional[TaskId]:
        index = essay_number - 1
        if 0 <= index < len(self.essay_ids):
            return self.essay_ids[index]
        return None
