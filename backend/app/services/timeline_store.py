"""
Timeline store.

Persistence of application timelines. Regeneration never edits phases or
tasks in place: a new generation of rows is written, the parent is
repointed to it and older generations are deleted, all in one transaction.
A failure at any point rolls back to the previous generation intact.
"""

import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple
from uuid import UUID

from sqlalchemy.orm import Session

from app.models.application_timeline import ApplicationTimeline
from app.models.timeline_phase import TimelinePhase
from app.models.timeline_task import TimelineTask
from app.services.timeline_schema import (
    DraftPhase,
    DraftTask,
    PhaseStatus,
    TaskPriority,
    TimelineDraft,
)

logger = logging.getLogger(__name__)

# Column limits applied on write
MAX_TITLE_CHARS = 200
MAX_DESCRIPTION_CHARS = 2000
MAX_OVERVIEW_CHARS = 1000
MAX_PHASE_LIST_ITEMS = 10
MAX_ACTION_STEPS = 8
MAX_TIPS = 6
MAX_RESOURCES = 6


class TimelineStoreError(Exception):
    """Base exception for timeline store errors."""
    pass


@dataclass(frozen=True)
class TimelineKey:
    """Identifies the single timeline of a user for a university."""
    user_id: UUID
    university_id: UUID


@dataclass
class TimelineSnapshot:
    """Generation metadata stored on the parent record."""
    timeline_name: str = "University Timeline"
    ai_model: Optional[str] = None
    prompt_version: Optional[str] = None
    generation_time_ms: Optional[int] = None
    continuations_used: int = 0
    parse_strategy: Optional[str] = None
    user_profile_snapshot: Dict[str, Any] = field(default_factory=dict)
    university_snapshot: Dict[str, Any] = field(default_factory=dict)


@dataclass
class StoredTimeline:
    """A persisted timeline with its current generation loaded as a draft."""
    timeline: ApplicationTimeline
    draft: TimelineDraft

    def to_response(self) -> Dict[str, Any]:
        result = self.draft.to_dict()
        result["id"] = str(self.timeline.id)
        return result


def derive_phase_status(completed: int, total: int, current: str) -> str:
    """Phase status from task completion; falls back to ``current`` when nothing is done."""
    if total > 0 and completed == total:
        return PhaseStatus.COMPLETED.value
    if completed > 0:
        return PhaseStatus.IN_PROGRESS.value
    if current == PhaseStatus.COMPLETED.value:
        return PhaseStatus.UPCOMING.value
    return current


def _percent(part: int, whole: int) -> int:
    return int(part * 100 / whole + 0.5) if whole else 0


def _clip(text: Optional[str], limit: int) -> str:
    return (text or "")[:limit]


class TimelineStore:
    """
    SQLAlchemy-backed store for timelines.

    Capabilities:
    - Find a user's timeline for a university
    - Upsert a reconciled draft as a new generation (atomic swap)
    - Reload the canonical record
    - Sync recomputed task completion back to stored rows
    """

    def __init__(self, db: Session):
        """
        Initialize timeline store.

        Args:
            db: Database session
        """
        self.db = db

    def find_existing(self, key: TimelineKey, active_only: bool = True) -> Optional[ApplicationTimeline]:
        query = self.db.query(ApplicationTimeline).filter(
            ApplicationTimeline.user_id == key.user_id,
            ApplicationTimeline.university_id == key.university_id
        )
        if active_only:
            query = query.filter(ApplicationTimeline.is_active.is_(True))
        return query.first()

    def upsert(
        self,
        key: TimelineKey,
        draft: TimelineDraft,
        snapshot: Optional[TimelineSnapshot] = None,
    ) -> ApplicationTimeline:
        """
        Write ``draft`` as the new current generation of the timeline.

        Steps:
        1. Create the parent record if it does not exist
        2. Insert phases and tasks tagged with a fresh generation id
        3. Repoint the parent to the new generation and update its counters
        4. Delete rows of every other generation
        5. Commit (rollback on any error)

        Args:
            key: User/university key
            draft: Reconciled draft
            snapshot: Generation metadata

        Returns:
            The parent ApplicationTimeline
        """
        snapshot = snapshot or TimelineSnapshot()
        try:
            timeline = self.find_existing(key, active_only=False)
            if timeline is None:
                timeline = ApplicationTimeline(
                    user_id=key.user_id,
                    university_id=key.university_id,
                    timeline_name=snapshot.timeline_name,
                )
                self.db.add(timeline)
                self.db.flush()

            generation_id = uuid.uuid4()
            total_tasks, completed_tasks = self._write_generation(timeline.id, generation_id, draft)

            previous_generation = timeline.current_generation_id
            timeline.current_generation_id = generation_id
            timeline.timeline_name = snapshot.timeline_name or timeline.timeline_name
            timeline.is_active = True
            timeline.overview = draft.overview
            timeline.total_duration = draft.total_duration
            timeline.total_phases = len(draft.phases)
            timeline.total_tasks = total_tasks
            timeline.overall_progress = draft.current_progress
            timeline.completion_status = (
                "completed" if total_tasks and completed_tasks == total_tasks else "in_progress"
            )
            timeline.ai_model = snapshot.ai_model
            timeline.prompt_version = snapshot.prompt_version
            timeline.generation_time_ms = snapshot.generation_time_ms
            timeline.continuations_used = snapshot.continuations_used
            timeline.parse_strategy = snapshot.parse_strategy
            timeline.user_profile_snapshot = snapshot.user_profile_snapshot
            timeline.university_snapshot = snapshot.university_snapshot
            timeline.last_regenerated_at = datetime.utcnow()
            self.db.flush()

            removed = self._delete_other_generations(timeline.id, generation_id)
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

        logger.info(
            "Stored timeline %s generation %s (%d tasks, replaced %s, removed %d rows)",
            timeline.id, generation_id, total_tasks, previous_generation, removed
        )
        return timeline

    def reload(self, timeline_id: UUID) -> StoredTimeline:
        """
        Load the canonical timeline from the database.

        Raises:
            TimelineStoreError: If the timeline does not exist
        """
        timeline = self.db.query(ApplicationTimeline).filter(
            ApplicationTimeline.id == timeline_id
        ).first()
        if timeline is None:
            raise TimelineStoreError(f"Timeline with ID {timeline_id} not found")
        return StoredTimeline(timeline=timeline, draft=self.load_draft(timeline))

    def load_draft(self, timeline: ApplicationTimeline) -> TimelineDraft:
        """Current generation of ``timeline`` as a draft carrying stored ids."""
        phases = self.db.query(TimelinePhase).filter(
            TimelinePhase.timeline_id == timeline.id,
            TimelinePhase.generation_id == timeline.current_generation_id
        ).order_by(TimelinePhase.display_order).all()

        tasks_by_phase: Dict[UUID, List[TimelineTask]] = {phase.id: [] for phase in phases}
        if phases:
            tasks = self.db.query(TimelineTask).filter(
                TimelineTask.phase_id.in_(list(tasks_by_phase))
            ).order_by(TimelineTask.display_order).all()
            for task in tasks:
                tasks_by_phase[task.phase_id].append(task)

        return TimelineDraft(
            overview=timeline.overview or f"Application timeline for {timeline.timeline_name}",
            total_duration=timeline.total_duration or "4-6 months",
            current_progress=timeline.overall_progress or 0,
            phases=[self._phase_from_row(phase, tasks_by_phase[phase.id]) for phase in phases],
        )

    def sync_task_completion(self, timeline: ApplicationTimeline, draft: TimelineDraft) -> int:
        """
        Write reconciled completion flags of ``draft`` back to stored tasks.

        Only tasks whose stored flag or reason differs are touched. Phase
        percentages and the timeline's task progress are recomputed.

        Returns:
            Number of task rows updated
        """
        task_ids = [task.id for _, task in draft.iter_tasks() if isinstance(task.id, UUID)]
        if not task_ids:
            return 0

        try:
            rows = {
                row.id: row for row in self.db.query(TimelineTask).filter(
                    TimelineTask.id.in_(task_ids)
                ).all()
            }
            updated = 0
            now = datetime.utcnow()
            for _, task in draft.iter_tasks():
                row = rows.get(task.id)
                if row is None:
                    continue
                if row.is_completed == task.completed and row.completion_reason == task.completion_reason:
                    continue
                if row.is_completed != task.completed:
                    row.completed_at = now if task.completed else None
                row.is_completed = task.completed
                row.status = task.status
                row.completion_reason = task.completion_reason
                row.related_essay_id = _uuid_or_none(task.related_essay_id) or row.related_essay_id
                row.related_event_id = _uuid_or_none(task.related_calendar_event_id) or row.related_event_id
                updated += 1

            if updated:
                self.db.flush()
                self.recompute_progress(timeline)
                timeline.last_regenerated_at = now
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

        if updated:
            logger.info("Synced %d task completion change(s) for timeline %s", updated, timeline.id)
        return updated

    def recompute_progress(self, timeline: ApplicationTimeline) -> int:
        """
        Recompute phase percentages/statuses and the timeline's task progress.

        Does not commit.

        Returns:
            New overall progress (completed tasks / tasks, 0..100)
        """
        phases = self.db.query(TimelinePhase).filter(
            TimelinePhase.timeline_id == timeline.id,
            TimelinePhase.generation_id == timeline.current_generation_id
        ).all()

        total = 0
        completed = 0
        for phase in phases:
            phase_total = len(phase.tasks)
            phase_completed = sum(1 for task in phase.tasks if task.is_completed)
            phase.completion_percentage = _percent(phase_completed, phase_total)
            phase.status = derive_phase_status(phase_completed, phase_total, phase.status)
            total += phase_total
            completed += phase_completed

        timeline.overall_progress = _percent(completed, total)
        timeline.total_tasks = total
        timeline.completion_status = "completed" if total and completed == total else "in_progress"
        self.db.flush()
        return timeline.overall_progress

    # Internal helpers

    def _write_generation(self, timeline_id: UUID, generation_id: UUID, draft: TimelineDraft) -> Tuple[int, int]:
        total_tasks = 0
        completed_tasks = 0
        for phase_index, phase in enumerate(draft.phases):
            phase_completed = sum(1 for task in phase.tasks if task.completed)
            phase_row = TimelinePhase(
                id=uuid.uuid4(),
                timeline_id=timeline_id,
                generation_id=generation_id,
                phase_number=phase.id,
                phase_name=_clip(phase.name, MAX_TITLE_CHARS),
                description=_clip(phase.description, MAX_DESCRIPTION_CHARS),
                overview=_clip(phase.description, MAX_OVERVIEW_CHARS),
                duration=phase.duration,
                timeframe=phase.timeframe,
                status=derive_phase_status(phase_completed, len(phase.tasks), phase.status.value),
                completion_percentage=_percent(phase_completed, len(phase.tasks)),
                display_order=phase_index,
                objectives=phase.objectives[:MAX_PHASE_LIST_ITEMS],
                milestones=phase.milestones[:MAX_PHASE_LIST_ITEMS],
                pro_tips=phase.pro_tips[:MAX_PHASE_LIST_ITEMS],
                common_mistakes=phase.common_mistakes[:MAX_PHASE_LIST_ITEMS],
            )
            self.db.add(phase_row)

            for task_index, task in enumerate(phase.tasks):
                self.db.add(TimelineTask(
                    timeline_id=timeline_id,
                    phase_id=phase_row.id,
                    generation_id=generation_id,
                    task_number=task_index + 1,
                    title=_clip(task.title, MAX_TITLE_CHARS) or f"Task {task_index + 1}",
                    description=_clip(task.description, MAX_DESCRIPTION_CHARS),
                    estimated_time=task.estimated_time or "1-2 hours",
                    priority=task.priority.value,
                    status=task.status,
                    is_completed=task.completed,
                    completed_at=datetime.utcnow() if task.completed else None,
                    completion_reason=task.completion_reason,
                    display_order=task_index,
                    action_steps=task.action_steps[:MAX_ACTION_STEPS],
                    tips=task.tips[:MAX_TIPS],
                    resources=task.resources[:MAX_RESOURCES],
                    requires_gmat=task.requires_gmat,
                    requires_gre=task.requires_gre,
                    requires_ielts=task.requires_ielts,
                    requires_toefl=task.requires_toefl,
                    related_event_id=_uuid_or_none(task.related_calendar_event_id),
                    related_essay_id=_uuid_or_none(task.related_essay_id),
                ))
                total_tasks += 1
                if task.completed:
                    completed_tasks += 1

        self.db.flush()
        return total_tasks, completed_tasks

    def _delete_other_generations(self, timeline_id: UUID, generation_id: UUID) -> int:
        removed = self.db.query(TimelineTask).filter(
            TimelineTask.timeline_id == timeline_id,
            TimelineTask.generation_id != generation_id
        ).delete(synchronize_session=False)
        removed += self.db.query(TimelinePhase).filter(
            TimelinePhase.timeline_id == timeline_id,
            TimelinePhase.generation_id != generation_id
        ).delete(synchronize_session=False)
        return removed

    @staticmethod
    def _phase_from_row(phase: TimelinePhase, tasks: List[TimelineTask]) -> DraftPhase:
        try:
            status = PhaseStatus(phase.status)
        except ValueError:
            status = PhaseStatus.UPCOMING
        return DraftPhase(
            id=phase.phase_number,
            name=phase.phase_name,
            description=phase.description or phase.overview or "",
            duration=phase.duration or "",
            timeframe=phase.timeframe or "",
            status=status,
            objectives=list(phase.objectives or []),
            milestones=list(phase.milestones or []),
            pro_tips=list(phase.pro_tips or []),
            common_mistakes=list(phase.common_mistakes or []),
            completion_percentage=phase.completion_percentage or 0,
            record_id=phase.id,
            tasks=[TimelineStore._task_from_row(task) for task in tasks],
        )

    @staticmethod
    def _task_from_row(task: TimelineTask) -> DraftTask:
        try:
            priority = TaskPriority(task.priority)
        except ValueError:
            priority = TaskPriority.MEDIUM
        return DraftTask(
            id=task.id,
            task_number=task.task_number,
            title=task.title,
            description=task.description or "",
            estimated_time=task.estimated_time or "",
            priority=priority,
            completed=task.is_completed,
            status=task.status,
            action_steps=list(task.action_steps or []),
            tips=list(task.tips or []),
            resources=list(task.resources or []),
            requires_gmat=task.requires_gmat,
            requires_gre=task.requires_gre,
            requires_ielts=task.requires_ielts,
            requires_toefl=task.requires_toefl,
            related_calendar_event_id=task.related_event_id,
            related_essay_id=task.related_essay_id,
            completion_reason=task.completion_reason,
        )


def _uuid_or_none(value: Any) -> Optional[UUID]:
    if isinstance(value, UUID):
        return value
    if isinstance(value, str):
        try:
            return UUID(value)
        except ValueError:
            return None
    return None
