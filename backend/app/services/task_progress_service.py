"""Task progress service for manual task completion and timeline progress."""
import logging
from datetime import datetime
from typing import Any, Dict
from uuid import UUID

from sqlalchemy.orm import Session

from app.models.application_timeline import ApplicationTimeline
from app.models.timeline_task import TimelineTask
from app.models.user import User
from app.services.completion_reconciler import REASON_USER_MARKED
from app.services.timeline_store import TimelineStore

logger = logging.getLogger(__name__)

REASON_USER_UNMARKED = "user_unmarked"


class TaskProgressServiceError(Exception):
    """Base exception for task progress errors."""
    pass


class TaskProgressService:
    """
    Service for user-driven task completion.

    A user ticking a task off is itself a ground-truth signal, recorded
    with reason "user_marked". Phase percentages, phase statuses and the
    timeline's overall progress are recomputed after every change.

    Rules:
    - Only tasks of the current generation can be changed
    - Users can only change tasks on their own timelines
    """

    def __init__(self, db: Session):
        """
        Initialize task progress service.

        Args:
            db: Database session
        """
        self.db = db
        self.store = TimelineStore(db)

    def set_task_completion(
        self,
        task_id: UUID,
        user_id: UUID,
        is_completed: bool,
    ) -> Dict[str, Any]:
        """
        Mark a task completed (or not) and recompute progress.

        Args:
            task_id: ID of the task
            user_id: ID of the user making the change
            is_completed: New completion state

        Returns:
            Dict with task_id, is_completed, new_progress and phase_percentage

        Raises:
            TaskProgressServiceError: If validation fails
        """
        user = self.db.query(User).filter(User.id == user_id).first()
        if not user:
            raise TaskProgressServiceError(f"User with ID {user_id} not found")

        task = self.db.query(TimelineTask).filter(TimelineTask.id == task_id).first()
        if not task:
            raise TaskProgressServiceError(f"Task with ID {task_id} not found")

        timeline = self.db.query(ApplicationTimeline).filter(
            ApplicationTimeline.id == task.timeline_id
        ).first()
        if not timeline or timeline.user_id != user_id:
            raise TaskProgressServiceError(
                f"Task {task_id} does not belong to user {user_id}"
            )
        if task.generation_id != timeline.current_generation_id:
            raise TaskProgressServiceError(
                f"Task {task_id} belongs to a replaced timeline generation"
            )

        try:
            if task.is_completed != is_completed:
                task.completed_at = datetime.utcnow() if is_completed else None
            task.is_completed = is_completed
            task.status = "completed" if is_completed else "pending"
            task.completion_reason = REASON_USER_MARKED if is_completed else REASON_USER_UNMARKED
            self.db.flush()

            new_progress = self.store.recompute_progress(timeline)
            self.db.commit()
        except Exception as e:
            self.db.rollback()
            raise TaskProgressServiceError(f"Failed to update task {task_id}: {str(e)}") from e

        logger.info(
            "Task %s set to %s by user %s; timeline %s progress now %d%%",
            task_id, is_completed, user_id, timeline.id, new_progress
        )

        return {
            "task_id": task.id,
            "is_completed": task.is_completed,
            "new_progress": new_progress,
            "phase_percentage": task.phase.completion_percentage,
        }
