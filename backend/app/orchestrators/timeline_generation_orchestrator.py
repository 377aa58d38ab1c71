"""Timeline generation orchestrator for university application timelines."""
import logging
import time
import uuid
from datetime import datetime
from typing import Any, Callable, Dict, Optional, Tuple
from uuid import UUID

from sqlalchemy.orm import Session

from app.config import Settings, get_settings
from app.models.university import University
from app.models.user import User
from app.orchestrators.base import BaseOrchestrator, OrchestrationError
from app.services.completeness_detector import CompletenessDetector
from app.services.completion_reconciler import CompletionReconciler
from app.services.ground_truth_service import ApplicationContext, GroundTruthService
from app.services.response_continuation import ContinuationOrchestrator, GenerationServiceError
from app.services.response_merger import ResponseMerger
from app.services.retryable_persister import RetryablePersister
from app.services.text_generation_client import TextGenerator
from app.services.timeline_parser import TimelineParseError, TimelineResponseParser
from app.services.timeline_prompt_builder import TimelinePromptBuilder
from app.services.timeline_store import StoredTimeline, TimelineKey, TimelineSnapshot, TimelineStore
from app.services.timeline_validator import TimelineStructureValidator, TimelineValidationError
from app.utils.invariants import check_completion_is_justified, check_phase_structure
from app.utils.observability import EventSink

logger = logging.getLogger(__name__)


class TimelineRequestError(Exception):
    """Raised when a generation request is rejected before any work is done."""

    def __init__(self, message: str, status_code: int = 400):
        self.status_code = status_code
        super().__init__(message)


class TimelineGenerationOrchestrator(BaseOrchestrator[Dict[str, Any]]):
    """
    Orchestrator for generating a user's application timeline for a university.

    Extends BaseOrchestrator for decision tracing. Coordinates ground truth
    loading, text generation with continuations, recovering parsing,
    structural validation, completion reconciliation and persistence.

    A stored timeline is returned (re-synced with fresh ground truth) unless
    ``forceRegenerate`` is set.
    """

    def __init__(
        self,
        db: Session,
        generator: TextGenerator,
        settings: Optional[Settings] = None,
        sleep: Callable[[float], None] = time.sleep,
        events: Optional[EventSink] = None,
        user_id: Optional[UUID] = None,
    ):
        """
        Initialize timeline generation orchestrator.

        Args:
            db: Database session
            generator: Text generation collaborator
            settings: Settings (defaults to get_settings())
            sleep: Sleep function used between retries
            events: Sink that also receives every component event
            user_id: Optional user ID (resolved from the request otherwise)
        """
        super().__init__(db, user_id)
        self.generator = generator
        self.settings = settings or get_settings()
        self.sleep = sleep
        self.events = self.event_sink(events)

        self.store = TimelineStore(db)
        self.ground_truth = GroundTruthService(db, self.settings.ESSAY_COMPLETION_RATIO)
        self.prompt_builder = TimelinePromptBuilder(tail_chars=self.settings.CONTINUATION_TAIL_CHARS)
        self.parser = TimelineResponseParser()
        self.validator = TimelineStructureValidator()
        self.reconciler = CompletionReconciler(
            match_threshold=self.settings.FUZZY_MATCH_THRESHOLD,
            min_title_length=self.settings.FUZZY_MIN_TITLE_LENGTH,
            events=self.events,
        )

    @property
    def orchestrator_name(self) -> str:
        """Return the orchestrator name."""
        return "timeline_generation_orchestrator"

    def generate(
        self,
        request_id: str,
        target_entity: Dict[str, Any],
        user_id: Any,
        user_profile: Optional[Dict[str, Any]] = None,
        force_regenerate: bool = False,
    ) -> Dict[str, Any]:
        """
        Generate (or return the stored) timeline for a target university.

        Steps:
        1. Validate the request and resolve user and university
        2. Load ground truth (tests, essays, calendar events, progress)
        3. Return the stored timeline, re-synced, unless regeneration is forced
        4. Build the prompt and generate with continuations
        5. Parse, validate structure, reconcile completion
        6. Persist with retries and reload the canonical record
        7. Write DecisionTrace (automatic via BaseOrchestrator)

        Args:
            request_id: Request identifier used for the trace
            target_entity: Target university, must carry "id"
            user_id: ID of the requesting user
            user_profile: Optional profile used where the database has no value
            force_regenerate: Ignore a stored timeline

        Returns:
            Dict with success, timeline and metadata

        Raises:
            OrchestrationError: Wrapping the domain error as ``__cause__``
        """
        return self.execute(
            request_id=request_id,
            input_data={
                "targetEntity": target_entity,
                "userId": user_id,
                "userProfile": user_profile or {},
                "forceRegenerate": force_regenerate,
            }
        )

    def _execute_pipeline(self, context: Dict[str, Any]) -> Dict[str, Any]:
        input_data = context['input']
        force_regenerate = input_data.get('forceRegenerate') is True

        # Step 1: Validate request
        with self._trace_step("validate_request") as step:
            user, university = self._resolve_request(input_data)
            self.user_id = user.id
            step.details = {
                "user_id": str(user.id),
                "university_id": str(university.id),
                "force_regenerate": force_regenerate,
            }

        # Step 2: Load ground truth
        with self._trace_step("load_ground_truth") as step:
            app_context = self.ground_truth.load_context(user, university)
            self._apply_profile_fallbacks(app_context, input_data.get('userProfile'))
            step.details = {
                "essays": len(app_context.essays),
                "essays_completed": app_context.essays_completed,
                "calendar_events": len(app_context.signals.calendar_events),
                "tests_completed": app_context.tests_completed,
                "overall_progress": app_context.progress.overall_progress,
            }
            self.add_evidence(
                evidence_type="ground_truth",
                data={
                    "essay_completion_flags": list(app_context.signals.essay_completion_flags),
                    "tests_completed": app_context.tests_completed,
                    "tests_needed": app_context.tests_needed,
                    "calendar_events_completed": sum(
                        1 for event in app_context.signals.calendar_events if event.is_completed
                    ),
                    "overall_progress": app_context.progress.overall_progress,
                },
                source=f"User:{user.id}",
                confidence=1.0
            )

        key = TimelineKey(user_id=user.id, university_id=university.id)

        # Step 3: Existing timeline
        if not force_regenerate:
            with self._trace_step("check_existing") as step:
                existing = self.store.find_existing(key)
                step.details = {"found": existing is not None}
                if existing is not None and existing.current_generation_id is not None:
                    stored, synced = self._resync_existing(existing, app_context)
                    step.details["timeline_id"] = str(existing.id)
                    step.details["tasks_synced"] = synced
                    return self._build_response(stored, app_context, {
                        "fromDatabase": True,
                        "tasksSynced": synced,
                        "generatedAt": (
                            existing.last_regenerated_at.isoformat()
                            if existing.last_regenerated_at else None
                        ),
                    })

        # Step 4: Build prompt
        with self._trace_step("build_prompt") as step:
            prompt = self.prompt_builder.build_generation_prompt(app_context)
            step.details = {"prompt_chars": len(prompt)}

        # Step 5: Generate with continuations
        with self._trace_step("generate_response") as step:
            outcome = ContinuationOrchestrator(
                self.generator,
                detector=CompletenessDetector(),
                merger=ResponseMerger(),
                prompt_builder=self.prompt_builder,
                max_continuations=self.settings.MAX_CONTINUATIONS,
                max_attempts=self.settings.GENERATION_MAX_ATTEMPTS,
                retry_base_s=self.settings.GENERATION_RETRY_BASE_S,
                sleep=self.sleep,
                events=self.events,
            ).run(prompt)
            step.details = {
                "state": outcome.state.value,
                "complete": outcome.is_complete,
                "continuations_used": outcome.continuations_used,
                "model_calls": outcome.model_calls,
                "missing_phases": outcome.missing_phases,
                "response_chars": len(outcome.text),
            }
            if outcome.continuation_error:
                step.details["continuation_error"] = outcome.continuation_error

        # Step 6: Parse
        with self._trace_step("parse_response") as step:
            parsed = self.parser.parse(outcome.text)
            step.details = {
                "strategy": parsed.strategy,
                "phases": len(parsed.draft.phases),
                "skipped_phases": parsed.skipped_phases,
            }

        # Step 7: Validate structure
        with self._trace_step("validate_structure") as step:
            validation = self.validator.validate(parsed.draft)
            draft = validation.draft
            step.details = {
                "phase_ids": draft.phase_ids,
                "placeholder_phases": validation.placeholder_phases,
            }

        # Step 8: Reconcile completion with ground truth
        with self._trace_step("reconcile_completion") as step:
            summary = self.reconciler.reconcile(draft, app_context.signals)
            draft.current_progress = app_context.progress.overall_progress
            check_completion_is_justified(draft)
            check_phase_structure(draft)
            step.details = {
                "total_tasks": summary.total_tasks,
                "completed_tasks": summary.completed_tasks,
                "fixed": summary.fixed_count,
            }
            self.add_evidence(
                evidence_type="reconciliation",
                data={"reasons": summary.reasons, "changes": summary.changes},
                source=self.orchestrator_name,
                confidence=1.0
            )

        # Step 9: Persist
        with self._trace_step("persist_timeline") as step:
            snapshot = TimelineSnapshot(
                timeline_name=f"{university.name} Application Timeline",
                ai_model=self._model_name(),
                prompt_version=self.settings.PROMPT_VERSION,
                generation_time_ms=self.get_elapsed_time_ms(),
                continuations_used=outcome.continuations_used,
                parse_strategy=parsed.strategy,
                user_profile_snapshot=self._profile_snapshot(app_context),
                university_snapshot=app_context.university_snapshot(),
            )
            persisted = RetryablePersister(
                self.store,
                max_attempts=self.settings.PERSIST_MAX_ATTEMPTS,
                sleep=self.sleep,
                events=self.events,
            ).persist(key, draft, snapshot)
            stored: StoredTimeline = persisted.record
            step.details = {
                "timeline_id": str(stored.timeline.id),
                "attempts": persisted.attempts,
                "delays": persisted.delays,
            }

        logger.info(
            "Generated timeline %s for user %s / %s (%d continuations, strategy %s, %d fixed)",
            stored.timeline.id, user.id, university.name,
            outcome.continuations_used, parsed.strategy, summary.fixed_count
        )

        return self._build_response(stored, app_context, {
            "fromDatabase": False,
            "savedToDatabase": True,
            "model": snapshot.ai_model,
            "promptVersion": snapshot.prompt_version,
            "generatedAt": datetime.utcnow().isoformat(),
            "processingTimeMs": self.get_elapsed_time_ms(),
            "continuationsUsed": outcome.continuations_used,
            "responseComplete": outcome.is_complete,
            "parseStrategy": parsed.strategy,
            "placeholderPhases": validation.placeholder_phases,
            "tasksFixed": summary.fixed_count,
            "persistAttempts": persisted.attempts,
        })

    def _resolve_request(self, input_data: Dict[str, Any]) -> Tuple[User, University]:
        target = input_data.get('targetEntity')
        if not isinstance(target, dict) or not target.get('id'):
            raise TimelineRequestError("Invalid target entity: an object with an id is required", 400)
        university_id = _parse_uuid(target.get('id'))
        if university_id is None:
            raise TimelineRequestError(f"Invalid target entity id: {target.get('id')}", 400)

        raw_user_id = input_data.get('userId')
        if not raw_user_id:
            raise TimelineRequestError("User ID is required", 401)
        user_id = _parse_uuid(raw_user_id)
        if user_id is None:
            raise TimelineRequestError(f"Invalid user ID: {raw_user_id}", 401)

        university = self.db.query(University).filter(University.id == university_id).first()
        if not university:
            raise TimelineRequestError(f"University with ID {university_id} not found", 400)

        user = self.db.query(User).filter(User.id == user_id).first()
        if not user:
            raise TimelineRequestError(f"User with ID {user_id} not found", 401)

        return user, university

    def _resync_existing(self, existing, app_context: ApplicationContext) -> Tuple[StoredTimeline, int]:
        draft = self.store.load_draft(existing)
        summary = self.reconciler.reconcile(draft, app_context.signals)
        check_completion_is_justified(draft)
        synced = self.store.sync_task_completion(existing, draft)
        self.add_evidence(
            evidence_type="reconciliation",
            data={"reasons": summary.reasons, "changes": summary.changes, "synced": synced},
            source=f"ApplicationTimeline:{existing.id}",
            confidence=1.0
        )
        return self.store.reload(existing.id), synced

    def _build_response(
        self,
        stored: StoredTimeline,
        app_context: ApplicationContext,
        extra: Dict[str, Any],
    ) -> Dict[str, Any]:
        timeline = stored.to_response()
        timeline["currentProgress"] = app_context.progress.overall_progress
        total_tasks, completed_tasks = stored.draft.task_counts()

        metadata = app_context.metadata()
        metadata.update({
            "timelineId": str(stored.timeline.id),
            "requestId": self._current_request_id,
            "totalPhases": len(stored.draft.phases),
            "totalTasks": total_tasks,
            "completedTasks": completed_tasks,
        })
        metadata.update(extra)

        return {"success": True, "timeline": timeline, "metadata": metadata}

    @staticmethod
    def _apply_profile_fallbacks(app_context: ApplicationContext, profile: Any) -> None:
        if not isinstance(profile, dict):
            return
        if app_context.study_level is None and profile.get('studyLevel'):
            app_context.study_level = str(profile['studyLevel']).lower()
        if app_context.gpa is None and profile.get('gpa') is not None:
            try:
                app_context.gpa = float(profile['gpa'])
            except (TypeError, ValueError):
                pass

    @staticmethod
    def _profile_snapshot(app_context: ApplicationContext) -> Dict[str, Any]:
        return {
            "studyLevel": app_context.study_level,
            "gpa": app_context.gpa,
            "workExperience": app_context.work_experience,
            "testsCompleted": app_context.tests_completed,
            "essaysCompleted": app_context.essays_completed,
            "essaysRequired": len(app_context.essays),
            "overallProgress": app_context.progress.overall_progress,
        }

    def _model_name(self) -> str:
        return getattr(self.generator, "model_name", None) or "unknown"


def _parse_uuid(value: Any) -> Optional[UUID]:
    if isinstance(value, UUID):
        return value
    try:
        return UUID(str(value))
    except (TypeError, ValueError):
        return None


ERROR_TITLES = {
    400: "Invalid request",
    401: "Authentication required",
    500: "Timeline generation failed",
    502: "Text generation service unavailable",
}


def error_response(error: BaseException) -> Tuple[int, Dict[str, Any]]:
    """
    Map a failed generation to an HTTP status and error body.

    OrchestrationError is unwrapped to the domain error it was raised from.

    Returns:
        (status_code, {success, error, message, details})
    """
    cause = error
    if isinstance(error, OrchestrationError) and error.__cause__ is not None:
        cause = error.__cause__

    details: Dict[str, Any] = {"type": type(cause).__name__}
    if isinstance(cause, TimelineRequestError):
        status = cause.status_code
    elif isinstance(cause, GenerationServiceError):
        status = 502
        details["attempts"] = cause.attempts
    elif isinstance(cause, TimelineParseError):
        status = 500
        details["strategies"] = cause.diagnostics
    elif isinstance(cause, TimelineValidationError):
        status = 500
        details["phasesReceived"] = cause.phases_received
    else:
        status = 500

    return status, {
        "success": False,
        "error": ERROR_TITLES.get(status, ERROR_TITLES[500]),
        "message": str(cause),
        "details": details,
    }


def generate_timeline_response(
    db: Session,
    generator: TextGenerator,
    payload: Dict[str, Any],
    request_id: Optional[str] = None,
    settings: Optional[Settings] = None,
    sleep: Callable[[float], None] = time.sleep,
    events: Optional[EventSink] = None,
) -> Tuple[int, Dict[str, Any]]:
    """
    Handle a timeline generation request.

    Args:
        db: Database session
        generator: Text generation collaborator
        payload: {targetEntity, userProfile, userId, forceRegenerate}
        request_id: Request identifier (generated when omitted)
        settings: Settings override
        sleep: Sleep function used between retries
        events: Additional event sink

    Returns:
        (200, {success, timeline, metadata}) or (status, {error, message, details})
    """
    payload = payload or {}
    orchestrator = TimelineGenerationOrchestrator(
        db, generator, settings=settings, sleep=sleep, events=events
    )
    try:
        result = orchestrator.generate(
            request_id=request_id or str(uuid.uuid4()),
            target_entity=payload.get("targetEntity"),
            user_id=payload.get("userId"),
            user_profile=payload.get("userProfile"),
            force_regenerate=payload.get("forceRegenerate") is True,
        )
    except OrchestrationError as e:
        status, body = error_response(e)
        logger.warning("Timeline generation request failed with %d: %s", status, body["message"])
        return status, body
    return 200, result
