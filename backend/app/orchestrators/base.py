"""
Base Orchestrator

Abstract base class for request-scoped pipelines. Every run leaves an
audit record behind:
- DecisionTrace: ordered steps with status, timing and details
- EvidenceBundle: the ground truth and component events each decision used

Runs that fail are traced too; the trace is committed after the partial
pipeline writes have been rolled back.
"""

import logging
import time
import uuid
from abc import ABC, abstractmethod
from collections import Counter
from contextlib import contextmanager
from datetime import datetime
from typing import Any, Dict, List, Optional, TypeVar, Generic

from sqlalchemy.orm import Session

from app.models.decision_trace import DecisionTrace, EvidenceBundle
from app.utils.invariants import validate_request_id, validate_orchestrator_name
from app.utils.observability import CallbackEventSink, EventSink, LoggingEventSink

logger = logging.getLogger(__name__)

# Pipeline result type
T = TypeVar('T')


def _now() -> str:
    return datetime.utcnow().isoformat()


class ExecutionStep:
    """One traced stage of a pipeline run."""

    def __init__(self, action: str, step_number: int):
        self.step = step_number
        self.action = action
        self.status = "in_progress"
        self.details: Dict[str, Any] = {}
        self.error: Optional[str] = None
        self.started_at = _now()
        self.completed_at: Optional[str] = None
        self.duration_ms: Optional[int] = None
        self._clock = time.monotonic()

    def finish(self, status: str = "success", error: Optional[str] = None):
        self.status = status
        self.error = error
        self.completed_at = _now()
        self.duration_ms = int((time.monotonic() - self._clock) * 1000)

    def to_dict(self) -> Dict[str, Any]:
        data = {
            "step": self.step,
            "action": self.action,
            "status": self.status,
            "started_at": self.started_at,
            "completed_at": self.completed_at,
            "duration_ms": self.duration_ms,
        }
        if self.details:
            data["details"] = self.details
        if self.error:
            data["error"] = self.error
        return data


class EvidenceCollector:
    """Evidence gathered during one run, stored as a single EvidenceBundle."""

    def __init__(self, request_id: str, orchestrator_name: str):
        self.request_id = request_id
        self.orchestrator_name = orchestrator_name
        self.items: List[Dict[str, Any]] = []

    def add(
        self,
        evidence_type: str,
        data: Any,
        source: Optional[str] = None,
        confidence: Optional[float] = None,
    ):
        item = {"type": evidence_type, "data": data, "timestamp": _now()}
        if source:
            item["source"] = source
        if confidence is not None:
            item["confidence"] = confidence
        self.items.append(item)

    def counts(self) -> Dict[str, int]:
        """Number of evidence items per type."""
        return dict(Counter(item["type"] for item in self.items))

    def to_dict(self) -> Dict[str, Any]:
        return {
            "request_id": self.request_id,
            "orchestrator": self.orchestrator_name,
            "evidence": self.items,
            "counts": self.counts(),
        }


class OrchestrationError(Exception):
    """Raised when a pipeline run fails; the domain error is kept as __cause__."""
    pass


class BaseOrchestrator(ABC, Generic[T]):
    """
    Abstract orchestrator with decision tracing.

    Subclasses provide:
    - orchestrator_name: unique name used on the DecisionTrace
    - _execute_pipeline(context) -> T: the stages, each wrapped in _trace_step

    Usage:
        class TimelineGenerationOrchestrator(BaseOrchestrator[Dict[str, Any]]):
            @property
            def orchestrator_name(self) -> str:
                return "timeline_generation_orchestrator"

            def _execute_pipeline(self, context):
                with self._trace_step("validate_request") as step:
                    step.details = {...}
                ...

        result = orchestrator.execute(request_id, input_data)
    """

    def __init__(self, db: Session, user_id: Optional[uuid.UUID] = None):
        """
        Initialize base orchestrator.

        Args:
            db: Database session
            user_id: User the run acts for, if already known
        """
        self.db = db
        self.user_id = user_id
        self._start_time: Optional[float] = None
        self._current_request_id: Optional[str] = None
        self._steps: List[ExecutionStep] = []
        self._evidence: Optional[EvidenceCollector] = None

    @property
    @abstractmethod
    def orchestrator_name(self) -> str:
        """Unique orchestrator name, e.g. "timeline_generation_orchestrator"."""
        pass

    @abstractmethod
    def _execute_pipeline(self, context: Dict[str, Any]) -> T:
        """
        Run the pipeline stages.

        Args:
            context: {'input', 'user_id', 'request_id', 'orchestrator'}

        Returns:
            Result of the run

        Raises:
            Exception: Domain errors; execute() wraps them in OrchestrationError
        """
        pass

    def execute(self, request_id: str, input_data: Dict[str, Any]) -> T:
        """
        Run the pipeline and record its DecisionTrace.

        Steps:
        1. Validate request_id and orchestrator name
        2. Build the context and run the pipeline, one traced step per stage
        3. Write DecisionTrace and EvidenceBundle, then commit

        On failure the session is rolled back, the trace is written with
        result "failed" and committed, and OrchestrationError is raised from
        the original error.

        Args:
            request_id: Unique request identifier
            input_data: Pipeline input

        Returns:
            Result of the pipeline

        Raises:
            OrchestrationError: If validation or any stage fails
        """
        try:
            validate_request_id(request_id)
            validate_orchestrator_name(self.orchestrator_name)
        except ValueError as e:
            raise OrchestrationError(f"Invalid input: {str(e)}") from e

        self._current_request_id = request_id
        self._start_time = time.time()
        self._steps = []
        self._evidence = EvidenceCollector(request_id, self.orchestrator_name)

        try:
            with self._trace_step("prepare_context"):
                context = self._prepare_context(input_data)
            with self._trace_step("execute_pipeline"):
                result = self._execute_pipeline(context)
            with self._trace_step("persist_trace"):
                self._persist_trace_and_evidence()
            self.db.commit()
            return result
        except Exception as e:
            self.db.rollback()
            self._record_failure(e)
            logger.error("%s failed for request %s: %s", self.orchestrator_name, request_id, e)
            raise OrchestrationError(f"Orchestration failed: {str(e)}") from e

    def _record_failure(self, error: Exception):
        try:
            with self._trace_step("handle_error"):
                self._persist_trace_and_evidence(error=str(error))
            self.db.commit()
        except Exception as trace_error:
            self.db.rollback()
            logger.error("Could not store failure trace for request %s: %s",
                         self._current_request_id, trace_error)

    def _prepare_context(self, input_data: Dict[str, Any]) -> Dict[str, Any]:
        """Execution context; subclasses may extend it."""
        return {
            'input': input_data,
            'user_id': self.user_id,
            'request_id': self._current_request_id,
            'orchestrator': self.orchestrator_name
        }

    @contextmanager
    def _trace_step(self, action: str):
        """
        Trace the enclosed block as one step.

        Usage:
            with self._trace_step("parse_response") as step:
                parsed = self.parser.parse(text)
                step.details = {"strategy": parsed.strategy}
        """
        step = ExecutionStep(action, len(self._steps) + 1)
        self._steps.append(step)
        try:
            yield step
        except Exception as e:
            step.finish("failed", error=str(e))
            raise
        step.finish()

    def add_evidence(
        self,
        evidence_type: str,
        data: Any,
        source: Optional[str] = None,
        confidence: Optional[float] = None,
    ):
        """
        Attach evidence to the current run.

        Args:
            evidence_type: e.g. "ground_truth", "reconciliation", "event"
            data: JSON-serialisable payload
            source: Where the evidence came from, e.g. "User:<uuid>"
            confidence: 0.0 to 1.0
        """
        if self._evidence is not None:
            self._evidence.add(evidence_type, data, source, confidence)

    def event_sink(self, inner: Optional[EventSink] = None) -> EventSink:
        """
        Event sink that records component events as evidence.

        Events are also forwarded to ``inner`` (logging by default).
        """
        def record(event: str, fields: Dict[str, Any]):
            self.add_evidence("event", {"event": event, **fields}, source=self.orchestrator_name)

        return CallbackEventSink(record, inner or LoggingEventSink(logger))

    def _persist_trace_and_evidence(self, error: Optional[str] = None):
        trace_json = {
            "started_at": datetime.fromtimestamp(self._start_time).isoformat(),
            "completed_at": _now(),
            "duration_ms": self.get_elapsed_time_ms(),
            "steps": [step.to_dict() for step in self._steps],
            "result": "failed" if error else "success",
            "metadata": {
                "user_id": str(self.user_id) if self.user_id else None,
                "total_steps": len(self._steps),
                "evidence": self._evidence.counts() if self._evidence else {},
            }
        }
        if error:
            trace_json["error"] = error

        trace = DecisionTrace(
            request_id=self._current_request_id,
            orchestrator_name=self.orchestrator_name,
            trace_json=trace_json,
            created_at=datetime.utcnow()
        )
        self.db.add(trace)
        self.db.flush()

        if self._evidence and self._evidence.items:
            self.db.add(EvidenceBundle(
                decision_trace_id=trace.id,
                evidence_json=self._evidence.to_dict()
            ))
        self.db.flush()

    def get_elapsed_time_ms(self) -> int:
        """Milliseconds since the current run started."""
        if self._start_time:
            return int((time.time() - self._start_time) * 1000)
        return 0
