"""
Response continuation.

Drives the generate -> check -> continue loop for length-limited model
output:

    GENERATING -> CHECKING -> DONE
                      |
                      v
                 CONTINUING -> CHECKING -> ... -> DONE | EXHAUSTED

Every model call goes through a bounded retry with exponential backoff.
A failed continuation does not fail the request: the best text so far is
returned and downstream validation decides whether it is usable.
"""

import logging
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, List, Optional

from app.services.completeness_detector import CompletenessDetector
from app.services.response_merger import ResponseMerger
from app.services.text_generation_client import TextGenerator
from app.services.timeline_prompt_builder import TimelinePromptBuilder
from app.utils.observability import EventSink, LoggingEventSink

logger = logging.getLogger(__name__)


class GenerationState(str, Enum):
    """States of the continuation loop."""
    GENERATING = "generating"
    CHECKING = "checking"
    CONTINUING = "continuing"
    DONE = "done"
    EXHAUSTED = "exhausted"


class GenerationServiceError(Exception):
    """Raised when the text generation service fails on every attempt."""

    def __init__(self, message: str, attempts: int = 0):
        self.attempts = attempts
        super().__init__(message)


@dataclass
class GenerationOutcome:
    """
    Result of a generation run.

    Attributes:
        text: Accumulated (merged) response text
        state: Terminal state (DONE or EXHAUSTED)
        is_complete: Whether the final text passed the completeness check
        missing_phases: Phase labels still missing from the final text
        continuations_used: Number of continuations merged in
        model_calls: Total model calls, retries included
        retry_delays: Backoff delays slept, in seconds
        continuation_error: Error of a failed continuation, if any
        transitions: Sequence of states visited
    """
    text: str
    state: GenerationState
    is_complete: bool
    missing_phases: List[str] = field(default_factory=list)
    continuations_used: int = 0
    model_calls: int = 0
    retry_delays: List[float] = field(default_factory=list)
    continuation_error: Optional[str] = None
    transitions: List[GenerationState] = field(default_factory=list)


class ContinuationOrchestrator:
    """
    Runs generation with completeness checks and continuations.

    Usage:
        orchestrator = ContinuationOrchestrator(generator)
        outcome = orchestrator.run(prompt)
        parsed = TimelineResponseParser().parse(outcome.text)
    """

    def __init__(
        self,
        generator: TextGenerator,
        detector: Optional[CompletenessDetector] = None,
        merger: Optional[ResponseMerger] = None,
        prompt_builder: Optional[TimelinePromptBuilder] = None,
        max_continuations: int = 2,
        max_attempts: int = 2,
        retry_base_s: float = 1.0,
        sleep: Callable[[float], None] = time.sleep,
        events: Optional[EventSink] = None,
    ):
        """
        Initialize continuation orchestrator.

        Args:
            generator: Text generation collaborator
            detector: Completeness detector
            merger: Response merger
            prompt_builder: Builds continuation prompts
            max_continuations: Continuation budget
            max_attempts: Attempts per model call
            retry_base_s: Base delay; attempt n waits base * 2^(n-1)
            sleep: Sleep function (injected in tests)
            events: Event sink
        """
        self.generator = generator
        self.detector = detector or CompletenessDetector()
        self.merger = merger or ResponseMerger()
        self.prompt_builder = prompt_builder or TimelinePromptBuilder()
        self.max_continuations = max_continuations
        self.max_attempts = max(1, max_attempts)
        self.retry_base_s = retry_base_s
        self.sleep = sleep
        self.events = events or LoggingEventSink(logger)

    def run(self, prompt: str) -> GenerationOutcome:
        """
        Generate a complete response for ``prompt``.

        Raises:
            GenerationServiceError: If the initial generation fails on every attempt
        """
        outcome = GenerationOutcome(text="", state=GenerationState.GENERATING, is_complete=False)
        outcome.transitions.append(GenerationState.GENERATING)

        outcome.text = self._generate_with_retry(prompt, outcome)

        while True:
            self._transition(outcome, GenerationState.CHECKING)
            report = self.detector.check(outcome.text)
            outcome.is_complete = report.is_complete
            outcome.missing_phases = list(report.missing_phases)

            if report.is_complete:
                self._transition(outcome, GenerationState.DONE)
                break

            if outcome.continuations_used >= self.max_continuations:
                self._transition(outcome, GenerationState.EXHAUSTED)
                break

            self._transition(outcome, GenerationState.CONTINUING)
            self.events.emit(
                "generation.continuation_requested",
                round=outcome.continuations_used + 1,
                missing_phases=outcome.missing_phases,
                closed=report.has_closing_sequence,
                length=len(outcome.text),
            )
            continuation_prompt = self.prompt_builder.build_continuation_prompt(
                outcome.text, report.missing_phases
            )
            try:
                continuation = self._generate_with_retry(continuation_prompt, outcome)
            except GenerationServiceError as e:
                outcome.continuation_error = str(e)
                self.events.emit("generation.continuation_failed", error=str(e))
                self._transition(outcome, GenerationState.EXHAUSTED)
                break

            outcome.continuations_used += 1
            outcome.text = self.merger.merge(outcome.text, continuation)

        self.events.emit(
            "generation.finished",
            state=outcome.state.value,
            complete=outcome.is_complete,
            continuations=outcome.continuations_used,
            model_calls=outcome.model_calls,
        )
        return outcome

    def _generate_with_retry(self, prompt: str, outcome: GenerationOutcome) -> str:
        last_error: Optional[Exception] = None

        for attempt in range(1, self.max_attempts + 1):
            outcome.model_calls += 1
            try:
                return self.generator.generate(prompt)
            except Exception as e:
                last_error = e
                logger.warning("Generation attempt %d/%d failed: %s", attempt, self.max_attempts, e)
                if attempt < self.max_attempts:
                    delay = self.retry_base_s * (2 ** (attempt - 1))
                    outcome.retry_delays.append(delay)
                    self.sleep(delay)

        raise GenerationServiceError(
            f"Text generation failed after {self.max_attempts} attempts: {last_error}",
            attempts=self.max_attempts,
        ) from last_error

    def _transition(self, outcome: GenerationOutcome, state: GenerationState) -> None:
        outcome.state = state
        outcome.transitions.append(state)
