"""
Services package.

Services contain business logic and data access layer.
They handle timeline parsing, reconciliation and persistence.

Services should:
    - Accept database session as parameter (when they touch the database)
    - Implement one concern each
    - Return data or raise exceptions
"""

from app.services.balanced_scanner import (
    find_balanced_end,
    scan_depth,
    DepthScan,
    BalancedScannerError,
)
from app.services.fuzzy_matcher import (
    levenshtein_distance,
    similarity,
    match_event_to_task,
)
from app.services.timeline_schema import (
    TimelineDraft,
    DraftPhase,
    DraftTask,
    PhaseStatus,
    TaskPriority,
    PhaseSignature,
    DEFAULT_PHASE_SIGNATURES,
    GroundTruthSignals,
    TestStatus,
    CalendarEventSignal,
)
from app.services.timeline_parser import (
    TimelineResponseParser,
    ParsedTimeline,
    TimelineParseError,
)
from app.services.response_merger import ResponseMerger
from app.services.completeness_detector import (
    CompletenessDetector,
    CompletenessReport,
)
from app.services.response_continuation import (
    ContinuationOrchestrator,
    GenerationOutcome,
    GenerationState,
    GenerationServiceError,
)
from app.services.completion_reconciler import (
    CompletionReconciler,
    ReconciliationSummary,
)
from app.services.retryable_persister import (
    RetryablePersister,
    PersistResult,
    is_transient_error,
)
from app.services.timeline_store import (
    TimelineStore,
    TimelineStoreError,
    TimelineKey,
    TimelineSnapshot,
    StoredTimeline,
)
from app.services.timeline_validator import (
    TimelineStructureValidator,
    TimelineValidationError,
)
from app.services.ground_truth_service import (
    GroundTruthService,
    GroundTruthServiceError,
    ApplicationContext,
    parse_test_scores,
    compute_progress,
)
from app.services.task_progress_service import (
    TaskProgressService,
    TaskProgressServiceError,
)
from app.services.timeline_prompt_builder import TimelinePromptBuilder
from app.services.text_generation_client import (
    TextGenerator,
    OpenAITextGenerator,
    TextGenerationError,
)

__all__ = [
    "find_balanced_end",
    "scan_depth",
    "DepthScan",
    "BalancedScannerError",
    "levenshtein_distance",
    "similarity",
    "match_event_to_task",
    "TimelineDraft",
    "DraftPhase",
    "DraftTask",
    "PhaseStatus",
    "TaskPriority",
    "PhaseSignature",
    "DEFAULT_PHASE_SIGNATURES",
    "GroundTruthSignals",
    "TestStatus",
    "CalendarEventSignal",
    "TimelineResponseParser",
    "ParsedTimeline",
    "TimelineParseError",
    "ResponseMerger",
    "CompletenessDetector",
    "CompletenessReport",
    "ContinuationOrchestrator",
    "GenerationOutcome",
    "GenerationState",
    "GenerationServiceError",
    "CompletionReconciler",
    "ReconciliationSummary",
    "RetryablePersister",
    "PersistResult",
    "is_transient_error",
    "TimelineStore",
    "TimelineStoreError",
    "TimelineKey",
    "TimelineSnapshot",
    "StoredTimeline",
    "TimelineStructureValidator",
    "TimelineValidationError",
    "GroundTruthService",
    "GroundTruthServiceError",
    "ApplicationContext",
    "parse_test_scores",
    "compute_progress",
    "TaskProgressService",
    "TaskProgressServiceError",
    "TimelinePromptBuilder",
    "TextGenerator",
    "OpenAITextGenerator",
    "TextGenerationError",
]
