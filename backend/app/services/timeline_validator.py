"""Structural validation of parsed timelines."""
import logging
from dataclasses import dataclass
from typing import List, Sequence

from app.services.timeline_schema import (
    DEFAULT_PHASE_SIGNATURES,
    DraftPhase,
    DraftTask,
    PhaseSignature,
    PhaseStatus,
    TaskPriority,
    TimelineDraft,
)

logger = logging.getLogger(__name__)


class TimelineValidationError(Exception):
    """Raised when a parsed timeline does not have the required phases."""

    def __init__(self, message: str, phases_received: List[str]):
        self.phases_received = phases_received
        super().__init__(message)


@dataclass
class ValidationResult:
    draft: TimelineDraft
    placeholder_phases: List[int]


PLACEHOLDER_SUBMISSION_TASKS = (
    "Complete the online application form",
    "Upload essays, transcripts, test scores and resume",
    "Pay the application fee and submit the application",
)


class TimelineStructureValidator:
    """
    Enforces exactly one phase per signature, ids 1..N, in order.

    A draft with every phase except the last is repaired with a placeholder
    final phase; any other shape is rejected.
    """

    def __init__(self, signatures: Sequence[PhaseSignature] = DEFAULT_PHASE_SIGNATURES):
        self.signatures = list(signatures)

    def validate(self, draft: TimelineDraft) -> ValidationResult:
        """
        Validate (and possibly repair) ``draft`` in place.

        Raises:
            TimelineValidationError: If the phase set is wrong
        """
        unique = {}
        for phase in draft.phases:
            unique.setdefault(phase.id, phase)
        draft.phases = sorted(unique.values(), key=lambda phase: phase.id)

        expected_ids = [sig.phase_number for sig in self.signatures]
        placeholders: List[int] = []

        if draft.phase_ids == expected_ids[:-1]:
            final = self.signatures[-1]
            logger.warning("Timeline missing final phase %d, adding placeholder", final.phase_number)
            draft.phases.append(self._placeholder_phase(final))
            placeholders.append(final.phase_number)

        if draft.phase_ids != expected_ids:
            received = [f"{phase.id}: {phase.name}" for phase in draft.phases]
            raise TimelineValidationError(
                f"Expected {len(expected_ids)} phases with ids {expected_ids}, "
                f"received {len(received)}: {received}",
                phases_received=received,
            )

        return ValidationResult(draft=draft, placeholder_phases=placeholders)

    @staticmethod
    def _placeholder_phase(signature: PhaseSignature) -> DraftPhase:
        name = signature.label.split(":", 1)[-1].strip()
        return DraftPhase(
            id=signature.phase_number,
            name=name,
            description="Assemble every component of the application and submit it ahead of the deadline.",
            duration="2-3 weeks",
            timeframe="Final weeks before the deadline",
            status=PhaseStatus.UPCOMING,
            tasks=[
                DraftTask(
                    id=index,
                    task_number=index,
                    title=title,
                    priority=TaskPriority.HIGH,
                )
                for index, title in enumerate(PLACEHOLDER_SUBMISSION_TASKS, start=1)
            ],
        )
