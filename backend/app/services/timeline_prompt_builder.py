"""Prompt construction for timeline generation and continuation."""
from typing import List, Sequence

from app.services.ground_truth_service import ApplicationContext

DEFAULT_TAIL_CHARS = 300


class TimelinePromptBuilder:
    """
    Builds the generation prompt from an ApplicationContext and the
    continuation prompt for truncated responses.
    """

    def __init__(self, tail_chars: int = DEFAULT_TAIL_CHARS):
        self.tail_chars = tail_chars

    def build_generation_prompt(self, context: ApplicationContext) -> str:
        name = context.university_name
        progress = context.progress.overall_progress
        total_essays = len(context.essays)
        completed_essays = context.essays_completed

        deadline = "TBD"
        if context.deadline:
            deadline = f"{context.deadline.strftime('%B %d, %Y')} ({context.days_until_deadline} days away)"

        sections = [
            f"You are an expert admissions consultant. Create a personalized application "
            f"timeline for a student applying to {name}.",
            "",
            "UNIVERSITY:",
            f"- Name: {name}",
            f"- Location: {context.location or 'Location not specified'}",
            f"- Main deadline: {deadline}",
            f"- Acceptance rate: {str(context.acceptance_rate) + '%' if context.acceptance_rate else 'N/A'}",
            f"- Application fee: {self._fee(context)}",
            f"- Essays required: {total_essays} ({completed_essays} completed)",
            "",
            "STUDENT PROFILE:",
            f"- Study level: {context.study_level or 'masters'}",
            f"- GPA: {context.gpa if context.gpa is not None else 'Not provided'}",
            f"- Work experience: {'Yes' if context.work_experience else 'No'}",
            f"- Current progress: {progress}% overall",
            "",
            "TEST SCORES:",
            self._test_lines(context),
            "",
            f"ESSAY COMPLETION STATUS ({completed_essays}/{total_essays} completed):",
            self._essay_lines(context) or "- No essay prompts available",
            "",
            "CALENDAR EVENTS:",
            self._event_lines(context) or "- No events scheduled yet",
            "",
            "Generate exactly 5 phases, in this order, each with 5-8 specific tasks:",
            "PHASE 1 (id 1): Research & Strategic Planning",
            "PHASE 2 (id 2): Standardized Testing"
            + (f" - MUST COMPLETE: {', '.join(context.tests_needed)}" if context.tests_needed else ""),
            f"PHASE 3 (id 3): Essay Writing - exactly {total_essays} essay tasks, one per prompt. "
            'Each essay task title MUST start with "Essay #N:" where N is the essay number, '
            'e.g. "Essay #1: Draft Career Goals Statement".',
            "PHASE 4 (id 4): Recommendations & Documents",
            "PHASE 5 (id 5): Application Assembly & Submission",
            "",
            "Set requiresGMAT/requiresGRE/requiresIELTS/requiresTOEFL to true only on tasks about "
            "that specific test.",
            "",
            "Return ONLY valid JSON with this shape (no markdown, no code fences):",
            '{"overview": "...", "totalDuration": "4-6 months", "currentProgress": %d, "phases": ['
            '{"id": 1, "name": "Research & Strategic Planning", "description": "...", '
            '"duration": "4-6 weeks", "timeframe": "...", "status": "upcoming", '
            '"objectives": [], "milestones": [], "proTips": [], "commonMistakes": [], '
            '"tasks": [{"id": 1, "title": "...", "description": "...", "estimatedTime": "...", '
            '"priority": "high", "completed": false, "actionSteps": [], "tips": [], "resources": [], '
            '"requiresGMAT": false, "requiresGRE": false, "requiresIELTS": false, '
            '"requiresTOEFL": false}]}]}' % progress,
        ]
        return "\n".join(sections)

    def build_continuation_prompt(self, accumulated: str, missing_phases: Sequence[str]) -> str:
        """
        Prompt asking the model to continue a truncated response.

        Args:
            accumulated: Response text so far
            missing_phases: Labels of phases not yet present
        """
        tail = accumulated[-self.tail_chars:]
        missing = "\n".join(f"- {label}" for label in missing_phases) or "- (none, only close the JSON)"
        return "\n".join([
            "Your previous response was cut off. It ended with:",
            "<<<",
            tail,
            ">>>",
            "",
            "The following phases are still missing:",
            missing,
            "",
            "Continue the JSON structure exactly from where it stopped. Do not repeat any "
            "earlier content, do not restart the object and do not add commentary. Finish "
            "the phases array and the root object.",
        ])

    @staticmethod
    def _fee(context: ApplicationContext) -> str:
        if not context.application_fee:
            return "Check website"
        return f"{context.application_fee:g} {context.currency or ''}".strip()

    @staticmethod
    def _test_lines(context: ApplicationContext) -> str:
        lines: List[str] = []
        status = context.signals.test_status
        for test in context.tests_completed:
            score = status.score(test.lower())
            lines.append(f"- {test}: {score:g} (done)" if score is not None else f"- {test}: done")
        if context.tests_needed:
            lines.append(f"- STILL NEEDED: {', '.join(context.tests_needed)}")
        elif not lines:
            lines.append("- No tests required")
        return "\n".join(lines)

    @staticmethod
    def _essay_lines(context: ApplicationContext) -> str:
        lines = []
        for essay in context.essays:
            if essay.completed:
                state = "COMPLETED -> set completed: true"
            elif essay.essay_id is not None:
                state = f"IN PROGRESS ({essay.word_count}/{essay.word_limit or '?'} words) -> set completed: false"
            else:
                state = "NOT STARTED -> set completed: false"
            required = "required" if essay.is_mandatory else "optional"
            lines.append(f'- Essay #{essay.number}: "{essay.title}" ({required}) - {state}')
        return "\n".join(lines)

    @staticmethod
    def _event_lines(context: ApplicationContext) -> str:
        lines = []
        for index, event in enumerate(context.signals.calendar_events[:15], start=1):
            marker = "done" if event.is_completed else "pending"
            when = event.start_date.strftime("%Y-%m-%d") if event.start_date else "no date"
            lines.append(f"{index}. [{marker}] {event.title} - {when}")
        return "\n".join(lines)
