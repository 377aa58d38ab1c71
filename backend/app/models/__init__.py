"""
Models Package

Imports all SQLAlchemy models for application use.
"""

from app.models.base import BaseModel
from app.models.user import User
from app.models.university import University
from app.models.essay import EssayPrompt, Essay, EssayStatus
from app.models.calendar_event import CalendarEvent
from app.models.application_timeline import ApplicationTimeline
from app.models.timeline_phase import TimelinePhase
from app.models.timeline_task import TimelineTask
from app.models.decision_trace import DecisionTrace, EvidenceBundle

__all__ = [
    'BaseModel',
    'User',
    'University',
    'EssayPrompt',
    'Essay',
    'EssayStatus',
    'CalendarEvent',
    'ApplicationTimeline',
    'TimelinePhase',
    'TimelineTask',
    'DecisionTrace',
    'EvidenceBundle',
]
