"""TimelineTask model."""
from sqlalchemy import Column, String, Boolean, Integer, Text, DateTime, ForeignKey
from sqlalchemy.orm import relationship

from app.database import Base, GUID, JSONType
from app.models.base import BaseModel


class TimelineTask(Base, BaseModel):
    """
    A single actionable task within a phase.
    
    ``is_completed`` is only ever written from ground truth (test scores,
    essays, calendar events or an explicit user action);
    ``completion_reason`` records which signal decided it.
    """
    
    __tablename__ = "timeline_tasks"
    
    timeline_id = Column(GUID(), ForeignKey("application_timelines.id"), nullable=False, index=True)
    phase_id = Column(GUID(), ForeignKey("timeline_phases.id"), nullable=False, index=True)
    generation_id = Column(GUID(), nullable=False, index=True)
    task_number = Column(Integer, nullable=False)
    title = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    estimated_time = Column(String(100), nullable=True)
    priority = Column(String(20), default="medium", nullable=False)
    status = Column(String(20), default="pending", nullable=False)
    is_completed = Column(Boolean, default=False, nullable=False)
    completed_at = Column(DateTime, nullable=True)
    completion_reason = Column(String(100), default="not_started", nullable=False)
    display_order = Column(Integer, default=0, nullable=False)
    
    action_steps = Column(JSONType, nullable=True)
    tips = Column(JSONType, nullable=True)
    resources = Column(JSONType, nullable=True)
    
    requires_gmat = Column(Boolean, default=False, nullable=False)
    requires_gre = Column(Boolean, default=False, nullable=False)
    requires_ielts = Column(Boolean, default=False, nullable=False)
    requires_toefl = Column(Boolean, default=False, nullable=False)
    
    related_event_id = Column(GUID(), nullable=True)
    related_essay_id = Column(GUID(), nullable=True)
    
    phase = relationship("TimelinePhase", back_populates="tasks")
    
    def __repr__(self):
        return f"<TimelineTask(number={self.task_number}, completed={self.is_completed})>"
