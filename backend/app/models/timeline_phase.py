"""TimelinePhase model."""
from sqlalchemy import Column, String, Integer, Text, ForeignKey
from sqlalchemy.orm import relationship

from app.database import Base, GUID, JSONType
from app.models.base import BaseModel


class TimelinePhase(Base, BaseModel):
    """
    One of the five phases of an application timeline.
    
    Attributes:
        timeline_id: Parent ApplicationTimeline
        generation_id: Generation this row belongs to
        phase_number: 1-based business order (1 Research ... 5 Submission)
        phase_name: Display name
        status: "upcoming", "in-progress" or "completed"
        completion_percentage: Share of completed tasks (0..100)
    """
    
    __tablename__ = "timeline_phases"
    
    timeline_id = Column(GUID(), ForeignKey("application_timelines.id"), nullable=False, index=True)
    generation_id = Column(GUID(), nullable=False, index=True)
    phase_number = Column(Integer, nullable=False)
    phase_name = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    overview = Column(Text, nullable=True)
    duration = Column(String(100), nullable=True)
    timeframe = Column(String(255), nullable=True)
    status = Column(String(20), default="upcoming", nullable=False)
    completion_percentage = Column(Integer, default=0, nullable=False)
    display_order = Column(Integer, default=0, nullable=False)
    
    objectives = Column(JSONType, nullable=True)
    milestones = Column(JSONType, nullable=True)
    pro_tips = Column(JSONType, nullable=True)
    common_mistakes = Column(JSONType, nullable=True)
    
    # Relationships
    timeline = relationship("ApplicationTimeline", back_populates="phases")
    tasks = relationship(
        "TimelineTask",
        back_populates="phase",
        cascade="all, delete-orphan",
        order_by="TimelineTask.display_order"
    )
    
    def __repr__(self):
        return f"<TimelinePhase(number={self.phase_number}, name='{self.phase_name}')>"
