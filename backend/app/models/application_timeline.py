"""ApplicationTimeline model."""
from sqlalchemy import Column, String, Boolean, Integer, Text, DateTime, ForeignKey, UniqueConstraint
from sqlalchemy.orm import relationship

from app.database import Base, GUID, JSONType
from app.models.base import BaseModel


class ApplicationTimeline(Base, BaseModel):
    """
    Parent record of a generated application timeline.
    
    One row per (user, university). Phases and tasks are written in
    generations: every regeneration writes a new set of rows tagged with a
    fresh ``generation_id``, then ``current_generation_id`` is repointed and
    the previous generation is removed. Readers only ever see rows of the
    current generation.
    
    Attributes:
        user_id: Owner
        university_id: Target university
        timeline_name: Display name (university name)
        is_active: Whether the timeline is served to the user
        completion_status: "in_progress" or "completed"
        overall_progress: 0..100
        total_duration: Free text, e.g. "4-6 months"
        overview: Narrative overview produced at generation time
        current_generation_id: Generation the parent currently points to
        user_profile_snapshot: Metadata captured at generation time
        university_snapshot: University requirements captured at generation time
    """
    
    __tablename__ = "application_timelines"
    __table_args__ = (
        UniqueConstraint("user_id", "university_id", name="uq_timeline_user_university"),
    )
    
    user_id = Column(GUID(), ForeignKey("users.id"), nullable=False, index=True)
    university_id = Column(GUID(), ForeignKey("universities.id"), nullable=False, index=True)
    timeline_name = Column(String(255), nullable=False)
    is_active = Column(Boolean, default=True, nullable=False)
    completion_status = Column(String(20), default="in_progress", nullable=False)
    overall_progress = Column(Integer, default=0, nullable=False)
    total_duration = Column(String(100), nullable=True)
    total_phases = Column(Integer, default=0, nullable=False)
    total_tasks = Column(Integer, default=0, nullable=False)
    overview = Column(Text, nullable=True)
    
    ai_model = Column(String(100), nullable=True)
    prompt_version = Column(String(20), nullable=True)
    generation_time_ms = Column(Integer, nullable=True)
    continuations_used = Column(Integer, default=0, nullable=False)
    parse_strategy = Column(String(50), nullable=True)
    
    current_generation_id = Column(GUID(), nullable=True)
    last_regenerated_at = Column(DateTime, nullable=True)
    
    user_profile_snapshot = Column(JSONType, nullable=True)
    university_snapshot = Column(JSONType, nullable=True)
    
    # Relationships
    user = relationship("User", back_populates="application_timelines")
    phases = relationship(
        "TimelinePhase",
        back_populates="timeline",
        cascade="all, delete-orphan",
        order_by="TimelinePhase.display_order"
    )
    
    def __repr__(self):
        return f"<ApplicationTimeline(name='{self.timeline_name}', progress={self.overall_progress})>"
