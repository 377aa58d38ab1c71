"""Calendar event model."""
from sqlalchemy import Column, String, Boolean, DateTime, Text, ForeignKey
from sqlalchemy.orm import relationship

from app.database import Base, GUID
from app.models.base import BaseModel


class CalendarEvent(Base, BaseModel):
    """
    A user-scheduled event tied to a university application.
    
    ``completion_status`` is ground truth for task reconciliation:
    "completed" or "pending".
    """
    
    __tablename__ = "calendar_events"
    
    user_id = Column(GUID(), ForeignKey("users.id"), nullable=False, index=True)
    university_id = Column(GUID(), ForeignKey("universities.id"), nullable=True, index=True)
    title = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    event_type = Column(String(50), nullable=True)
    priority = Column(String(20), default="medium", nullable=False)
    start_date = Column(DateTime, nullable=False)
    completion_status = Column(String(20), default="pending", nullable=False)
    is_visible = Column(Boolean, default=True, nullable=False)
    
    user = relationship("User", back_populates="calendar_events")
    
    def __repr__(self):
        return f"<CalendarEvent(title='{self.title}', status='{self.completion_status}')>"
