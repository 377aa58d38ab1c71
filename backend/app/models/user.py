"""User model."""
from sqlalchemy import Column, String, Boolean, Float, Text
from sqlalchemy.orm import relationship

from app.database import Base
from app.models.base import BaseModel


class User(Base, BaseModel):
    """
    User model representing applicants.
    
    Attributes:
        email: Unique email address
        hashed_password: Hashed password for authentication
        full_name: User's full name
        is_active: Whether the user account is active
        study_level: Target degree level (e.g. "masters", "mba")
        gpa: Undergraduate GPA as entered by the user
        test_scores: Raw test scores, either JSON ({"gmat": 700}) or
            free text ("GMAT: 700, IELTS 7.5")
        work_experience: Whether the user has professional experience
    """
    
    __tablename__ = "users"
    
    email = Column(String, unique=True, index=True, nullable=False)
    hashed_password = Column(String, nullable=False)
    full_name = Column(String, nullable=True)
    is_active = Column(Boolean, default=True, nullable=False)
    study_level = Column(String(50), nullable=True)
    gpa = Column(Float, nullable=True)
    test_scores = Column(Text, nullable=True)
    work_experience = Column(Boolean, default=False, nullable=False)
    
    # Relationships
    essays = relationship(
        "Essay",
        back_populates="user",
        cascade="all, delete-orphan"
    )
    calendar_events = relationship(
        "CalendarEvent",
        back_populates="user",
        cascade="all, delete-orphan"
    )
    application_timelines = relationship(
        "ApplicationTimeline",
        back_populates="user",
        cascade="all, delete-orphan"
    )
    
    def __repr__(self):
        return f"<User(email='{self.email}')>"
