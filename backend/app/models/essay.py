"""Essay prompt and user essay models."""
from sqlalchemy import Column, String, Boolean, Integer, Text, ForeignKey
from sqlalchemy.orm import relationship

from app.database import Base, GUID
from app.models.base import BaseModel


class EssayStatus:
    """Essay workflow statuses (stored as plain strings)."""
    NOT_STARTED = "NOT_STARTED"
    DRAFT = "DRAFT"
    IN_PROGRESS = "IN_PROGRESS"
    COMPLETED = "COMPLETED"
    SUBMITTED = "SUBMITTED"


class EssayPrompt(Base, BaseModel):
    """
    An essay question required by a university.
    
    ``display_order`` defines the essay numbering ("Essay #1", "Essay #2", ...)
    used by generated tasks.
    """
    
    __tablename__ = "essay_prompts"
    
    university_id = Column(GUID(), ForeignKey("universities.id"), nullable=False, index=True)
    prompt_title = Column(String(255), nullable=False)
    prompt_text = Column(Text, nullable=True)
    word_limit = Column(Integer, nullable=True)
    is_mandatory = Column(Boolean, default=True, nullable=False)
    is_active = Column(Boolean, default=True, nullable=False)
    display_order = Column(Integer, default=0, nullable=False)
    
    university = relationship("University", back_populates="essay_prompts")
    essays = relationship("Essay", back_populates="essay_prompt")
    
    def __repr__(self):
        return f"<EssayPrompt(title='{self.prompt_title}', order={self.display_order})>"


class Essay(Base, BaseModel):
    """A user's essay answering one EssayPrompt."""
    
    __tablename__ = "essays"
    
    user_id = Column(GUID(), ForeignKey("users.id"), nullable=False, index=True)
    essay_prompt_id = Column(GUID(), ForeignKey("essay_prompts.id"), nullable=False, index=True)
    title = Column(String(255), nullable=True)
    content = Column(Text, nullable=True)
    word_count = Column(Integer, default=0, nullable=False)
    word_limit = Column(Integer, nullable=True)
    status = Column(String(20), default=EssayStatus.NOT_STARTED, nullable=False)
    is_completed = Column(Boolean, default=False, nullable=False)
    
    user = relationship("User", back_populates="essays")
    essay_prompt = relationship("EssayPrompt", back_populates="essays")
    
    def __repr__(self):
        return f"<Essay(prompt_id='{self.essay_prompt_id}', status='{self.status}')>"
