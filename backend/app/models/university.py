"""University model (the target entity of an application timeline)."""
from sqlalchemy import Column, String, Boolean, Float, Date
from sqlalchemy.orm import relationship

from app.database import Base
from app.models.base import BaseModel


class University(Base, BaseModel):
    """
    A university the user is applying to.
    
    Test requirement flags drive both the generation prompt and the
    ``requires_*`` flags on generated tasks.
    """
    
    __tablename__ = "universities"
    
    name = Column(String(255), nullable=False, index=True)
    location = Column(String(255), nullable=True)
    application_deadline = Column(Date, nullable=True)
    acceptance_rate = Column(Float, nullable=True)
    application_fee = Column(Float, nullable=True)
    currency = Column(String(10), nullable=True)
    
    requires_gmat = Column(Boolean, default=False, nullable=False)
    requires_gre = Column(Boolean, default=False, nullable=False)
    requires_ielts = Column(Boolean, default=False, nullable=False)
    requires_toefl = Column(Boolean, default=False, nullable=False)
    
    is_active = Column(Boolean, default=True, nullable=False)
    
    essay_prompts = relationship(
        "EssayPrompt",
        back_populates="university",
        cascade="all, delete-orphan",
        order_by="EssayPrompt.display_order"
    )
    
    def __repr__(self):
        return f"<University(name='{self.name}')>"
