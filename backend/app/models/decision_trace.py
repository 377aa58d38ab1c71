"""
Decision trace models.

Audit trail written by orchestrators: one DecisionTrace per execution,
plus an optional EvidenceBundle holding the evidence collected on the way.
"""

import uuid
from datetime import datetime
from sqlalchemy import Column, String, DateTime, ForeignKey

from app.database import Base, GUID, JSONType


class DecisionTrace(Base):
    """
    Execution trace of one orchestrator run.
    
    Pure structured storage - no UI formatting.
    """
    __tablename__ = "decision_traces"

    id = Column(GUID(), primary_key=True, default=uuid.uuid4, index=True)
    
    # Request identifier supplied by the caller (or generated)
    request_id = Column(String(255), nullable=False, index=True)
    
    # Orchestrator that created this trace
    orchestrator_name = Column(String(100), nullable=False, index=True)
    
    # Complete execution trace as structured JSON
    trace_json = Column(JSONType, nullable=False)
    
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False, index=True)

    def __repr__(self):
        return f"<DecisionTrace(request_id='{self.request_id}', orchestrator='{self.orchestrator_name}')>"


class EvidenceBundle(Base):
    """
    Evidence used during orchestration, linked to its DecisionTrace.
    """
    __tablename__ = "evidence_bundles"

    id = Column(GUID(), primary_key=True, default=uuid.uuid4, index=True)
    
    decision_trace_id = Column(GUID(), ForeignKey('decision_traces.id'), nullable=False, index=True)
    
    evidence_json = Column(JSONType, nullable=False)

    def __repr__(self):
        return f"<EvidenceBundle(decision_trace_id='{self.decision_trace_id}')>"
