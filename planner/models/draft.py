from sqlalchemy import Column, Integer, String, Text, DateTime
from datetime import datetime
from planner.database import Base

class WizardDraftEntry(Base):
    """Serialized in-progress wizard draft, keyed by storage key"""
    __tablename__ = "wizard_drafts"
    
    id = Column(Integer, primary_key=True, index=True)
    key = Column(String, nullable=False, unique=True, index=True)
    value = Column(Text, nullable=False)  # JSON-encoded WizardDraft
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)
