from sqlalchemy import Column, Integer, String, DateTime
from datetime import datetime
from planner.database import Base

class PracticeLog(Base):
    """Self-reported confidence after a practice session"""
    __tablename__ = "practice_logs"
    
    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, nullable=False, index=True)
    subject_name = Column(String, nullable=False)
    confidence_level = Column(Integer)  # 1-5, may be missing
    logged_at = Column(DateTime, default=datetime.utcnow)
