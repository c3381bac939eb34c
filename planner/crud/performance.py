from sqlalchemy.orm import Session
from planner.models import TestScore, PracticeLog
from planner.schemas import TestScoreRecord, PracticeLogRecord
from typing import List, Optional

def record_test_score(
    db: Session,
    user_id: int,
    subject: str,
    percentage: float,
    strengths: Optional[List[str]] = None,
    weaknesses: Optional[List[str]] = None
) -> TestScore:
    """Store a test result with its feedback tags"""
    score = TestScore(
        user_id=user_id,
        subject=subject,
        percentage=percentage,
        strengths=strengths or [],
        weaknesses=weaknesses or []
    )
    db.add(score)
    db.commit()
    db.refresh(score)
    return score

def record_practice_log(db: Session, user_id: int, subject_name: str, confidence_level: Optional[int] = None) -> PracticeLog:
    """Store a practice session's confidence rating (1-5)"""
    log = PracticeLog(user_id=user_id, subject_name=subject_name, confidence_level=confidence_level)
    db.add(log)
    db.commit()
    db.refresh(log)
    return log

def get_test_scores(db: Session, user_id: int) -> List[TestScoreRecord]:
    """All test scores for a user, as scorer input"""
    rows = db.query(TestScore).filter(TestScore.user_id == user_id).all()
    return [TestScoreRecord.model_validate(row) for row in rows]

def get_practice_logs(db: Session, user_id: int) -> List[PracticeLogRecord]:
    """All practice confidence logs for a user, as scorer input"""
    rows = db.query(PracticeLog).filter(PracticeLog.user_id == user_id).all()
    return [PracticeLogRecord.model_validate(row) for row in rows]
