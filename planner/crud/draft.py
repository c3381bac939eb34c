from sqlalchemy.orm import Session
from planner.models import WizardDraftEntry
from typing import Optional

def get_draft_value(db: Session, key: str) -> Optional[str]:
    """Get stored draft JSON by key"""
    entry = db.query(WizardDraftEntry).filter(WizardDraftEntry.key == key).first()
    return entry.value if entry else None

def save_draft_value(db: Session, key: str, value: str) -> WizardDraftEntry:
    """Insert or replace the draft stored under key"""
    entry = db.query(WizardDraftEntry).filter(WizardDraftEntry.key == key).first()
    if entry:
        entry.value = value
    else:
        entry = WizardDraftEntry(key=key, value=value)
        db.add(entry)
    db.commit()
    db.refresh(entry)
    return entry

def delete_draft_value(db: Session, key: str) -> bool:
    """Remove the draft stored under key, returns whether one existed"""
    deleted = db.query(WizardDraftEntry).filter(WizardDraftEntry.key == key).delete()
    db.commit()
    return deleted > 0
