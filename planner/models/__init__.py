from planner.models.draft import WizardDraftEntry
from planner.models.test_score import TestScore
from planner.models.practice_log import PracticeLog

__all__ = [
    "WizardDraftEntry",
    "TestScore",
    "PracticeLog"
]
