from planner.crud.draft import get_draft_value, save_draft_value, delete_draft_value
from planner.crud.performance import (
    record_test_score,
    record_practice_log,
    get_test_scores,
    get_practice_logs
)

__all__ = [
    "get_draft_value",
    "save_draft_value",
    "delete_draft_value",
    "record_test_score",
    "record_practice_log",
    "get_test_scores",
    "get_practice_logs",
]
