"""Key-value stores that hold the in-progress wizard draft"""

import logging
from typing import Callable, Dict, Optional, Protocol

from sqlalchemy.orm import Session

from planner.crud import delete_draft_value, get_draft_value, save_draft_value

logger = logging.getLogger(__name__)


class KeyValueStore(Protocol):
    def get(self, key: str) -> Optional[str]: ...

    def set(self, key: str, value: str) -> None: ...

    def delete(self, key: str) -> None: ...


class InMemoryStore:
    """Process-local store; drafts survive wizard instances but not restarts"""

    def __init__(self, initial: Optional[Dict[str, str]] = None):
        self._data: Dict[str, str] = dict(initial or {})

    def get(self, key: str) -> Optional[str]:
        return self._data.get(key)

    def set(self, key: str, value: str) -> None:
        self._data[key] = value

    def delete(self, key: str) -> None:
        self._data.pop(key, None)

    def __contains__(self, key: str) -> bool:
        return key in self._data


class SqlDraftStore:
    """Durable store backed by the wizard_drafts table"""

    def __init__(self, session_factory: Callable[[], Session]):
        self.session_factory = session_factory

    def get(self, key: str) -> Optional[str]:
        db = self.session_factory()
        try:
            return get_draft_value(db, key)
        finally:
            db.close()

    def set(self, key: str, value: str) -> None:
        db = self.session_factory()
        try:
            save_draft_value(db, key, value)
        finally:
            db.close()

    def delete(self, key: str) -> None:
        db = self.session_factory()
        try:
            if delete_draft_value(db, key):
                logger.debug("Deleted stored draft %s", key)
        finally:
            db.close()
