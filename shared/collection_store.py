"""Best-effort JSON collection persisted under a single key."""

import json
import logging
from typing import Any, Callable, Dict, List, Optional

from sqlalchemy.exc import SQLAlchemyError
from cryptography.fernet import InvalidToken

from shared.db_operations import DatabaseOperations
from shared.models import PersistResult

logger = logging.getLogger(__name__)

STORAGE_ERRORS = (SQLAlchemyError, InvalidToken, ValueError, TypeError)


class PersistedCollection:
    """An ordered list of JSON objects stored whole under one storage key.

    Every mutation is read-modify-write of the complete list. An empty list
    is never stored: the key itself is deleted instead. Storage failures are
    logged and reported through :class:`PersistResult`, never raised.
    """

    def __init__(self, db_ops: DatabaseOperations, storage_key: str, label: Optional[str] = None):
        self.db_ops = db_ops
        self.storage_key = storage_key
        self.label = label or storage_key

    def read(self) -> List[Dict[str, Any]]:
        """Return the stored items in insertion order, or [] if absent or unreadable."""
        try:
            raw = self.db_ops.get_item(self.storage_key)
            if not raw:
                return []
            parsed = json.loads(raw)
        except STORAGE_ERRORS as e:
            logger.warning(f"Failed to read {self.label}: {e}")
            return []

        if not isinstance(parsed, list):
            logger.warning(f"Ignoring malformed {self.label}: expected a list")
            return []
        return [item for item in parsed if isinstance(item, dict)]

    def write(self, items: List[Dict[str, Any]]) -> PersistResult:
        """Replace the whole collection in a single write."""
        try:
            if not items:
                self.db_ops.remove_item(self.storage_key)
            else:
                self.db_ops.set_item(self.storage_key, json.dumps(items))
            return PersistResult.PERSISTED
        except STORAGE_ERRORS as e:
            logger.warning(f"Failed to persist {self.label}: {e}")
            return PersistResult.NOT_PERSISTED

    def append(self, item: Dict[str, Any]) -> PersistResult:
        items = self.read()
        items.append(item)
        return self.write(items)

    def remove_where(self, predicate: Callable[[Dict[str, Any]], bool]) -> PersistResult:
        """Drop every item matching ``predicate``."""
        items = self.read()
        kept = [item for item in items if not predicate(item)]
        if len(kept) == len(items):
            return PersistResult.PERSISTED
        return self.write(kept)

    def replace_where(
        self,
        predicate: Callable[[Dict[str, Any]], bool],
        item: Dict[str, Any]
    ) -> PersistResult:
        """Drop items matching ``predicate`` and append ``item``."""
        items = [existing for existing in self.read() if not predicate(existing)]
        items.append(item)
        return self.write(items)

    def clear(self) -> PersistResult:
        """Delete the whole collection in one batch."""
        return self.write([])

    def __len__(self) -> int:
        return len(self.read())
