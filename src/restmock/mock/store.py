"""
RestMock Resource Store

Thread-safe in-memory keyed collection backing one configured resource.

Records are plain dicts holding JSON-compatible values. The store owns its
records exclusively: every record is deep-copied on the way in and on the
way out, so callers can never alias stored state.
"""

import threading
import uuid
from typing import Any, Dict, List, Optional

from ..common import deep_copy


class ResourceStore:
    """
    CRUD and pagination over one named collection.

    Every stored record carries a non-null value in the configured id field;
    one is generated on create when missing. Individual operations are atomic.

    Example:
        store = ResourceStore('users', id_field='id')
        created = store.create({'name': 'Ada'})
        store.read(created['id'])
        store.list(limit=10, offset=0)
    """

    def __init__(self, name: str, id_field: str = 'id'):
        """
        Initialize an empty store.

        Args:
            name: Resource name (used in route paths and messages)
            id_field: Name of the field holding each record's id
        """
        self.name = name
        self.id_field = id_field
        self._records: Dict[str, Dict[str, Any]] = {}
        self._lock = threading.RLock()

    def __len__(self) -> int:
        with self._lock:
            return len(self._records)

    def create(self, record: Dict[str, Any]) -> Dict[str, Any]:
        """
        Store a new record, generating an id when the id field is absent or null.

        An existing record with the same id is replaced.

        Args:
            record: Field values for the new record

        Returns:
            Copy of the stored record, id attached
        """
        stored = deep_copy(record)
        if stored.get(self.id_field) is None:
            stored[self.id_field] = str(uuid.uuid4())

        with self._lock:
            self._records[str(stored[self.id_field])] = stored
        return deep_copy(stored)

    def read(self, record_id: str) -> Optional[Dict[str, Any]]:
        """Copy of the record with the given id, or None if absent."""
        with self._lock:
            stored = self._records.get(str(record_id))
            return deep_copy(stored) if stored is not None else None

    def update(self, record_id: str, patch: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        """
        Merge patch fields into an existing record.

        Patch values win on key collision, except for the id field, which
        always keeps the stored record's id.

        Args:
            record_id: Id of the record to update
            patch: Fields to merge

        Returns:
            Copy of the merged record, or None if no record has that id
        """
        key = str(record_id)
        with self._lock:
            existing = self._records.get(key)
            if existing is None:
                return None

            merged = {**existing, **deep_copy(patch)}
            merged[self.id_field] = existing[self.id_field]
            self._records[key] = merged
            return deep_copy(merged)

    def delete(self, record_id: str) -> bool:
        """Remove a record; returns whether a removal occurred."""
        with self._lock:
            return self._records.pop(str(record_id), None) is not None

    def list(self, limit: int = 50, offset: int = 0) -> List[Dict[str, Any]]:
        """
        Page through records ordered by the string form of their id.

        Args:
            limit: Maximum number of records (clamped to at least 1)
            offset: Number of records to skip (clamped to at least 0)

        Returns:
            Copies of the selected records
        """
        offset = max(0, offset)
        limit = max(1, limit)

        with self._lock:
            ordered = sorted(
                self._records.values(),
                key=lambda r: str(r.get(self.id_field, ''))
            )
            page = ordered[offset:offset + limit]
            return [deep_copy(r) for r in page]

    def seed(self, records: List[Dict[str, Any]]):
        """Load configured seed records (ids generated where missing)."""
        for record in records:
            self.create(record)
