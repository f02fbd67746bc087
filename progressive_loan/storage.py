"""
Storage Backend Module

Abstract record store used to look up loan snapshots and reschedule
requests. Records are plain JSON-compatible dictionaries; monetary values
are stored as Decimal strings.
"""

from abc import ABC, abstractmethod
from typing import Dict, List, Optional, Any
import json
import threading


LOANS_TABLE = "loans"
RESCHEDULE_REQUESTS_TABLE = "loan_reschedule_requests"


class StorageInterface(ABC):
    """Abstract interface for storage backends"""

    @abstractmethod
    def save(self, table: str, record_id: str, data: Dict[str, Any]) -> None:
        """Save a record to storage"""
        pass

    @abstractmethod
    def load(self, table: str, record_id: str) -> Optional[Dict[str, Any]]:
        """Load a record from storage, None when missing"""
        pass

    @abstractmethod
    def load_all(self, table: str) -> List[Dict[str, Any]]:
        """Load all records from a table"""
        pass

    @abstractmethod
    def delete(self, table: str, record_id: str) -> bool:
        """Delete a record from storage"""
        pass

    def exists(self, table: str, record_id: str) -> bool:
        return self.load(table, record_id) is not None


class InMemoryStorage(StorageInterface):
    """Thread-safe in-memory storage; records are copied in and out"""

    def __init__(self):
        self._data: Dict[str, Dict[str, Dict[str, Any]]] = {}
        self._lock = threading.RLock()

    def _table(self, table: str) -> Dict[str, Dict[str, Any]]:
        return self._data.setdefault(table, {})

    def save(self, table: str, record_id: str, data: Dict[str, Any]) -> None:
        with self._lock:
            # Round-trip through JSON to prevent external mutation
            self._table(table)[record_id] = json.loads(json.dumps(data, default=str))

    def load(self, table: str, record_id: str) -> Optional[Dict[str, Any]]:
        with self._lock:
            record = self._table(table).get(record_id)
            if record is None:
                return None
            return json.loads(json.dumps(record))

    def load_all(self, table: str) -> List[Dict[str, Any]]:
        with self._lock:
            return [json.loads(json.dumps(record)) for record in self._table(table).values()]

    def delete(self, table: str, record_id: str) -> bool:
        with self._lock:
            return self._table(table).pop(record_id, None) is not None
