"""Document store adapter contract.

One repository instance wraps one named collection. Chat and message
repositories only ever talk to this interface, so the Mongo backend and the
in-process backend are interchangeable.
"""
from abc import ABC, abstractmethod
from typing import Any, Callable, Dict, List, Optional, Tuple

from mix_server.utils.versioning import VERSION_FIELD


class _ServerTimestamp:
    """Sentinel replaced by the store's clock when a document is written."""

    def __repr__(self):
        return 'SERVER_TIMESTAMP'


SERVER_TIMESTAMP = _ServerTimestamp()

ASCENDING = 'asc'
DESCENDING = 'desc'

Document = Dict[str, Any]
SnapshotCallback = Callable[[List[Document]], None]
Unsubscribe = Callable[[], None]


def resolve_server_timestamps(value, now):
    """Return a copy of value with every SERVER_TIMESTAMP replaced by now."""
    if value is SERVER_TIMESTAMP:
        return now
    if isinstance(value, dict):
        return {k: resolve_server_timestamps(v, now) for k, v in value.items()}
    if isinstance(value, list):
        return [resolve_server_timestamps(v, now) for v in value]
    return value


def matches(doc: Document, conditions: Optional[Dict[str, Any]]) -> bool:
    """Equality matching with array-contains semantics for list fields."""
    for field, expected in (conditions or {}).items():
        actual = doc.get(field)
        if isinstance(actual, list) and not isinstance(expected, list):
            if expected not in actual:
                return False
        elif actual != expected:
            return False
    return True


class BaseRepository(ABC):
    """Create/read/update/delete, filter and live subscription over one collection.

    Documents are plain dicts. Reads return copies carrying the document id
    under 'id'; the version counter is exposed under VERSION_FIELD.
    """

    version_field = VERSION_FIELD

    def __init__(self, collection_name: str):
        self.collection_name = collection_name

    @abstractmethod
    def create(self, data: Document) -> str:
        """Insert a new document and return its id."""
        pass

    @abstractmethod
    def get(self, doc_id: str) -> Optional[Document]:
        """Fetch one document by id, or None."""
        pass

    @abstractmethod
    def update(self, doc_id: str, fields: Document, expected_version: Optional[int] = None) -> None:
        """Set top-level fields on one document.

        Raises NotFoundError for an unknown id and ConcurrentUpdateError when
        expected_version is given and no longer matches.
        """
        pass

    @abstractmethod
    def delete(self, doc_id: str) -> None:
        """Remove one document."""
        pass

    @abstractmethod
    def filter(
        self,
        conditions: Optional[Dict[str, Any]] = None,
        order_by: Optional[Tuple[str, str]] = None,
        limit: Optional[int] = None
    ) -> List[Document]:
        """Find documents matching equality conditions."""
        pass

    @abstractmethod
    def subscribe(self, conditions: Optional[Dict[str, Any]], callback: SnapshotCallback) -> Unsubscribe:
        """Push the full matching set to callback now and after every change."""
        pass

    @abstractmethod
    def array_union(self, doc_id: str, path: str, value: Any) -> bool:
        """Atomically add value to the list at a dotted path (no duplicates)."""
        pass

    @abstractmethod
    def array_remove(self, doc_id: str, path: str, value: Any) -> bool:
        """Atomically remove value from the list at a dotted path, dropping the key once empty."""
        pass
