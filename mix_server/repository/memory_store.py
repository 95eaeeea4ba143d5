"""In-process document store.

Same contract as the Mongo backend: equality filters with array-contains
semantics, server timestamps, version counters and full-snapshot
subscriptions. Used by the test suite and by STORE_BACKEND=memory for
local runs without a database.
"""
import copy
import itertools
import logging
import threading
from typing import Any, Dict, List, Optional, Tuple

from mix_server.exception.ConcurrentUpdateError import ConcurrentUpdateError
from mix_server.exception.NotFoundError import NotFoundError
from mix_server.repository.base_repository import (
    BaseRepository, Document, SnapshotCallback, Unsubscribe,
    DESCENDING, matches, resolve_server_timestamps
)
from mix_server.utils.generator import generate_document_id
from mix_server.utils.time_utils import MonotonicClock
from mix_server.utils.versioning import VERSION_FIELD, add_version_to_doc, get_version

logger = logging.getLogger(__name__)


def _order_key(value):
    # None sorts first; otherwise compare the values themselves
    if value is None:
        return (0, 0)
    return (1, value)


class _Listener:

    def __init__(self, conditions, callback):
        self.conditions = dict(conditions or {})
        self.callback = callback
        self.last_snapshot = None
        self.active = True
        # Spans the snapshot read and the callback; deliveries never interleave.
        self.delivery_lock = threading.RLock()


class InMemoryRepository(BaseRepository):
    """Thread-safe dict-backed collection."""

    def __init__(self, collection_name: str, clock: Optional[MonotonicClock] = None):
        super().__init__(collection_name)
        self.clock = clock or MonotonicClock()
        self._docs: Dict[str, Document] = {}
        self._listeners: Dict[int, _Listener] = {}
        self._listener_ids = itertools.count(1)
        self._lock = threading.RLock()

    # =========================================================================
    # Reads
    # =========================================================================

    def _export(self, doc_id: str, stored: Document) -> Document:
        out = copy.deepcopy(stored)
        out['id'] = doc_id
        return out

    def get(self, doc_id: str) -> Optional[Document]:
        with self._lock:
            stored = self._docs.get(doc_id)
            return self._export(doc_id, stored) if stored is not None else None

    def filter(
        self,
        conditions: Optional[Dict[str, Any]] = None,
        order_by: Optional[Tuple[str, str]] = None,
        limit: Optional[int] = None
    ) -> List[Document]:
        with self._lock:
            results = [
                self._export(doc_id, stored)
                for doc_id, stored in self._docs.items()
                if matches(stored, conditions)
            ]
        if order_by:
            field, direction = order_by
            results.sort(key=lambda d: _order_key(d.get(field)), reverse=direction == DESCENDING)
        if limit:
            results = results[:limit]
        return results

    def __len__(self):
        with self._lock:
            return len(self._docs)

    # =========================================================================
    # Writes
    # =========================================================================

    def create(self, data: Document) -> str:
        doc = resolve_server_timestamps(copy.deepcopy(data), self.clock.now())
        doc_id = doc.pop('id', None) or generate_document_id()
        doc.pop(VERSION_FIELD, None)
        with self._lock:
            if doc_id in self._docs:
                raise ValueError(f"Document {doc_id} already exists in {self.collection_name}")
            self._docs[doc_id] = add_version_to_doc(doc)
        self._notify()
        return doc_id

    def update(self, doc_id: str, fields: Document, expected_version: Optional[int] = None) -> None:
        resolved = resolve_server_timestamps(copy.deepcopy(fields), self.clock.now())
        resolved.pop('id', None)
        with self._lock:
            stored = self._docs.get(doc_id)
            if stored is None:
                raise NotFoundError(
                    f"Document {doc_id} not found in {self.collection_name}",
                    resource=self.collection_name, resource_id=doc_id
                )
            current = get_version(stored)
            if expected_version is not None and current != expected_version:
                raise ConcurrentUpdateError(
                    f"Document {doc_id} in {self.collection_name} changed concurrently",
                    expected_version=expected_version, actual_version=current
                )
            stored.update(resolved)
            stored[VERSION_FIELD] = current + 1
        self._notify()

    def delete(self, doc_id: str) -> None:
        with self._lock:
            removed = self._docs.pop(doc_id, None)
        if removed is not None:
            self._notify()

    def _container(self, stored: Document, path: str, create: bool):
        parts = path.split('.')
        node = stored
        for part in parts[:-1]:
            child = node.get(part)
            if not isinstance(child, dict):
                if not create:
                    return None, parts[-1]
                child = {}
                node[part] = child
            node = child
        return node, parts[-1]

    def array_union(self, doc_id: str, path: str, value: Any) -> bool:
        with self._lock:
            stored = self._docs.get(doc_id)
            if stored is None:
                return False
            node, key = self._container(stored, path, create=True)
            values = node.setdefault(key, [])
            if value in values:
                return True
            values.append(value)
            stored[VERSION_FIELD] = get_version(stored) + 1
        self._notify()
        return True

    def array_remove(self, doc_id: str, path: str, value: Any) -> bool:
        with self._lock:
            stored = self._docs.get(doc_id)
            if stored is None:
                return False
            node, key = self._container(stored, path, create=False)
            if node is None or value not in node.get(key, []):
                return True
            node[key] = [v for v in node[key] if v != value]
            if not node[key]:
                del node[key]
            stored[VERSION_FIELD] = get_version(stored) + 1
        self._notify()
        return True

    # =========================================================================
    # Subscriptions
    # =========================================================================

    def subscribe(self, conditions: Optional[Dict[str, Any]], callback: SnapshotCallback) -> Unsubscribe:
        listener = _Listener(conditions, callback)
        with self._lock:
            listener_id = next(self._listener_ids)
            self._listeners[listener_id] = listener
        logger.debug(f"{self.collection_name}: listener {listener_id} registered for {listener.conditions}")
        self._deliver(listener)

        def unsubscribe():
            with self._lock:
                removed = self._listeners.pop(listener_id, None)
            if removed is not None:
                removed.active = False
                logger.debug(f"{self.collection_name}: listener {listener_id} released")

        return unsubscribe

    @property
    def listener_count(self) -> int:
        with self._lock:
            return len(self._listeners)

    def _notify(self):
        # Called outside the lock so callbacks may read or write this store.
        with self._lock:
            listeners = list(self._listeners.values())
        for listener in listeners:
            self._deliver(listener)

    def _deliver(self, listener: _Listener):
        with listener.delivery_lock:
            if not listener.active:
                return
            snapshot = self.filter(listener.conditions)
            if snapshot == listener.last_snapshot:
                return
            listener.last_snapshot = snapshot
            try:
                listener.callback(copy.deepcopy(snapshot))
            except Exception:
                logger.exception(f"{self.collection_name}: snapshot listener failed")
