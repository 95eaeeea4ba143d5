"""MongoDB document store.

Wraps one pymongo collection behind the BaseRepository contract. Document
ids are stored as string `_id` values and surfaced as `id` on reads.

Live subscriptions use change streams, which require MongoDB to run as a
replica set (a single-node replica set is enough for development).
"""
import logging
import threading
from typing import Any, Dict, List, Optional, Tuple

from pymongo import ASCENDING as MONGO_ASCENDING, DESCENDING as MONGO_DESCENDING
from pymongo.errors import PyMongoError

from mix_server.exception.ConcurrentUpdateError import ConcurrentUpdateError
from mix_server.exception.NotFoundError import NotFoundError
from mix_server.repository.base_repository import (
    BaseRepository, Document, SnapshotCallback, Unsubscribe,
    DESCENDING, resolve_server_timestamps
)
from mix_server.utils.generator import generate_document_id
from mix_server.utils.time_utils import MonotonicClock
from mix_server.utils.versioning import VERSION_FIELD, get_version, increment_version

logger = logging.getLogger(__name__)


def watch_pipeline(conditions: Optional[Dict[str, Any]]) -> List[Dict[str, Any]]:
    """Change-stream pipeline waking a listener only for changes that can affect its result.

    A change counts when the document matches the conditions after the write,
    when the write touched a watched field (the document may have left the
    set), or when a document was deleted.
    """
    if not conditions:
        return []
    clauses = [
        {f"fullDocument.{field}": value for field, value in conditions.items()},
        {'operationType': {'$in': ['delete', 'replace']}},
    ]
    for field in conditions:
        clauses.append({f"updateDescription.updatedFields.{field}": {'$exists': True}})
        clauses.append({'updateDescription.removedFields': field})
    return [{'$match': {'$or': clauses}}]


class _ChangeStreamListener:
    """Watches the collection and re-pushes the matching set after each change."""

    def __init__(self, repository: 'MongoRepository', conditions, callback, poll_seconds: float):
        self.repository = repository
        self.conditions = dict(conditions or {})
        self.callback = callback
        self.poll_seconds = poll_seconds
        self.stream = None
        self.last_snapshot = None
        self.running = False
        self.thread = threading.Thread(
            target=self.run,
            daemon=True,
            name=f"watch-{repository.collection_name}"
        )

    def start(self):
        # Open the stream before the first read so no change slips between them.
        self.stream = self.repository.collection.watch(
            watch_pipeline(self.conditions),
            full_document='updateLookup',
            max_await_time_ms=int(self.poll_seconds * 1000)
        )
        self.running = True
        try:
            self.deliver()
        except Exception:
            self.running = False
            self.stream.close()
            raise
        self.thread.start()

    def stop(self):
        if not self.running:
            return
        self.running = False
        if self.thread is not threading.current_thread():
            self.thread.join(timeout=self.poll_seconds * 2)

    def deliver(self):
        snapshot = self.repository.filter(self.conditions)
        if snapshot == self.last_snapshot:
            return
        self.last_snapshot = snapshot
        self.callback(snapshot)

    def run(self):
        try:
            while self.running and self.stream.alive:
                change = self.stream.try_next()
                if change is None or not self.running:
                    continue
                try:
                    self.deliver()
                except PyMongoError:
                    raise
                except Exception:
                    logger.exception(f"{self.repository.collection_name}: snapshot listener failed")
        except PyMongoError as e:
            logger.error(f"{self.repository.collection_name}: change stream stopped: {e}")
        finally:
            self.running = False
            self.stream.close()


class MongoRepository(BaseRepository):
    """BaseRepository over a pymongo collection."""

    def __init__(self, collection, clock: Optional[MonotonicClock] = None, poll_seconds: float = 1.0):
        super().__init__(collection.name)
        self.collection = collection
        self.clock = clock or MonotonicClock()
        self.poll_seconds = poll_seconds

    @staticmethod
    def _export(raw: Optional[Document]) -> Optional[Document]:
        if raw is None:
            return None
        doc = dict(raw)
        doc['id'] = str(doc.pop('_id'))
        return doc

    def create(self, data: Document) -> str:
        doc = resolve_server_timestamps(dict(data), self.clock.now())
        doc_id = doc.pop('id', None) or generate_document_id()
        doc['_id'] = doc_id
        doc[VERSION_FIELD] = 1
        self.collection.insert_one(doc)
        logger.debug(f"{self.collection_name}: created {doc_id}")
        return doc_id

    def get(self, doc_id: str) -> Optional[Document]:
        return self._export(self.collection.find_one({'_id': doc_id}))

    def update(self, doc_id: str, fields: Document, expected_version: Optional[int] = None) -> None:
        resolved = resolve_server_timestamps(dict(fields), self.clock.now())
        resolved.pop('id', None)
        query = {'_id': doc_id}
        if expected_version is not None:
            query[VERSION_FIELD] = expected_version
        result = self.collection.update_one(query, increment_version({'$set': resolved}))
        if result.matched_count:
            return
        current = self.collection.find_one({'_id': doc_id}, {VERSION_FIELD: 1})
        if current is None:
            raise NotFoundError(
                f"Document {doc_id} not found in {self.collection_name}",
                resource=self.collection_name, resource_id=doc_id
            )
        raise ConcurrentUpdateError(
            f"Document {doc_id} in {self.collection_name} changed concurrently",
            expected_version=expected_version, actual_version=get_version(current)
        )

    def delete(self, doc_id: str) -> None:
        self.collection.delete_one({'_id': doc_id})

    def filter(
        self,
        conditions: Optional[Dict[str, Any]] = None,
        order_by: Optional[Tuple[str, str]] = None,
        limit: Optional[int] = None
    ) -> List[Document]:
        cursor = self.collection.find(dict(conditions or {}))
        if order_by:
            field, direction = order_by
            cursor = cursor.sort(field, MONGO_DESCENDING if direction == DESCENDING else MONGO_ASCENDING)
        if limit:
            cursor = cursor.limit(limit)
        return [self._export(raw) for raw in cursor]

    def array_union(self, doc_id: str, path: str, value: Any) -> bool:
        result = self.collection.update_one(
            {'_id': doc_id},
            increment_version({'$addToSet': {path: value}})
        )
        return result.matched_count > 0

    def array_remove(self, doc_id: str, path: str, value: Any) -> bool:
        result = self.collection.update_one(
            {'_id': doc_id},
            increment_version({'$pull': {path: value}})
        )
        if not result.matched_count:
            return False
        # Only matches when the pull above left the list empty.
        self.collection.update_one(
            {'_id': doc_id, path: {'$size': 0}},
            increment_version({'$unset': {path: ''}})
        )
        return True

    def subscribe(self, conditions: Optional[Dict[str, Any]], callback: SnapshotCallback) -> Unsubscribe:
        listener = _ChangeStreamListener(self, conditions, callback, self.poll_seconds)
        listener.start()
        logger.debug(f"{self.collection_name}: change stream listener started for {listener.conditions}")
        return listener.stop
