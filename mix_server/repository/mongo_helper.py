import logging
import threading

from pymongo import MongoClient

from config import config
from mix_server.repository.base_repository import BaseRepository
from mix_server.repository.memory_store import InMemoryRepository
from mix_server.repository.mongo_store import MongoRepository
from mix_server.utils.time_utils import MonotonicClock

logger = logging.getLogger(__name__)


class MongoRepositorySingleton:
    _client = None
    _db_instance = None

    @classmethod
    def get_db(cls):
        """Singleton utility to get the MongoDB database object.

        Uses config.MONGO_URI and config.CHAT_DB_NAME (MONGO_URI and
        CHAT_DB_NAME environment variables override the YAML values).
        """
        if cls._db_instance is not None:
            return cls._db_instance
        mongo_uri = config.MONGO_URI
        db_name = config.CHAT_DB_NAME
        logger.info(f"[MongoRepositorySingleton] Connecting to MongoDB DB: {db_name}")
        cls._client = MongoClient(mongo_uri, tz_aware=True)
        cls._db_instance = cls._client[db_name]
        return cls._db_instance

    @classmethod
    def get_collection(cls, collection_name, db=None):
        """Get a collection from the database, creating it if it does not exist."""
        if db is None:
            db = cls.get_db()
        if collection_name not in db.list_collection_names():
            db.create_collection(collection_name)
            logger.info(f"Created '{collection_name}' collection in DB.")
        return db[collection_name]

    @classmethod
    def close(cls):
        if cls._client is not None:
            cls._client.close()
        cls._client = None
        cls._db_instance = None


# One clock per process keeps server timestamps ordered across collections.
_clock = MonotonicClock()
_repositories = {}
_lock = threading.Lock()


def get_collection(collection_name: str) -> BaseRepository:
    """Return the configured store's repository for a collection (cached)."""
    with _lock:
        repo = _repositories.get(collection_name)
        if repo is not None:
            return repo
        backend = config.STORE_BACKEND
        if backend == 'memory':
            repo = InMemoryRepository(collection_name, clock=_clock)
        elif backend == 'mongo':
            repo = MongoRepository(
                MongoRepositorySingleton.get_collection(collection_name),
                clock=_clock,
                poll_seconds=config.CHANGE_STREAM_POLL_SECONDS
            )
        else:
            raise RuntimeError(f"Unknown STORE_BACKEND '{backend}'")
        logger.info(f"Initialized '{collection_name}' repository ({backend} backend)")
        _repositories[collection_name] = repo
        return repo
