from mix_server.repository.base_repository import BaseRepository, SERVER_TIMESTAMP, ASCENDING, DESCENDING
from mix_server.repository.memory_store import InMemoryRepository
from mix_server.repository.mongo_store import MongoRepository
from mix_server.repository.profile_repository import ProfileRepository, UserProfile

__all__ = [
    'BaseRepository',
    'SERVER_TIMESTAMP',
    'ASCENDING',
    'DESCENDING',
    'InMemoryRepository',
    'MongoRepository',
    'ProfileRepository',
    'UserProfile'
]
