"""Migration script: create the indexes the chat queries rely on.

Every query the service issues is an equality match, so single-field
indexes are enough:
1. chats.participants (multikey) - chat lists and direct-chat lookup
2. chats.invite_code - joining by code
3. messages.chat_id + timestamp - message windows
4. user_profiles.uid - profile lookup

Usage:
    python scripts/add_indexes.py

Requires STORE_BACKEND=mongo; MONGO_URI and CHAT_DB_NAME select the database.
"""
import logging
import sys
import os

# Add parent directory to path for imports
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from pymongo.errors import OperationFailure

from config import config
from mix_server.repository.mongo_helper import MongoRepositorySingleton

logging.basicConfig(level=logging.INFO, format='%(asctime)s - %(levelname)s - %(message)s')
logger = logging.getLogger(__name__)


def create_index_safe(coll, index_spec, **kwargs):
    """Create an index, handling if it already exists."""
    try:
        index_name = coll.create_index(index_spec, **kwargs)
        logger.info(f'  Created index: {index_name}')
        return True
    except OperationFailure as e:
        if 'already exists' in str(e).lower():
            logger.info(f'  Index already exists: {index_spec}')
            return False
        raise


def add_query_indexes(db):
    logger.info('Adding query indexes...')

    chats = db[config.CHATS_COLLECTION]
    logger.info(f'{chats.name}: participants, invite_code')
    create_index_safe(chats, [('participants', 1)])
    create_index_safe(chats, [('invite_code', 1)], sparse=True)

    messages = db[config.MESSAGES_COLLECTION]
    logger.info(f'{messages.name}: chat_id + timestamp')
    create_index_safe(messages, [('chat_id', 1), ('timestamp', -1)])

    profiles = db[config.PROFILES_COLLECTION]
    logger.info(f'{profiles.name}: uid')
    create_index_safe(profiles, [('uid', 1)], unique=True)


def main():
    if config.STORE_BACKEND != 'mongo':
        logger.error(f'STORE_BACKEND is "{config.STORE_BACKEND}"; indexes only apply to mongo')
        return 1

    logger.info('Starting index migration...')
    logger.info('=' * 50)
    add_query_indexes(MongoRepositorySingleton.get_db())
    logger.info('=' * 50)
    logger.info('Index migration complete.')
    MongoRepositorySingleton.close()
    return 0


if __name__ == '__main__':
    sys.exit(main())
