"""Shared fixtures: in-memory stores, seeded profiles, the messaging service
and a Flask app wired to it."""
import pytest

from mix_server.messaging.service import MessagingService, reset_messaging_service
from mix_server.repository.memory_store import InMemoryRepository
from mix_server.repository.profile_repository import UserProfile
from mix_server.security.authentication import AuthSecurity
from mix_server.utils.time_utils import MonotonicClock

TEST_JWT_SECRET = 'test-secret'

PROFILES = [
    {'uid': 'alice-id', 'display_name': 'Alice', 'avatar_url': 'https://img.example/alice.png'},
    {'uid': 'bob-id', 'display_name': 'Bob', 'avatar_url': 'https://img.example/bob.png'},
    {'uid': 'carol-id', 'display_name': 'Carol', 'avatar_url': ''},
]


@pytest.fixture
def clock():
    return MonotonicClock()


@pytest.fixture
def chats_store(clock):
    return InMemoryRepository('chats', clock=clock)


@pytest.fixture
def messages_store(clock):
    return InMemoryRepository('messages', clock=clock)


@pytest.fixture
def profiles_store(clock):
    store = InMemoryRepository('user_profiles', clock=clock)
    for doc in PROFILES:
        store.create(dict(doc))
    return store


@pytest.fixture
def service(chats_store, messages_store, profiles_store):
    return MessagingService.from_stores(chats_store, messages_store, profiles_store)


@pytest.fixture
def chat_repo(service):
    return service.chats


@pytest.fixture
def message_repo(service):
    return service.messages


@pytest.fixture
def alice():
    return UserProfile('Alice', 'https://img.example/alice.png')


@pytest.fixture
def bob():
    return UserProfile('Bob', 'https://img.example/bob.png')


@pytest.fixture
def carol():
    return UserProfile('Carol')


@pytest.fixture
def group_id(chat_repo, alice):
    """A group created by Alice with no other members."""
    return chat_repo.create_group_chat('alice-id', 'Mixology Club', 'Cocktails', [], alice)


@pytest.fixture
def direct_id(chat_repo, alice, bob):
    return chat_repo.create_direct_chat('alice-id', 'bob-id', alice, bob)


# =============================================================================
# App fixtures
# =============================================================================

@pytest.fixture
def app_and_socketio(service):
    from server import create_app

    AuthSecurity.configure(TEST_JWT_SECRET)
    app, socketio = create_app(service)
    app.config['TESTING'] = True
    yield app, socketio
    reset_messaging_service()


@pytest.fixture
def app(app_and_socketio):
    return app_and_socketio[0]


@pytest.fixture
def socketio(app_and_socketio):
    return app_and_socketio[1]


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def token_for():
    AuthSecurity.configure(TEST_JWT_SECRET)

    def make(user_id):
        return AuthSecurity.encode_token({'user_id': user_id})
    return make


@pytest.fixture
def auth_headers(token_for):
    def make(user_id):
        return {'Authorization': f'Bearer {token_for(user_id)}'}
    return make
