"""Socket.IO chat events through the Flask-SocketIO test client."""
import pytest

FIRE = '\U0001F525'


@pytest.fixture
def connect(app, socketio, token_for):
    clients = []

    def make(user_id):
        client = socketio.test_client(app, auth={'token': token_for(user_id)})
        clients.append(client)
        return client

    yield make
    for client in clients:
        if client.is_connected():
            client.disconnect()


def events(client, name):
    return [e['args'][0] for e in client.get_received() if e['name'] == name]


def chat_handler(app):
    return app.extensions['websocket_hub']._chat_handler


class TestConnect:

    def test_valid_token(self, connect):
        client = connect('alice-id')
        assert client.is_connected()
        [hello] = events(client, 'connected')
        assert hello['user_id'] == 'alice-id'

    def test_missing_token_rejected(self, app, socketio):
        client = socketio.test_client(app)
        assert not client.is_connected()

    def test_bad_token_rejected(self, app, socketio):
        client = socketio.test_client(app, auth={'token': 'a.b.c'})
        assert not client.is_connected()

    def test_query_string_token(self, app, socketio, token_for):
        client = socketio.test_client(app, query_string=f'token={token_for("bob-id")}')
        assert client.is_connected()
        client.disconnect()


class TestChatListSubscription:

    def test_initial_and_live_snapshots(self, connect, service, alice, bob):
        client = connect('alice-id')
        client.get_received()

        ack = client.emit('chat:list:subscribe', {}, callback=True)
        assert ack == {'success': True}
        [initial] = events(client, 'chat:list')
        assert initial['chats'] == []

        chat_id = service.create_direct_chat('alice-id', 'bob-id', alice, bob)
        [update] = events(client, 'chat:list')
        assert [c['id'] for c in update['chats']] == [chat_id]

    def test_unsubscribe_stops_updates(self, connect, service, alice, bob):
        client = connect('alice-id')
        client.emit('chat:list:subscribe', {})
        assert client.emit('chat:list:unsubscribe', {}, callback=True) == {'success': True}
        client.get_received()

        service.create_direct_chat('alice-id', 'bob-id', alice, bob)
        assert events(client, 'chat:list') == []

    def test_resubscribe_replaces_listener(self, app, connect, chats_store):
        client = connect('alice-id')
        client.emit('chat:list:subscribe', {})
        client.emit('chat:list:subscribe', {})
        assert chats_store.listener_count == 1


class TestMessageSubscription:

    def test_member_receives_window(self, connect, service, group_id, alice):
        client = connect('alice-id')
        client.get_received()

        client.emit('chat:messages:subscribe', {'chatId': group_id})
        [initial] = events(client, 'chat:messages')
        assert initial['chatId'] == group_id
        assert [m['content'] for m in initial['messages']] == ['Alice created the group']

        service.send_message(group_id, 'alice-id', 'Shaken, not stirred', alice)
        [update] = events(client, 'chat:messages')
        assert update['messages'][-1]['content'] == 'Shaken, not stirred'

    def test_non_member_refused(self, connect, group_id, messages_store):
        client = connect('carol-id')
        client.get_received()
        client.emit('chat:messages:subscribe', {'chatId': group_id})
        [error] = events(client, 'chat:error')
        assert error['code'] == 'NOT_FOUND'
        assert messages_store.listener_count == 0

    def test_missing_chat_id(self, connect):
        client = connect('alice-id')
        client.get_received()
        client.emit('chat:messages:subscribe', {})
        [error] = events(client, 'chat:error')
        assert error['code'] == 'INVALID_DATA'


class TestSendAndReact:

    def test_send_confirms_with_temp_id(self, connect, service, direct_id):
        client = connect('alice-id')
        client.get_received()
        client.emit('chat:send', {'chatId': direct_id, 'content': 'Hi', 'tempId': 'tmp-1'})
        [sent] = events(client, 'chat:message:sent')
        assert sent['tempId'] == 'tmp-1'
        assert service.get_message(sent['messageId']).content == 'Hi'

    def test_send_to_foreign_chat(self, connect, direct_id):
        client = connect('carol-id')
        client.get_received()
        client.emit('chat:send', {'chatId': direct_id, 'content': 'Hi', 'tempId': 'tmp-2'})
        [error] = events(client, 'chat:error')
        assert error['code'] == 'NOT_FOUND'
        assert error['tempId'] == 'tmp-2'

    def test_send_system_type_refused(self, connect, direct_id):
        client = connect('alice-id')
        client.get_received()
        client.emit('chat:send', {'chatId': direct_id, 'content': 'x', 'type': 'system'})
        [error] = events(client, 'chat:error')
        assert error['code'] == 'INVALID_DATA'

    def test_react_and_unreact(self, connect, service, direct_id, alice):
        message_id = service.send_message(direct_id, 'alice-id', 'Cheers', alice)
        client = connect('bob-id')
        assert client.emit('chat:react', {'messageId': message_id, 'emoji': FIRE}, callback=True) == {'success': True}
        assert service.get_message(message_id).reactions == {FIRE: ['bob-id']}

        client.emit('chat:react', {'messageId': message_id, 'emoji': FIRE, 'remove': True})
        assert service.get_message(message_id).reactions == {}

    def test_react_unknown_message(self, connect):
        client = connect('bob-id')
        client.get_received()
        client.emit('chat:react', {'messageId': 'missing', 'emoji': FIRE})
        [error] = events(client, 'chat:error')
        assert error['code'] == 'NOT_FOUND'


class TestDisconnect:

    def test_disconnect_releases_subscriptions(self, app, connect, chats_store, messages_store, group_id):
        client = connect('alice-id')
        client.emit('chat:list:subscribe', {})
        client.emit('chat:messages:subscribe', {'chatId': group_id})
        assert chats_store.listener_count == 1
        assert messages_store.listener_count == 1

        client.disconnect()
        assert chats_store.listener_count == 0
        assert messages_store.listener_count == 0
        assert chat_handler(app).subscriptions == {}

    def test_disconnect_forgets_socket(self, app, connect):
        client = connect('alice-id')
        hub = app.extensions['websocket_hub']
        assert [u['user_id'] for u in hub.connected_users.values()] == ['alice-id']

        client.disconnect()
        assert hub.connected_users == {}
