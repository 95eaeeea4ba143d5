"""End-to-end behaviour of the messaging facade over in-memory stores."""
import re

import pytest

from mix_server.exception.InvalidOperationError import CapacityExceededError
from mix_server.exception.NotFoundError import NotFoundError
from mix_server.messaging.models import ChatType, MessageType
from mix_server.messaging.service import (
    MessagingService, configure_messaging_service, get_messaging_service, reset_messaging_service
)
from mix_server.repository.profile_repository import UserProfile

FIRE = '\U0001F525'


def chat_messages(service, chat_id):
    return service.get_recent_messages(chat_id)


class TestMixologyClubScenario:
    """Alice creates a group, Bob joins it with the invite code."""

    def test_create_then_join(self, service, chats_store):
        alice = service.get_profile('alice-id')
        chat_id = service.create_group_chat('alice-id', 'Mixology Club', None, [], alice)

        groups = chats_store.filter({'chat_type': 'group'})
        assert len(groups) == 1
        chat = service.get_chat_by_id(chat_id)
        assert chat.chat_type == ChatType.GROUP
        assert chat.participants == ['alice-id']
        assert re.fullmatch(r'^[A-Z0-9]{8}$', chat.invite_code)

        messages = chat_messages(service, chat_id)
        assert [m.content for m in messages] == ['Alice created the group']
        assert messages[0].message_type == MessageType.SYSTEM

        joined = service.join_group_by_invite_code(chat.invite_code, 'bob-id', UserProfile('Bob'))
        assert joined == chat_id

        chat = service.get_chat_by_id(chat_id)
        assert set(chat.participants) == {'alice-id', 'bob-id'}
        assert chat.participant_names['bob-id'] == 'Bob'
        assert [m.content for m in chat_messages(service, chat_id)] == [
            'Alice created the group', 'Bob joined the group'
        ]


class TestProperties:

    def test_direct_chat_idempotent(self, service, chats_store, alice, bob):
        first = service.create_direct_chat('alice-id', 'bob-id', alice, bob)
        second = service.create_direct_chat('bob-id', 'alice-id', bob, alice)
        assert first == second
        directs = chats_store.filter({'chat_type': 'direct'})
        assert len(directs) == 1
        assert set(directs[0]['participants']) == {'alice-id', 'bob-id'}

    def test_invite_join_idempotent(self, service, group_id, bob):
        code = service.get_chat_by_id(group_id).invite_code
        service.join_group_by_invite_code(code, 'bob-id', bob)
        before = service.get_chat_by_id(group_id).participants
        assert service.join_group_by_invite_code(code, 'bob-id', bob) == group_id
        assert service.get_chat_by_id(group_id).participants == before

    def test_capacity(self, chats_store, messages_store, profiles_store, alice, bob, carol):
        service = MessagingService.from_stores(chats_store, messages_store, profiles_store, max_members=2)
        chat_id = service.create_group_chat('alice-id', 'Duo', None, ['bob-id'], alice)
        code = service.get_chat_by_id(chat_id).invite_code
        with pytest.raises(CapacityExceededError):
            service.join_group_by_invite_code(code, 'carol-id', carol)
        assert service.get_chat_by_id(chat_id).participants == ['alice-id', 'bob-id']

    def test_message_ordering_and_window(self, service, direct_id, alice, bob):
        for i in range(70):
            sender, profile = ('alice-id', alice) if i % 2 else ('bob-id', bob)
            service.send_message(direct_id, sender, f'm{i}', profile)
        windows = []
        service.subscribe_to_messages(direct_id, windows.append)
        window = windows[0]
        assert len(window) == 50
        assert [m.content for m in window] == [f'm{i}' for i in range(20, 70)]
        stamps = [m.timestamp for m in window]
        assert all(a < b for a, b in zip(stamps, stamps[1:]))

    def test_reaction_idempotence(self, service, direct_id, alice):
        msg_id = service.send_message(direct_id, 'alice-id', 'Cheers', alice)
        service.add_reaction(msg_id, FIRE, 'bob-id')
        service.add_reaction(msg_id, FIRE, 'bob-id')
        assert service.get_message(msg_id).reactions[FIRE] == ['bob-id']

        other = service.send_message(direct_id, 'alice-id', 'Again', alice)
        service.remove_reaction(other, FIRE, 'bob-id')
        assert FIRE not in service.get_message(other).reactions

    def test_leave_is_consistent(self, service, group_id, bob):
        code = service.get_chat_by_id(group_id).invite_code
        service.join_group_by_invite_code(code, 'bob-id', bob)
        service.send_message(group_id, 'bob-id', 'bye all', bob)
        service.leave_group(group_id, 'bob-id', bob)

        chat = service.get_chat_by_id(group_id)
        assert 'bob-id' not in chat.participants
        assert 'bob-id' not in chat.participant_names
        assert 'bob-id' not in chat.participant_avatars

        last = chat_messages(service, group_id)[-1]
        assert last.is_system
        assert 'Bob' in last.content and 'left' in last.content
        assert chat.last_message.content == 'bye all'


class TestInviteOutcomes:
    """Invalid, already-member and joined are distinct outcomes."""

    def test_three_outcomes(self, service, group_id, alice, bob):
        code = service.get_chat_by_id(group_id).invite_code

        with pytest.raises(NotFoundError):
            service.join_group_by_invite_code('00000000', 'bob-id', bob)

        assert service.preview_invite(code, 'alice-id').already_member
        assert service.join_group_by_invite_code(code, 'alice-id', alice) == group_id

        assert not service.preview_invite(code, 'bob-id').already_member
        assert service.join_group_by_invite_code(code, 'bob-id', bob) == group_id
        assert service.preview_invite(code, 'bob-id').already_member


class TestProfiles:

    def test_known_profile(self, service):
        profile = service.get_profile('bob-id')
        assert profile.display_name == 'Bob'
        assert profile.avatar_url == 'https://img.example/bob.png'

    def test_unknown_profile_defaults(self, service):
        profile = service.get_profile('ghost')
        assert profile.display_name == 'User'
        assert profile.avatar_url == ''


class TestServiceSingleton:

    def test_configure_and_reset(self, service):
        configure_messaging_service(service)
        try:
            assert get_messaging_service() is service
        finally:
            reset_messaging_service()
