"""Chat repository.

Owns the chat lifecycle: direct and group creation, invite codes,
membership changes and the live chat list of a user.

Membership changes are read-modify-write on the chat document and are
guarded by the document version; a concurrent writer surfaces as
ConcurrentUpdateError instead of a lost update. Sending a message rewrites
the chat's last-message preview and bumps that version too, so a join or
leave racing a message in a busy group fails the same way.
"""
import logging
from collections import namedtuple
from typing import Callable, Iterable, List, Optional

from mix_server.exception.ConcurrentUpdateError import ConcurrentUpdateError
from mix_server.exception.InvalidOperationError import (
    InvalidOperationError, CapacityExceededError, InvalidChatTypeError
)
from mix_server.exception.NotFoundError import NotFoundError
from mix_server.messaging.message_repository import MessageRepository
from mix_server.messaging.models import Chat, ChatType, GroupSettings
from mix_server.repository.base_repository import (
    BaseRepository, Document, Unsubscribe, SERVER_TIMESTAMP, ASCENDING
)
from mix_server.repository.profile_repository import UserProfile
from mix_server.utils.generator import (
    generate_invite_code, INVITE_CODE_ALPHABET, INVITE_CODE_LENGTH
)
from mix_server.utils.time_utils import sort_key

logger = logging.getLogger(__name__)

GROUP_CREATED = "{name} created the group"
MEMBER_JOINED = "{name} joined the group"
MEMBER_LEFT = "{name} left the group"

DEFAULT_MAX_MEMBERS = 100

ChatsCallback = Callable[[List[Chat]], None]

InvitePreview = namedtuple('InvitePreview', ['chat', 'already_member'])

ProfileUpdateResult = namedtuple('ProfileUpdateResult', ['updated', 'conflicted'])


class ChatRepository:
    """Chats collection access plus the membership rules of direct and group chats."""

    def __init__(
        self,
        chats: BaseRepository,
        messages: MessageRepository,
        invite_code_length: int = INVITE_CODE_LENGTH,
        invite_code_alphabet: str = INVITE_CODE_ALPHABET,
        max_members: int = DEFAULT_MAX_MEMBERS
    ):
        self.chats = chats
        self.messages = messages
        self.invite_code_length = invite_code_length
        self.invite_code_alphabet = invite_code_alphabet
        self.max_members = max_members

    # =========================================================================
    # Lookups
    # =========================================================================

    def get_chat_by_id(self, chat_id: str) -> Optional[Chat]:
        doc = self.chats.get(chat_id)
        return Chat.from_doc(doc) if doc else None

    def get_chat_by_invite_code(self, code: str) -> Optional[Chat]:
        """Return the active group holding code.

        Codes are not checked for uniqueness when issued; should two groups
        ever share one, the oldest wins.
        """
        if not code:
            return None
        docs = self.chats.filter(
            {'invite_code': code, 'chat_type': ChatType.GROUP.value, 'is_active': True},
            order_by=('created_at', ASCENDING),
            limit=1
        )
        return Chat.from_doc(docs[0]) if docs else None

    def find_direct_chat(self, user_a: str, user_b: str) -> Optional[Chat]:
        """Return the active direct chat between user_a and user_b, if any."""
        docs = self.chats.filter({
            'chat_type': ChatType.DIRECT.value,
            'participants': user_a,
            'is_active': True
        })
        for doc in docs:
            if user_b in doc.get('participants', []):
                return Chat.from_doc(doc)
        return None

    @staticmethod
    def _active_by_recency(docs: Iterable[Document]) -> List[Chat]:
        chats = [Chat.from_doc(d) for d in docs if d.get('is_active', True)]
        chats.sort(key=lambda c: sort_key(c.updated_at), reverse=True)
        return chats

    def get_user_chats(self, user_id: str) -> List[Chat]:
        """Active chats of user_id, most recently updated first."""
        return self._active_by_recency(self.chats.filter({'participants': user_id}))

    def subscribe_to_user_chats(self, user_id: str, callback: ChatsCallback) -> Unsubscribe:
        """Push the user's active chats, most recently updated first, on every change.

        Filtering on is_active and sorting happen here rather than in the
        store query. The returned callable must be invoked to release the
        listener.
        """
        def on_snapshot(docs: List[Document]):
            callback(self._active_by_recency(docs))

        return self.chats.subscribe({'participants': user_id}, on_snapshot)

    # =========================================================================
    # Creation
    # =========================================================================

    def generate_invite_code(self) -> str:
        return generate_invite_code(self.invite_code_length, self.invite_code_alphabet)

    def create_direct_chat(
        self,
        user_a: str,
        user_b: str,
        profile_a: UserProfile,
        profile_b: UserProfile
    ) -> str:
        """Return the id of the direct chat between two users, creating it if needed."""
        if user_a == user_b:
            raise InvalidOperationError('a direct chat needs two different users')

        existing = self.find_direct_chat(user_a, user_b)
        if existing:
            logger.debug(f"Direct chat {existing.chat_id} already exists for {user_a}/{user_b}")
            return existing.chat_id

        chat = Chat(
            chat_id=None,
            chat_type=ChatType.DIRECT,
            participants=[user_a, user_b],
            participant_names={
                user_a: profile_a.display_name,
                user_b: profile_b.display_name
            },
            participant_avatars={
                user_a: profile_a.avatar_url,
                user_b: profile_b.avatar_url
            }
        )
        doc = chat.to_db_doc()
        doc['created_at'] = SERVER_TIMESTAMP
        doc['updated_at'] = SERVER_TIMESTAMP
        chat_id = self.chats.create(doc)
        logger.info(f"Created direct chat {chat_id} between {user_a} and {user_b}")
        return chat_id

    def create_group_chat(
        self,
        creator_id: str,
        name: str,
        description: Optional[str],
        initial_participant_ids: Optional[List[str]],
        creator_profile: UserProfile
    ) -> str:
        """Create a group owned by creator_id and announce it.

        Only the creator's display fields are filled in here; other initial
        members get theirs when they join or when their profile is applied.
        """
        if not name or not name.strip():
            raise ValueError('group name is required')

        participants = [creator_id]
        for user_id in initial_participant_ids or []:
            if user_id and user_id not in participants:
                participants.append(user_id)
        if len(participants) > self.max_members:
            raise CapacityExceededError(
                f"A group holds at most {self.max_members} members",
                max_members=self.max_members
            )

        chat = Chat(
            chat_id=None,
            chat_type=ChatType.GROUP,
            participants=participants,
            participant_names={creator_id: creator_profile.display_name},
            participant_avatars={creator_id: creator_profile.avatar_url},
            name=name.strip(),
            description=description or '',
            avatar='',
            created_by=creator_id,
            invite_code=self.generate_invite_code(),
            settings=GroupSettings(max_members=self.max_members)
        )
        doc = chat.to_db_doc()
        doc['created_at'] = SERVER_TIMESTAMP
        doc['updated_at'] = SERVER_TIMESTAMP
        chat_id = self.chats.create(doc)
        logger.info(f"Created group chat {chat_id} '{chat.name}' by {creator_id} with {len(participants)} members")

        self.messages.send_system_message(chat_id, GROUP_CREATED.format(name=creator_profile.display_name))
        return chat_id

    # =========================================================================
    # Membership
    # =========================================================================

    def preview_invite(self, code: str, user_id: str) -> Optional[InvitePreview]:
        """Resolve an invite code without joining. None when the code is invalid."""
        chat = self.get_chat_by_invite_code(code)
        if chat is None:
            return None
        return InvitePreview(chat=chat, already_member=chat.is_member(user_id))

    def join_group_by_invite_code(self, code: str, user_id: str, user_profile: UserProfile) -> str:
        """Add user_id to the group holding code and return the chat id.

        Joining a group the user already belongs to returns its id unchanged.
        """
        chat = self.get_chat_by_invite_code(code)
        if chat is None:
            raise NotFoundError('Invalid or expired invite code', resource='invite', resource_id=code)
        if chat.is_member(user_id):
            logger.debug(f"User {user_id} already in chat {chat.chat_id}")
            return chat.chat_id

        max_members = chat.max_members or self.max_members
        if len(chat.participants) >= max_members:
            raise CapacityExceededError(f"Group {chat.chat_id} is full", max_members=max_members)

        participant_names = dict(chat.participant_names)
        participant_avatars = dict(chat.participant_avatars)
        participant_names[user_id] = user_profile.display_name
        participant_avatars[user_id] = user_profile.avatar_url
        self.chats.update(chat.chat_id, {
            'participants': chat.participants + [user_id],
            'participant_names': participant_names,
            'participant_avatars': participant_avatars,
            'updated_at': SERVER_TIMESTAMP
        }, expected_version=chat.version)
        logger.info(f"User {user_id} joined chat {chat.chat_id}")

        self.messages.send_system_message(chat.chat_id, MEMBER_JOINED.format(name=user_profile.display_name))
        return chat.chat_id

    def leave_group(self, chat_id: str, user_id: str, user_profile: UserProfile) -> None:
        """Remove user_id from a group.

        The last member may leave; the group then stays with no participants.
        """
        chat = self.get_chat_by_id(chat_id)
        if chat is None:
            raise NotFoundError(f"Chat {chat_id} not found", resource='chat', resource_id=chat_id)
        if not chat.is_group:
            raise InvalidChatTypeError('Only group chats can be left', chat_type=chat.chat_type.value)
        if not chat.is_member(user_id):
            logger.debug(f"User {user_id} is not in chat {chat_id}, nothing to leave")
            return

        participant_names = dict(chat.participant_names)
        participant_avatars = dict(chat.participant_avatars)
        participant_names.pop(user_id, None)
        participant_avatars.pop(user_id, None)
        self.chats.update(chat_id, {
            'participants': [p for p in chat.participants if p != user_id],
            'participant_names': participant_names,
            'participant_avatars': participant_avatars,
            'updated_at': SERVER_TIMESTAMP
        }, expected_version=chat.version)
        logger.info(f"User {user_id} left chat {chat_id}")

        self.messages.send_system_message(chat_id, MEMBER_LEFT.format(name=user_profile.display_name))

    # =========================================================================
    # Maintenance
    # =========================================================================

    def apply_profile_update(self, user_id: str, profile: UserProfile) -> ProfileUpdateResult:
        """Rewrite user_id's denormalized name and avatar in every chat they belong to.

        Message snapshots keep the identity they were sent with. Each chat is
        written under its own version check; a chat that changes underneath
        (a message landing in it, a join) is skipped and reported in
        `conflicted` so the caller can apply the profile again later.
        """
        updated, conflicted = [], []
        for doc in self.chats.filter({'participants': user_id}):
            chat = Chat.from_doc(doc)
            if (chat.participant_names.get(user_id) == profile.display_name
                    and chat.participant_avatars.get(user_id) == profile.avatar_url):
                continue
            chat.participant_names[user_id] = profile.display_name
            chat.participant_avatars[user_id] = profile.avatar_url
            try:
                self.chats.update(chat.chat_id, {
                    'participant_names': chat.participant_names,
                    'participant_avatars': chat.participant_avatars
                }, expected_version=chat.version)
            except ConcurrentUpdateError:
                logger.warning(f"Profile of {user_id} not applied to chat {chat.chat_id}: changed concurrently")
                conflicted.append(chat.chat_id)
                continue
            updated.append(chat.chat_id)
        logger.info(f"Applied profile of {user_id} to {len(updated)} chats ({len(conflicted)} conflicted)")
        return ProfileUpdateResult(updated=updated, conflicted=conflicted)

    def deactivate_chat(self, chat_id: str) -> None:
        """Soft-delete a chat; it disappears from every chat list."""
        self.chats.update(chat_id, {'is_active': False, 'updated_at': SERVER_TIMESTAMP})
        logger.info(f"Deactivated chat {chat_id}")
