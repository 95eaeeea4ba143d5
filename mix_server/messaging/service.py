"""Messaging service layer.

Composes the chat and message repositories into the operations clients
need. Store and domain errors pass through untouched; presentation is the
caller's job.
"""
import logging
from typing import List, Optional

from config import config
from mix_server.messaging.chat_repository import (
    ChatRepository, ChatsCallback, InvitePreview, ProfileUpdateResult
)
from mix_server.messaging.message_repository import MessageRepository, MessagesCallback
from mix_server.messaging.models import Chat, Message, MessageType
from mix_server.repository.base_repository import BaseRepository, Unsubscribe
from mix_server.repository.profile_repository import ProfileRepository, UserProfile

logger = logging.getLogger(__name__)


class MessagingService:
    """High-level messaging facade."""

    def __init__(
        self,
        chat_repository: ChatRepository,
        message_repository: MessageRepository,
        profile_repository: ProfileRepository
    ):
        self.chats = chat_repository
        self.messages = message_repository
        self.profiles = profile_repository

    @classmethod
    def from_stores(
        cls,
        chats: BaseRepository,
        messages: BaseRepository,
        profiles: BaseRepository,
        window_size: int = 50,
        preview_length: int = 100,
        invite_code_length: int = 8,
        invite_code_alphabet: Optional[str] = None,
        max_members: int = 100
    ) -> 'MessagingService':
        message_repository = MessageRepository(
            messages, chats, window_size=window_size, preview_length=preview_length
        )
        chat_kwargs = {}
        if invite_code_alphabet:
            chat_kwargs['invite_code_alphabet'] = invite_code_alphabet
        chat_repository = ChatRepository(
            chats, message_repository,
            invite_code_length=invite_code_length,
            max_members=max_members,
            **chat_kwargs
        )
        return cls(chat_repository, message_repository, ProfileRepository(profiles))

    @classmethod
    def from_config(cls) -> 'MessagingService':
        """Build the service over the configured store backend."""
        from mix_server.repository.mongo_helper import get_collection
        return cls.from_stores(
            get_collection(config.CHATS_COLLECTION),
            get_collection(config.MESSAGES_COLLECTION),
            get_collection(config.PROFILES_COLLECTION),
            window_size=config.MESSAGE_WINDOW_SIZE,
            preview_length=config.LAST_MESSAGE_PREVIEW_LENGTH,
            invite_code_length=config.INVITE_CODE_LENGTH,
            invite_code_alphabet=config.INVITE_CODE_ALPHABET,
            max_members=config.GROUP_MAX_MEMBERS
        )

    # =========================================================================
    # Profiles
    # =========================================================================

    def get_profile(self, user_id: str) -> UserProfile:
        return self.profiles.get_profile(user_id)

    def apply_profile_update(self, user_id: str, profile: UserProfile) -> ProfileUpdateResult:
        return self.chats.apply_profile_update(user_id, profile)

    # =========================================================================
    # Chat Operations
    # =========================================================================

    def create_direct_chat(self, user_a: str, user_b: str,
                           profile_a: UserProfile, profile_b: UserProfile) -> str:
        return self.chats.create_direct_chat(user_a, user_b, profile_a, profile_b)

    def create_group_chat(self, creator_id: str, name: str, description: Optional[str],
                          initial_participant_ids: Optional[List[str]],
                          creator_profile: UserProfile) -> str:
        return self.chats.create_group_chat(
            creator_id, name, description, initial_participant_ids, creator_profile
        )

    def find_direct_chat(self, user_a: str, user_b: str) -> Optional[Chat]:
        return self.chats.find_direct_chat(user_a, user_b)

    def get_chat_by_id(self, chat_id: str) -> Optional[Chat]:
        return self.chats.get_chat_by_id(chat_id)

    def get_chat_by_invite_code(self, code: str) -> Optional[Chat]:
        return self.chats.get_chat_by_invite_code(code)

    def get_user_chats(self, user_id: str) -> List[Chat]:
        return self.chats.get_user_chats(user_id)

    def preview_invite(self, code: str, user_id: str) -> Optional[InvitePreview]:
        return self.chats.preview_invite(code, user_id)

    def join_group_by_invite_code(self, code: str, user_id: str, user_profile: UserProfile) -> str:
        return self.chats.join_group_by_invite_code(code, user_id, user_profile)

    def leave_group(self, chat_id: str, user_id: str, user_profile: UserProfile) -> None:
        self.chats.leave_group(chat_id, user_id, user_profile)

    def generate_invite_code(self) -> str:
        return self.chats.generate_invite_code()

    def deactivate_chat(self, chat_id: str) -> None:
        self.chats.deactivate_chat(chat_id)

    def subscribe_to_user_chats(self, user_id: str, callback: ChatsCallback) -> Unsubscribe:
        return self.chats.subscribe_to_user_chats(user_id, callback)

    # =========================================================================
    # Message Operations
    # =========================================================================

    def send_message(self, chat_id: str, sender_id: str, content: str,
                     sender_profile: UserProfile,
                     message_type: MessageType = MessageType.TEXT,
                     reply_to: Optional[str] = None) -> str:
        return self.messages.send_message(
            chat_id, sender_id, content, sender_profile, message_type, reply_to
        )

    def send_system_message(self, chat_id: str, content: str) -> str:
        return self.messages.send_system_message(chat_id, content)

    def get_message(self, message_id: str) -> Optional[Message]:
        return self.messages.get_message(message_id)

    def get_recent_messages(self, chat_id: str) -> List[Message]:
        return self.messages.get_recent_messages(chat_id)

    def edit_message(self, message_id: str, sender_id: str, content: str) -> Message:
        return self.messages.edit_message(message_id, sender_id, content)

    def add_reaction(self, message_id: str, emoji: str, user_id: str) -> bool:
        return self.messages.add_reaction(message_id, emoji, user_id)

    def remove_reaction(self, message_id: str, emoji: str, user_id: str) -> bool:
        return self.messages.remove_reaction(message_id, emoji, user_id)

    def subscribe_to_messages(self, chat_id: str, callback: MessagesCallback) -> Unsubscribe:
        return self.messages.subscribe_to_messages(chat_id, callback)


# Singleton instance
_messaging_service = None


def get_messaging_service() -> MessagingService:
    """Get singleton messaging service instance."""
    global _messaging_service
    if _messaging_service is None:
        _messaging_service = MessagingService.from_config()
        logger.info("MessagingService initialized")
    return _messaging_service


def configure_messaging_service(service: MessagingService) -> MessagingService:
    """Install a prebuilt service (used by create_app and the tests)."""
    global _messaging_service
    _messaging_service = service
    return service


def reset_messaging_service():
    global _messaging_service
    _messaging_service = None
