"""Message repository.

Owns the message lifecycle: user and system sends, reactions, edits and the
live, bounded message window of a chat. Sending a user message also touches
the parent chat's last-message preview; the two writes are not atomic, so a
failure between them leaves the message stored with a stale preview.
"""
import logging
from typing import Callable, List, Optional

from mix_server.exception.InvalidOperationError import InvalidOperationError
from mix_server.exception.NotFoundError import NotFoundError
from mix_server.messaging.models import Message, MessageType, Sender
from mix_server.repository.base_repository import (
    BaseRepository, Document, Unsubscribe, SERVER_TIMESTAMP, DESCENDING
)
from mix_server.repository.profile_repository import UserProfile
from mix_server.utils.time_utils import sort_key
from mix_server.utils.versioning import get_version

logger = logging.getLogger(__name__)

MESSAGE_WINDOW_SIZE = 50
LAST_MESSAGE_PREVIEW_LENGTH = 100

MessagesCallback = Callable[[List[Message]], None]


def _validate_emoji(emoji: str) -> str:
    # The emoji becomes a key in a dotted document path.
    if not emoji or not isinstance(emoji, str):
        raise ValueError('emoji is required')
    if '.' in emoji or emoji.startswith('$'):
        raise ValueError(f"invalid reaction key: {emoji!r}")
    return emoji


class MessageRepository:
    """Messages of every chat, stored in one collection keyed by chat_id."""

    def __init__(
        self,
        messages: BaseRepository,
        chats: BaseRepository,
        window_size: int = MESSAGE_WINDOW_SIZE,
        preview_length: int = LAST_MESSAGE_PREVIEW_LENGTH
    ):
        self.messages = messages
        self.chats = chats
        self.window_size = window_size
        self.preview_length = preview_length

    # =========================================================================
    # Sending
    # =========================================================================

    def send_message(
        self,
        chat_id: str,
        sender_id: str,
        content: str,
        sender_profile: UserProfile,
        message_type: MessageType = MessageType.TEXT,
        reply_to: Optional[str] = None
    ) -> str:
        """Append a user message and refresh the chat's last-message preview.

        reply_to is an advisory link; the referenced message is not checked.
        """
        message_type = MessageType(message_type)
        if message_type == MessageType.SYSTEM:
            raise InvalidOperationError('system messages cannot be sent by users')
        if not content or not content.strip():
            raise ValueError('message content is required')

        message = Message(
            message_id=None,
            chat_id=chat_id,
            sender=Sender.user(sender_id),
            content=content,
            message_type=message_type,
            sender_name=sender_profile.display_name,
            sender_avatar=sender_profile.avatar_url,
            reply_to=reply_to
        )
        doc = message.to_db_doc()
        doc['timestamp'] = SERVER_TIMESTAMP
        message_id = self.messages.create(doc)

        self.chats.update(chat_id, {
            'last_message': {
                'content': content[:self.preview_length],
                'sender_id': sender_id,
                'timestamp': SERVER_TIMESTAMP
            },
            'updated_at': SERVER_TIMESTAMP
        })
        logger.debug(f"Message {message_id} sent to chat {chat_id} by {sender_id}")
        return message_id

    def send_system_message(self, chat_id: str, content: str) -> str:
        """Append a system announcement. The chat's preview and updated_at are left alone."""
        message = Message(
            message_id=None,
            chat_id=chat_id,
            sender=Sender.system(),
            content=content,
            message_type=MessageType.SYSTEM,
            sender_name=Sender.SYSTEM_NAME
        )
        doc = message.to_db_doc()
        doc['timestamp'] = SERVER_TIMESTAMP
        message_id = self.messages.create(doc)
        logger.info(f"System message in chat {chat_id}: {content}")
        return message_id

    # =========================================================================
    # Reads
    # =========================================================================

    def _window(self, docs: List[Document]) -> List[Message]:
        ordered = sorted(docs, key=lambda d: sort_key(d.get('timestamp')))
        if len(ordered) > self.window_size:
            ordered = ordered[-self.window_size:]
        return [Message.from_doc(d) for d in ordered]

    def get_message(self, message_id: str) -> Optional[Message]:
        doc = self.messages.get(message_id)
        return Message.from_doc(doc) if doc else None

    def get_recent_messages(self, chat_id: str) -> List[Message]:
        """The newest window_size messages of a chat, oldest first."""
        docs = self.messages.filter(
            {'chat_id': chat_id},
            order_by=('timestamp', DESCENDING),
            limit=self.window_size
        )
        return self._window(docs)

    def subscribe_to_messages(self, chat_id: str, callback: MessagesCallback) -> Unsubscribe:
        """Push the chat's current message window to callback on every change.

        The store hands over every message of the chat; ordering and the
        window cut happen here so the store needs no composite index.
        """
        def on_snapshot(docs: List[Document]):
            callback(self._window(docs))

        return self.messages.subscribe({'chat_id': chat_id}, on_snapshot)

    # =========================================================================
    # Reactions
    # =========================================================================

    def add_reaction(self, message_id: str, emoji: str, user_id: str) -> bool:
        """Add user_id under emoji. Adding twice is a no-op."""
        path = f"reactions.{_validate_emoji(emoji)}"
        found = self.messages.array_union(message_id, path, user_id)
        if not found:
            logger.warning(f"Reaction {emoji} by {user_id} ignored: message {message_id} not found")
        return found

    def remove_reaction(self, message_id: str, emoji: str, user_id: str) -> bool:
        """Remove user_id from emoji, dropping the emoji once nobody is left."""
        path = f"reactions.{_validate_emoji(emoji)}"
        found = self.messages.array_remove(message_id, path, user_id)
        if not found:
            logger.warning(f"Reaction removal {emoji} by {user_id} ignored: message {message_id} not found")
        return found

    # =========================================================================
    # Edits
    # =========================================================================

    def edit_message(self, message_id: str, sender_id: str, content: str) -> Message:
        """Replace the content of a message. Only its original sender may edit it."""
        if not content or not content.strip():
            raise ValueError('message content is required')
        doc = self.messages.get(message_id)
        if doc is None:
            raise NotFoundError(f"Message {message_id} not found", resource='message', resource_id=message_id)
        message = Message.from_doc(doc)
        if message.is_system:
            raise InvalidOperationError('system messages cannot be edited')
        if message.sender.user_id != sender_id:
            raise InvalidOperationError('only the sender can edit a message')

        self.messages.update(message_id, {
            'content': content,
            'edited': True,
            'edited_at': SERVER_TIMESTAMP
        }, expected_version=get_version(doc))
        logger.info(f"Message {message_id} edited by {sender_id}")
        return self.get_message(message_id)
