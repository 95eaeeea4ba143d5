"""Direct and group messaging.

This module provides:
- Direct chats (idempotent per pair of users)
- Group chats joined by invite code
- Messages with reactions, replies and edits
- Live chat-list and message-window subscriptions
"""

from mix_server.messaging.models import (
    Chat, Message, Sender, SenderKind, GroupSettings, LastMessage,
    ChatType, MessageType
)
from mix_server.messaging.message_repository import MessageRepository
from mix_server.messaging.chat_repository import ChatRepository, InvitePreview, ProfileUpdateResult
from mix_server.messaging.service import (
    MessagingService, get_messaging_service,
    configure_messaging_service, reset_messaging_service
)

__all__ = [
    # Models
    'Chat', 'Message', 'Sender', 'SenderKind', 'GroupSettings', 'LastMessage',
    'ChatType', 'MessageType',
    # Repositories
    'MessageRepository', 'ChatRepository', 'InvitePreview', 'ProfileUpdateResult',
    # Service
    'MessagingService', 'get_messaging_service',
    'configure_messaging_service', 'reset_messaging_service'
]
