"""Messaging data models for direct and group chats.

Collections:
- chats: Conversations (direct or group) with denormalized participant
  display fields and a cached last-message preview
- messages: Individual messages, append-only apart from reactions and edits

Documents are stored with snake_case keys; to_dict() renders the camelCase
shape served to clients.
"""
from typing import Optional, Dict, Any, List
from datetime import datetime
from enum import Enum

from mix_server.utils.time_utils import ensure_utc, to_iso
from mix_server.utils.versioning import VERSION_FIELD


class ChatType(str, Enum):
    DIRECT = "direct"      # Exactly two participants, never mutated
    GROUP = "group"        # Named, joinable by invite code


class MessageType(str, Enum):
    TEXT = "text"
    IMAGE = "image"
    RECIPE = "recipe"
    SYSTEM = "system"      # Membership announcements


class SenderKind(str, Enum):
    USER = "user"
    SYSTEM = "system"


class Sender:
    """Author of a message: a user, or the system itself.

    Kept as a tagged value so that a user whose id happens to be "system"
    is never confused with system announcements.
    """

    SYSTEM_ID = 'system'
    SYSTEM_NAME = 'System'

    def __init__(self, kind: SenderKind, user_id: Optional[str] = None):
        if kind == SenderKind.USER and not user_id:
            raise ValueError('user senders need a user id')
        self.kind = SenderKind(kind)
        self.user_id = user_id if self.kind == SenderKind.USER else None

    @classmethod
    def user(cls, user_id: str) -> 'Sender':
        return cls(SenderKind.USER, user_id)

    @classmethod
    def system(cls) -> 'Sender':
        return cls(SenderKind.SYSTEM)

    @property
    def is_system(self) -> bool:
        return self.kind == SenderKind.SYSTEM

    @property
    def id(self) -> str:
        """Value stored in sender_id."""
        return self.SYSTEM_ID if self.is_system else self.user_id

    @classmethod
    def from_doc(cls, doc: Dict[str, Any]) -> 'Sender':
        kind = doc.get('sender_kind')
        if kind is None:
            # Documents written before sender_kind existed
            kind = SenderKind.SYSTEM if doc.get('sender_id') == cls.SYSTEM_ID else SenderKind.USER
        return cls(kind, doc.get('sender_id'))

    def __eq__(self, other):
        if not isinstance(other, Sender):
            return NotImplemented
        return (self.kind, self.user_id) == (other.kind, other.user_id)

    def __hash__(self):
        return hash((self.kind, self.user_id))

    def __repr__(self):
        return 'Sender.system()' if self.is_system else f'Sender.user({self.user_id!r})'


class GroupSettings:
    """Group-only chat settings."""

    def __init__(self, allow_invites: bool = True, is_public: bool = False, max_members: int = 100):
        self.allow_invites = allow_invites
        self.is_public = is_public
        self.max_members = max_members

    def to_dict(self) -> Dict[str, Any]:
        return {
            'allowInvites': self.allow_invites,
            'isPublic': self.is_public,
            'maxMembers': self.max_members
        }

    def to_db_doc(self) -> Dict[str, Any]:
        return {
            'allow_invites': self.allow_invites,
            'is_public': self.is_public,
            'max_members': self.max_members
        }

    @classmethod
    def from_doc(cls, doc: Optional[Dict[str, Any]], default_max_members: int = 100) -> 'GroupSettings':
        doc = doc or {}
        return cls(
            allow_invites=doc.get('allow_invites', True),
            is_public=doc.get('is_public', False),
            max_members=doc.get('max_members') or default_max_members
        )


class LastMessage:
    """Preview of the newest user message, cached on the chat."""

    def __init__(self, content: str, sender_id: str, timestamp: Optional[datetime] = None):
        self.content = content
        self.sender_id = sender_id
        self.timestamp = ensure_utc(timestamp)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'content': self.content,
            'senderId': self.sender_id,
            'timestamp': to_iso(self.timestamp)
        }

    def to_db_doc(self) -> Dict[str, Any]:
        return {
            'content': self.content,
            'sender_id': self.sender_id,
            'timestamp': self.timestamp
        }

    @classmethod
    def from_doc(cls, doc: Optional[Dict[str, Any]]) -> Optional['LastMessage']:
        if not doc:
            return None
        return cls(
            content=doc.get('content', ''),
            sender_id=doc.get('sender_id'),
            timestamp=doc.get('timestamp')
        )


class Chat:
    """Chat document structure."""

    def __init__(
        self,
        chat_id: Optional[str],
        chat_type: ChatType,
        participants: List[str],
        participant_names: Optional[Dict[str, str]] = None,
        participant_avatars: Optional[Dict[str, str]] = None,
        name: Optional[str] = None,
        description: Optional[str] = None,
        avatar: Optional[str] = None,
        created_by: Optional[str] = None,
        invite_code: Optional[str] = None,
        last_message: Optional[LastMessage] = None,
        settings: Optional[GroupSettings] = None,
        is_active: bool = True,
        created_at: Optional[datetime] = None,
        updated_at: Optional[datetime] = None,
        version: int = 0
    ):
        self.chat_id = chat_id
        self.chat_type = ChatType(chat_type)
        self.participants = list(participants)
        # Denormalized display fields, keyed by participant id
        self.participant_names = dict(participant_names or {})
        self.participant_avatars = dict(participant_avatars or {})
        self.name = name
        self.description = description
        self.avatar = avatar
        self.created_by = created_by
        self.invite_code = invite_code
        self.last_message = last_message
        self.settings = settings
        self.is_active = is_active
        self.created_at = ensure_utc(created_at)
        self.updated_at = ensure_utc(updated_at)
        self.version = version

    @property
    def is_group(self) -> bool:
        return self.chat_type == ChatType.GROUP

    def is_member(self, user_id: str) -> bool:
        return user_id in self.participants

    @property
    def max_members(self) -> Optional[int]:
        return self.settings.max_members if self.settings else None

    def to_dict(self) -> Dict[str, Any]:
        data = {
            'id': self.chat_id,
            'type': self.chat_type.value,
            'participants': list(self.participants),
            'participantNames': dict(self.participant_names),
            'participantAvatars': dict(self.participant_avatars),
            'lastMessage': self.last_message.to_dict() if self.last_message else None,
            'isActive': self.is_active,
            'createdAt': to_iso(self.created_at),
            'updatedAt': to_iso(self.updated_at)
        }
        if self.is_group:
            data.update({
                'name': self.name,
                'description': self.description,
                'avatar': self.avatar,
                'createdBy': self.created_by,
                'inviteCode': self.invite_code,
                'settings': self.settings.to_dict() if self.settings else None
            })
        return data

    def to_db_doc(self) -> Dict[str, Any]:
        doc = {
            'chat_type': self.chat_type.value,
            'participants': list(self.participants),
            'participant_names': dict(self.participant_names),
            'participant_avatars': dict(self.participant_avatars),
            'is_active': self.is_active,
            'created_at': self.created_at,
            'updated_at': self.updated_at
        }
        if self.chat_id:
            doc['id'] = self.chat_id
        if self.last_message:
            doc['last_message'] = self.last_message.to_db_doc()
        if self.is_group:
            doc.update({
                'name': self.name,
                'description': self.description,
                'avatar': self.avatar,
                'created_by': self.created_by,
                'invite_code': self.invite_code,
                'settings': self.settings.to_db_doc() if self.settings else GroupSettings().to_db_doc()
            })
        return doc

    @classmethod
    def from_doc(cls, doc: Dict[str, Any]) -> 'Chat':
        chat_type = ChatType(doc.get('chat_type', ChatType.DIRECT))
        return cls(
            chat_id=doc.get('id'),
            chat_type=chat_type,
            participants=doc.get('participants', []),
            participant_names=doc.get('participant_names', {}),
            participant_avatars=doc.get('participant_avatars', {}),
            name=doc.get('name'),
            description=doc.get('description'),
            avatar=doc.get('avatar'),
            created_by=doc.get('created_by'),
            invite_code=doc.get('invite_code'),
            last_message=LastMessage.from_doc(doc.get('last_message')),
            settings=GroupSettings.from_doc(doc.get('settings')) if chat_type == ChatType.GROUP else None,
            is_active=doc.get('is_active', True),
            created_at=doc.get('created_at'),
            updated_at=doc.get('updated_at'),
            version=doc.get(VERSION_FIELD, 0)
        )

    def __repr__(self):
        return f"Chat(id={self.chat_id!r}, type={self.chat_type.value}, participants={self.participants!r})"


class Message:
    """Message document structure."""

    def __init__(
        self,
        message_id: Optional[str],
        chat_id: str,
        sender: Sender,
        content: str,
        message_type: MessageType = MessageType.TEXT,
        sender_name: Optional[str] = None,
        sender_avatar: Optional[str] = None,
        timestamp: Optional[datetime] = None,
        reply_to: Optional[str] = None,
        reactions: Optional[Dict[str, List[str]]] = None,
        edited: bool = False,
        edited_at: Optional[datetime] = None
    ):
        self.message_id = message_id
        self.chat_id = chat_id
        self.sender = sender
        self.content = content
        self.message_type = MessageType(message_type)
        # Snapshot of the sender's identity at send time
        self.sender_name = sender_name
        self.sender_avatar = sender_avatar
        self.timestamp = ensure_utc(timestamp)
        self.reply_to = reply_to
        self.reactions = {emoji: list(users) for emoji, users in (reactions or {}).items()}
        self.edited = edited
        self.edited_at = ensure_utc(edited_at)

    @property
    def sender_id(self) -> str:
        return self.sender.id

    @property
    def is_system(self) -> bool:
        return self.sender.is_system

    def to_dict(self) -> Dict[str, Any]:
        data = {
            'id': self.message_id,
            'chatId': self.chat_id,
            'senderId': self.sender_id,
            'senderName': self.sender_name,
            'content': self.content,
            'type': self.message_type.value,
            'timestamp': to_iso(self.timestamp),
            'reactions': {emoji: list(users) for emoji, users in self.reactions.items()}
        }
        if not self.is_system:
            data['senderAvatar'] = self.sender_avatar
        if self.reply_to:
            data['replyTo'] = self.reply_to
        if self.edited:
            data['edited'] = True
            data['editedAt'] = to_iso(self.edited_at)
        return data

    def to_db_doc(self) -> Dict[str, Any]:
        doc = {
            'chat_id': self.chat_id,
            'sender_id': self.sender_id,
            'sender_kind': self.sender.kind.value,
            'sender_name': self.sender_name,
            'content': self.content,
            'message_type': self.message_type.value,
            'timestamp': self.timestamp,
            'reactions': {emoji: list(users) for emoji, users in self.reactions.items()}
        }
        if self.message_id:
            doc['id'] = self.message_id
        if not self.is_system:
            doc['sender_avatar'] = self.sender_avatar or ''
        if self.reply_to:
            doc['reply_to'] = self.reply_to
        if self.edited:
            doc['edited'] = True
            doc['edited_at'] = self.edited_at
        return doc

    @classmethod
    def from_doc(cls, doc: Dict[str, Any]) -> 'Message':
        return cls(
            message_id=doc.get('id'),
            chat_id=doc.get('chat_id'),
            sender=Sender.from_doc(doc),
            content=doc.get('content', ''),
            message_type=doc.get('message_type', MessageType.TEXT),
            sender_name=doc.get('sender_name'),
            sender_avatar=doc.get('sender_avatar'),
            timestamp=doc.get('timestamp'),
            reply_to=doc.get('reply_to'),
            reactions=doc.get('reactions', {}),
            edited=doc.get('edited', False),
            edited_at=doc.get('edited_at')
        )

    def __repr__(self):
        return f"Message(id={self.message_id!r}, chat={self.chat_id!r}, sender={self.sender!r})"
