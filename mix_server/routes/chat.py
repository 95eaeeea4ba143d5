"""Chat REST API routes.

REST endpoints cover one-shot reads and commands. Live chat lists and
message windows are pushed over Socket.IO (see mix_server.websocket).

REST API Endpoints:
- GET    /api/chat/chats                          - Active chats of the caller
- GET    /api/chat/chats/{id}                     - Chat details
- POST   /api/chat/chats/direct                   - Open (or reuse) a direct chat
- POST   /api/chat/chats/group                    - Create a group
- POST   /api/chat/chats/{id}/leave               - Leave a group
- GET    /api/chat/chats/{id}/messages            - Recent message window
- POST   /api/chat/chats/{id}/messages            - Send a message
- PATCH  /api/chat/messages/{id}                  - Edit own message
- POST   /api/chat/messages/{id}/reactions        - React
- DELETE /api/chat/messages/{id}/reactions/{emoji} - Remove reaction
- GET    /api/chat/invites/{code}                 - Preview an invite
- POST   /api/chat/invites/{code}/join            - Join by invite code
"""
import logging

from flask import Blueprint, request

from mix_server.exception.NotFoundError import NotFoundError
from mix_server.messaging.models import Chat, MessageType
from mix_server.messaging.service import get_messaging_service, MessagingService
from mix_server.utils.decorators import handle_errors, require_auth, validate_json, protected_route
from mix_server.utils.helpers import respond_success, get_json_body

logger = logging.getLogger(__name__)

# Blueprint
chat_bp = Blueprint('chat', __name__, url_prefix='/api/chat')


# =============================================================================
# Helper Functions
# =============================================================================

def _member_chat(service: MessagingService, chat_id: str, user_id: str) -> Chat:
    """Load a chat the caller belongs to; strangers get the same 404 as a missing chat."""
    chat = service.get_chat_by_id(chat_id)
    if chat is None or not chat.is_member(user_id):
        raise NotFoundError(f"Chat {chat_id} not found", resource='chat', resource_id=chat_id)
    return chat


def _member_message(service: MessagingService, message_id: str, user_id: str):
    message = service.get_message(message_id)
    if message is None:
        raise NotFoundError(f"Message {message_id} not found", resource='message', resource_id=message_id)
    _member_chat(service, message.chat_id, user_id)
    return message


def _normalize_code(code: str) -> str:
    return (code or '').strip().upper()


# =============================================================================
# Chat Endpoints
# =============================================================================

@chat_bp.route('/chats', methods=['GET'])
@handle_errors
@require_auth
def list_chats(auth_payload):
    """List the caller's active chats, most recently updated first.

    Response:
        { "chats": [...], "count": 3 }
    """
    user_id = auth_payload.get('user_id')
    chats = get_messaging_service().get_user_chats(user_id)
    return respond_success({
        'chats': [c.to_dict() for c in chats],
        'count': len(chats)
    })


@chat_bp.route('/chats/<chat_id>', methods=['GET'])
@handle_errors
@require_auth
def get_chat(chat_id, auth_payload):
    user_id = auth_payload.get('user_id')
    chat = _member_chat(get_messaging_service(), chat_id, user_id)
    return respond_success({'chat': chat.to_dict()})


@chat_bp.route('/chats/direct', methods=['POST'])
@handle_errors
@require_auth
@validate_json('user_id')
def create_direct_chat(auth_payload):
    """Open the direct chat with another user, reusing an existing one.

    Request Body:
        { "user_id": "other-user" }
    """
    user_id = auth_payload.get('user_id')
    other_id = str(get_json_body(request)['user_id'])
    service = get_messaging_service()

    existing = service.find_direct_chat(user_id, other_id)
    chat_id = service.create_direct_chat(
        user_id, other_id,
        service.get_profile(user_id), service.get_profile(other_id)
    )
    logger.info(f"POST /api/chat/chats/direct | user_id={user_id}, other={other_id}, chat_id={chat_id}")
    return respond_success({
        'chat_id': chat_id,
        'created': existing is None
    }, status=200 if existing else 201)


@chat_bp.route('/chats/group', methods=['POST'])
@handle_errors
@require_auth
@validate_json('name')
def create_group_chat(auth_payload):
    """Create a group chat owned by the caller.

    Request Body:
        { "name": "Mixology Club", "description": "...", "participant_ids": [...] }
    """
    user_id = auth_payload.get('user_id')
    data = get_json_body(request)
    participant_ids = data.get('participant_ids') or []
    if not isinstance(participant_ids, list):
        raise ValueError('participant_ids must be a list')

    service = get_messaging_service()
    chat_id = service.create_group_chat(
        user_id,
        str(data['name']),
        data.get('description'),
        [str(p) for p in participant_ids],
        service.get_profile(user_id)
    )
    chat = service.get_chat_by_id(chat_id)
    return respond_success({
        'chat_id': chat_id,
        'invite_code': chat.invite_code if chat else None
    }, status=201)


@chat_bp.route('/chats/<chat_id>/leave', methods=['POST'])
@handle_errors
@require_auth
def leave_group(chat_id, auth_payload):
    user_id = auth_payload.get('user_id')
    service = get_messaging_service()
    _member_chat(service, chat_id, user_id)
    service.leave_group(chat_id, user_id, service.get_profile(user_id))
    return respond_success({'chat_id': chat_id, 'left': True})


# =============================================================================
# Message Endpoints
# =============================================================================

@chat_bp.route('/chats/<chat_id>/messages', methods=['GET'])
@handle_errors
@require_auth
def get_messages(chat_id, auth_payload):
    """Return the most recent messages of a chat, oldest first."""
    user_id = auth_payload.get('user_id')
    service = get_messaging_service()
    _member_chat(service, chat_id, user_id)
    messages = service.get_recent_messages(chat_id)
    return respond_success({
        'messages': [m.to_dict() for m in messages],
        'count': len(messages)
    })


@chat_bp.route('/chats/<chat_id>/messages', methods=['POST'])
@handle_errors
@require_auth
@validate_json('content')
def send_message(chat_id, auth_payload):
    """Send a message to a chat the caller belongs to.

    Request Body:
        { "content": "...", "type": "text|image|recipe", "reply_to": "message-id" }
    """
    user_id = auth_payload.get('user_id')
    data = get_json_body(request)
    service = get_messaging_service()
    _member_chat(service, chat_id, user_id)

    message_id = service.send_message(
        chat_id,
        user_id,
        str(data['content']),
        service.get_profile(user_id),
        message_type=MessageType(data.get('type') or MessageType.TEXT.value),
        reply_to=data.get('reply_to')
    )
    return respond_success({'message_id': message_id}, status=201)


@chat_bp.route('/messages/<message_id>', methods=['PATCH'])
@handle_errors
@require_auth
@validate_json('content')
def edit_message(message_id, auth_payload):
    user_id = auth_payload.get('user_id')
    service = get_messaging_service()
    _member_message(service, message_id, user_id)
    message = service.edit_message(message_id, user_id, str(get_json_body(request)['content']))
    return respond_success({'message': message.to_dict()})


@chat_bp.route('/messages/<message_id>/reactions', methods=['POST'])
@handle_errors
@require_auth
@validate_json('emoji')
def add_reaction(message_id, auth_payload):
    user_id = auth_payload.get('user_id')
    service = get_messaging_service()
    _member_message(service, message_id, user_id)
    service.add_reaction(message_id, str(get_json_body(request)['emoji']), user_id)
    return respond_success({'message': service.get_message(message_id).to_dict()})


@chat_bp.route('/messages/<message_id>/reactions/<emoji>', methods=['DELETE'])
@handle_errors
@require_auth
def remove_reaction(message_id, emoji, auth_payload):
    user_id = auth_payload.get('user_id')
    service = get_messaging_service()
    _member_message(service, message_id, user_id)
    service.remove_reaction(message_id, emoji, user_id)
    return respond_success({'message': service.get_message(message_id).to_dict()})


# =============================================================================
# Invite Endpoints
# =============================================================================

@chat_bp.route('/invites/<code>', methods=['GET'])
@protected_route
def preview_invite(code, auth_payload):
    """Describe the group behind an invite code without joining it.

    Response:
        { "chat": {"id", "name", "description", "member_count"}, "already_member": false }
    """
    user_id = auth_payload.get('user_id')
    preview = get_messaging_service().preview_invite(_normalize_code(code), user_id)
    if preview is None:
        raise NotFoundError('Invalid or expired invite code', resource='invite', resource_id=code)
    chat = preview.chat
    return respond_success({
        'chat': {
            'id': chat.chat_id,
            'name': chat.name,
            'description': chat.description,
            'avatar': chat.avatar,
            'member_count': len(chat.participants)
        },
        'already_member': preview.already_member
    })


@chat_bp.route('/invites/<code>/join', methods=['POST'])
@protected_route
def join_by_invite(code, auth_payload):
    """Join the group behind an invite code.

    Invalid codes answer 404 and full groups 409; a caller who already
    belongs to the group gets its id back with already_member set.
    """
    user_id = auth_payload.get('user_id')
    code = _normalize_code(code)
    service = get_messaging_service()

    preview = service.preview_invite(code, user_id)
    if preview is None:
        raise NotFoundError('Invalid or expired invite code', resource='invite', resource_id=code)
    chat_id = service.join_group_by_invite_code(code, user_id, service.get_profile(user_id))
    return respond_success({
        'chat_id': chat_id,
        'already_member': preview.already_member
    })
