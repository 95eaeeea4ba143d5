"""WebSocket Chat Handler.

Live delivery of chat lists and message windows, plus sending and reacting
over the socket.

Each subscription a socket opens is a store listener; the handler keeps
them per socket id and releases all of them when the socket disconnects,
so no listener outlives its client.

Events (client -> server):
- chat:list:subscribe / chat:list:unsubscribe
- chat:messages:subscribe {chatId} / chat:messages:unsubscribe {chatId}
- chat:send {chatId, content, type?, replyTo?, tempId?}
- chat:react {messageId, emoji, remove?}

Events (server -> client):
- chat:list {chats}
- chat:messages {chatId, messages}
- chat:message:sent {messageId, tempId}
- chat:error {code, message, tempId?}
"""
import logging
import threading
from typing import Dict, Any, Callable, Optional

from flask import request
from flask_socketio import emit

from mix_server.exception.ConcurrentUpdateError import ConcurrentUpdateError
from mix_server.exception.InvalidOperationError import InvalidOperationError
from mix_server.exception.NotFoundError import NotFoundError
from mix_server.messaging.models import MessageType
from mix_server.messaging.service import get_messaging_service

logger = logging.getLogger(__name__)

LIST_KEY = 'list'


class ChatHandler:
    """Handler for WebSocket chat events."""

    # Event names
    EVENT_CHAT_LIST = 'chat:list'
    EVENT_MESSAGES = 'chat:messages'
    EVENT_MESSAGE_SENT = 'chat:message:sent'
    EVENT_ERROR = 'chat:error'

    def __init__(self, socketio, connected_users: Dict):
        """Initialize chat handler.

        Args:
            socketio: Flask-SocketIO instance
            connected_users: Dict mapping socket_id -> user info
        """
        self.socketio = socketio
        self.connected_users = connected_users
        # socket_id -> {subscription key -> unsubscribe}
        self.subscriptions: Dict[str, Dict[Any, Callable[[], None]]] = {}
        self._lock = threading.Lock()

    # =========================================================================
    # Subscription registry
    # =========================================================================

    def _track(self, socket_id: str, key, unsubscribe: Callable[[], None]):
        with self._lock:
            previous = self.subscriptions.setdefault(socket_id, {}).pop(key, None)
            self.subscriptions[socket_id][key] = unsubscribe
        if previous:
            previous()

    def _release(self, socket_id: str, key) -> bool:
        with self._lock:
            unsubscribe = self.subscriptions.get(socket_id, {}).pop(key, None)
        if unsubscribe is None:
            return False
        unsubscribe()
        return True

    def on_socket_disconnected(self, socket_id: str):
        """Release every listener held by a socket."""
        with self._lock:
            held = self.subscriptions.pop(socket_id, {})
        for unsubscribe in held.values():
            unsubscribe()
        if held:
            logger.debug(f"WS chat: released {len(held)} subscriptions for sid={socket_id}")

    # =========================================================================
    # Helpers
    # =========================================================================

    def _current_user(self) -> Optional[str]:
        user_info = self.connected_users.get(request.sid)
        return user_info['user_id'] if user_info else None

    def _emit_error(self, code: str, message: str, temp_id: str = None):
        payload = {'code': code, 'message': message}
        if temp_id:
            payload['tempId'] = temp_id
        emit(self.EVENT_ERROR, payload)

    def _emit_exception(self, e: Exception, temp_id: str = None):
        if isinstance(e, NotFoundError):
            self._emit_error('NOT_FOUND', str(e), temp_id)
        elif isinstance(e, ConcurrentUpdateError):
            self._emit_error('CONFLICT', str(e), temp_id)
        elif isinstance(e, (InvalidOperationError, ValueError)):
            self._emit_error('INVALID_DATA', str(e), temp_id)
        else:
            logger.exception(f"WS chat handler error: {e}")
            self._emit_error('INTERNAL_ERROR', 'Unexpected server error', temp_id)

    def _member_chat(self, chat_id: str, user_id: str):
        chat = get_messaging_service().get_chat_by_id(chat_id)
        if chat is None or not chat.is_member(user_id):
            raise NotFoundError('Chat not found or access denied', resource='chat', resource_id=chat_id)
        return chat

    def register_handlers(self):
        """Register all chat WebSocket event handlers."""

        # =====================================================================
        # Subscriptions
        # =====================================================================

        @self.socketio.on('chat:list:subscribe')
        def handle_list_subscribe(data=None):
            """Stream the caller's chat list; one chat:list event per change."""
            user_id = self._current_user()
            if not user_id:
                self._emit_error('UNAUTHORIZED', 'Not authenticated')
                return
            socket_id = request.sid

            def push(chats):
                self.socketio.emit(
                    self.EVENT_CHAT_LIST,
                    {'chats': [c.to_dict() for c in chats]},
                    to=socket_id
                )

            unsubscribe = get_messaging_service().subscribe_to_user_chats(user_id, push)
            self._track(socket_id, LIST_KEY, unsubscribe)
            logger.debug(f"WS chat: list subscription for user={user_id}, sid={socket_id}")
            return {'success': True}

        @self.socketio.on('chat:list:unsubscribe')
        def handle_list_unsubscribe(data=None):
            return {'success': self._release(request.sid, LIST_KEY)}

        @self.socketio.on('chat:messages:subscribe')
        def handle_messages_subscribe(data):
            """Stream a chat's recent message window.

            Data:
                chatId: str - Chat the caller belongs to
            """
            user_id = self._current_user()
            if not user_id:
                self._emit_error('UNAUTHORIZED', 'Not authenticated')
                return
            chat_id = (data or {}).get('chatId')
            if not chat_id:
                self._emit_error('INVALID_DATA', 'chatId is required')
                return
            socket_id = request.sid

            try:
                self._member_chat(chat_id, user_id)

                def push(messages):
                    self.socketio.emit(
                        self.EVENT_MESSAGES,
                        {'chatId': chat_id, 'messages': [m.to_dict() for m in messages]},
                        to=socket_id
                    )

                unsubscribe = get_messaging_service().subscribe_to_messages(chat_id, push)
            except Exception as e:
                self._emit_exception(e)
                return
            self._track(socket_id, ('messages', chat_id), unsubscribe)
            return {'success': True}

        @self.socketio.on('chat:messages:unsubscribe')
        def handle_messages_unsubscribe(data):
            chat_id = (data or {}).get('chatId')
            return {'success': self._release(request.sid, ('messages', chat_id))}

        # =====================================================================
        # Message Events
        # =====================================================================

        @self.socketio.on('chat:send')
        def handle_send_message(data):
            """Handle sending a new message.

            Data:
                chatId: str - Target chat
                content: str - Message content
                type: str - text, image or recipe
                replyTo: str - Optional message ID being replied to
                tempId: str - Client-side temporary ID for optimistic updates

            Response Events:
                - chat:message:sent (to sender) - Confirmation with server message id
                - chat:error (on failure)
            """
            user_id = self._current_user()
            data = data or {}
            temp_id = data.get('tempId')
            if not user_id:
                self._emit_error('UNAUTHORIZED', 'Not authenticated', temp_id)
                return

            chat_id = data.get('chatId')
            content = data.get('content')
            if not chat_id or not content:
                self._emit_error('INVALID_DATA', 'chatId and content are required', temp_id)
                return

            service = get_messaging_service()
            try:
                self._member_chat(chat_id, user_id)
                message_id = service.send_message(
                    chat_id,
                    user_id,
                    content,
                    service.get_profile(user_id),
                    message_type=MessageType(data.get('type') or MessageType.TEXT.value),
                    reply_to=data.get('replyTo')
                )
            except Exception as e:
                self._emit_exception(e, temp_id)
                return

            emit(self.EVENT_MESSAGE_SENT, {'messageId': message_id, 'tempId': temp_id})

        @self.socketio.on('chat:react')
        def handle_react(data):
            """Add or remove a reaction.

            Data:
                messageId: str
                emoji: str
                remove: bool - Remove instead of add
            """
            user_id = self._current_user()
            if not user_id:
                self._emit_error('UNAUTHORIZED', 'Not authenticated')
                return
            data = data or {}
            message_id = data.get('messageId')
            emoji = data.get('emoji')
            if not message_id or not emoji:
                self._emit_error('INVALID_DATA', 'messageId and emoji are required')
                return

            service = get_messaging_service()
            try:
                message = service.get_message(message_id)
                if message is None:
                    raise NotFoundError('Message not found', resource='message', resource_id=message_id)
                self._member_chat(message.chat_id, user_id)
                if data.get('remove'):
                    service.remove_reaction(message_id, emoji, user_id)
                else:
                    service.add_reaction(message_id, emoji, user_id)
            except Exception as e:
                self._emit_exception(e)
                return
            return {'success': True}


def init_chat_handler(socketio, connected_users: Dict) -> ChatHandler:
    """Initialize chat handler with socketio instance."""
    handler = ChatHandler(socketio, connected_users)
    handler.register_handlers()
    logger.info("Chat handler initialized")
    return handler
