"""Centralized WebSocket Hub.

Authenticates Socket.IO connections and wires in the chat event handlers.
"""
import logging
from typing import Dict, Any, Optional

from flask import Flask
from flask_socketio import SocketIO, emit, join_room

from mix_server.exception.UnauthorizedError import UnauthorizedError
from mix_server.security.authentication import AuthSecurity, extract_bearer_token
from mix_server.utils.time_utils import utc_now

logger = logging.getLogger(__name__)


class WebSocketHub:
    """Centralized WebSocket Hub for real-time communication."""

    def __init__(self, socketio: SocketIO = None):
        self.socketio = socketio
        self.connected_users: Dict[str, Dict[str, Any]] = {}
        self._initialized = False
        self._chat_handler = None

    def init_app(self, app: Flask, socketio: SocketIO):
        """Initialize the WebSocket hub."""
        logger.debug(f"WS_HUB: init app={app.name}, mode={getattr(socketio, 'async_mode', '?')}")

        self.socketio = socketio
        self.app = app

        self._register_handlers()
        self._init_chat_handler()

        self._initialized = True
        logger.debug("WS_HUB: initialized")

    def _init_chat_handler(self):
        from mix_server.websocket.handlers.chat_handler import init_chat_handler
        self._chat_handler = init_chat_handler(self.socketio, self.connected_users)

    def _register_handlers(self):
        """Register WebSocket event handlers."""

        @self.socketio.on_error_default
        def default_error_handler(e):
            logger.error(f"WS error: {e}")

        # =====================================================================
        # Connection Events
        # =====================================================================

        @self.socketio.on('connect')
        def handle_connect(auth=None):
            """Handle new WebSocket connection."""
            from flask import request

            socket_id = getattr(request, 'sid', None)
            logger.debug(f"WS connect: sid={socket_id}, ip={request.remote_addr}")

            # Get token from auth data, headers or query string
            token = None
            if auth and isinstance(auth, dict):
                token = auth.get('token')

            if not token:
                token = extract_bearer_token(request.headers.get('Authorization'))

            if not token:
                token = request.args.get('token', '')

            payload = self._authenticate(token)
            if not payload:
                logger.warning(f"WS auth failed: sid={socket_id}")
                return False

            user_id = payload.get('user_id')
            logger.info(f"WS connected: user={user_id}, sid={socket_id}")

            self.connected_users[socket_id] = {
                'user_id': user_id,
                'connected_at': utc_now().isoformat()
            }

            join_room(user_id)

            emit('connected', {
                'message': 'Connected',
                'user_id': user_id,
                'socket_id': socket_id
            })
            return True

        @self.socketio.on('disconnect')
        def handle_disconnect(*args):
            """Handle WebSocket disconnection."""
            from flask import request

            socket_id = request.sid
            self.connected_users.pop(socket_id, None)

            if self._chat_handler:
                self._chat_handler.on_socket_disconnected(socket_id)

        @self.socketio.on('ping')
        def handle_ping(data=None):
            emit('pong', {'timestamp': utc_now().isoformat()})

    def _authenticate(self, token: str) -> Optional[Dict]:
        """Authenticate WebSocket connection."""
        if not token:
            return None
        try:
            return AuthSecurity.decode_token(token)
        except UnauthorizedError as e:
            logger.debug(f"WS auth error: {e}")
            return None


def init_websocket_hub(app: Flask, socketio: SocketIO) -> WebSocketHub:
    """Create and initialize a hub for one app/socketio pair."""
    hub = WebSocketHub()
    hub.init_app(app, socketio)
    return hub
