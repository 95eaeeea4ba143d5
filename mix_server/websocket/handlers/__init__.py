"""WebSocket event handlers package."""

from mix_server.websocket.handlers.chat_handler import ChatHandler, init_chat_handler

__all__ = ['ChatHandler', 'init_chat_handler']
