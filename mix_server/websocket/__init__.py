"""WebSocket module for real-time communication.

This module provides:
- Centralized WebSocket Hub (connection auth and bookkeeping)
- Chat handler for live chat lists, message windows, sends and reactions
"""

from mix_server.websocket.hub import WebSocketHub, init_websocket_hub

__all__ = ['WebSocketHub', 'init_websocket_hub']
