from .routes.chat import chat_bp

__all__ = ['chat_bp']
