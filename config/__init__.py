"""Layered YAML + environment configuration for the chat server.

    from config import config

    window = config.MESSAGE_WINDOW_SIZE
    if config.STORE_BACKEND == 'memory':
        ...

The environment comes from FLASK_ENV or APP_ENV (development by default).
"""
from .settings import config, Config

__all__ = ['config', 'Config']
