"""Application configuration settings.

This module centralizes all configuration values loaded from:
1. config.base.yaml (shared defaults)
2. config.{env}.yaml (environment-specific: dev, staging, prod)
3. config.local.yaml (local overrides, git-ignored)
4. Environment variables (highest priority)

Default environment is 'development' (DEV).

Usage:
    from config.settings import config

    window = config.MESSAGE_WINDOW_SIZE
    backend = config.STORE_BACKEND

    # Check current environment
    env = config.ENV  # 'development', 'staging', or 'production'
"""
import os
from pathlib import Path
from typing import Optional, Any, Dict
import yaml


# Environment name mappings
ENV_ALIASES = {
    'dev': 'development',
    'development': 'development',
    'staging': 'staging',
    'stage': 'staging',
    'prod': 'production',
    'production': 'production',
}

ENV_CONFIG_FILES = {
    'development': 'config.dev.yaml',
    'staging': 'config.staging.yaml',
    'production': 'config.prod.yaml',
}

# Default environment
DEFAULT_ENV = 'development'

TRUTHY = ('1', 'true', 'yes')


def _env_bool(name: str) -> Optional[bool]:
    value = os.getenv(name, '').lower()
    if not value:
        return None
    return value in TRUTHY


def _env_int(name: str) -> Optional[int]:
    value = os.getenv(name)
    return int(value) if value else None


class Config:
    """Centralized application configuration.

    Priority (highest to lowest):
    1. Environment variables
    2. config.local.yaml (for local development overrides)
    3. config.{env}.yaml (environment-specific: dev, staging, prod)
    4. config.base.yaml (shared defaults)

    Environment is determined by FLASK_ENV, then APP_ENV, then 'development'.
    """

    _config_data: Dict[str, Any] = {}
    _loaded: bool = False
    _current_env: str = DEFAULT_ENV
    config_dir: Path = Path(__file__).parent

    def __init__(self):
        if not Config._loaded:
            self._load_config()

    @classmethod
    def _get_environment(cls) -> str:
        """Determine current environment from env vars or default to dev."""
        env = os.getenv('FLASK_ENV') or os.getenv('APP_ENV') or DEFAULT_ENV
        env = env.lower().strip()
        return ENV_ALIASES.get(env, DEFAULT_ENV)

    def _read_yaml(self, filename: str) -> Dict[str, Any]:
        path = self.config_dir / filename
        if not path.exists():
            return {}
        with open(path, 'r') as f:
            return yaml.safe_load(f) or {}

    def _load_config(self):
        """Load configuration from YAML files based on environment."""
        Config._current_env = self._get_environment()
        data = self._read_yaml('config.base.yaml')
        env_file = ENV_CONFIG_FILES.get(Config._current_env, 'config.dev.yaml')
        for filename in (env_file, 'config.local.yaml'):
            data = self._deep_merge(data, self._read_yaml(filename))
        Config._config_data = data
        Config._loaded = True

    def _deep_merge(self, base: dict, override: dict) -> dict:
        """Deep merge two dictionaries."""
        result = base.copy()
        for key, value in override.items():
            if key in result and isinstance(result[key], dict) and isinstance(value, dict):
                result[key] = self._deep_merge(result[key], value)
            else:
                result[key] = value
        return result

    def _get_yaml_value(self, *keys, default=None) -> Any:
        """Get a nested value from YAML config."""
        value = Config._config_data
        for key in keys:
            if isinstance(value, dict):
                value = value.get(key)
            else:
                return default
            if value is None:
                return default
        return value

    @classmethod
    def reload(cls):
        """Reload configuration (useful for testing)."""
        cls._loaded = False
        cls._config_data = {}
        instance = cls()
        return instance

    # ==========================================================================
    # Environment Info
    # ==========================================================================

    @property
    def CURRENT_ENV(self) -> str:
        return Config._current_env

    @property
    def IS_DEV(self) -> bool:
        return Config._current_env == 'development'

    @property
    def IS_STAGING(self) -> bool:
        return Config._current_env == 'staging'

    @property
    def IS_PROD(self) -> bool:
        return Config._current_env == 'production'

    @property
    def ENV(self) -> str:
        """Application environment (development, staging, production)."""
        return Config._current_env

    # ==========================================================================
    # Application Settings
    # ==========================================================================

    @property
    def DEBUG(self) -> bool:
        """Flask debug mode."""
        env_val = _env_bool('FLASK_DEBUG')
        if env_val is not None:
            return env_val
        return bool(self._get_yaml_value('app', 'debug', default=False))

    @property
    def PORT(self) -> int:
        env_val = _env_int('PORT')
        if env_val is not None:
            return env_val
        return self._get_yaml_value('app', 'port', default=5000)

    @property
    def APP_NAME(self) -> str:
        return os.getenv('APP_NAME') or self._get_yaml_value('app', 'name', default='Mix Chat API')

    @property
    def APP_VERSION(self) -> str:
        return self._get_yaml_value('app', 'version', default='1.0.0')

    # ==========================================================================
    # Security Settings
    # ==========================================================================

    @property
    def JWT_SECRET(self) -> Optional[str]:
        """JWT secret key for token validation. Required in production."""
        return os.getenv('JWT_SECRET') or self._get_yaml_value('security', 'jwt', 'secret')

    @property
    def JWT_ALGORITHM(self) -> str:
        return os.getenv('JWT_ALGORITHM') or self._get_yaml_value('security', 'jwt', 'algorithm', default='HS256')

    @property
    def ACCESS_TOKEN_EXPIRE_MINUTES(self) -> int:
        env_val = _env_int('ACCESS_TOKEN_MINUTES')
        if env_val is not None:
            return env_val
        return self._get_yaml_value('security', 'jwt', 'access_token_expire_minutes', default=10080)

    # ==========================================================================
    # Database Settings
    # ==========================================================================

    @property
    def STORE_BACKEND(self) -> str:
        """Document store backend: 'mongo' or 'memory'."""
        backend = os.getenv('STORE_BACKEND') or self._get_yaml_value('database', 'backend', default='mongo')
        return backend.lower().strip()

    @property
    def MONGO_URI(self) -> str:
        return os.getenv('MONGO_URI') or self._get_yaml_value('database', 'mongo_uri', default='mongodb://localhost:27017')

    @property
    def CHAT_DB_NAME(self) -> str:
        return os.getenv('CHAT_DB_NAME') or self._get_yaml_value('database', 'databases', 'chat', default='chat_db')

    @property
    def CHATS_COLLECTION(self) -> str:
        return self._get_yaml_value('database', 'collections', 'chats', default='chats')

    @property
    def MESSAGES_COLLECTION(self) -> str:
        return self._get_yaml_value('database', 'collections', 'messages', default='messages')

    @property
    def PROFILES_COLLECTION(self) -> str:
        return self._get_yaml_value('database', 'collections', 'profiles', default='user_profiles')

    @property
    def CHANGE_STREAM_POLL_SECONDS(self) -> float:
        """How long a change-stream listener blocks per poll before re-checking for shutdown."""
        env_val = os.getenv('CHANGE_STREAM_POLL_SECONDS')
        if env_val:
            return float(env_val)
        return float(self._get_yaml_value('database', 'change_stream_poll_seconds', default=1.0))

    # ==========================================================================
    # CORS Settings
    # ==========================================================================

    @property
    def CORS_ORIGINS(self) -> str:
        return os.getenv('CORS_ORIGINS') or self._get_yaml_value('cors', 'origins', default='*')

    @property
    def CORS_ORIGINS_LIST(self) -> list:
        origins = self.CORS_ORIGINS
        if origins == '*':
            return ['*']
        return [o.strip() for o in origins.split(',') if o.strip()]

    # ==========================================================================
    # Logging Settings
    # ==========================================================================

    @property
    def LOG_LEVEL(self) -> str:
        env_val = os.getenv('LOG_LEVEL')
        if env_val:
            return env_val.upper()
        if _env_bool('LOG_DEBUG'):
            return 'DEBUG'
        return str(self._get_yaml_value('logging', 'level', default='INFO')).upper()

    @property
    def LOG_DATE_FORMAT(self) -> str:
        return self._get_yaml_value('logging', 'date_format', default='%H:%M:%S')

    @property
    def LOG_FORMAT(self) -> str:
        """Build log format string based on config options."""
        pattern = os.getenv('LOG_PATTERN') or self._get_yaml_value('logging', 'pattern')
        if pattern:
            return pattern

        parts = []
        if self._get_yaml_value('logging', 'include_datetime', default=False):
            parts.append('%(asctime)s')
        if self._get_yaml_value('logging', 'include_name', default=False):
            parts.append('%(name)s')
        if self._get_yaml_value('logging', 'include_level', default=True):
            parts.append('%(levelname)s')
        parts.append('%(message)s')
        return ' - '.join(parts)

    # ==========================================================================
    # Chat Settings
    # ==========================================================================

    @property
    def INVITE_CODE_LENGTH(self) -> int:
        env_val = _env_int('INVITE_CODE_LENGTH')
        if env_val is not None:
            return env_val
        return self._get_yaml_value('chat', 'invite_code_length', default=8)

    @property
    def INVITE_CODE_ALPHABET(self) -> str:
        return os.getenv('INVITE_CODE_ALPHABET') or self._get_yaml_value(
            'chat', 'invite_code_alphabet', default='ABCDEFGHIJKLMNOPQRSTUVWXYZ0123456789'
        )

    @property
    def MESSAGE_WINDOW_SIZE(self) -> int:
        """Most recent messages pushed to a message subscription."""
        env_val = _env_int('MESSAGE_WINDOW_SIZE')
        if env_val is not None:
            return env_val
        return self._get_yaml_value('chat', 'message_window_size', default=50)

    @property
    def LAST_MESSAGE_PREVIEW_LENGTH(self) -> int:
        return self._get_yaml_value('chat', 'last_message_preview_length', default=100)

    @property
    def GROUP_MAX_MEMBERS(self) -> int:
        env_val = _env_int('GROUP_MAX_MEMBERS')
        if env_val is not None:
            return env_val
        return self._get_yaml_value('chat', 'group_max_members', default=100)

    # ==========================================================================
    # Validation Methods
    # ==========================================================================

    def validate_required(self) -> None:
        """Validate that required configuration values are set.

        Raises RuntimeError if required values are missing in production.
        """
        errors = []

        if self.IS_PROD:
            if not self.JWT_SECRET:
                errors.append('JWT_SECRET environment variable is required in production')
            if self.STORE_BACKEND != 'mongo':
                errors.append('STORE_BACKEND must be "mongo" in production')
            if self.CORS_ORIGINS == '*':
                errors.append('CORS_ORIGINS should not be "*" in production')

        if self.STORE_BACKEND not in ('mongo', 'memory'):
            errors.append(f'Unknown STORE_BACKEND "{self.STORE_BACKEND}"')

        if errors:
            raise RuntimeError('Configuration errors:\n' + '\n'.join(f'  - {e}' for e in errors))

    def to_dict(self) -> Dict[str, Any]:
        """Export current configuration as dictionary (for debugging)."""
        return {
            'environment': {
                'current': self.CURRENT_ENV,
                'is_dev': self.IS_DEV,
                'is_prod': self.IS_PROD,
            },
            'app': {
                'debug': self.DEBUG,
                'port': self.PORT,
                'name': self.APP_NAME,
                'version': self.APP_VERSION,
            },
            'security': {
                'jwt_algorithm': self.JWT_ALGORITHM,
                'jwt_secret_set': bool(self.JWT_SECRET),
            },
            'database': {
                'backend': self.STORE_BACKEND,
                'mongo_uri': '***' if self.MONGO_URI else None,
                'chat_db': self.CHAT_DB_NAME,
            },
            'logging': {
                'level': self.LOG_LEVEL,
            },
            'chat': {
                'invite_code_length': self.INVITE_CODE_LENGTH,
                'message_window_size': self.MESSAGE_WINDOW_SIZE,
                'last_message_preview_length': self.LAST_MESSAGE_PREVIEW_LENGTH,
                'group_max_members': self.GROUP_MAX_MEMBERS,
            },
        }


# Singleton config instance
config = Config()
