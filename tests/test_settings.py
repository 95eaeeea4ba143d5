"""Layered configuration: base YAML, environment YAML, local YAML, env vars."""
import pytest

from config.settings import Config


def write(path, text):
    path.write_text(text)
    return path


@pytest.fixture
def config_dir(tmp_path, monkeypatch):
    for var in ('FLASK_ENV', 'APP_ENV', 'STORE_BACKEND', 'JWT_SECRET', 'CORS_ORIGINS',
                'INVITE_CODE_LENGTH', 'MESSAGE_WINDOW_SIZE', 'LOG_LEVEL', 'LOG_DEBUG'):
        monkeypatch.delenv(var, raising=False)
    write(tmp_path / 'config.base.yaml', """
database:
  backend: mongo
chat:
  invite_code_length: 8
  message_window_size: 50
cors:
  origins: "*"
""")
    monkeypatch.setattr(Config, 'config_dir', tmp_path)
    yield tmp_path
    monkeypatch.undo()
    Config.reload()


class TestLayering:

    def test_base_values(self, config_dir):
        cfg = Config.reload()
        assert cfg.ENV == 'development'
        assert cfg.STORE_BACKEND == 'mongo'
        assert cfg.INVITE_CODE_LENGTH == 8
        assert cfg.MESSAGE_WINDOW_SIZE == 50
        assert cfg.GROUP_MAX_MEMBERS == 100
        assert cfg.LAST_MESSAGE_PREVIEW_LENGTH == 100

    def test_environment_file_overrides_base(self, config_dir, monkeypatch):
        write(config_dir / 'config.prod.yaml', "chat:\n  message_window_size: 20\n")
        monkeypatch.setenv('APP_ENV', 'prod')
        cfg = Config.reload()
        assert cfg.IS_PROD
        assert cfg.MESSAGE_WINDOW_SIZE == 20
        assert cfg.INVITE_CODE_LENGTH == 8

    def test_local_file_overrides_environment_file(self, config_dir):
        write(config_dir / 'config.dev.yaml', "database:\n  backend: memory\n")
        write(config_dir / 'config.local.yaml', "database:\n  backend: mongo\n")
        assert Config.reload().STORE_BACKEND == 'mongo'

    def test_env_vars_win(self, config_dir, monkeypatch):
        write(config_dir / 'config.local.yaml', "chat:\n  invite_code_length: 6\n")
        monkeypatch.setenv('INVITE_CODE_LENGTH', '12')
        monkeypatch.setenv('STORE_BACKEND', 'Memory')
        cfg = Config.reload()
        assert cfg.INVITE_CODE_LENGTH == 12
        assert cfg.STORE_BACKEND == 'memory'

    def test_log_level(self, config_dir, monkeypatch):
        monkeypatch.setenv('LOG_DEBUG', 'true')
        assert Config.reload().LOG_LEVEL == 'DEBUG'


class TestValidation:

    def test_development_passes(self, config_dir):
        Config.reload().validate_required()

    def test_production_requires_secret_and_origins(self, config_dir, monkeypatch):
        monkeypatch.setenv('FLASK_ENV', 'production')
        with pytest.raises(RuntimeError) as exc:
            Config.reload().validate_required()
        assert 'JWT_SECRET' in str(exc.value)
        assert 'CORS_ORIGINS' in str(exc.value)

    def test_production_ok(self, config_dir, monkeypatch):
        monkeypatch.setenv('FLASK_ENV', 'production')
        monkeypatch.setenv('JWT_SECRET', 's3cret')
        monkeypatch.setenv('CORS_ORIGINS', 'https://mix.example')
        cfg = Config.reload()
        cfg.validate_required()
        assert cfg.CORS_ORIGINS_LIST == ['https://mix.example']

    def test_unknown_backend(self, config_dir, monkeypatch):
        monkeypatch.setenv('STORE_BACKEND', 'redis')
        with pytest.raises(RuntimeError):
            Config.reload().validate_required()
