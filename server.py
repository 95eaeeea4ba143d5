import argparse
import logging
from typing import Optional

from flask import Flask
from flask_cors import CORS
from flask_socketio import SocketIO

from config import config
from mix_server.messaging.service import MessagingService, configure_messaging_service
from mix_server.routes.chat import chat_bp
from mix_server.security.authentication import AuthSecurity
from mix_server.utils.helpers import respond_success
from mix_server.websocket.hub import init_websocket_hub

logger = logging.getLogger(__name__)


def configure_logging():
    """Apply LOG_LEVEL / LOG_FORMAT from config to the root logger."""
    logging.basicConfig(
        level=getattr(logging, config.LOG_LEVEL, logging.INFO),
        format=config.LOG_FORMAT,
        datefmt=config.LOG_DATE_FORMAT
    )


def configure_auth():
    """Configure AuthSecurity from config (JWT_SECRET, JWT_ALGORITHM)."""
    secret = config.JWT_SECRET
    if not secret:
        raise RuntimeError('JWT_SECRET is required')
    AuthSecurity.configure(
        secret_key=secret,
        algorithm=config.JWT_ALGORITHM,
        access_token_expire_minutes=config.ACCESS_TOKEN_EXPIRE_MINUTES
    )


def create_app(service: Optional[MessagingService] = None, async_mode: Optional[str] = None):
    """Application factory used by server.py and tests.

    Registers the chat blueprint, configures CORS and attaches a fresh
    Socket.IO server. Returns (app, socketio). Auth is configured
    separately via configure_auth().
    """
    app = Flask(__name__)
    CORS(app, origins=config.CORS_ORIGINS_LIST)
    app.register_blueprint(chat_bp)

    if service is not None:
        configure_messaging_service(service)

    socketio = SocketIO(
        app,
        cors_allowed_origins=config.CORS_ORIGINS_LIST if config.CORS_ORIGINS != '*' else '*',
        async_mode=async_mode or 'threading'
    )
    app.extensions['websocket_hub'] = init_websocket_hub(app, socketio)

    @app.route('/health')
    def health():
        return respond_success({
            'app': config.APP_NAME,
            'version': config.APP_VERSION,
            'backend': config.STORE_BACKEND
        })

    return app, socketio


def parse_args():
    """Parse simple CLI arguments for running the server."""
    parser = argparse.ArgumentParser(description='Run the Mix chat backend server')
    parser.add_argument('--port', type=int, default=config.PORT, help='TCP port to bind (default: PORT from config)')
    parser.add_argument('--host', default='0.0.0.0', help='Interface to bind (default: 0.0.0.0)')
    return parser.parse_args()


if __name__ == "__main__":
    args = parse_args()
    configure_logging()
    config.validate_required()
    configure_auth()
    app, socketio = create_app()
    logger.info('Starting %s (%s backend) with Socket.IO on port %s', config.APP_NAME, config.STORE_BACKEND, args.port)
    socketio.run(app, host=args.host, port=args.port, debug=config.DEBUG, allow_unsafe_werkzeug=True)
