"""Route decorators for common patterns like error handling and authentication.

This module provides reusable decorators to reduce boilerplate in route handlers.
"""
import functools
import logging
from typing import Callable

from flask import request

from mix_server.exception.ConcurrentUpdateError import ConcurrentUpdateError
from mix_server.exception.InvalidOperationError import InvalidOperationError, CapacityExceededError
from mix_server.exception.NotFoundError import NotFoundError
from mix_server.exception.UnauthorizedError import UnauthorizedError
from mix_server.utils.helpers import respond_error
from mix_server.security.authentication import get_auth_payload

logger = logging.getLogger(__name__)


def handle_errors(func: Callable) -> Callable:
    """Decorator to handle common exceptions in route handlers.

    Catches:
    - UnauthorizedError -> 401
    - NotFoundError -> 404
    - CapacityExceededError, ConcurrentUpdateError -> 409
    - InvalidOperationError, ValueError -> 400
    - Other exceptions -> 500

    Usage:
        @app.route('/example')
        @handle_errors
        def example_route():
            ...
    """
    @functools.wraps(func)
    def wrapper(*args, **kwargs):
        try:
            return func(*args, **kwargs)
        except UnauthorizedError as e:
            logger.warning("Unauthorized: %s", e)
            return respond_error(str(e), status=401)
        except NotFoundError as e:
            logger.info("Not found: %s", e)
            return respond_error(str(e), status=404)
        except CapacityExceededError as e:
            logger.info("Capacity exceeded: %s", e)
            return respond_error(str(e), status=409)
        except ConcurrentUpdateError as e:
            logger.warning("Concurrent update: %s", e)
            return respond_error(str(e), status=409)
        except (InvalidOperationError, ValueError) as e:
            logger.warning("Validation error: %s", e)
            return respond_error(str(e), status=400)
        except Exception:
            logger.exception("Unexpected error in %s", func.__name__)
            return respond_error('Server error', status=500)
    return wrapper


def require_auth(func: Callable) -> Callable:
    """Decorator to require authentication and inject payload into handler.

    The decorated function receives `auth_payload` as a keyword argument.

    Usage:
        @app.route('/protected')
        @require_auth
        def protected_route(auth_payload):
            user_id = auth_payload.get('user_id')
            ...
    """
    @functools.wraps(func)
    def wrapper(*args, **kwargs):
        payload = get_auth_payload(request)
        kwargs['auth_payload'] = payload
        return func(*args, **kwargs)
    return wrapper


def validate_json(*required_fields: str) -> Callable:
    """Decorator to validate that required JSON fields are present.

    Usage:
        @app.route('/create', methods=['POST'])
        @validate_json('name', 'email')
        def create_item():
            data = request.get_json()
            ...
    """
    def decorator(func: Callable) -> Callable:
        @functools.wraps(func)
        def wrapper(*args, **kwargs):
            data = request.get_json(silent=True)

            if not data:
                return respond_error('Request body must be JSON', status=400)

            missing = [f for f in required_fields if f not in data or data[f] is None]
            if missing:
                return respond_error(f'Missing required fields: {", ".join(missing)}', status=400)

            return func(*args, **kwargs)
        return wrapper
    return decorator


def log_request(func: Callable) -> Callable:
    """Decorator to log request details."""
    @functools.wraps(func)
    def wrapper(*args, **kwargs):
        logger.info("%s %s called", request.method, request.path)
        return func(*args, **kwargs)
    return wrapper


def protected_route(func: Callable) -> Callable:
    """Composite decorator: handle_errors + require_auth + log_request."""
    return handle_errors(require_auth(log_request(func)))
