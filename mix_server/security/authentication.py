from datetime import timedelta
from typing import Optional

from jose import jwt, JWTError, ExpiredSignatureError

from mix_server.exception.UnauthorizedError import UnauthorizedError
from mix_server.utils.time_utils import utc_now


class AuthSecurity:
    """Bearer-token encoding and validation.

    Tokens are issued by the user service; this service only validates them
    and reads the caller from the `user_id` claim.
    """
    secret_key = None
    algorithm = 'HS256'
    # Default: access token valid for 7 days
    access_token_expire_minutes = 7 * 24 * 60

    @classmethod
    def configure(cls, secret_key, algorithm='HS256', access_token_expire_minutes=7 * 24 * 60):
        cls.secret_key = secret_key
        cls.algorithm = algorithm
        cls.access_token_expire_minutes = access_token_expire_minutes

    @classmethod
    def encode_token(cls, data: dict, expires_delta: timedelta = None) -> str:
        to_encode = data.copy()
        expire = utc_now() + (expires_delta or timedelta(minutes=cls.access_token_expire_minutes))
        to_encode.update({"exp": expire})
        return jwt.encode(to_encode, cls.secret_key, algorithm=cls.algorithm)

    @classmethod
    def decode_token(cls, token: str) -> dict:
        # Check for well-formed JWT (should have 2 dots)
        if not token or token.count('.') != 2:
            raise UnauthorizedError("Malformed or missing token. Please provide a valid JWT token in the Authorization header.")
        if not cls.secret_key:
            raise UnauthorizedError("Token validation is not configured.")
        try:
            payload = jwt.decode(token, cls.secret_key, algorithms=[cls.algorithm])
        except ExpiredSignatureError:
            raise UnauthorizedError("Token expired. Please login again or refresh your session.")
        except JWTError as e:
            msg = str(e)
            if 'Signature verification failed' in msg:
                raise UnauthorizedError("Invalid token signature. Please login again or contact support if the problem persists.")
            raise UnauthorizedError(f"Invalid token: {msg}. Please check your authentication and try again.")
        if not payload.get('user_id'):
            raise UnauthorizedError("Token carries no user_id claim.")
        return payload


def extract_bearer_token(header_value: Optional[str]) -> Optional[str]:
    if not header_value or not header_value.startswith('Bearer '):
        return None
    return header_value.split(' ', 1)[1].strip()


def get_auth_payload(request):
    """
    Extracts and decodes the Bearer token from the Authorization header in the request.
    Raises UnauthorizedError if missing or invalid.
    Returns the decoded payload.
    """
    token = extract_bearer_token(request.headers.get('Authorization'))
    if not token:
        raise UnauthorizedError('Missing or invalid token')
    return AuthSecurity.decode_token(token)
