import random
import string

from bson import ObjectId


INVITE_CODE_ALPHABET = string.ascii_uppercase + string.digits
INVITE_CODE_LENGTH = 8

_random = random.SystemRandom()


def generate_key(length, alphabet='0123456789'):
    return ''.join(_random.choices(alphabet, k=length))


def generate_invite_code(length: int = INVITE_CODE_LENGTH, alphabet: str = INVITE_CODE_ALPHABET) -> str:
    """Draw an invite code uniformly from alphabet.

    No uniqueness check happens here; with 36**8 possible codes a collision
    is left to the lookup side, where the first matching group wins.
    """
    if length < 1:
        raise ValueError('invite code length must be positive')
    if not alphabet:
        raise ValueError('invite code alphabet must not be empty')
    return generate_key(length, alphabet)


def generate_document_id() -> str:
    """Opaque, roughly time-ordered document id shared by every store backend."""
    return str(ObjectId())
