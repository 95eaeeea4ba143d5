"""Profile lookup.

Chats and messages snapshot a user's display name and avatar at write
time. Profiles themselves belong to the user service; this repository only
reads them.
"""
import logging
from typing import Any, Dict, Optional

from mix_server.repository.base_repository import BaseRepository

logger = logging.getLogger(__name__)

DEFAULT_DISPLAY_NAME = 'User'


class UserProfile:
    """The displayed identity of a user: {display_name, avatar_url}."""

    def __init__(self, display_name: Optional[str] = None, avatar_url: Optional[str] = None):
        self.display_name = display_name or DEFAULT_DISPLAY_NAME
        self.avatar_url = avatar_url or ''

    @classmethod
    def from_doc(cls, doc: Optional[Dict[str, Any]]) -> 'UserProfile':
        if not doc:
            return cls()
        return cls(display_name=doc.get('display_name'), avatar_url=doc.get('avatar_url'))

    def to_dict(self) -> Dict[str, Any]:
        return {'display_name': self.display_name, 'avatar_url': self.avatar_url}

    def __eq__(self, other):
        if not isinstance(other, UserProfile):
            return NotImplemented
        return (self.display_name, self.avatar_url) == (other.display_name, other.avatar_url)

    def __repr__(self):
        return f"UserProfile(display_name={self.display_name!r}, avatar_url={self.avatar_url!r})"


class ProfileRepository:
    """Reads user profiles keyed by uid."""

    def __init__(self, store: BaseRepository):
        self.store = store

    def get_profile(self, user_id: str) -> UserProfile:
        """Return the user's profile, or the default profile for an unknown user."""
        docs = self.store.filter({'uid': user_id}, limit=1)
        if not docs:
            logger.debug(f"No profile for user {user_id}, using defaults")
            return UserProfile()
        return UserProfile.from_doc(docs[0])
