"""Version field helpers for optimistic locking.

Chats are mutated by read-modify-write sequences (joins, leaves, profile
refreshes). Every stored document carries a version counter that the
store increments on each update; callers that read a document and write
it back pass the version they read so that a concurrent writer is
detected instead of silently overwritten.

Usage:
    from mix_server.utils.versioning import VERSION_FIELD, get_version
"""
from typing import Any, Dict


VERSION_FIELD = '_v'


def add_version_to_doc(doc: Dict[str, Any], initial_version: int = 1) -> Dict[str, Any]:
    """Add version field to a document if not present."""
    if VERSION_FIELD not in doc:
        doc[VERSION_FIELD] = initial_version
    return doc


def increment_version(update_doc: Dict[str, Any]) -> Dict[str, Any]:
    """Add version increment to a MongoDB update document."""
    if '$inc' not in update_doc:
        update_doc['$inc'] = {}
    update_doc['$inc'][VERSION_FIELD] = 1
    return update_doc


def get_version(doc: Dict[str, Any]) -> int:
    """Get the version from a document (0 if not present)."""
    return doc.get(VERSION_FIELD, 0)
