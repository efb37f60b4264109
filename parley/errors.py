"""Parley exception hierarchy.

Store failures and relay failures are separate trees so the dispatch
boundary can log them differently. Transport errors are not wrapped.
"""

from typing import Optional


class StorageError(Exception):
    """Base class for storage failures."""
    pass

class StorageConflictError(StorageError):
    """Insert hit an existing primary key."""
    pass

class StorageIOError(StorageError):
    """Storage unavailable or query failed."""
    pass


class RelayError(Exception):
    """Base class for relay-level failures."""
    pass

class UnknownTargetError(RelayError):
    """A ban or reply referenced a group message that was never relayed."""

    def __init__(self, group_message_id: int, message: Optional[str] = None):
        self.group_message_id = group_message_id
        super().__init__(message or f"No correlation record for group message {group_message_id}")
