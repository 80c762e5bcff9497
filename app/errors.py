"""Error kinds raised by the GameHub stores.

The HTTP layer maps each kind to a status code; see ``api_server.STATUS_CODES``.
"""


class GameHubError(Exception):
    """Base exception for GameHub store operations."""


class NotFound(GameHubError):
    """Raised when a lookup targets a key that does not exist."""


class Conflict(GameHubError):
    """Raised when a create/register would violate a uniqueness rule."""


class AuthFailure(GameHubError):
    """Raised for an unknown identifier or a wrong password (never distinguished)."""


class ValidationError(GameHubError):
    """Raised for malformed or missing input, before storage is touched."""


class StorageError(GameHubError):
    """Raised for unexpected backend failures."""
