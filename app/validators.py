"""Input checks shared by the stores.

Each helper returns the normalised value or raises
:class:`~app.errors.ValidationError`; none of them touch storage.
"""
from typing import Any

from .errors import ValidationError

MAX_NAME_LENGTH = 255
# bcrypt only looks at the first 72 bytes of its input.
MAX_PASSWORD_BYTES = 72
# Upper bound of the 32-bit INTEGER id columns.
MAX_ID = 2 ** 31 - 1


def require_name(value: Any, field: str) -> str:
    """Return *value* stripped, requiring a non-empty string of sane length."""
    if not isinstance(value, str):
        raise ValidationError(f"{field} must be a string")
    value = value.strip()
    if not value:
        raise ValidationError(f"{field} is required")
    if len(value) > MAX_NAME_LENGTH:
        raise ValidationError(f"{field} must be at most {MAX_NAME_LENGTH} characters")
    return value


def require_id(value: Any, field: str = 'id') -> int:
    """Return *value* if it is a positive integer."""
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValidationError(f"{field} must be an integer")
    if value < 1:
        raise ValidationError(f"{field} must be positive")
    if value > MAX_ID:
        raise ValidationError(f"{field} is out of range")
    return value


def require_port(value: Any) -> int:
    """Return *value* if it is a valid TCP/UDP port number."""
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValidationError("port must be an integer")
    if not 1 <= value <= 65535:
        raise ValidationError("port must be between 1 and 65535")
    return value


def require_password(value: Any) -> bytes:
    """Return the UTF-8 encoding of *value*, ready for bcrypt."""
    if not isinstance(value, str) or value == '':
        raise ValidationError("password is required")
    encoded = value.encode('utf-8')
    if len(encoded) > MAX_PASSWORD_BYTES:
        raise ValidationError(f"password must be at most {MAX_PASSWORD_BYTES} bytes")
    return encoded


def require_blob(value: Any) -> bytes:
    """Return *value* as immutable bytes; only binary buffers are accepted."""
    if isinstance(value, (bytes, bytearray, memoryview)):
        return bytes(value)
    raise ValidationError("save data must be binary")
