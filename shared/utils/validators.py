"""
Shared validators for chat input sanitization.

Usernames and chat content are trimmed, bounded and HTML-escaped before they
are stored or broadcast, so a renderer that trusts the payload cannot be
made to inject markup.
"""

import re
from typing import Any

from shared.utils.exceptions import (
    ContentTooLong,
    ContentTooShort,
    UsernameInvalid,
    ValidationError,
)

# Unicode word characters (letters of any script, accented included),
# whitespace and hyphen
USERNAME_PATTERN = re.compile(r"^[\w\s-]+$")

# Order matters: "&" first so entities produced below are not escaped twice
_HTML_ESCAPES: tuple[tuple[str, str], ...] = (
    ("&", "&amp;"),
    ("<", "&lt;"),
    (">", "&gt;"),
    ('"', "&quot;"),
    ("'", "&#x27;"),
    ("/", "&#x2F;"),
)


def escape_html(value: str) -> str:
    """
    Escape `& < > " ' /` to their HTML entity equivalents.

    Args:
        value: Raw user text.

    Returns:
        Text with no literal markup characters.
    """
    if not value:
        return value

    for char, entity in _HTML_ESCAPES:
        value = value.replace(char, entity)
    return value


def validate_username(username: Any, min_length: int = 2, max_length: int = 30) -> str:
    """
    Validate a display name requested on join.

    Args:
        username: Raw `username` field from the frame.
        min_length: Minimum length after trimming.
        max_length: Maximum length after trimming.

    Returns:
        The trimmed username.

    Raises:
        UsernameInvalid: If the name is missing, out of bounds or contains
            characters outside letters, digits, whitespace, `_` and `-`.
    """
    if not username or not isinstance(username, str):
        raise UsernameInvalid()

    trimmed = username.strip()

    if len(trimmed) < min_length:
        raise UsernameInvalid(f"El nombre debe tener al menos {min_length} caracteres")

    if len(trimmed) > max_length:
        raise UsernameInvalid(f"El nombre no puede exceder {max_length} caracteres")

    if not USERNAME_PATTERN.match(trimmed):
        raise UsernameInvalid("El nombre contiene caracteres no permitidos", username=trimmed)

    return trimmed


def validate_message_content(content: Any, min_length: int = 1, max_length: int = 500) -> str:
    """
    Validate the text of a chat message.

    Args:
        content: Raw `content` field from the frame.
        min_length: Minimum length after trimming.
        max_length: Maximum length after trimming.

    Returns:
        The trimmed content.

    Raises:
        ValidationError: If content is missing or not a string.
        ContentTooShort: If the trimmed content is shorter than min_length.
        ContentTooLong: If the trimmed content is longer than max_length.
    """
    if not isinstance(content, str):
        raise ValidationError("Contenido inválido")

    trimmed = content.strip()

    if len(trimmed) < min_length:
        raise ContentTooShort()

    if len(trimmed) > max_length:
        raise ContentTooLong(length=len(trimmed), max_length=max_length)

    return trimmed
