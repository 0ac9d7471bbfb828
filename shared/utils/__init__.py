"""
Utilities module: Exceptions, validators.
"""

from shared.utils.exceptions import (
    ChatError,
    ParseError,
    ValidationError,
    UnsupportedType,
    UsernameInvalid,
    UsernameTaken,
    NotJoined,
    ContentTooShort,
    ContentTooLong,
    RateLimitExceeded,
    InternalError,
    RegistryError,
    ConnectionNotFound,
    NameTaken,
)
from shared.utils.validators import (
    escape_html,
    validate_username,
    validate_message_content,
)
