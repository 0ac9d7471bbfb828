"""
Shared module for cross-cutting concerns of the chat gateway.

STRUCTURE:
- shared.config: Configuration
  - settings.py: Environment config (pydantic-settings)
  - logging.py: Structured logging, category log files
  - correlation.py: Connection id stamping for log records

- shared.utils: Utilities
  - exceptions.py: Chat error taxonomy with auto-logging
  - validators.py: Username/content validation, HTML escaping

IMPORT EXAMPLES:
    from shared.config.settings import settings
    from shared.config.logging import get_logger, log_conversation
    from shared.utils.exceptions import NotJoined, UsernameTaken
    from shared.utils.validators import escape_html, validate_username
"""
