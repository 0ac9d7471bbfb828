"""
Application settings loaded from environment variables.
Uses pydantic-settings for type-safe configuration.
"""

from functools import lru_cache

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Chat gateway settings with defaults for development."""

    # Server
    host: str = "localhost"
    port: int = 8060
    ws_path: str = "/ws"

    # Environment
    environment: str = "development"
    debug: bool = True

    # Comma-separated list of allowed origins (empty allows any origin in development)
    allowed_origins: str = ""

    # Rate limiting: max messages per sliding window, per identifier (IP or client id)
    rate_limit_max_messages: int = 10
    rate_limit_window_seconds: float = 60.0

    # Delivery queue: pause between consecutive broadcasts while the queue is non-empty
    message_delay_seconds: float = 0.1

    # Message and username bounds (after trimming)
    min_message_length: int = 1
    max_message_length: int = 500
    min_username_length: int = 2
    max_username_length: int = 30

    # Liveness
    ping_interval_seconds: float = 30.0  # Probe cycle
    ping_timeout_seconds: float = 30.0  # Protocol pong deadline enforced by uvicorn
    sweep_interval_seconds: float = 300.0  # Inactivity sweep cycle
    inactivity_timeout_seconds: float = 300.0  # Connection considered stale after this
    shutdown_grace_seconds: float = 10.0  # Wait for close handshakes before forcing

    # Transport
    broadcast_batch_size: int = 50  # Connections to send to in parallel
    max_frame_size: int = 64 * 1024  # 64 KB

    # Logging
    log_directory: str = "./logs"
    log_info_file: str = "info.log"
    log_warnings_file: str = "warnings.log"
    log_errors_file: str = "errors.log"
    log_conversations_file: str = "conversations.log"
    log_to_files: bool = True

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        case_sensitive = False

    def validate_runtime(self) -> list[str]:
        """
        Validate that configured limits are coherent.
        Returns a list of validation errors. Empty list means all checks pass.
        """
        errors = []

        if self.rate_limit_max_messages <= 0:
            errors.append("RATE_LIMIT_MAX_MESSAGES must be positive")
        if self.rate_limit_window_seconds <= 0:
            errors.append("RATE_LIMIT_WINDOW_SECONDS must be positive")
        if self.message_delay_seconds < 0:
            errors.append("MESSAGE_DELAY_SECONDS must not be negative")

        if self.min_message_length > self.max_message_length:
            errors.append("MIN_MESSAGE_LENGTH must not exceed MAX_MESSAGE_LENGTH")
        if self.min_username_length > self.max_username_length:
            errors.append("MIN_USERNAME_LENGTH must not exceed MAX_USERNAME_LENGTH")

        for name in (
            "ping_interval_seconds",
            "ping_timeout_seconds",
            "sweep_interval_seconds",
            "inactivity_timeout_seconds",
            "shutdown_grace_seconds",
        ):
            if getattr(self, name) <= 0:
                errors.append(f"{name.upper()} must be positive")

        if self.environment == "production" and self.debug:
            errors.append("DEBUG must be False in production")

        return errors


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


# Convenience export
settings = get_settings()
