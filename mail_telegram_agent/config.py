"""Configuration management."""

import os
from dataclasses import dataclass
from typing import Optional

from dotenv import find_dotenv, load_dotenv


@dataclass
class EmailConfig:
    """Email/IMAP configuration."""
    host: str
    port: int
    username: str
    password: str   # or app-specific password
    use_ssl: bool
    folder: str     # e.g. "INBOX"
    verify_tls: bool = True
    timeout_seconds: int = 60  # socket timeout for regular commands
    idle_interval_seconds: int = 300  # re-issue IDLE this often
    keepalive_interval_seconds: int = 10  # NOOP interval when IDLE is unsupported


@dataclass
class TelegramConfig:
    """Telegram Bot API configuration."""
    bot_token: str
    chat_id: str
    api_base: str = "https://api.telegram.org"
    timeout_seconds: int = 30
    max_retries: int = 3
    retry_base_delay: float = 1.0  # seconds, doubled after each failure


@dataclass
class PollerConfig:
    """Mailbox polling configuration."""
    max_body_chars: int = 1500
    search_days: int = 30
    max_per_poll: int = 50
    send_delay_seconds: float = 5.0  # pause before each Telegram send


@dataclass
class SupervisorConfig:
    """Reconnect timing for the IMAP session."""
    connect_retries: int = 3
    connect_base_delay: float = 1.0
    reconnect_delay_seconds: float = 5.0  # after the session ends
    connect_failure_delay_seconds: float = 10.0  # after all connect attempts fail


@dataclass
class AppConfig:
    """Complete application configuration."""
    db_path: str
    email: EmailConfig
    telegram: TelegramConfig
    poller: PollerConfig
    supervisor: SupervisorConfig


def _parse_bool_env(key: str, default: bool) -> bool:
    """Parse a boolean flag; only an explicit "false" turns it off."""
    value = os.getenv(key)
    if value is None or not value.strip():
        return default
    return value.strip().lower() != "false"


def _parse_int_env(key: str, default: int) -> int:
    """Parse an integer environment variable."""
    value = os.getenv(key)
    if value is None or not value.strip():
        return default
    try:
        return int(value)
    except ValueError:
        raise ValueError(f"Environment variable {key} must be an integer, got {value!r}")


def load_env(env_file: Optional[str] = None) -> None:
    """Load a .env file into the environment without overriding set variables."""
    load_dotenv(env_file or find_dotenv(usecwd=True))


def load_config(env_file: Optional[str] = None) -> AppConfig:
    """
    Load configuration from environment variables.

    Args:
        env_file: Optional path to a .env file. Defaults to the nearest .env.

    Raises:
        ValueError: If required configuration values are missing or malformed.
    """
    load_env(env_file)

    email_host = os.getenv("IMAP_HOST")
    email_username = os.getenv("EMAIL_USER")
    email_password = os.getenv("EMAIL_PASS")
    bot_token = os.getenv("TELEGRAM_BOT_TOKEN")
    chat_id = os.getenv("TELEGRAM_CHAT_ID")

    # Validate required fields
    missing = []
    if not email_host:
        missing.append("IMAP_HOST")
    if not email_username:
        missing.append("EMAIL_USER")
    if not email_password:
        missing.append("EMAIL_PASS")
    if not bot_token:
        missing.append("TELEGRAM_BOT_TOKEN")
    if not chat_id:
        missing.append("TELEGRAM_CHAT_ID")

    if missing:
        raise ValueError(
            f"Missing required environment variables: {', '.join(missing)}"
        )

    return AppConfig(
        db_path=os.getenv("DB_FILE", "./store.json"),
        email=EmailConfig(
            host=email_host,
            port=_parse_int_env("IMAP_PORT", 993),
            username=email_username,
            password=email_password,
            use_ssl=_parse_bool_env("IMAP_TLS", True),
            folder=os.getenv("MAILBOX", "INBOX"),
            verify_tls=_parse_bool_env("EMAIL_TLS_VERIFY", True),
            idle_interval_seconds=_parse_int_env("IDLE_INTERVAL_SECONDS", 300),
            keepalive_interval_seconds=_parse_int_env("KEEPALIVE_INTERVAL_SECONDS", 10),
        ),
        telegram=TelegramConfig(
            bot_token=bot_token,
            chat_id=chat_id,
            api_base=os.getenv("TELEGRAM_API_BASE", "https://api.telegram.org").rstrip("/"),
        ),
        poller=PollerConfig(
            max_body_chars=_parse_int_env("MAX_BODY_CHARS", 1500),
            search_days=_parse_int_env("SEARCH_DAYS", 30),
            max_per_poll=_parse_int_env("MAX_MESSAGES_PER_POLL", 50),
            send_delay_seconds=_parse_int_env("SEND_DELAY_SECONDS", 5),
        ),
        supervisor=SupervisorConfig(),
    )
