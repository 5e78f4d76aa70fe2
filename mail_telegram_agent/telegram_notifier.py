"""Telegram Bot API notification module."""

import logging
import time
from typing import Any, Callable, Dict
from urllib.parse import quote

import requests

from .config import TelegramConfig
from .exceptions import DeliveryError
from .models import NotificationPayload

logger = logging.getLogger(__name__)


class TelegramNotifier:
    """Sends messages through the Telegram Bot API with exponential backoff."""

    def __init__(self, config: TelegramConfig, sleep: Callable[[float], None] = time.sleep):
        """
        Initialize the notifier.

        Args:
            config: Telegram configuration.
            sleep: Function used to wait between attempts.
        """
        self.config = config
        self.url = f"{config.api_base}/bot{config.bot_token}/sendMessage"
        self._sleep = sleep

    def build_payload(self, text: str, **options: Any) -> NotificationPayload:
        """Build a sendMessage payload for the configured chat."""
        return NotificationPayload(chat_id=self.config.chat_id, text=text, options=options)

    def notify(self, text: str, **options: Any) -> Dict[str, Any]:
        """Send text to the configured chat. See send()."""
        return self.send(self.build_payload(text, **options))

    def send(self, payload: NotificationPayload) -> Dict[str, Any]:
        """
        POST a payload to sendMessage, retrying on failure.

        The request is attempted once and retried up to max_retries more
        times, waiting retry_base_delay * 2**n seconds before retry n + 1.

        Args:
            payload: The message to deliver.

        Returns:
            The decoded JSON response body.

        Raises:
            DeliveryError: If every attempt failed.
        """
        attempts = self.config.max_retries + 1
        last_error = ""

        for attempt in range(attempts):
            try:
                return self._post(payload)
            except (requests.RequestException, ValueError) as e:
                last_error = self._redact(str(e))
                if attempt < attempts - 1:
                    delay = self.config.retry_base_delay * (2 ** attempt)
                    logger.warning(
                        f"Telegram send attempt {attempt + 1} failed: {last_error}. "
                        f"Retrying in {delay:g}s..."
                    )
                    self._sleep(delay)
                else:
                    logger.error(f"Telegram send failed after {attempts} attempts: {last_error}")

        raise DeliveryError(
            f"Telegram delivery failed after {attempts} attempts: {last_error}",
            attempts=attempts,
            last_error=last_error,
        )

    def _redact(self, text: str) -> str:
        """Mask the bot token, which requests includes in connection errors via the URL."""
        token = self.config.bot_token
        if not token:
            return text
        for form in (token, quote(token, safe="")):
            text = text.replace(form, "<redacted>")
        return text

    def _post(self, payload: NotificationPayload) -> Dict[str, Any]:
        response = requests.post(
            self.url,
            json=payload.to_json(),
            timeout=self.config.timeout_seconds,
        )
        if not 200 <= response.status_code < 300:
            raise requests.HTTPError(
                f"Telegram API error {response.status_code}: {response.text}",
                response=response,
            )
        # ValueError if the body is not JSON
        return response.json()
