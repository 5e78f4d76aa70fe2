"""Search the mailbox for unseen mail and forward each new message."""

import logging
import random
import threading
import time
from dataclasses import dataclass
from datetime import date, timedelta
from typing import Callable

from .config import PollerConfig
from .email_client import MailSession
from .email_parser import parse_message
from .exceptions import DeliveryError, FetchError, ParseError, PersistenceError, SearchError
from .formatter import format_message
from .store import SeenStore
from .telegram_notifier import TelegramNotifier

logger = logging.getLogger(__name__)


def fallback_uid() -> str:
    """Identifier for a message whose UID the server did not report."""
    return f"fallback-{int(time.time() * 1000)}-{random.random()}"


@dataclass
class PollResult:
    """Counters for one poll cycle."""
    candidates: int = 0
    sent: int = 0
    skipped: int = 0   # already in the seen-set, or gone from the server
    failed: int = 0
    aborted: bool = False


class MailboxPoller:
    """
    Runs poll cycles: search, then fetch/parse/format/send/mark for each hit.

    Cycles are serialized; a second poll_once() while one is running raises
    RuntimeError rather than touching the seen-set concurrently.
    """

    def __init__(
        self,
        config: PollerConfig,
        store: SeenStore,
        notifier: TelegramNotifier,
        sleep: Callable[[float], None] = time.sleep,
        today: Callable[[], date] = date.today,
    ):
        self.config = config
        self.store = store
        self.notifier = notifier
        self._sleep = sleep
        self._today = today
        self._lock = threading.Lock()

    def poll_once(self, session: MailSession) -> PollResult:
        """
        Run one poll cycle against an open mailbox.

        Search and fetch failures end the cycle early and are only logged.
        Parse and delivery failures affect only the message concerned.
        Connection failures propagate to the caller.
        """
        if not self._lock.acquire(blocking=False):
            raise RuntimeError("poll_once() is already running")
        try:
            return self._poll(session)
        finally:
            self._lock.release()

    def _poll(self, session: MailSession) -> PollResult:
        result = PollResult()
        since = self._today() - timedelta(days=self.config.search_days)

        try:
            uids = session.search_unseen(since)
        except SearchError as e:
            logger.error(f"IMAP search error: {e}")
            result.aborted = True
            return result

        if not uids:
            logger.debug("No unseen messages")
            return result

        if len(uids) > self.config.max_per_poll:
            logger.info(
                f"Found {len(uids)} unseen messages, processing the first {self.config.max_per_poll}"
            )
            uids = uids[:self.config.max_per_poll]
        result.candidates = len(uids)

        for uid in uids:
            try:
                self._process(session, uid, result)
            except FetchError as e:
                logger.error(f"Fetch error (uid={uid}), ending poll cycle: {e}")
                result.failed += 1
                result.aborted = True
                break

        logger.info(
            f"Poll finished: {result.candidates} candidates, {result.sent} sent, "
            f"{result.skipped} skipped, {result.failed} failed"
        )
        return result

    def _process(self, session: MailSession, uid: str, result: PollResult) -> None:
        fetched = session.fetch(uid)
        if fetched is None:
            logger.debug(f"Message uid={uid} disappeared before fetch")
            result.skipped += 1
            return
        reported_uid, raw = fetched

        try:
            parsed = parse_message(raw)
        except ParseError as e:
            logger.error(f"Parse error (uid={uid}): {e}")
            result.failed += 1
            return

        message_id = reported_uid or fallback_uid()
        if self.store.contains(message_id):
            result.skipped += 1
            return

        text = format_message(parsed, self.config.max_body_chars)

        # Stay under Telegram's per-chat rate limit
        self._sleep(self.config.send_delay_seconds)
        try:
            self.notifier.notify(text)
        except DeliveryError as e:
            # Not marked seen: the next poll retries it
            logger.error(f"Failed to send to Telegram (uid={message_id}): {e}")
            result.failed += 1
            return

        result.sent += 1
        logger.info(f'Sent uid={message_id} subject="{parsed.subject}"')
        try:
            self.store.mark_seen(message_id)
        except PersistenceError as e:
            logger.error(f"Sent uid={message_id} but could not record it as seen: {e}")
