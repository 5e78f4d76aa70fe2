"""Connection lifecycle: connect, open the mailbox, listen, reconnect."""

import enum
import logging
import time
from typing import Callable, Optional

from .config import EmailConfig, SupervisorConfig
from .email_client import MailSession
from .exceptions import ConnectError, MailboxOpenError, MailSessionError, SessionEnded
from .poller import MailboxPoller, PollResult

logger = logging.getLogger(__name__)


class State(enum.Enum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    READY = "ready"
    MAILBOX_OPEN = "mailbox_open"
    LISTENING = "listening"


class ConnectionSupervisor:
    """
    Owns the single IMAP session and drives the poller from it.

    Each cycle builds a fresh session: connect (with backoff), open the
    mailbox, run an initial sweep, then poll again on every new-mail push
    until the session ends. run() repeats cycles with a fixed pause between
    them.
    """

    def __init__(
        self,
        email_config: EmailConfig,
        config: SupervisorConfig,
        poller: MailboxPoller,
        session_factory: Optional[Callable[[], MailSession]] = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.email_config = email_config
        self.config = config
        self.poller = poller
        self.session_factory = session_factory or (lambda: MailSession(email_config))
        self.state = State.DISCONNECTED
        self.session: Optional[MailSession] = None
        self.cycles = 0
        self.last_sweep: Optional[PollResult] = None
        self._sleep = sleep
        self._stopped = False

    def stop(self) -> None:
        """Stop after the current cycle."""
        self._stopped = True

    def run(self, max_cycles: Optional[int] = None, listen: bool = True) -> None:
        """
        Run connection cycles until stopped.

        Args:
            max_cycles: Stop after this many cycles (None runs forever).
            listen: If False, each cycle ends after the initial sweep.
        """
        while not self._stopped:
            delay = self.run_cycle(listen=listen)
            if self._stopped or (max_cycles is not None and self.cycles >= max_cycles):
                break
            logger.warning(f"IMAP connection ended, will reconnect in {delay:g}s")
            self._sleep(delay)

    def run_cycle(self, listen: bool = True) -> float:
        """
        Run one connect/open/listen cycle.

        Returns:
            Seconds to wait before the next cycle.
        """
        self.cycles += 1
        session = self._connect()
        if session is None:
            return self.config.connect_failure_delay_seconds

        self.session = session
        self._set_state(State.READY)
        try:
            logger.info("IMAP ready. Opening mailbox...")
            try:
                session.open_mailbox(self.email_config.folder)
            except MailboxOpenError as e:
                logger.error(f"Open mailbox failed: {e}")
                return self.config.reconnect_delay_seconds
            self._set_state(State.MAILBOX_OPEN)
            logger.info(f"Opened {self.email_config.folder}. Listening for new mail...")

            self.last_sweep = self._poll(session)
            if not listen:
                return self.config.reconnect_delay_seconds

            self._set_state(State.LISTENING)
            while not self._stopped:
                if session.wait_for_mail():
                    logger.info("Mail event, checking unseen...")
                    self._poll(session)
        except SessionEnded as e:
            logger.warning(f"IMAP session ended: {e}")
        except MailSessionError as e:
            logger.error(f"IMAP error: {e}")
        finally:
            session.close()
            self.session = None
            self._set_state(State.DISCONNECTED)

        return self.config.reconnect_delay_seconds

    def _connect(self) -> Optional[MailSession]:
        attempts = self.config.connect_retries + 1
        for attempt in range(attempts):
            self._set_state(State.CONNECTING)
            session = self.session_factory()
            try:
                session.connect()
                return session
            except ConnectError as e:
                if attempt < attempts - 1:
                    delay = self.config.connect_base_delay * (2 ** attempt)
                    logger.warning(
                        f"Connection attempt {attempt + 1} failed: {e}. Retrying in {delay:g}s..."
                    )
                    self._sleep(delay)
                else:
                    logger.error(f"Failed to connect after {attempts} attempts: {e}")

        self._set_state(State.DISCONNECTED)
        return None

    def _poll(self, session: MailSession) -> Optional[PollResult]:
        try:
            return self.poller.poll_once(session)
        except MailSessionError:
            raise
        except Exception as e:
            # Keep listening; the next mail event retries the sweep
            logger.error(f"Unexpected error during poll: {e}", exc_info=True)
            return None

    def _set_state(self, state: State) -> None:
        if state is not self.state:
            logger.debug(f"Supervisor state {self.state.value} -> {state.value}")
            self.state = state
