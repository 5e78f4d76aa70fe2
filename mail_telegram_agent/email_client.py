"""IMAP session used to watch a mailbox for new mail."""

import imaplib
import logging
import re
import select
import ssl
import time
from datetime import date
from typing import Callable, List, Optional, Tuple

from .config import EmailConfig
from .exceptions import (
    ConnectError,
    FetchError,
    MailboxOpenError,
    MailSessionError,
    SearchError,
    SessionEnded,
)

logger = logging.getLogger(__name__)

# IMAP dates use English month names regardless of locale
_MONTHS = ["Jan", "Feb", "Mar", "Apr", "May", "Jun",
           "Jul", "Aug", "Sep", "Oct", "Nov", "Dec"]

_UNTAGGED_COUNT_RE = re.compile(rb"^\* (\d+) (EXISTS|EXPUNGE)\b", re.IGNORECASE)
_FETCH_UID_RE = re.compile(rb"\bUID (\d+)", re.IGNORECASE)


def imap_date(day: date) -> str:
    """Format a date for IMAP SEARCH, e.g. 7-Oct-2026."""
    return f"{day.day}-{_MONTHS[day.month - 1]}-{day.year}"


def _quote_mailbox(name: str) -> str:
    if name.startswith('"') or not re.search(r'[\s"\\]', name):
        return name
    escaped = name.replace("\\", "\\\\").replace('"', '\\"')
    return f'"{escaped}"'


class MailSession:
    """
    One authenticated IMAP connection.

    A session is used for a single connect/listen cycle and then discarded;
    reconnecting always builds a new MailSession.
    """

    def __init__(self, config: EmailConfig, sleep: Callable[[float], None] = time.sleep):
        self.config = config
        self.capabilities: Tuple[str, ...] = ()
        self._conn: Optional[imaplib.IMAP4] = None
        self._selected = False
        self._exists = 0
        self._sleep = sleep

    def __enter__(self) -> "MailSession":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    @property
    def supports_idle(self) -> bool:
        return "IDLE" in self.capabilities

    def connect(self) -> None:
        """
        Open the connection and log in.

        Raises:
            ConnectError: If the server is unreachable or rejects the login.
        """
        config = self.config
        try:
            if config.use_ssl:
                context = ssl.create_default_context()
                if not config.verify_tls:
                    context.check_hostname = False
                    context.verify_mode = ssl.CERT_NONE
                conn = imaplib.IMAP4_SSL(
                    config.host, config.port, ssl_context=context, timeout=config.timeout_seconds
                )
            else:
                conn = imaplib.IMAP4(config.host, config.port, timeout=config.timeout_seconds)
        except (imaplib.IMAP4.error, OSError) as e:
            raise ConnectError(f"Cannot connect to {config.host}:{config.port}: {e}") from e

        try:
            conn.login(config.username, config.password)
            typ, data = conn.capability()
        except (imaplib.IMAP4.error, OSError) as e:
            try:
                conn.shutdown()
            except OSError:
                pass
            raise ConnectError(f"IMAP login failed for {config.username}: {e}") from e

        if typ == "OK" and data and data[0]:
            self.capabilities = tuple(data[0].decode(errors="replace").upper().split())
        else:
            self.capabilities = tuple(c.upper() for c in conn.capabilities)
        self._conn = conn
        logger.info(
            f"Connected to {config.host}:{config.port} as {config.username} "
            f"(IDLE {'supported' if self.supports_idle else 'not supported'})"
        )

    def open_mailbox(self, name: str, readonly: bool = False) -> int:
        """
        Select a mailbox.

        Returns:
            The number of messages in the mailbox.

        Raises:
            MailboxOpenError: If the server refuses the SELECT.
        """
        conn = self._require_conn()
        try:
            typ, data = conn.select(_quote_mailbox(name), readonly)
        except imaplib.IMAP4.abort as e:
            raise MailSessionError(f"Connection lost while opening {name}: {e}") from e
        except (imaplib.IMAP4.error, OSError) as e:
            raise MailboxOpenError(f"Cannot open mailbox {name}: {e}") from e

        if typ != "OK":
            raise MailboxOpenError(f"Cannot open mailbox {name}: {data}")

        self._selected = True
        try:
            self._exists = int(data[0]) if data and data[0] else 0
        except ValueError:
            self._exists = 0
        return self._exists

    def search_unseen(self, since: date) -> List[str]:
        """
        UIDs of unseen messages received on or after a date, in server order.

        Raises:
            SearchError: If the server rejects the search.
        """
        conn = self._require_conn()
        try:
            typ, data = conn.uid("SEARCH", "UNSEEN", "SINCE", imap_date(since))
        except imaplib.IMAP4.abort as e:
            raise MailSessionError(f"Connection lost during search: {e}") from e
        except (imaplib.IMAP4.error, OSError) as e:
            raise SearchError(f"IMAP search failed: {e}") from e

        if typ != "OK":
            raise SearchError(f"IMAP search failed: {data}")
        if not data or not data[0]:
            return []
        return [uid.decode() for uid in data[0].split()]

    def fetch(self, uid: str) -> Optional[Tuple[Optional[str], bytes]]:
        """
        Fetch the full message without setting the \\Seen flag.

        Returns:
            (uid reported by the server or None, raw message bytes), or None
            if the message no longer exists.

        Raises:
            FetchError: If the server rejects the fetch.
        """
        conn = self._require_conn()
        try:
            typ, data = conn.uid("FETCH", uid, "(UID BODY.PEEK[])")
        except imaplib.IMAP4.abort as e:
            raise MailSessionError(f"Connection lost fetching {uid}: {e}") from e
        except (imaplib.IMAP4.error, OSError) as e:
            raise FetchError(f"Failed to fetch message {uid}: {e}") from e

        if typ != "OK":
            raise FetchError(f"Failed to fetch message {uid}: {data}")

        for item in data or []:
            if isinstance(item, tuple) and len(item) >= 2:
                match = _FETCH_UID_RE.search(item[0])
                reported_uid = match.group(1).decode() if match else None
                return reported_uid, item[1]
        return None

    def wait_for_mail(self, timeout: Optional[float] = None) -> bool:
        """
        Block until the server reports new mail or the timeout expires.

        Uses IDLE when the server supports it and a NOOP after a short sleep
        otherwise.

        Returns:
            True if the mailbox grew.

        Raises:
            SessionEnded: If the server closed the session.
            MailSessionError: On any other connection failure.
        """
        try:
            # EXISTS seen while searching or fetching is not repeated by the server
            if self._drain_untagged():
                return True
            if self.supports_idle:
                return self._idle(timeout or self.config.idle_interval_seconds)
            return self._noop(timeout or self.config.keepalive_interval_seconds)
        except (imaplib.IMAP4.error, OSError) as e:
            raise MailSessionError(f"IMAP error while waiting for mail: {e}") from e

    def close(self) -> None:
        """Close the mailbox and log out, ignoring errors from a dead connection."""
        conn = self._conn
        if conn is None:
            return
        self._conn = None

        if self._selected:
            try:
                conn.close()
            except (imaplib.IMAP4.error, OSError) as e:
                logger.debug(f"Error closing mailbox (may be disconnected): {e}")
        try:
            conn.logout()
        except (imaplib.IMAP4.error, OSError) as e:
            logger.debug(f"Error logging out (connection may be closed): {e}")
        self._selected = False

    def _require_conn(self) -> imaplib.IMAP4:
        if self._conn is None:
            raise MailSessionError("IMAP session is not connected")
        return self._conn

    def _readline(self) -> bytes:
        line = self._require_conn().readline()
        if not line:
            raise SessionEnded("Server closed the connection")
        return line

    def _wait_readable(self, timeout: float) -> bool:
        conn = self._require_conn()
        sock = conn.sock
        if isinstance(sock, ssl.SSLSocket) and sock.pending():
            return True
        if self._has_buffered_input(conn):
            return True
        readable, _, _ = select.select([sock], [], [], timeout)
        return bool(readable)

    @staticmethod
    def _has_buffered_input(conn: imaplib.IMAP4) -> bool:
        """True if imaplib's reader already holds bytes the socket will not report."""
        reader = getattr(conn, "_file", None) or conn.file
        sock = conn.sock
        previous_timeout = sock.gettimeout()
        sock.setblocking(False)
        try:
            return bool(reader.peek(1))
        except (BlockingIOError, ssl.SSLWantReadError):
            return False
        finally:
            sock.settimeout(previous_timeout)

    def _handle_untagged(self, line: bytes) -> bool:
        """Track EXISTS/EXPUNGE counts; True if the mailbox grew."""
        if line.upper().startswith(b"* BYE"):
            raise SessionEnded(line.decode(errors="replace").strip())

        match = _UNTAGGED_COUNT_RE.match(line)
        if not match:
            return False
        count = int(match.group(1))
        if match.group(2).upper() == b"EXPUNGE":
            self._exists = max(self._exists - 1, 0)
            return False
        grew = count > self._exists
        self._exists = count
        return grew

    def _idle(self, timeout: float) -> bool:
        conn = self._require_conn()
        tag = conn._new_tag()
        conn.send(tag + b" IDLE\r\n")

        new_mail = False
        line = self._readline()
        while line.startswith(b"* "):
            new_mail = self._handle_untagged(line) or new_mail
            line = self._readline()
        if not line.startswith(b"+"):
            conn.tagged_commands.pop(tag, None)
            raise MailSessionError(f"IDLE rejected: {line.decode(errors='replace').strip()}")

        deadline = time.monotonic() + timeout
        while not new_mail:
            remaining = deadline - time.monotonic()
            if remaining <= 0 or not self._wait_readable(remaining):
                break
            new_mail = self._handle_untagged(self._readline())

        conn.send(b"DONE\r\n")
        while True:
            line = self._readline()
            if line.startswith(tag + b" "):
                conn.tagged_commands.pop(tag, None)
                if not line[len(tag):].strip().upper().startswith(b"OK"):
                    raise MailSessionError(f"IDLE failed: {line.decode(errors='replace').strip()}")
                break
            new_mail = self._handle_untagged(line) or new_mail
        return new_mail

    def _noop(self, interval: float) -> bool:
        self._sleep(interval)
        typ, data = self._require_conn().noop()
        if typ != "OK":
            raise MailSessionError(f"NOOP failed: {data}")
        return self._drain_untagged()

    def _drain_untagged(self) -> bool:
        """Apply EXISTS/EXPUNGE responses imaplib buffered during earlier commands."""
        conn = self._require_conn()
        _, expunged = conn.response("EXPUNGE")
        expunged = [item for item in expunged or [] if item is not None]
        self._exists = max(self._exists - len(expunged), 0)

        _, exists = conn.response("EXISTS")
        counts = [int(item) for item in exists or [] if item is not None]
        if not counts:
            return False
        grew = counts[-1] > self._exists
        self._exists = counts[-1]
        return grew
