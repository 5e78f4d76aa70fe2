"""Custom exceptions for the mail notification agent."""


class MailAgentError(Exception):
    """Base exception for all agent errors."""

    pass


# Mail session


class MailSessionError(MailAgentError):
    """IMAP session failed; the session must be torn down."""

    pass


class SessionEnded(MailSessionError):
    """Server closed the session (BYE or end of stream)."""

    pass


class ConnectError(MailSessionError):
    """Could not establish or authenticate an IMAP session."""

    pass


class MailboxOpenError(MailSessionError):
    """Mailbox could not be selected."""

    pass


class SearchError(MailAgentError):
    """UNSEEN search failed."""

    pass


class FetchError(MailAgentError):
    """Message body could not be fetched."""

    pass


class ParseError(MailAgentError):
    """Raw message could not be parsed."""

    pass


# Delivery


class DeliveryError(MailAgentError):
    """Telegram delivery failed after all retries."""

    def __init__(self, message: str, attempts: int = 0, last_error: str = ""):
        super().__init__(message)
        self.attempts = attempts
        self.last_error = last_error


# Seen-set storage


class PersistenceError(MailAgentError):
    """Seen-set could not be written to disk."""

    pass


class StoreLoadError(MailAgentError):
    """Seen-set file exists but is unreadable or corrupt."""

    pass
