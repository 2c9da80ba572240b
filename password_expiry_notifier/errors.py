"""Exception types raised by the password expiry notifier."""

from __future__ import annotations

from typing import Optional


class NotifierError(Exception):
    """Base class for all notifier failures."""


class DirectoryLookupError(NotifierError):
    """The directory could not be queried, or a scope/group did not resolve.

    Fatal: raised before any notice is sent.
    """


class MailSendError(NotifierError):
    """Delivering a single notice failed."""

    def __init__(self, message: str, recipient: Optional[str] = None) -> None:
        super().__init__(message)
        self.recipient = recipient


class LogSetupError(NotifierError):
    """The run transcript could not be set up."""
