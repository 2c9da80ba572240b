"""Active Directory password expiry notification utilities."""

from .config import DirectoryConfig, MailConfig, NoticeConfig, RunLogConfig
from .client import DirectoryClient
from .collector import Account, AccountCollector
from .dispatcher import DispatchReport, NoticeDispatcher
from .errors import DirectoryLookupError, LogSetupError, MailSendError, NotifierError
from .notification import Notice, NotificationResult, SMTPNotifier, compose_notice
from .runlog import RunLog

__all__ = [
    "DirectoryConfig",
    "MailConfig",
    "NoticeConfig",
    "RunLogConfig",
    "DirectoryClient",
    "Account",
    "AccountCollector",
    "DispatchReport",
    "NoticeDispatcher",
    "DirectoryLookupError",
    "LogSetupError",
    "MailSendError",
    "NotifierError",
    "Notice",
    "NotificationResult",
    "SMTPNotifier",
    "compose_notice",
    "RunLog",
]
