"""Configuration dataclasses for the password expiry notifier."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Callable, Optional

NowFactory = Callable[[], datetime]


def now_utc() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class DirectoryConfig:
    """Connection details and search scope for the Active Directory query."""

    server: str
    search_scope: str
    bind_user: Optional[str] = None
    bind_password: Optional[str] = None
    base_dn: Optional[str] = None
    use_ssl: bool = False
    timeout_seconds: int = 10
    exclusion_group: Optional[str] = None


@dataclass(frozen=True)
class MailConfig:
    """SMTP relay settings for outbound notices."""

    relay: str
    sender: str
    port: int = 25
    starttls: bool = False
    username: Optional[str] = None
    password: Optional[str] = None
    timeout_seconds: int = 30


@dataclass(frozen=True)
class NoticeConfig:
    """Settings that shape the notice text and whether it is sent."""

    helpdesk_contact: str = "the IT Help Desk"
    dry_run: bool = False


@dataclass(frozen=True)
class RunLogConfig:
    """Where run transcripts are written and how long they are kept."""

    directory: str
    retention_days: int = 30
    run_id: str = "password-expiry"

    def retention_delta(self) -> timedelta:
        return timedelta(days=self.retention_days)
