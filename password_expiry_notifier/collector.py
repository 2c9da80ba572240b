"""Collects directory accounts whose passwords are due to expire."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Iterable, List, Optional, Set

from .client import EXPIRY_ATTRIBUTE, DirectoryClient, first_value

LOGGER = logging.getLogger("password_expiry_notifier.collector")

FILETIME_EPOCH = datetime(1601, 1, 1, tzinfo=timezone.utc)
# AD reports this when the password never expires.
FILETIME_NEVER = 0x7FFFFFFFFFFFFFFF


def filetime_to_datetime(raw: Any) -> Optional[datetime]:
    """Convert a FILETIME tick count (100ns since 1601) to a UTC datetime.

    Returns ``None`` for zero, missing, "never" and unparseable values.
    """

    value = first_value(raw)
    if value is None:
        return None
    if isinstance(value, datetime):
        return value if value.tzinfo else value.replace(tzinfo=timezone.utc)
    if isinstance(value, bytes):
        value = value.decode("ascii", "ignore")
    try:
        ticks = int(value)
    except (TypeError, ValueError):
        return None
    if ticks <= 0 or ticks >= FILETIME_NEVER:
        return None
    try:
        return FILETIME_EPOCH + timedelta(microseconds=ticks // 10)
    except OverflowError:
        return None


def _text(raw: Any) -> str:
    value = first_value(raw)
    if value is None:
        return ""
    if isinstance(value, bytes):
        value = value.decode("utf-8", "ignore")
    return str(value).strip()


@dataclass(frozen=True)
class Account:
    """A directory account with a computed password expiry."""

    account_name: str
    email_address: str
    expires_at: datetime
    display_name: Optional[str] = None

    def days_remaining(self, now: datetime) -> int:
        """Whole days until expiry, floored (negative once expired)."""

        return (self.expires_at - now).days

    @property
    def greeting_name(self) -> str:
        return self.display_name or self.account_name

    @classmethod
    def from_entry(cls, attributes: Dict[str, Any]) -> Optional["Account"]:
        """Build an account from raw directory attributes, or ``None`` if unusable."""

        expires_at = filetime_to_datetime(attributes.get(EXPIRY_ATTRIBUTE))
        name = _text(attributes.get("sAMAccountName"))
        email = _text(attributes.get("mail"))
        if expires_at is None or not name or not email:
            return None
        return cls(
            account_name=name,
            email_address=email,
            expires_at=expires_at,
            display_name=_text(attributes.get("displayName")) or None,
        )


class AccountCollector:
    """Queries the directory and applies the notification filters."""

    def __init__(
        self,
        client: DirectoryClient,
        scope: str,
        exclusion_group: Optional[str] = None,
    ) -> None:
        self._client = client
        self._scope = scope
        self._exclusion_group = exclusion_group

    def collect(self) -> List[Account]:
        # Resolve the group first so a bad group aborts before the main search.
        excluded = self._exclusion_set()
        entries = self._client.search_accounts(self._scope)
        accounts = self._filter(entries, excluded)
        accounts.sort(key=lambda account: account.expires_at)
        LOGGER.info(
            "Collected %s accounts (%s returned by directory)", len(accounts), len(entries)
        )
        return accounts

    # ---- helpers ----------------------------------------------------------------
    def _exclusion_set(self) -> Optional[Set[str]]:
        if not self._exclusion_group:
            return None
        return {name.lower() for name in self._client.group_member_names(self._exclusion_group)}

    def _filter(
        self, entries: Iterable[Dict[str, Any]], excluded: Optional[Set[str]]
    ) -> List[Account]:
        accounts: List[Account] = []
        for attributes in entries:
            account = Account.from_entry(attributes)
            if account is None:
                LOGGER.debug(
                    "Skipping %s: missing name, email or computed expiry",
                    _text(attributes.get("sAMAccountName")) or "(unnamed)",
                )
                continue
            if excluded is not None and account.account_name.lower() in excluded:
                LOGGER.debug("Skipping %s: member of exclusion group", account.account_name)
                continue
            accounts.append(account)
        return accounts
