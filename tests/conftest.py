"""Shared fakes for the directory connection and the SMTP relay."""

from __future__ import annotations

import smtplib
from datetime import datetime, timedelta, timezone
from types import SimpleNamespace
from typing import Any, Dict, List, Optional

import pytest
from ldap3.utils.conv import escape_filter_chars

from password_expiry_notifier.collector import FILETIME_EPOCH, Account
from password_expiry_notifier.config import DirectoryConfig, MailConfig

NOW = datetime(2026, 10, 19, 6, 0, tzinfo=timezone.utc)


def to_filetime(moment: datetime) -> int:
    delta = moment - FILETIME_EPOCH
    return (delta.days * 86400 + delta.seconds) * 10_000_000 + delta.microseconds * 10


def user_entry(name: str, email: Optional[str], expires: Any, display: Optional[str] = None) -> Dict[str, Any]:
    if isinstance(expires, datetime):
        expires = to_filetime(expires)
    return {
        "sAMAccountName": name,
        "displayName": display or name.title(),
        "mail": email or [],
        "msDS-UserPasswordExpiryTimeComputed": expires,
    }


class FakeConnection:
    """Stands in for ``ldap3.Connection`` paged searches."""

    def __init__(
        self,
        users: Optional[List[Dict[str, Any]]] = None,
        groups: Optional[Dict[str, List[str]]] = None,
        error: Optional[Exception] = None,
    ) -> None:
        self.users = users or []
        self.groups = groups or {}
        self.error = error
        self.searches: List[tuple] = []
        self.unbound = False
        self.extend = SimpleNamespace(standard=SimpleNamespace(paged_search=self._paged_search))

    def _paged_search(self, search_base, search_filter, **kwargs):
        self.searches.append((search_base, search_filter))
        if self.error is not None:
            raise self.error
        if search_filter.startswith("(&(objectClass=group)"):
            found = [name for name in self.groups if f"={escape_filter_chars(name)})" in search_filter]
            rows = [{"distinguishedName": f"CN={name},OU=Groups,DC=corp,DC=example"} for name in found]
        elif search_filter.startswith("(memberOf="):
            rows = [
                {"sAMAccountName": member}
                for name, members in self.groups.items()
                if f"CN={escape_filter_chars(name)}," in search_filter
                for member in members
            ]
        else:
            rows = self.users
        response = [{"type": "searchResEntry", "dn": "", "attributes": row} for row in rows]
        response.append({"type": "searchResRef", "uri": ["ldap://elsewhere"]})
        return response

    def unbind(self):
        self.unbound = True


class FakeSMTP:
    """Records messages sent through ``smtplib.SMTP``."""

    def __init__(self, fail_for=()):
        self.fail_for = set(fail_for)
        self.connections: List[Dict[str, Any]] = []
        self.sent: List[Any] = []

    def __call__(self, host, port, timeout=None):
        self.connections.append({"host": host, "port": port, "timeout": timeout, "tls": False, "login": None})
        return _FakeSession(self)


class _FakeSession:
    def __init__(self, relay: FakeSMTP) -> None:
        self._relay = relay
        self._info = relay.connections[-1]

    def __enter__(self):
        return self

    def __exit__(self, *exc_info):
        return False

    def starttls(self):
        self._info["tls"] = True

    def login(self, user, password):
        self._info["login"] = (user, password)

    def send_message(self, message):
        if message["To"] in self._relay.fail_for:
            raise smtplib.SMTPRecipientsRefused({message["To"]: (550, b"mailbox unavailable")})
        self._relay.sent.append(message)


@pytest.fixture()
def now() -> datetime:
    return NOW


@pytest.fixture()
def directory_config() -> DirectoryConfig:
    return DirectoryConfig(server="dc01.corp.example", search_scope="OU=Staff,DC=corp,DC=example")


@pytest.fixture()
def mail_config() -> MailConfig:
    return MailConfig(relay="relay.corp.example", sender="it-noreply@corp.example")


@pytest.fixture()
def fake_smtp() -> FakeSMTP:
    return FakeSMTP()


def make_account(name: str = "jdoe", expires_in: timedelta = timedelta(days=7), email: str = "") -> Account:
    return Account(
        account_name=name,
        email_address=email or f"{name}@x.com",
        expires_at=NOW + expires_in,
        display_name=name.title(),
    )
