"""Thin ldap3 client around the Active Directory queries used by the collector."""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional, Set

from ldap3 import NTLM, SIMPLE, SUBTREE, Connection, Server
from ldap3.core.exceptions import LDAPException
from ldap3.utils.conv import escape_filter_chars
from ldap3.utils.dn import parse_dn

from .config import DirectoryConfig
from .errors import DirectoryLookupError

LOGGER = logging.getLogger("password_expiry_notifier.client")

EXPIRY_ATTRIBUTE = "msDS-UserPasswordExpiryTimeComputed"
ACCOUNT_ATTRIBUTES = ["sAMAccountName", "displayName", "mail", EXPIRY_ATTRIBUTE]

# userAccountControl bits: 0x2 ACCOUNTDISABLE, 0x10000 DONT_EXPIRE_PASSWORD
CANDIDATE_FILTER = (
    "(&(objectCategory=person)(objectClass=user)"
    "(!(userAccountControl:1.2.840.113556.1.4.803:=2))"
    "(!(userAccountControl:1.2.840.113556.1.4.803:=65536)))"
)

PAGE_SIZE = 500


def first_value(value: Any) -> Any:
    """Collapse an ldap3 attribute value to a single scalar."""

    if isinstance(value, (list, tuple)):
        return value[0] if value else None
    return value


def domain_base_dn(scope: str) -> str:
    """Return the ``DC=`` suffix of a distinguished name."""

    try:
        parts = parse_dn(scope)
    except LDAPException as exc:
        raise DirectoryLookupError(f"Malformed search scope {scope!r}") from exc
    components = [f"{attr}={value}" for attr, value, _ in parts if attr.lower() == "dc"]
    if not components:
        raise DirectoryLookupError(f"Search scope {scope!r} has no domain components")
    return ",".join(components)


class DirectoryClient:
    """Wrapper for the directory searches needed by the collector."""

    def __init__(self, config: DirectoryConfig, connection: Optional[Connection] = None) -> None:
        self._config = config
        self._connection = connection

    # ---- connection helpers -----------------------------------------------------
    def _connect(self) -> Connection:
        server = Server(
            self._config.server,
            use_ssl=self._config.use_ssl,
            connect_timeout=self._config.timeout_seconds,
        )
        user = self._config.bind_user
        authentication = NTLM if user and "\\" in user else SIMPLE
        LOGGER.debug("Binding to %s as %s", self._config.server, user or "anonymous")
        return Connection(
            server,
            user=user,
            password=self._config.bind_password,
            authentication=authentication if user else None,
            auto_bind=True,
            raise_exceptions=True,
            receive_timeout=self._config.timeout_seconds,
        )

    def _conn(self) -> Connection:
        if self._connection is None:
            try:
                self._connection = self._connect()
            except LDAPException as exc:
                raise DirectoryLookupError(
                    f"Unable to bind to directory server {self._config.server}: {exc}"
                ) from exc
        return self._connection

    def _search(self, base: str, search_filter: str, attributes: List[str]) -> List[Dict[str, Any]]:
        connection = self._conn()
        try:
            response = connection.extend.standard.paged_search(
                search_base=base,
                search_filter=search_filter,
                search_scope=SUBTREE,
                attributes=attributes,
                paged_size=PAGE_SIZE,
                generator=False,
            )
        except LDAPException as exc:
            raise DirectoryLookupError(f"Directory search under {base!r} failed: {exc}") from exc
        return [
            dict(entry.get("attributes") or {})
            for entry in response
            if entry.get("type") == "searchResEntry"
        ]

    # ---- public API --------------------------------------------------------------
    def search_accounts(self, scope: Optional[str] = None) -> List[Dict[str, Any]]:
        """Return the raw attributes of every enabled, expiring account in scope."""

        base = scope or self._config.search_scope
        entries = self._search(base, CANDIDATE_FILTER, ACCOUNT_ATTRIBUTES)
        LOGGER.info("Directory returned %s candidate accounts under %s", len(entries), base)
        return entries

    def group_member_names(self, group: str) -> Set[str]:
        """Resolve a group name to the account names of its direct members."""

        base = self._config.base_dn or domain_base_dn(self._config.search_scope)
        escaped = escape_filter_chars(group)
        groups = self._search(
            base,
            f"(&(objectClass=group)(|(sAMAccountName={escaped})(cn={escaped})))",
            ["distinguishedName"],
        )
        if not groups:
            raise DirectoryLookupError(f"Exclusion group {group!r} not found under {base}")
        group_dn = first_value(groups[0].get("distinguishedName"))
        if not group_dn:
            raise DirectoryLookupError(f"Exclusion group {group!r} has no distinguished name")

        members = self._search(
            base,
            f"(memberOf={escape_filter_chars(group_dn)})",
            ["sAMAccountName"],
        )
        names = {first_value(m.get("sAMAccountName")) for m in members}
        names.discard(None)
        names.discard("")
        LOGGER.info("Exclusion group %s has %s members", group, len(names))
        return {str(name) for name in names}

    def close(self) -> None:
        if self._connection is not None:
            try:
                self._connection.unbind()
            except LDAPException:
                LOGGER.debug("Ignoring error while unbinding", exc_info=True)
            self._connection = None
