"""Decides which accounts get a notice and sends them."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Iterable, List, Optional

from .collector import Account
from .config import NoticeConfig, NowFactory, now_utc
from .errors import MailSendError
from .notification import NotificationResult, SMTPNotifier, compose_notice

LOGGER = logging.getLogger("password_expiry_notifier.dispatcher")


@dataclass
class DispatchReport:
    """Tally of one dispatch run."""

    considered: int = 0
    sent: int = 0
    skipped: int = 0
    failed_accounts: List[str] = field(default_factory=list)

    @property
    def failed(self) -> int:
        return len(self.failed_accounts)

    def summary(self) -> str:
        return (
            f"considered={self.considered} sent={self.sent} "
            f"skipped={self.skipped} failed={self.failed}"
        )


class NoticeDispatcher:
    """Sends tiered expiry notices, isolating failures per account."""

    def __init__(
        self,
        notifier: SMTPNotifier,
        config: Optional[NoticeConfig] = None,
        now_factory: NowFactory = now_utc,
    ) -> None:
        self._notifier = notifier
        self._config = config or NoticeConfig()
        self._now_factory = now_factory

    def dispatch(self, account: Account) -> Optional[NotificationResult]:
        """Send the notice due for ``account``, if any.

        Returns ``None`` when the account is not in a notice tier or in dry-run
        mode. ``MailSendError`` propagates to the caller.
        """

        days = account.days_remaining(self._now_factory())
        notice = compose_notice(account, days, self._config)
        if notice is None:
            LOGGER.debug("No notice for %s (%s days remaining)", account.account_name, days)
            return None

        expires_on = account.expires_at.strftime("%Y-%m-%d")
        if self._config.dry_run:
            LOGGER.info(
                "[dry run] Would notify %s <%s>: expires %s (%s days, %s tier)",
                account.account_name,
                notice.recipient,
                expires_on,
                days,
                notice.tier,
            )
            return None

        result = self._notifier.send(notice)
        LOGGER.info(
            "Notified %s <%s>: password expires %s (%s days)",
            account.account_name,
            notice.recipient,
            expires_on,
            days,
        )
        return result

    def dispatch_all(self, accounts: Iterable[Account]) -> DispatchReport:
        report = DispatchReport()
        for account in accounts:
            report.considered += 1
            try:
                result = self.dispatch(account)
            except MailSendError:
                LOGGER.exception("Failed to notify %s", account.account_name)
                report.failed_accounts.append(account.account_name)
                continue
            if result is None:
                report.skipped += 1
            else:
                report.sent += 1
        return report
