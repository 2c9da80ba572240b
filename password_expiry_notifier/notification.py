"""Notice tiers, message composition and SMTP delivery."""

from __future__ import annotations

import logging
import smtplib
from dataclasses import dataclass
from email.message import EmailMessage
from email.utils import formatdate, make_msgid
from typing import Callable, Dict, List, Optional

from .collector import Account
from .config import MailConfig, NoticeConfig
from .errors import MailSendError

LOGGER = logging.getLogger("password_expiry_notifier.notification")


@dataclass(frozen=True)
class NoticeTier:
    """A bucket of day counts sharing one subject/body template."""

    name: str
    subject_template: str
    body_template: str


FINAL_TIER = NoticeTier(
    name="final",
    subject_template=(
        "FINAL PASSWORD CHANGE NOTIFICATION - "
        "Your network password will expire in less than 24 hours."
    ),
    body_template=(
        "This is your FINAL notice: your network password for account {account_name} "
        "will expire in less than 24 hours, on {expires_on}.\n"
        "Please change your password now to avoid losing access."
    ),
)

STANDARD_TIER = NoticeTier(
    name="standard",
    subject_template="Your network password will expire in {days} days.",
    body_template=(
        "Your network password for account {account_name} will expire in {days} days, "
        "on {expires_on}.\n"
        "Please change your password before then to avoid losing access."
    ),
)

NOTICE_TIERS: Dict[int, NoticeTier] = {
    0: FINAL_TIER,
    1: FINAL_TIER,
    2: STANDARD_TIER,
    3: STANDARD_TIER,
    7: STANDARD_TIER,
    14: STANDARD_TIER,
}

STANDARD_INSTRUCTIONS = """\
To change your password:
  1. Sign in to a domain computer.
  2. Press Ctrl+Alt+Del and choose "Change a password".
  3. Enter your current password, then your new password twice.
  4. Press Enter to return to your desktop.

If you are working remotely, connect to the VPN before changing your password.
If you need assistance, please contact {helpdesk_contact}.

This is an automated message. Please do not reply to this email."""


def tier_for(days_remaining: int) -> Optional[NoticeTier]:
    """Return the tier for a day count, or ``None`` when no notice is due."""

    return NOTICE_TIERS.get(days_remaining)


@dataclass(frozen=True)
class Notice:
    """A composed notice ready to send."""

    tier: str
    recipient: str
    subject: str
    body: str


def compose_notice(
    account: Account,
    days_remaining: int,
    config: Optional[NoticeConfig] = None,
) -> Optional[Notice]:
    """Compose the notice for an account, or ``None`` if it is not eligible."""

    tier = tier_for(days_remaining)
    if tier is None:
        return None
    config = config or NoticeConfig()
    values = {
        "account_name": account.account_name,
        "days": days_remaining,
        "expires_on": account.expires_at.strftime("%A, %B %d, %Y at %H:%M UTC"),
    }
    lines: List[str] = [
        f"Dear {account.greeting_name},",
        "",
        tier.body_template.format(**values),
        "",
        STANDARD_INSTRUCTIONS.format(helpdesk_contact=config.helpdesk_contact),
    ]
    return Notice(
        tier=tier.name,
        recipient=account.email_address,
        subject=tier.subject_template.format(**values),
        body="\n".join(lines),
    )


@dataclass(frozen=True)
class NotificationResult:
    """Represents a notice accepted by the relay."""

    recipient: str
    message_id: str


SMTPFactory = Callable[..., smtplib.SMTP]


class SMTPNotifier:
    """Sends notices through an SMTP relay, one connection per message."""

    def __init__(self, config: MailConfig, smtp_factory: Optional[SMTPFactory] = None) -> None:
        self._config = config
        self._smtp_factory = smtp_factory or smtplib.SMTP

    def build_message(self, notice: Notice) -> EmailMessage:
        message = EmailMessage()
        message["From"] = self._config.sender
        message["To"] = notice.recipient
        message["Subject"] = notice.subject
        message["Date"] = formatdate(localtime=True)
        message["Message-ID"] = make_msgid()
        message.set_content(notice.body)
        return message

    def send(self, notice: Notice) -> NotificationResult:
        """Deliver one notice; raises ``MailSendError`` on any transport failure."""

        try:
            # Directory mail values are free text; bad ones fail in header parsing.
            message = self.build_message(notice)
            with self._smtp_factory(
                self._config.relay, self._config.port, timeout=self._config.timeout_seconds
            ) as smtp:
                if self._config.starttls:
                    smtp.starttls()
                if self._config.username and self._config.password:
                    smtp.login(self._config.username, self._config.password)
                smtp.send_message(message)
        except (smtplib.SMTPException, OSError, ValueError, AttributeError) as exc:
            raise MailSendError(
                f"Sending to {notice.recipient} via {self._config.relay} failed: {exc}",
                recipient=notice.recipient,
            ) from exc
        return NotificationResult(recipient=notice.recipient, message_id=message["Message-ID"])
