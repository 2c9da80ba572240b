"""Tests for notice tiers, composition and SMTP delivery."""

from __future__ import annotations

from datetime import timedelta

import pytest

from conftest import NOW, FakeSMTP, make_account
from password_expiry_notifier.config import MailConfig, NoticeConfig
from password_expiry_notifier.errors import MailSendError
from password_expiry_notifier.notification import (
    Notice,
    SMTPNotifier,
    compose_notice,
    tier_for,
)


@pytest.mark.parametrize("days", [-3, -1, 4, 5, 6, 8, 10, 13, 15, 30, 90])
def test_ineligible_day_counts(days):
    assert tier_for(days) is None
    assert compose_notice(make_account(), days) is None


@pytest.mark.parametrize("days", [0, 1])
def test_final_tier(days):
    notice = compose_notice(make_account(expires_in=timedelta(hours=days * 24 + 3)), days)

    assert notice.tier == "final"
    assert "FINAL PASSWORD CHANGE NOTIFICATION" in notice.subject
    assert "24 hours" in notice.body


@pytest.mark.parametrize("days", [2, 3, 7, 14])
def test_standard_tier_mentions_day_count(days):
    notice = compose_notice(make_account(expires_in=timedelta(days=days, hours=1)), days)

    assert notice.tier == "standard"
    assert notice.subject == f"Your network password will expire in {days} days."
    assert f"{days} days" in notice.body


def test_instructions_identical_across_tiers():
    config = NoticeConfig(helpdesk_contact="the Service Desk at x1234")
    final = compose_notice(make_account(), 1, config)
    standard = compose_notice(make_account(), 14, config)

    tail = final.body.split("To change your password:")[1]
    assert tail == standard.body.split("To change your password:")[1]
    assert "the Service Desk at x1234" in tail
    assert "automated message" in tail


def test_body_greets_display_name():
    notice = compose_notice(make_account("asmith"), 7)
    assert notice.body.startswith("Dear Asmith,")
    assert notice.recipient == "asmith@x.com"


def _notice() -> Notice:
    return Notice(tier="standard", recipient="jdoe@x.com", subject="s", body="b")


def test_send_delivers_one_message(mail_config, fake_smtp):
    result = SMTPNotifier(mail_config, smtp_factory=fake_smtp).send(_notice())

    assert len(fake_smtp.sent) == 1
    message = fake_smtp.sent[0]
    assert message["From"] == "it-noreply@corp.example"
    assert message["To"] == "jdoe@x.com"
    assert result.recipient == "jdoe@x.com"
    assert result.message_id == message["Message-ID"]
    assert fake_smtp.connections[0] == {
        "host": "relay.corp.example",
        "port": 25,
        "timeout": 30,
        "tls": False,
        "login": None,
    }


def test_send_uses_starttls_and_login():
    config = MailConfig(
        relay="smtp.example", sender="a@example", port=587, starttls=True, username="u", password="p"
    )
    relay = FakeSMTP()
    SMTPNotifier(config, smtp_factory=relay).send(_notice())

    assert relay.connections[0]["tls"] is True
    assert relay.connections[0]["login"] == ("u", "p")


def test_send_failure_raises_mail_send_error(mail_config):
    relay = FakeSMTP(fail_for={"jdoe@x.com"})
    with pytest.raises(MailSendError) as info:
        SMTPNotifier(mail_config, smtp_factory=relay).send(_notice())
    assert info.value.recipient == "jdoe@x.com"


def test_connection_error_raises_mail_send_error(mail_config):
    def refuse(*args, **kwargs):
        raise ConnectionRefusedError("relay down")

    with pytest.raises(MailSendError):
        SMTPNotifier(mail_config, smtp_factory=refuse).send(_notice())
