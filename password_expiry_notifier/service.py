"""CLI entry point for running the password expiry notifier."""

from __future__ import annotations

import logging
import os
import sys
import time
from typing import Optional, Sequence

from dotenv import find_dotenv, load_dotenv

from .client import DirectoryClient
from .collector import AccountCollector
from .config import DirectoryConfig, MailConfig, NoticeConfig, NowFactory, RunLogConfig, now_utc
from .dispatcher import DispatchReport, NoticeDispatcher
from .errors import NotifierError
from .notification import SMTPNotifier
from .runlog import RunLog

LOGGER = logging.getLogger("password_expiry_notifier.service")

REQUIRED_VARIABLES = ("LDAP_SERVER", "LDAP_SEARCH_SCOPE", "NOTIFY_SENDER", "SMTP_RELAY", "NOTIFY_LOG_DIR")


class ConfigurationError(NotifierError):
    """A required setting is missing or invalid."""


def _bool_env(name: str, default: bool = False) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.lower() in {"1", "true", "yes", "on"}


def _int_env(name: str, default: int) -> int:
    raw = os.getenv(name, "").strip()
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError as exc:
        raise ConfigurationError(f"Environment variable {name} must be an integer, got {raw!r}") from exc


def _optional_env(name: str) -> Optional[str]:
    value = os.getenv(name, "").strip()
    return value or None


class NotifierSettings:
    """All configuration for one run, read from the environment."""

    def __init__(
        self,
        directory: DirectoryConfig,
        mail: MailConfig,
        notice: NoticeConfig,
        run_log: RunLogConfig,
    ) -> None:
        self.directory = directory
        self.mail = mail
        self.notice = notice
        self.run_log = run_log

    @classmethod
    def from_env(cls) -> "NotifierSettings":
        missing = [name for name in REQUIRED_VARIABLES if not os.getenv(name)]
        if missing:
            raise ConfigurationError(f"Environment variables required: {', '.join(missing)}")

        directory = DirectoryConfig(
            server=os.environ["LDAP_SERVER"],
            search_scope=os.environ["LDAP_SEARCH_SCOPE"],
            bind_user=_optional_env("LDAP_BIND_USER"),
            bind_password=os.getenv("LDAP_BIND_PASSWORD"),
            base_dn=_optional_env("LDAP_BASE_DN"),
            use_ssl=_bool_env("LDAP_USE_SSL"),
            timeout_seconds=_int_env("LDAP_TIMEOUT_SECONDS", 10),
            exclusion_group=_optional_env("NOTIFY_EXCLUSION_GROUP"),
        )
        mail = MailConfig(
            relay=os.environ["SMTP_RELAY"],
            sender=os.environ["NOTIFY_SENDER"],
            port=_int_env("SMTP_PORT", 25),
            starttls=_bool_env("SMTP_STARTTLS"),
            username=_optional_env("SMTP_USER"),
            password=os.getenv("SMTP_PASSWORD"),
            timeout_seconds=_int_env("SMTP_TIMEOUT_SECONDS", 30),
        )
        notice = NoticeConfig(
            helpdesk_contact=_optional_env("NOTIFY_HELPDESK_CONTACT") or NoticeConfig.helpdesk_contact,
            dry_run=_bool_env("NOTIFY_DRY_RUN"),
        )
        run_log = RunLogConfig(
            directory=os.environ["NOTIFY_LOG_DIR"],
            retention_days=_int_env("NOTIFY_LOG_RETENTION_DAYS", 30),
            run_id=_optional_env("NOTIFY_RUN_ID") or RunLogConfig.run_id,
        )
        return cls(directory=directory, mail=mail, notice=notice, run_log=run_log)


def run(
    settings: NotifierSettings,
    client: Optional[DirectoryClient] = None,
    notifier: Optional[SMTPNotifier] = None,
    now_factory: NowFactory = now_utc,
) -> DispatchReport:
    """Collect accounts and dispatch notices inside a run transcript."""

    with RunLog(settings.run_log, now_factory=now_factory):
        start = time.monotonic()
        LOGGER.info(
            "Starting password expiry run (scope=%s, exclusion_group=%s, dry_run=%s)",
            settings.directory.search_scope,
            settings.directory.exclusion_group,
            settings.notice.dry_run,
        )
        client = client or DirectoryClient(settings.directory)
        try:
            accounts = AccountCollector(
                client,
                scope=settings.directory.search_scope,
                exclusion_group=settings.directory.exclusion_group,
            ).collect()
        finally:
            client.close()

        dispatcher = NoticeDispatcher(
            notifier or SMTPNotifier(settings.mail), settings.notice, now_factory=now_factory
        )
        report = dispatcher.dispatch_all(accounts)
        LOGGER.info("Run complete: %s", report.summary())
        LOGGER.debug("Run duration %.2fs", time.monotonic() - start)
        return report


def main(argv: Optional[Sequence[str]] = None) -> int:  # noqa: D401
    """Entry point when executing the module with `python -m`."""

    load_dotenv(find_dotenv(usecwd=True), override=False)
    logging.basicConfig(level=os.getenv("NOTIFY_LOG_LEVEL", "INFO"))
    try:
        settings = NotifierSettings.from_env()
    except ConfigurationError as exc:
        LOGGER.error("%s", exc)
        return 1
    try:
        run(settings)
    except NotifierError as exc:
        # The traceback is already in the transcript.
        LOGGER.error("Password expiry run failed: %s", exc)
        return 1
    return 0


if __name__ == "__main__":  # pragma: no cover
    sys.exit(main())
