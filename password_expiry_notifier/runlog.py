"""Scoped run transcript with retention-based cleanup."""

from __future__ import annotations

import logging
import os
import pathlib
from datetime import datetime, timezone
from types import TracebackType
from typing import List, Optional, Type

from .config import NowFactory, RunLogConfig, now_utc
from .errors import LogSetupError

LOGGER = logging.getLogger("password_expiry_notifier.runlog")

TRANSCRIPT_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


def _created_at(path: pathlib.Path) -> datetime:
    stat = path.stat()
    # Linux only reports ctime (metadata change), so fall back to mtime there.
    created = getattr(stat, "st_birthtime", stat.st_mtime)
    return datetime.fromtimestamp(created, tz=timezone.utc)


class RunLog:
    """Context manager that captures the package log output into a transcript.

    On enter the log directory is created, expired transcripts are purged and a
    file handler is attached to ``logger_name``. On exit the handler is always
    detached and closed.
    """

    def __init__(
        self,
        config: RunLogConfig,
        logger_name: str = "password_expiry_notifier",
        now_factory: NowFactory = now_utc,
    ) -> None:
        self._config = config
        self._logger = logging.getLogger(logger_name)
        self._now_factory = now_factory
        self._handler: Optional[logging.FileHandler] = None
        self.path: Optional[pathlib.Path] = None

    @property
    def directory(self) -> pathlib.Path:
        return pathlib.Path(self._config.directory)

    def transcript_name(self, now: datetime) -> str:
        return f"{self._config.run_id}-{now:%Y-%m-%d}.log"

    def purge(self, now: datetime) -> List[pathlib.Path]:
        """Delete this run's transcripts older than the retention window."""

        cutoff = now - self._config.retention_delta()
        removed: List[pathlib.Path] = []
        for path in sorted(self.directory.glob(f"{self._config.run_id}-*.log")):
            if not path.is_file() or _created_at(path) >= cutoff:
                continue
            try:
                path.unlink()
            except OSError:
                LOGGER.warning("Could not delete old transcript %s", path, exc_info=True)
                continue
            removed.append(path)
        return removed

    def __enter__(self) -> "RunLog":
        now = self._now_factory()
        try:
            os.makedirs(self.directory, exist_ok=True)
            removed = self.purge(now)
            self.path = self.directory / self.transcript_name(now)
            handler = logging.FileHandler(self.path, mode="a", encoding="utf-8")
        except OSError as exc:
            raise LogSetupError(f"Cannot set up run log in {self.directory}: {exc}") from exc

        handler.setFormatter(logging.Formatter(TRANSCRIPT_FORMAT))
        self._logger.addHandler(handler)
        self._handler = handler
        LOGGER.info("Transcript started: %s", self.path)
        if removed:
            LOGGER.info(
                "Removed %s transcripts older than %s days",
                len(removed),
                self._config.retention_days,
            )
        return self

    def __exit__(
        self,
        exc_type: Optional[Type[BaseException]],
        exc: Optional[BaseException],
        tb: Optional[TracebackType],
    ) -> None:
        try:
            if exc is not None:
                LOGGER.error("Run aborted", exc_info=(exc_type, exc, tb))
            LOGGER.info("Transcript stopped: %s", self.path)
        finally:
            if self._handler is not None:
                self._logger.removeHandler(self._handler)
                self._handler.close()
                self._handler = None
