"""User-visible notices."""

from __future__ import annotations

import logging
from enum import Enum
from typing import Protocol

from pydantic import BaseModel

logger = logging.getLogger(__name__)


class NoticeLevel(str, Enum):
    SUCCESS = "success"
    WARNING = "warning"
    ERROR = "error"


class Notice(BaseModel):
    level: NoticeLevel
    title: str
    description: str = ""


class Notifier(Protocol):
    def notify(self, notice: Notice) -> None: ...


_LOG_LEVELS = {
    NoticeLevel.SUCCESS: logging.INFO,
    NoticeLevel.WARNING: logging.WARNING,
    NoticeLevel.ERROR: logging.ERROR,
}


class LoggingNotifier:
    """Default notifier: writes notices to the log."""

    def notify(self, notice: Notice) -> None:
        message = f"{notice.title}: {notice.description}" if notice.description else notice.title
        logger.log(_LOG_LEVELS[notice.level], message)


class RecordingNotifier:
    """Keeps every notice in memory."""

    def __init__(self) -> None:
        self.notices: list[Notice] = []

    def notify(self, notice: Notice) -> None:
        self.notices.append(notice)

    def of_level(self, level: NoticeLevel) -> list[Notice]:
        return [n for n in self.notices if n.level is level]
