"""User-facing notification queue (success / error / info toasts)."""

import itertools
import logging
from dataclasses import dataclass
from threading import Lock

logger = logging.getLogger(__name__)

SUCCESS = 'success'
ERROR = 'error'
INFO = 'info'

LEVELS = (SUCCESS, ERROR, INFO)

_LOG_LEVELS = {
    SUCCESS: logging.INFO,
    ERROR: logging.ERROR,
    INFO: logging.INFO,
}


@dataclass(frozen=True)
class Notification:
    id: int
    level: str
    message: str


class NotificationQueue:
    def __init__(self):
        self._pending: list[Notification] = []
        self._ids = itertools.count(1)
        self._lock = Lock()

    def enqueue(self, level: str, message: str) -> Notification:
        if level not in LEVELS:
            raise ValueError(f'Unknown notification level: {level}')
        with self._lock:
            notification = Notification(id=next(self._ids), level=level, message=message)
            self._pending.append(notification)
        logger.log(_LOG_LEVELS[level], '[%s] %s', level, message)
        return notification

    def success(self, message: str) -> Notification:
        return self.enqueue(SUCCESS, message)

    def error(self, message: str) -> Notification:
        return self.enqueue(ERROR, message)

    def info(self, message: str) -> Notification:
        return self.enqueue(INFO, message)

    def pending(self) -> list[Notification]:
        with self._lock:
            return list(self._pending)

    def dismiss(self, notification_id: int) -> bool:
        with self._lock:
            for index, notification in enumerate(self._pending):
                if notification.id == notification_id:
                    del self._pending[index]
                    return True
        return False

    def clear(self) -> None:
        with self._lock:
            self._pending.clear()
