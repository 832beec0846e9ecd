import logging

import pytest

from medcenter.notifications import ERROR, SUCCESS, NotificationQueue


def test_enqueue_and_dismiss_lifecycle() -> None:
    queue = NotificationQueue()
    saved = queue.success('Availability updated.')
    failed = queue.error('Could not connect to the server.')

    assert [item.level for item in queue.pending()] == [SUCCESS, ERROR]

    assert queue.dismiss(saved.id) is True
    assert queue.pending() == [failed]
    assert queue.dismiss(saved.id) is False

    queue.clear()
    assert queue.pending() == []


def test_notification_ids_are_unique() -> None:
    queue = NotificationQueue()

    ids = {queue.info(f'message {index}').id for index in range(5)}

    assert len(ids) == 5


def test_unknown_level_is_rejected() -> None:
    with pytest.raises(ValueError):
        NotificationQueue().enqueue('warning', 'nope')


def test_errors_are_logged(caplog: pytest.LogCaptureFixture) -> None:
    with caplog.at_level(logging.ERROR, logger='medcenter.notifications'):
        NotificationQueue().error('Error saving availability')

    assert 'Error saving availability' in caplog.text
