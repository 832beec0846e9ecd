import pytest

from medcenter.scheduling.status import (
    AppointmentStatus,
    InvalidStatusTransitionError,
    can_transition,
    is_terminal,
    parse_status,
    status_color,
    status_label,
    transition,
)


@pytest.mark.parametrize(
    ('current', 'requested'),
    [
        ('pendiente', 'confirmada'),
        ('pendiente', 'cancelada'),
        ('confirmada', 'completada'),
        ('confirmada', 'cancelada'),
        ('confirmada', 'confirmada'),
    ],
)
def test_transition_allows_lifecycle_moves(current: str, requested: str) -> None:
    assert transition(current, requested) == AppointmentStatus(requested)


@pytest.mark.parametrize(
    ('current', 'requested'),
    [
        ('completada', 'pendiente'),
        ('completada', 'cancelada'),
        ('cancelada', 'confirmada'),
        ('pendiente', 'completada'),
        ('confirmada', 'pendiente'),
    ],
)
def test_transition_rejects_illegal_moves(current: str, requested: str) -> None:
    assert can_transition(current, requested) is False

    with pytest.raises(InvalidStatusTransitionError) as exception_info:
        transition(current, requested)

    assert exception_info.value.current == AppointmentStatus(current)
    assert str(exception_info.value) == f'Cannot change appointment status from {current} to {requested}.'


def test_terminal_statuses() -> None:
    assert is_terminal('completada')
    assert is_terminal(AppointmentStatus.CANCELADA)
    assert not is_terminal('pendiente')
    assert not is_terminal('confirmada')


def test_parse_status_normalizes_and_rejects_unknown_values() -> None:
    assert parse_status(' Confirmada ') == AppointmentStatus.CONFIRMADA

    with pytest.raises(ValueError):
        parse_status('archivada')


def test_display_metadata_covers_every_status() -> None:
    for item in AppointmentStatus:
        assert status_label(item)
        assert status_color(item.value).startswith('#')

    assert status_label('pendiente') == 'Pendiente'
