"""Appointment status lifecycle."""

from enum import Enum


class AppointmentStatus(str, Enum):
    PENDIENTE = 'pendiente'
    CONFIRMADA = 'confirmada'
    COMPLETADA = 'completada'
    CANCELADA = 'cancelada'


ALLOWED_TRANSITIONS: dict[AppointmentStatus, frozenset[AppointmentStatus]] = {
    AppointmentStatus.PENDIENTE: frozenset({AppointmentStatus.CONFIRMADA, AppointmentStatus.CANCELADA}),
    AppointmentStatus.CONFIRMADA: frozenset({AppointmentStatus.COMPLETADA, AppointmentStatus.CANCELADA}),
    AppointmentStatus.COMPLETADA: frozenset(),
    AppointmentStatus.CANCELADA: frozenset(),
}

INITIAL_STATUSES = frozenset({AppointmentStatus.PENDIENTE, AppointmentStatus.CONFIRMADA})

STATUS_LABELS = {
    AppointmentStatus.PENDIENTE: 'Pendiente',
    AppointmentStatus.CONFIRMADA: 'Confirmada',
    AppointmentStatus.COMPLETADA: 'Completada',
    AppointmentStatus.CANCELADA: 'Cancelada',
}

STATUS_COLORS = {
    AppointmentStatus.PENDIENTE: '#f59e0b',
    AppointmentStatus.CONFIRMADA: '#10b981',
    AppointmentStatus.COMPLETADA: '#3b82f6',
    AppointmentStatus.CANCELADA: '#ef4444',
}


class InvalidStatusTransitionError(ValueError):
    def __init__(self, current: AppointmentStatus, requested: AppointmentStatus):
        super().__init__(f'Cannot change appointment status from {current.value} to {requested.value}.')
        self.current = current
        self.requested = requested


def parse_status(value) -> AppointmentStatus:
    if isinstance(value, AppointmentStatus):
        return value
    normalized = str(value).strip().lower()
    try:
        return AppointmentStatus(normalized)
    except ValueError as exc:
        raise ValueError(f'Invalid appointment status: {value!r}') from exc


def is_terminal(status) -> bool:
    return not ALLOWED_TRANSITIONS[parse_status(status)]


def can_transition(current, requested) -> bool:
    current, requested = parse_status(current), parse_status(requested)
    return current == requested or requested in ALLOWED_TRANSITIONS[current]


def transition(current, requested) -> AppointmentStatus:
    """Return the requested status, or raise if the lifecycle forbids the move."""
    current, requested = parse_status(current), parse_status(requested)
    if not can_transition(current, requested):
        raise InvalidStatusTransitionError(current, requested)
    return requested


def status_label(status) -> str:
    return STATUS_LABELS[parse_status(status)]


def status_color(status) -> str:
    return STATUS_COLORS[parse_status(status)]
