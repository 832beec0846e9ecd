"""Slot computation for specialist availability.

A specialist works one interval per weekday, minus zero or more breaks. The
bookable start times for a date are that interval stepped at a fixed
quantization, with break starts, already-booked times and, when a current
time is given, times that have already passed removed. The same rules back
the single-time availability check used right before a booking is written, so
the two can never disagree.

Schedule, break and appointment arguments are duck-typed: ORM rows, request
models and plain objects all work as long as they expose the attributes the
functions read.
"""

from dataclasses import dataclass, field
from datetime import date, datetime, time
from typing import Iterable, Optional

from medcenter.core import config
from medcenter.scheduling.status import AppointmentStatus

NO_SCHEDULE = 'no schedule for this day'
NO_AVAILABLE_SLOTS = 'no available slots for this day'
OUTSIDE_WORKING_HOURS = 'outside working hours'
NOT_ALIGNED = 'not aligned to the slot step'
WITHIN_BREAK = 'falls within a break'
ALREADY_BOOKED = 'already booked'
IN_THE_PAST = 'in the past'

SCHEDULE_CONFLICT_MESSAGE = 'There are conflicts between working hours and breaks.'

MINUTES_PER_DAY = 24 * 60


class ScheduleConflictError(ValueError):
    """A schedule and break set that cannot be saved.

    The message is always the same generic text; the individual problems are
    kept on ``conflicts`` for logging.
    """

    def __init__(self, conflicts: list[str]):
        super().__init__(SCHEDULE_CONFLICT_MESSAGE)
        self.conflicts = conflicts


@dataclass
class SlotListing:
    date: date
    slots: list[time] = field(default_factory=list)
    reason: Optional[str] = None
    failed: bool = False

    @property
    def is_empty(self) -> bool:
        return not self.slots

    def slot_labels(self) -> list[str]:
        return [format_time(slot) for slot in self.slots]


@dataclass(frozen=True)
class AvailabilityResult:
    available: bool
    reason: Optional[str] = None


def day_of_week(target: date) -> int:
    """Weekday index with 0 for Sunday, as stored on schedule entries."""
    return target.isoweekday() % 7


def to_minutes(value: time) -> int:
    return value.hour * 60 + value.minute


def from_minutes(minutes: int) -> time:
    return time(minutes // 60, minutes % 60)


def format_time(value: time) -> str:
    return value.strftime('%H:%M')


def parse_time(value: str) -> time:
    """Parse ``HH:MM`` (seconds are accepted and dropped)."""
    parts = value.strip().split(':')
    if len(parts) not in (2, 3):
        raise ValueError(f'Invalid time: {value!r}')
    hour, minute = int(parts[0]), int(parts[1])
    return time(hour, minute)


def find_schedule_for_day(schedules: Iterable, target: date):
    weekday = day_of_week(target)
    for schedule in schedules:
        if schedule.day_of_week == weekday:
            return schedule
    return None


def breaks_for_day(breaks: Iterable, weekday: int) -> list:
    return [item for item in breaks if item.day_of_week == weekday]


def _is_active(schedule) -> bool:
    return schedule is not None and bool(getattr(schedule, 'is_available', True))


def _booked_minutes(appointments: Iterable, target: date, exclude_appointment_id=None) -> list[int]:
    booked = []
    for appointment in appointments:
        if exclude_appointment_id is not None and getattr(appointment, 'id', None) == exclude_appointment_id:
            continue
        if appointment.status == AppointmentStatus.CANCELADA.value:
            continue
        if appointment.date.date() != target:
            continue
        booked.append(appointment.date.hour * 60 + appointment.date.minute)
    return booked


def _in_break(minute: int, day_breaks: list) -> bool:
    return any(
        to_minutes(item.start_time) <= minute < to_minutes(item.end_time)
        for item in day_breaks
    )


def _is_past(target: date, minute: int, now: Optional[datetime]) -> bool:
    return now is not None and datetime.combine(target, from_minutes(minute)) <= now


def _is_booked(minute: int, booked: list[int], step_minutes: int) -> bool:
    # A booking occupies [start, start + step); aligned bookings only hit their own slot.
    return any(abs(minute - booked_minute) < step_minutes for booked_minute in booked)


def iterate_candidate_starts(start_time: time, end_time: time, step_minutes: int) -> list[int]:
    start = to_minutes(start_time)
    end = to_minutes(end_time)
    candidates = []
    current = start
    while current + step_minutes <= end:
        candidates.append(current)
        current += step_minutes
    return candidates


def compute_available_slots(
    target: date,
    schedule,
    breaks: Iterable,
    appointments: Iterable,
    step_minutes: int = config.SLOT_STEP_MINUTES,
    exclude_appointment_id=None,
    now: Optional[datetime] = None,
) -> SlotListing:
    if not _is_active(schedule) or schedule.day_of_week != day_of_week(target):
        return SlotListing(date=target, reason=NO_SCHEDULE)

    day_breaks = breaks_for_day(breaks, schedule.day_of_week)
    booked = _booked_minutes(appointments, target, exclude_appointment_id)

    slots = [
        from_minutes(minute)
        for minute in iterate_candidate_starts(schedule.start_time, schedule.end_time, step_minutes)
        if not _in_break(minute, day_breaks)
        and not _is_booked(minute, booked, step_minutes)
        and not _is_past(target, minute, now)
    ]

    if not slots:
        return SlotListing(date=target, reason=NO_AVAILABLE_SLOTS)

    return SlotListing(date=target, slots=sorted(slots))


def check_slot_availability(
    target: date,
    slot_time: time,
    schedule,
    breaks: Iterable,
    appointments: Iterable,
    step_minutes: int = config.SLOT_STEP_MINUTES,
    exclude_appointment_id=None,
    now: Optional[datetime] = None,
) -> AvailabilityResult:
    if not _is_active(schedule) or schedule.day_of_week != day_of_week(target):
        return AvailabilityResult(available=False, reason=NO_SCHEDULE)

    minute = to_minutes(slot_time)
    start = to_minutes(schedule.start_time)
    end = to_minutes(schedule.end_time)

    if minute < start or minute + step_minutes > end:
        return AvailabilityResult(available=False, reason=OUTSIDE_WORKING_HOURS)

    if slot_time.second or slot_time.microsecond or (minute - start) % step_minutes:
        return AvailabilityResult(available=False, reason=NOT_ALIGNED)

    if _is_past(target, minute, now):
        return AvailabilityResult(available=False, reason=IN_THE_PAST)

    if _in_break(minute, breaks_for_day(breaks, schedule.day_of_week)):
        return AvailabilityResult(available=False, reason=WITHIN_BREAK)

    booked = _booked_minutes(appointments, target, exclude_appointment_id)
    if _is_booked(minute, booked, step_minutes):
        return AvailabilityResult(available=False, reason=ALREADY_BOOKED)

    return AvailabilityResult(available=True)


def validate_schedule_set(schedules: Iterable, breaks: Iterable) -> None:
    """Reject a schedule and break set as a whole when any entry conflicts."""
    schedules = list(schedules)
    breaks = list(breaks)
    conflicts: list[str] = []
    working: dict[int, tuple[int, int]] = {}

    for schedule in schedules:
        weekday = schedule.day_of_week
        if not 0 <= weekday <= 6:
            conflicts.append(f'schedule day {weekday} is not a weekday index')
            continue
        if schedule.start_time >= schedule.end_time:
            conflicts.append(f'schedule on day {weekday} ends before it starts')
            continue
        if weekday in working:
            conflicts.append(f'more than one schedule on day {weekday}')
            continue
        if _is_active(schedule):
            working[weekday] = (to_minutes(schedule.start_time), to_minutes(schedule.end_time))

    checked: dict[int, list[tuple[int, int]]] = {}
    for item in breaks:
        weekday = item.day_of_week
        if item.start_time >= item.end_time:
            conflicts.append(f'break on day {weekday} ends before it starts')
            continue

        break_start, break_end = to_minutes(item.start_time), to_minutes(item.end_time)
        if weekday not in working:
            conflicts.append(f'break on day {weekday} has no working hours')
            continue

        work_start, work_end = working[weekday]
        if break_start < work_start or break_end > work_end:
            conflicts.append(f'break on day {weekday} is outside working hours')
            continue

        for other_start, other_end in checked.get(weekday, []):
            if break_start < other_end and other_start < break_end:
                conflicts.append(f'breaks overlap on day {weekday}')
                break
        checked.setdefault(weekday, []).append((break_start, break_end))

    if conflicts:
        raise ScheduleConflictError(conflicts)
