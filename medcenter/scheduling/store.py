"""Database access for specialist schedules, breaks and booked appointments."""

import logging
from datetime import date, datetime, time, timedelta
from typing import Iterable

from sqlalchemy.orm import Session

from medcenter.core import config
from medcenter.models.appointment import Appointment
from medcenter.models.schedule import SpecialistBreak, SpecialistSchedule
from medcenter.scheduling.slots import (
    AvailabilityResult,
    SlotListing,
    check_slot_availability,
    compute_available_slots,
    day_of_week,
    validate_schedule_set,
)
from medcenter.scheduling.status import AppointmentStatus

logger = logging.getLogger(__name__)


def clinic_now() -> datetime:
    """Current clinic wall-clock time, naive like stored appointment dates."""
    return datetime.now().replace(second=0, microsecond=0)


def load_schedules(db: Session, tenant_id: int, specialist_id: int) -> list[SpecialistSchedule]:
    return db.query(SpecialistSchedule).filter(
        SpecialistSchedule.tenant_id == tenant_id,
        SpecialistSchedule.specialist_id == specialist_id,
    ).order_by(SpecialistSchedule.day_of_week.asc()).all()


def load_breaks(db: Session, tenant_id: int, specialist_id: int, weekday: int | None = None) -> list[SpecialistBreak]:
    query = db.query(SpecialistBreak).filter(
        SpecialistBreak.tenant_id == tenant_id,
        SpecialistBreak.specialist_id == specialist_id,
    )
    if weekday is not None:
        query = query.filter(SpecialistBreak.day_of_week == weekday)
    return query.order_by(SpecialistBreak.day_of_week.asc(), SpecialistBreak.start_time.asc()).all()


def load_schedule_for_day(db: Session, tenant_id: int, specialist_id: int, target: date) -> SpecialistSchedule | None:
    return db.query(SpecialistSchedule).filter(
        SpecialistSchedule.tenant_id == tenant_id,
        SpecialistSchedule.specialist_id == specialist_id,
        SpecialistSchedule.day_of_week == day_of_week(target),
    ).first()


def load_booked_appointments(db: Session, tenant_id: int, specialist_id: int, target: date) -> list[Appointment]:
    day_start = datetime.combine(target, time.min)
    day_end = day_start + timedelta(days=1)
    return db.query(Appointment).filter(
        Appointment.tenant_id == tenant_id,
        Appointment.specialist_id == specialist_id,
        Appointment.date >= day_start,
        Appointment.date < day_end,
        Appointment.status != AppointmentStatus.CANCELADA.value,
    ).order_by(Appointment.date.asc()).all()


def get_available_slots(
    db: Session,
    tenant_id: int,
    specialist_id: int,
    target: date,
    exclude_appointment_id: int | None = None,
) -> SlotListing:
    schedule = load_schedule_for_day(db, tenant_id, specialist_id, target)
    if schedule is None:
        return compute_available_slots(target, None, [], [], config.SLOT_STEP_MINUTES)

    return compute_available_slots(
        target,
        schedule,
        load_breaks(db, tenant_id, specialist_id, schedule.day_of_week),
        load_booked_appointments(db, tenant_id, specialist_id, target),
        config.SLOT_STEP_MINUTES,
        exclude_appointment_id=exclude_appointment_id,
        now=clinic_now(),
    )


def check_availability(
    db: Session,
    tenant_id: int,
    specialist_id: int,
    target: date,
    slot_time: time,
    exclude_appointment_id: int | None = None,
) -> AvailabilityResult:
    schedule = load_schedule_for_day(db, tenant_id, specialist_id, target)
    if schedule is None:
        return check_slot_availability(target, slot_time, None, [], [], config.SLOT_STEP_MINUTES)

    return check_slot_availability(
        target,
        slot_time,
        schedule,
        load_breaks(db, tenant_id, specialist_id, schedule.day_of_week),
        load_booked_appointments(db, tenant_id, specialist_id, target),
        config.SLOT_STEP_MINUTES,
        exclude_appointment_id=exclude_appointment_id,
        now=clinic_now(),
    )


def replace_schedule_set(
    db: Session,
    tenant_id: int,
    specialist_id: int,
    schedules: Iterable,
    breaks: Iterable,
) -> tuple[list[SpecialistSchedule], list[SpecialistBreak]]:
    """Validate and replace the specialist's whole active schedule in one transaction.

    Only entries marked available are stored. Raises ``ScheduleConflictError``
    before touching the database when the set is inconsistent. The caller
    commits.
    """
    active_schedules = [item for item in schedules if getattr(item, 'is_available', True)]
    breaks = list(breaks)
    validate_schedule_set(active_schedules, breaks)

    db.query(SpecialistBreak).filter(
        SpecialistBreak.tenant_id == tenant_id,
        SpecialistBreak.specialist_id == specialist_id,
    ).delete(synchronize_session=False)
    db.query(SpecialistSchedule).filter(
        SpecialistSchedule.tenant_id == tenant_id,
        SpecialistSchedule.specialist_id == specialist_id,
    ).delete(synchronize_session=False)

    new_schedules = [
        SpecialistSchedule(
            tenant_id=tenant_id,
            specialist_id=specialist_id,
            day_of_week=item.day_of_week,
            start_time=item.start_time,
            end_time=item.end_time,
            is_available=True,
        )
        for item in active_schedules
    ]
    new_breaks = [
        SpecialistBreak(
            tenant_id=tenant_id,
            specialist_id=specialist_id,
            day_of_week=item.day_of_week,
            start_time=item.start_time,
            end_time=item.end_time,
            description=getattr(item, 'description', None) or '',
        )
        for item in breaks
    ]
    db.add_all(new_schedules)
    db.add_all(new_breaks)
    db.flush()

    logger.info(
        'Replaced schedule for specialist %s: %d working days, %d breaks',
        specialist_id,
        len(new_schedules),
        len(new_breaks),
    )
    return new_schedules, new_breaks
