import logging
from datetime import date, datetime, time, timedelta

from fastapi import APIRouter, Depends, HTTPException, Query, status
from pydantic import BaseModel, field_validator
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from medcenter.auth.dependencies import ensure_tenant_access, get_current_user, require_roles
from medcenter.core.responses import ApiResponse, ok
from medcenter.database import database_unavailable, get_db
from medcenter.models.appointment import Appointment
from medcenter.models.user import User, UserRole
from medcenter.scheduling import store
from medcenter.scheduling.slots import ALREADY_BOOKED
from medcenter.scheduling.status import (
    INITIAL_STATUSES,
    AppointmentStatus,
    InvalidStatusTransitionError,
    is_terminal,
    parse_status,
    status_color,
    status_label,
    transition,
)

logger = logging.getLogger(__name__)

router = APIRouter(tags=['appointments'])

MAX_APPOINTMENT_REASON_LENGTH = 300
MAX_APPOINTMENT_NOTES_LENGTH = 600


def normalize_appointment_datetime(value: datetime) -> datetime:
    # Appointment times are clinic wall-clock times.
    return value.replace(tzinfo=None, second=0, microsecond=0)


def _validate_reason(value: str) -> str:
    normalized = value.strip()
    if not normalized:
        raise ValueError('Reason is required.')
    if len(normalized) > MAX_APPOINTMENT_REASON_LENGTH:
        raise ValueError(f'Reason must be {MAX_APPOINTMENT_REASON_LENGTH} characters or fewer.')
    return normalized


def _validate_notes(value: str | None) -> str | None:
    if value is None:
        return None

    normalized = value.strip()
    if not normalized:
        return None

    if len(normalized) > MAX_APPOINTMENT_NOTES_LENGTH:
        raise ValueError(f'Notes must be {MAX_APPOINTMENT_NOTES_LENGTH} characters or fewer.')

    return normalized


class CreateAppointmentRequest(BaseModel):
    patient_id: int
    specialist_id: int
    date: datetime
    reason: str
    notes: str | None = None
    status: AppointmentStatus = AppointmentStatus.PENDIENTE

    @field_validator('date')
    @classmethod
    def validate_date(cls, value: datetime) -> datetime:
        return normalize_appointment_datetime(value)

    @field_validator('reason')
    @classmethod
    def validate_reason(cls, value: str) -> str:
        return _validate_reason(value)

    @field_validator('notes')
    @classmethod
    def validate_notes(cls, value: str | None) -> str | None:
        return _validate_notes(value)

    @field_validator('status', mode='before')
    @classmethod
    def validate_status(cls, value) -> AppointmentStatus:
        parsed = parse_status(value)
        if parsed not in INITIAL_STATUSES:
            raise ValueError('New appointments must be pendiente or confirmada.')
        return parsed


class UpdateAppointmentRequest(BaseModel):
    specialist_id: int | None = None
    date: datetime | None = None
    reason: str | None = None
    notes: str | None = None
    status: AppointmentStatus | None = None

    @field_validator('date')
    @classmethod
    def validate_date(cls, value: datetime | None) -> datetime | None:
        if value is None:
            return None
        return normalize_appointment_datetime(value)

    @field_validator('reason')
    @classmethod
    def validate_reason(cls, value: str | None) -> str | None:
        if value is None:
            return None
        return _validate_reason(value)

    @field_validator('notes')
    @classmethod
    def validate_notes(cls, value: str | None) -> str | None:
        return _validate_notes(value)

    @field_validator('status', mode='before')
    @classmethod
    def validate_status(cls, value):
        if value is None:
            return None
        return parse_status(value)


class UpdateStatusRequest(BaseModel):
    status: AppointmentStatus

    @field_validator('status', mode='before')
    @classmethod
    def validate_status(cls, value) -> AppointmentStatus:
        return parse_status(value)


class UserSummaryResponse(BaseModel):
    id: int
    email: str
    name: str | None = None
    specialty: str | None = None
    identification_number: str | None = None

    class Config:
        from_attributes = True


class AppointmentResponse(BaseModel):
    id: int
    tenant_id: int
    patient_id: int
    specialist_id: int
    date: datetime
    reason: str
    status: AppointmentStatus
    status_label: str
    status_color: str
    notes: str | None = None
    patient: UserSummaryResponse | None = None
    specialist: UserSummaryResponse | None = None


def serialize_appointment(appointment: Appointment) -> AppointmentResponse:
    return AppointmentResponse(
        id=appointment.id,
        tenant_id=appointment.tenant_id,
        patient_id=appointment.patient_id,
        specialist_id=appointment.specialist_id,
        date=appointment.date,
        reason=appointment.reason,
        status=parse_status(appointment.status),
        status_label=status_label(appointment.status),
        status_color=status_color(appointment.status),
        notes=appointment.notes,
        patient=UserSummaryResponse.model_validate(appointment.patient) if appointment.patient else None,
        specialist=UserSummaryResponse.model_validate(appointment.specialist) if appointment.specialist else None,
    )


def get_tenant_user_or_404(db: Session, tenant_id: int, user_id: int, role: UserRole) -> User:
    user = db.query(User).filter(
        User.id == user_id,
        User.tenant_id == tenant_id,
        User.role == role.value,
    ).first()
    if user is None:
        label = 'Patient' if role == UserRole.PATIENT else 'Specialist'
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f'{label} not found.',
        )
    return user


def get_appointment_or_404(db: Session, appointment_id: int) -> Appointment:
    appointment = db.query(Appointment).filter(Appointment.id == appointment_id).first()
    if appointment is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail='Appointment not found.',
        )
    return appointment


def ensure_can_manage_appointment(current_user: User, appointment: Appointment) -> None:
    ensure_tenant_access(current_user, appointment.tenant_id)
    if current_user.is_admin:
        return
    if current_user.role == UserRole.SPECIALIST.value and current_user.id == appointment.specialist_id:
        return
    raise HTTPException(
        status_code=status.HTTP_403_FORBIDDEN,
        detail='Only administrators or the assigned specialist can manage this appointment.',
    )


def ensure_can_view_appointment(current_user: User, appointment: Appointment) -> None:
    ensure_tenant_access(current_user, appointment.tenant_id)
    if current_user.is_admin:
        return
    if current_user.id in (appointment.specialist_id, appointment.patient_id):
        return
    raise HTTPException(
        status_code=status.HTTP_403_FORBIDDEN,
        detail='You do not have access to this appointment.',
    )


def ensure_slot_available(
    db: Session,
    tenant_id: int,
    specialist_id: int,
    start: datetime,
    exclude_appointment_id: int | None = None,
) -> None:
    result = store.check_availability(
        db,
        tenant_id,
        specialist_id,
        start.date(),
        start.time(),
        exclude_appointment_id=exclude_appointment_id,
    )
    if not result.available:
        logger.info(
            'Rejected booking for specialist %s at %s: %s',
            specialist_id,
            start.isoformat(),
            result.reason,
        )
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail=f'The selected time is not available: {result.reason}.',
        )


def slot_taken(appointment_date: datetime) -> HTTPException:
    # The unique slot index rejected a concurrent booking.
    logger.warning('Slot %s was booked concurrently', appointment_date.isoformat())
    return HTTPException(
        status_code=status.HTTP_409_CONFLICT,
        detail=f'The selected time is not available: {ALREADY_BOOKED}.',
    )


def apply_status_change(appointment: Appointment, requested: AppointmentStatus) -> None:
    try:
        appointment.status = transition(appointment.status, requested).value
    except InvalidStatusTransitionError as exc:
        logger.warning('Rejected status change on appointment %s: %s', appointment.id, exc)
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail=str(exc),
        ) from exc


def filter_appointments(query, specialist_id: int | None, appointment_status: AppointmentStatus | None, on_date: date | None):
    if specialist_id is not None:
        query = query.filter(Appointment.specialist_id == specialist_id)
    if appointment_status is not None:
        query = query.filter(Appointment.status == appointment_status.value)
    if on_date is not None:
        day_start = datetime.combine(on_date, time.min)
        query = query.filter(Appointment.date >= day_start, Appointment.date < day_start + timedelta(days=1))
    return query.order_by(Appointment.date.asc())


@router.get('', response_model=ApiResponse[list[AppointmentResponse]])
def list_specialist_appointments(
    appointment_status: AppointmentStatus | None = Query(default=None, alias='status'),
    on_date: date | None = Query(default=None, alias='date'),
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    if current_user.role == UserRole.SPECIALIST.value:
        specialist_id = current_user.id
    elif current_user.is_admin:
        specialist_id = None
    else:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail='Only specialists and administrators can list appointments.',
        )

    try:
        query = db.query(Appointment).filter(Appointment.tenant_id == current_user.tenant_id)
        appointments = filter_appointments(query, specialist_id, appointment_status, on_date).all()
        return ok([serialize_appointment(appointment) for appointment in appointments])
    except SQLAlchemyError as exc:
        raise database_unavailable(exc) from exc


@router.get('/patient', response_model=ApiResponse[list[AppointmentResponse]])
def list_patient_appointments(
    db: Session = Depends(get_db),
    current_user: User = Depends(require_roles(UserRole.PATIENT)),
):
    try:
        appointments = db.query(Appointment).filter(
            Appointment.patient_id == current_user.id,
        ).order_by(Appointment.date.asc()).all()
        return ok([serialize_appointment(appointment) for appointment in appointments])
    except SQLAlchemyError as exc:
        raise database_unavailable(exc) from exc


@router.get('/{tenant_id}/all', response_model=ApiResponse[list[AppointmentResponse]])
def list_tenant_appointments(
    tenant_id: int,
    specialist_id: int | None = Query(default=None),
    appointment_status: AppointmentStatus | None = Query(default=None, alias='status'),
    on_date: date | None = Query(default=None, alias='date'),
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    ensure_tenant_access(current_user, tenant_id)
    if not current_user.is_admin:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail='Only administrators can view every appointment of the medical center.',
        )

    try:
        query = db.query(Appointment).filter(Appointment.tenant_id == tenant_id)
        appointments = filter_appointments(query, specialist_id, appointment_status, on_date).all()
        return ok([serialize_appointment(appointment) for appointment in appointments])
    except SQLAlchemyError as exc:
        raise database_unavailable(exc) from exc


@router.get('/appointments/{appointment_id}', response_model=ApiResponse[AppointmentResponse])
def get_appointment(
    appointment_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    try:
        appointment = get_appointment_or_404(db, appointment_id)
    except SQLAlchemyError as exc:
        raise database_unavailable(exc) from exc

    ensure_can_view_appointment(current_user, appointment)
    return ok(serialize_appointment(appointment))


@router.post(
    '/{tenant_id}/appointments',
    response_model=ApiResponse[AppointmentResponse],
    status_code=status.HTTP_201_CREATED,
)
def create_appointment(
    tenant_id: int,
    data: CreateAppointmentRequest,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    ensure_tenant_access(current_user, tenant_id)
    if not current_user.is_admin and not (
        current_user.role == UserRole.SPECIALIST.value and current_user.id == data.specialist_id
    ):
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail='Only administrators or the specialist can schedule this appointment.',
        )

    try:
        get_tenant_user_or_404(db, tenant_id, data.patient_id, UserRole.PATIENT)
        get_tenant_user_or_404(db, tenant_id, data.specialist_id, UserRole.SPECIALIST)
        ensure_slot_available(db, tenant_id, data.specialist_id, data.date)

        appointment = Appointment(
            tenant_id=tenant_id,
            patient_id=data.patient_id,
            specialist_id=data.specialist_id,
            date=data.date,
            reason=data.reason,
            notes=data.notes,
            status=data.status.value,
        )
        db.add(appointment)
        db.commit()
        db.refresh(appointment)
    except IntegrityError as exc:
        db.rollback()
        raise slot_taken(data.date) from exc
    except SQLAlchemyError as exc:
        db.rollback()
        raise database_unavailable(exc) from exc

    logger.info(
        'Created appointment %s for specialist %s at %s',
        appointment.id,
        appointment.specialist_id,
        appointment.date.isoformat(),
    )
    return ok(serialize_appointment(appointment), message='Appointment created.')


@router.put('/appointments/{appointment_id}', response_model=ApiResponse[AppointmentResponse])
def update_appointment(
    appointment_id: int,
    data: UpdateAppointmentRequest,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    try:
        appointment = get_appointment_or_404(db, appointment_id)
        ensure_can_manage_appointment(current_user, appointment)

        new_specialist_id = data.specialist_id if data.specialist_id is not None else appointment.specialist_id
        new_date = data.date if data.date is not None else appointment.date
        if new_specialist_id != appointment.specialist_id or new_date != appointment.date:
            if is_terminal(appointment.status):
                raise HTTPException(
                    status_code=status.HTTP_409_CONFLICT,
                    detail='Completed or cancelled appointments cannot be rescheduled.',
                )
            if new_specialist_id != appointment.specialist_id:
                get_tenant_user_or_404(db, appointment.tenant_id, new_specialist_id, UserRole.SPECIALIST)
            ensure_slot_available(
                db,
                appointment.tenant_id,
                new_specialist_id,
                new_date,
                exclude_appointment_id=appointment.id,
            )
            appointment.specialist_id = new_specialist_id
            appointment.date = new_date

        if data.status is not None:
            apply_status_change(appointment, data.status)
        if data.reason is not None:
            appointment.reason = data.reason
        if 'notes' in data.model_fields_set:
            appointment.notes = data.notes

        db.commit()
        db.refresh(appointment)
    except IntegrityError as exc:
        db.rollback()
        raise slot_taken(new_date) from exc
    except SQLAlchemyError as exc:
        db.rollback()
        raise database_unavailable(exc) from exc
    except HTTPException:
        db.rollback()
        raise

    logger.info('Updated appointment %s', appointment.id)
    return ok(serialize_appointment(appointment), message='Appointment updated.')


@router.put('/appointments/{appointment_id}/status', response_model=ApiResponse[AppointmentResponse])
def update_appointment_status(
    appointment_id: int,
    data: UpdateStatusRequest,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    try:
        appointment = get_appointment_or_404(db, appointment_id)

        patient_cancelling = (
            current_user.role == UserRole.PATIENT.value
            and current_user.id == appointment.patient_id
            and data.status == AppointmentStatus.CANCELADA
        )
        if not patient_cancelling:
            ensure_can_manage_appointment(current_user, appointment)

        apply_status_change(appointment, data.status)
        db.commit()
        db.refresh(appointment)
    except SQLAlchemyError as exc:
        db.rollback()
        raise database_unavailable(exc) from exc

    logger.info('Appointment %s is now %s', appointment.id, appointment.status)
    return ok(serialize_appointment(appointment), message='Appointment status updated.')


@router.delete('/appointments/{appointment_id}', response_model=ApiResponse[None])
def delete_appointment(
    appointment_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    try:
        appointment = get_appointment_or_404(db, appointment_id)
        ensure_can_manage_appointment(current_user, appointment)

        db.delete(appointment)
        db.commit()
    except SQLAlchemyError as exc:
        db.rollback()
        raise database_unavailable(exc) from exc

    logger.info('Deleted appointment %s', appointment_id)
    return ok(message='Appointment deleted.')
