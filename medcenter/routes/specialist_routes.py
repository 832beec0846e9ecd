import logging
from datetime import date, time

from fastapi import APIRouter, Depends, HTTPException, Query, status
from pydantic import BaseModel, Field, field_validator
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from medcenter.auth.dependencies import ensure_tenant_access, get_current_user
from medcenter.core.responses import ApiResponse, ok
from medcenter.database import database_unavailable, get_db
from medcenter.models.user import User, UserRole
from medcenter.scheduling import store
from medcenter.scheduling.slots import ScheduleConflictError, format_time

logger = logging.getLogger(__name__)

router = APIRouter(tags=['specialists'])

MAX_BREAK_DESCRIPTION_LENGTH = 200


class ScheduleEntryRequest(BaseModel):
    day_of_week: int = Field(ge=0, le=6)
    start_time: time
    end_time: time
    is_available: bool = True


class BreakEntryRequest(BaseModel):
    day_of_week: int = Field(ge=0, le=6)
    start_time: time
    end_time: time
    description: str = ''

    @field_validator('description')
    @classmethod
    def validate_description(cls, value: str) -> str:
        normalized = (value or '').strip()
        if len(normalized) > MAX_BREAK_DESCRIPTION_LENGTH:
            raise ValueError(f'Description must be {MAX_BREAK_DESCRIPTION_LENGTH} characters or fewer.')
        return normalized


class UpdateScheduleRequest(BaseModel):
    schedules: list[ScheduleEntryRequest]
    breaks: list[BreakEntryRequest] = []


class ScheduleResponse(BaseModel):
    id: int
    specialist_id: int
    tenant_id: int
    day_of_week: int
    start_time: time
    end_time: time
    is_available: bool

    class Config:
        from_attributes = True


class BreakResponse(BaseModel):
    id: int
    specialist_id: int
    tenant_id: int
    day_of_week: int
    start_time: time
    end_time: time
    description: str | None = None

    class Config:
        from_attributes = True


class ScheduleSetResponse(BaseModel):
    schedules: list[ScheduleResponse]
    breaks: list[BreakResponse]


class AvailableSlotsResponse(BaseModel):
    date: date
    available_slots: list[str]
    reason: str | None = None


class AvailabilityResponse(BaseModel):
    available: bool
    reason: str | None = None


def get_specialist_or_404(db: Session, tenant_id: int, specialist_id: int) -> User:
    specialist = db.query(User).filter(
        User.id == specialist_id,
        User.tenant_id == tenant_id,
        User.role == UserRole.SPECIALIST.value,
    ).first()
    if specialist is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail='Specialist not found.',
        )
    return specialist


def ensure_can_edit_schedule(current_user: User, specialist_id: int) -> None:
    if current_user.is_admin:
        return
    if current_user.role == UserRole.SPECIALIST.value and current_user.id == specialist_id:
        return
    raise HTTPException(
        status_code=status.HTTP_403_FORBIDDEN,
        detail='Only the specialist or an administrator can change this schedule.',
    )


def serialize_schedule_set(schedules, breaks) -> dict:
    return {
        'schedules': [ScheduleResponse.model_validate(item) for item in schedules],
        'breaks': [BreakResponse.model_validate(item) for item in breaks],
    }


@router.get(
    '/{tenant_id}/specialists/{specialist_id}/schedule',
    response_model=ApiResponse[ScheduleSetResponse],
)
def get_specialist_schedule(
    tenant_id: int,
    specialist_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    ensure_tenant_access(current_user, tenant_id)

    try:
        get_specialist_or_404(db, tenant_id, specialist_id)
        schedules = store.load_schedules(db, tenant_id, specialist_id)
        breaks = store.load_breaks(db, tenant_id, specialist_id)
        return ok(serialize_schedule_set(schedules, breaks))
    except SQLAlchemyError as exc:
        raise database_unavailable(exc) from exc


@router.put(
    '/{tenant_id}/specialists/{specialist_id}/schedule',
    response_model=ApiResponse[ScheduleSetResponse],
)
def update_specialist_schedule(
    tenant_id: int,
    specialist_id: int,
    data: UpdateScheduleRequest,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    ensure_tenant_access(current_user, tenant_id)
    ensure_can_edit_schedule(current_user, specialist_id)

    try:
        get_specialist_or_404(db, tenant_id, specialist_id)
        schedules, breaks = store.replace_schedule_set(db, tenant_id, specialist_id, data.schedules, data.breaks)
        db.commit()
        for item in [*schedules, *breaks]:
            db.refresh(item)
    except ScheduleConflictError as exc:
        db.rollback()
        logger.warning('Rejected schedule for specialist %s: %s', specialist_id, '; '.join(exc.conflicts))
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=str(exc),
        ) from exc
    except SQLAlchemyError as exc:
        db.rollback()
        raise database_unavailable(exc) from exc

    return ok(serialize_schedule_set(schedules, breaks), message='Availability updated.')


@router.get(
    '/{tenant_id}/specialists/{specialist_id}/breaks',
    response_model=ApiResponse[list[BreakResponse]],
)
def get_specialist_breaks(
    tenant_id: int,
    specialist_id: int,
    day_of_week: int | None = Query(default=None, ge=0, le=6),
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    ensure_tenant_access(current_user, tenant_id)

    try:
        get_specialist_or_404(db, tenant_id, specialist_id)
        breaks = store.load_breaks(db, tenant_id, specialist_id, day_of_week)
        return ok([BreakResponse.model_validate(item) for item in breaks])
    except SQLAlchemyError as exc:
        raise database_unavailable(exc) from exc


@router.get(
    '/{tenant_id}/specialists/{specialist_id}/available-slots',
    response_model=ApiResponse[AvailableSlotsResponse],
)
def get_available_slots(
    tenant_id: int,
    specialist_id: int,
    target_date: date = Query(..., alias='date'),
    exclude_appointment_id: int | None = Query(default=None),
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    ensure_tenant_access(current_user, tenant_id)

    try:
        get_specialist_or_404(db, tenant_id, specialist_id)
        listing = store.get_available_slots(
            db, tenant_id, specialist_id, target_date, exclude_appointment_id=exclude_appointment_id,
        )
    except SQLAlchemyError as exc:
        raise database_unavailable(exc) from exc

    return ok(
        AvailableSlotsResponse(
            date=listing.date,
            available_slots=listing.slot_labels(),
            reason=listing.reason,
        )
    )


@router.get(
    '/{tenant_id}/specialists/{specialist_id}/availability',
    response_model=ApiResponse[AvailabilityResponse],
)
def check_specialist_availability(
    tenant_id: int,
    specialist_id: int,
    target_date: date = Query(..., alias='date'),
    slot_time: time = Query(..., alias='time'),
    exclude_appointment_id: int | None = Query(default=None),
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    ensure_tenant_access(current_user, tenant_id)

    try:
        get_specialist_or_404(db, tenant_id, specialist_id)
        result = store.check_availability(
            db, tenant_id, specialist_id, target_date, slot_time, exclude_appointment_id=exclude_appointment_id,
        )
    except SQLAlchemyError as exc:
        raise database_unavailable(exc) from exc

    logger.debug(
        'Availability for specialist %s at %s %s: %s',
        specialist_id,
        target_date,
        format_time(slot_time),
        result.reason or 'available',
    )
    return ok(AvailabilityResponse(available=result.available, reason=result.reason))
