from datetime import datetime, time, timedelta

from fastapi import APIRouter, Depends, HTTPException, Query, status
from pydantic import BaseModel
from sqlalchemy import func
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from medcenter.auth.dependencies import ensure_tenant_access, get_current_user
from medcenter.core.responses import ApiResponse, ok
from medcenter.database import database_unavailable, get_db
from medcenter.models.appointment import Appointment
from medcenter.models.user import User, UserRole
from medcenter.routes.appointment_routes import AppointmentResponse, serialize_appointment
from medcenter.scheduling.status import AppointmentStatus

router = APIRouter(tags=['dashboard'])

UPCOMING_LIMIT = 5


class DashboardSummaryResponse(BaseModel):
    total: int
    by_status: dict[str, int]
    today: int
    upcoming: list[AppointmentResponse]


@router.get('/{tenant_id}/summary', response_model=ApiResponse[DashboardSummaryResponse])
def get_summary(
    tenant_id: int,
    specialist_id: int | None = Query(default=None),
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    ensure_tenant_access(current_user, tenant_id)
    if current_user.role == UserRole.SPECIALIST.value:
        specialist_id = current_user.id
    elif not current_user.is_admin:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail='Only specialists and administrators can view the dashboard.',
        )

    filters = [Appointment.tenant_id == tenant_id]
    if specialist_id is not None:
        filters.append(Appointment.specialist_id == specialist_id)

    now = datetime.now()
    today_start = datetime.combine(now.date(), time.min)
    not_cancelled = Appointment.status != AppointmentStatus.CANCELADA.value

    try:
        counts = dict(
            db.query(Appointment.status, func.count(Appointment.id))
            .filter(*filters)
            .group_by(Appointment.status)
            .all()
        )
        today = db.query(func.count(Appointment.id)).filter(
            *filters,
            not_cancelled,
            Appointment.date >= today_start,
            Appointment.date < today_start + timedelta(days=1),
        ).scalar()
        upcoming = db.query(Appointment).filter(
            *filters,
            not_cancelled,
            Appointment.date >= now,
        ).order_by(Appointment.date.asc()).limit(UPCOMING_LIMIT).all()
    except SQLAlchemyError as exc:
        raise database_unavailable(exc) from exc

    by_status = {item.value: counts.get(item.value, 0) for item in AppointmentStatus}
    return ok(
        DashboardSummaryResponse(
            total=sum(by_status.values()),
            by_status=by_status,
            today=today or 0,
            upcoming=[serialize_appointment(appointment) for appointment in upcoming],
        )
    )
