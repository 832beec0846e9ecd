import logging
import re

from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel, field_validator
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from medcenter.auth.dependencies import ensure_tenant_access, get_current_user
from medcenter.core import config
from medcenter.core.responses import ApiResponse, ok
from medcenter.database import database_unavailable, get_db
from medcenter.models.user import User, UserRole

logger = logging.getLogger(__name__)

router = APIRouter(tags=['users'])

EMAIL_PATTERN = re.compile(r'^[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}$')

CREATABLE_ROLES = {UserRole.ADMIN.value, UserRole.SPECIALIST.value, UserRole.PATIENT.value}


def normalize_email(value: str) -> str:
    normalized = value.strip().lower()
    if not normalized:
        raise ValueError('Email is required.')
    if not EMAIL_PATTERN.match(normalized):
        raise ValueError('Email format is invalid.')
    return normalized


class CreateUserRequest(BaseModel):
    email: str
    password: str
    name: str
    role: str
    specialty: str | None = None
    identification_number: str | None = None

    @field_validator('email')
    @classmethod
    def validate_email(cls, value: str) -> str:
        return normalize_email(value)

    @field_validator('password')
    @classmethod
    def validate_password(cls, value: str) -> str:
        if len(value) < config.MIN_PASSWORD_LENGTH:
            raise ValueError(f'Password must be at least {config.MIN_PASSWORD_LENGTH} characters.')
        return value

    @field_validator('name')
    @classmethod
    def validate_name(cls, value: str) -> str:
        normalized = value.strip()
        if not normalized:
            raise ValueError('Name is required.')
        return normalized

    @field_validator('role')
    @classmethod
    def validate_role(cls, value: str) -> str:
        normalized = value.strip()
        if normalized not in CREATABLE_ROLES:
            raise ValueError('Role must be Administrador, Especialista or Paciente.')
        return normalized


class UserResponse(BaseModel):
    id: int
    tenant_id: int | None = None
    email: str
    name: str | None = None
    role: str
    specialty: str | None = None
    identification_number: str | None = None

    class Config:
        from_attributes = True


def ensure_admin(current_user: User) -> None:
    if not current_user.is_admin:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail='Only administrators can manage users.',
        )


@router.post('/{tenant_id}', response_model=ApiResponse[UserResponse], status_code=status.HTTP_201_CREATED)
def create_user(
    tenant_id: int,
    data: CreateUserRequest,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    ensure_tenant_access(current_user, tenant_id)
    ensure_admin(current_user)

    try:
        if db.query(User).filter(User.email == data.email).first():
            raise HTTPException(
                status_code=status.HTTP_409_CONFLICT,
                detail='A user with this email already exists.',
            )

        user = User(
            tenant_id=tenant_id,
            email=data.email,
            name=data.name,
            role=data.role,
            specialty=data.specialty if data.role == UserRole.SPECIALIST.value else None,
            identification_number=data.identification_number,
        )
        user.set_password(data.password)
        db.add(user)
        db.commit()
        db.refresh(user)
    except IntegrityError as exc:
        db.rollback()
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail='A user with this email already exists.',
        ) from exc
    except SQLAlchemyError as exc:
        db.rollback()
        raise database_unavailable(exc) from exc

    logger.info('Created %s user %s in tenant %s', user.role, user.id, tenant_id)
    return ok(UserResponse.model_validate(user), message='User created.')


def _list_users_by_role(db: Session, tenant_id: int, role: UserRole) -> list[UserResponse]:
    try:
        users = db.query(User).filter(
            User.tenant_id == tenant_id,
            User.role == role.value,
        ).order_by(User.name.asc(), User.id.asc()).all()
    except SQLAlchemyError as exc:
        raise database_unavailable(exc) from exc
    return [UserResponse.model_validate(user) for user in users]


@router.get('/{tenant_id}/specialists', response_model=ApiResponse[list[UserResponse]])
def list_specialists(
    tenant_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    ensure_tenant_access(current_user, tenant_id)
    return ok(_list_users_by_role(db, tenant_id, UserRole.SPECIALIST))


@router.get('/{tenant_id}/patients', response_model=ApiResponse[list[UserResponse]])
def list_patients(
    tenant_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    ensure_tenant_access(current_user, tenant_id)
    if current_user.role == UserRole.PATIENT.value:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail='Patients cannot list other patients.',
        )
    return ok(_list_users_by_role(db, tenant_id, UserRole.PATIENT))
