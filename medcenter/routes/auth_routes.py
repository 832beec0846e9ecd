import logging

from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel, field_validator
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from medcenter.auth import jwt_handler
from medcenter.auth.dependencies import get_current_user
from medcenter.core.responses import ApiResponse, ok
from medcenter.database import database_unavailable, get_db
from medcenter.models.user import User
from medcenter.routes.user_routes import UserResponse

logger = logging.getLogger(__name__)

router = APIRouter(tags=['auth'])


class LoginRequest(BaseModel):
    email: str
    password: str

    @field_validator('email')
    @classmethod
    def validate_email(cls, value: str) -> str:
        normalized = value.strip().lower()
        if not normalized:
            raise ValueError('Email is required.')
        return normalized


class TokenResponse(BaseModel):
    access_token: str
    token_type: str = 'bearer'
    user: UserResponse


@router.post("/login", response_model=ApiResponse[TokenResponse])
def login(data: LoginRequest, db: Session = Depends(get_db)):
    try:
        user = db.query(User).filter(User.email == data.email).first()
    except SQLAlchemyError as exc:
        raise database_unavailable(exc) from exc

    if user is None or not user.check_password(data.password):
        logger.info("Failed login for %s", data.email)
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid email or password.",
        )

    token = jwt_handler.create_access_token(
        subject=user.email,
        extra_claims={"role": user.role, "tenant_id": user.tenant_id},
    )
    return ok(
        TokenResponse(access_token=token, user=UserResponse.model_validate(user)),
        message="Login successful.",
    )


@router.get("/me", response_model=ApiResponse[UserResponse])
def me(current_user: User = Depends(get_current_user)):
    return ok(UserResponse.model_validate(current_user))
