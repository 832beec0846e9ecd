"""User model definitions."""

from enum import Enum

from sqlalchemy import Column, DateTime, Integer, String, func
from werkzeug.security import check_password_hash, generate_password_hash

from medcenter.database import Base


class UserRole(str, Enum):
    SUPER_ADMIN = 'Super Admin'
    ADMIN = 'Administrador'
    SPECIALIST = 'Especialista'
    PATIENT = 'Paciente'


ADMIN_ROLES = frozenset({UserRole.SUPER_ADMIN.value, UserRole.ADMIN.value})


class User(Base):
    """Represents an application user."""
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    tenant_id = Column(Integer, index=True, nullable=True)
    email = Column(String, unique=True, index=True, nullable=False)
    name = Column(String)
    hashed_password = Column(String, nullable=False, default='')
    role = Column(String, nullable=False)
    specialty = Column(String)
    identification_number = Column(String)
    created_at = Column(DateTime, server_default=func.now())

    def set_password(self, password: str) -> None:
        self.hashed_password = generate_password_hash(password)

    def check_password(self, password: str) -> bool:
        if not self.hashed_password:
            return False
        return check_password_hash(self.hashed_password, password)

    @property
    def is_admin(self) -> bool:
        return self.role in ADMIN_ROLES
