"""Appointment model definitions."""

from sqlalchemy import Column, DateTime, ForeignKey, Index, Integer, String, func, text
from sqlalchemy.orm import relationship

from medcenter.database import Base
from medcenter.models.user import User


class Appointment(Base):
    """Represents a scheduled appointment."""
    __tablename__ = "appointments"
    __table_args__ = (
        Index('idx_appointments_specialist_date', 'specialist_id', 'date'),
        # One live booking per specialist slot; cancelled rows free it.
        Index(
            'uq_appointments_specialist_slot',
            'tenant_id',
            'specialist_id',
            'date',
            unique=True,
            sqlite_where=text("status != 'cancelada'"),
            postgresql_where=text("status != 'cancelada'"),
        ),
    )

    id = Column(Integer, primary_key=True)
    tenant_id = Column(Integer, nullable=False, index=True)
    patient_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    specialist_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    date = Column(DateTime, nullable=False)
    reason = Column(String, nullable=False)
    status = Column(String, nullable=False, default='pendiente')
    notes = Column(String)
    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    patient = relationship(User, foreign_keys=[patient_id], lazy='joined')
    specialist = relationship(User, foreign_keys=[specialist_id], lazy='joined')
