"""Specialist weekly schedule and break definitions."""

from sqlalchemy import Boolean, Column, ForeignKey, Index, Integer, String, Time, UniqueConstraint
from medcenter.database import Base


class SpecialistSchedule(Base):
    """Working hours of a specialist for one weekday (0=Sunday)."""
    __tablename__ = "specialist_schedules"
    __table_args__ = (
        UniqueConstraint('specialist_id', 'day_of_week', name='uq_schedule_specialist_day'),
    )

    id = Column(Integer, primary_key=True)
    specialist_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    tenant_id = Column(Integer, nullable=False, index=True)
    day_of_week = Column(Integer, nullable=False)
    start_time = Column(Time, nullable=False)
    end_time = Column(Time, nullable=False)
    is_available = Column(Boolean, default=True, nullable=False)


class SpecialistBreak(Base):
    """A break inside a specialist's working hours for one weekday."""
    __tablename__ = "specialist_breaks"
    __table_args__ = (
        Index('idx_breaks_specialist_day', 'specialist_id', 'day_of_week'),
    )

    id = Column(Integer, primary_key=True)
    specialist_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    tenant_id = Column(Integer, nullable=False, index=True)
    day_of_week = Column(Integer, nullable=False)
    start_time = Column(Time, nullable=False)
    end_time = Column(Time, nullable=False)
    description = Column(String, default='')
