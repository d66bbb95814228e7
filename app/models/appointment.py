from sqlalchemy import Column, String, ForeignKey, DateTime, Enum as SQLEnum
import enum

from ..core.database import Base, utcnow
from .patient import new_id

class AppointmentStatus(str, enum.Enum):
    REQUESTED = "requested"
    SCHEDULED = "scheduled"
    CANCELLED = "cancelled"
    COMPLETED = "completed"

TERMINAL_STATUSES = frozenset({AppointmentStatus.CANCELLED, AppointmentStatus.COMPLETED})

class Appointment(Base):
    __tablename__ = "appointments"

    id = Column(String(32), primary_key=True, default=new_id)

    # Isolation pivots, fixed at creation
    clinic_id = Column(String(64), nullable=False, index=True)
    patient_id = Column(String(32), ForeignKey("patients.id"), nullable=False)
    patient_uid = Column(String(128), nullable=False, index=True)

    nutri_uid = Column(String(128), nullable=True)

    status = Column(
        SQLEnum(AppointmentStatus, values_callable=lambda e: [m.value for m in e]),
        nullable=False,
        default=AppointmentStatus.REQUESTED,
    )

    requested_at = Column(DateTime, nullable=False, default=utcnow)
    scheduled_for = Column(DateTime, nullable=True)

    cancelled_at = Column(DateTime, nullable=True)
    cancelled_by_uid = Column(String(128), nullable=True)
    cancelled_by_role = Column(String(32), nullable=True)

    completed_at = Column(DateTime, nullable=True)
    completed_by_uid = Column(String(128), nullable=True)
    completed_by_role = Column(String(32), nullable=True)

    # Tracking
    created_at = Column(DateTime, nullable=False, default=utcnow, index=True)
    updated_at = Column(DateTime, nullable=False, default=utcnow)

    def __repr__(self):
        return f"<Appointment(id={self.id}, clinic_id='{self.clinic_id}', status='{self.status}')>"
