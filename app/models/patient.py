from sqlalchemy import Column, String, ForeignKey, DateTime, Text
from sqlalchemy.orm import relationship
from uuid import uuid4

from ..core.database import Base, utcnow

def new_id() -> str:
    return uuid4().hex

class Patient(Base):
    __tablename__ = "patients"

    id = Column(String(32), primary_key=True, default=new_id)
    clinic_id = Column(String(64), nullable=False, index=True)

    # Identity and contact
    name = Column(String(200), nullable=False)
    email = Column(String(255), nullable=True)
    phone = Column(String(50), nullable=True)

    # At most one patient per identity-provider uid
    linked_uid = Column(String(128), nullable=True, unique=True, index=True)
    assigned_nutri_uid = Column(String(128), nullable=True)

    # Timestamps
    created_at = Column(DateTime, nullable=False, default=utcnow)
    updated_at = Column(DateTime, nullable=False, default=utcnow)

    # Relationships
    audit_records = relationship(
        "PatientAudit", back_populates="patient", order_by="PatientAudit.at"
    )

    def __repr__(self):
        return f"<Patient(id={self.id}, clinic_id='{self.clinic_id}', name='{self.name}')>"

class PatientAudit(Base):
    """Append-only administrative trail for a patient."""
    __tablename__ = "patient_audit"

    id = Column(String(32), primary_key=True, default=new_id)
    patient_id = Column(String(32), ForeignKey("patients.id"), nullable=False, index=True)

    action = Column(String(50), nullable=False)
    from_clinic_id = Column(String(64), nullable=True)
    to_clinic_id = Column(String(64), nullable=False)
    by_uid = Column(String(128), nullable=False)
    by_role = Column(String(32), nullable=True)
    reason = Column(Text, nullable=True)
    at = Column(DateTime, nullable=False, default=utcnow)

    patient = relationship("Patient", back_populates="audit_records")

    def __repr__(self):
        return f"<PatientAudit(id={self.id}, action='{self.action}', patient_id={self.patient_id})>"
