from fastapi import APIRouter, Depends, Response, status
from sqlalchemy.orm import Session
from typing import Optional

from ...core.database import get_db
from ...core.security import Claims, Role
from ...api.deps import (
    get_patient_claims, require_any_role, require_clinic_scope, require_role
)
from ...services.appointment_service import AppointmentService, serialize_appointment
from ...schemas.appointments import AppointmentRequest, AppointmentSchedule

router = APIRouter(prefix="/appointments", tags=["Appointments"])

@router.post("/request", status_code=status.HTTP_201_CREATED)
async def request_appointment(
    response: Response,
    body: Optional[AppointmentRequest] = None,
    claims: Claims = Depends(get_patient_claims),
    db: Session = Depends(get_db)
):
    """Request an appointment for the caller's linked patient profile."""
    service = AppointmentService(db)
    appt, created = service.request_appointment(
        claims, body.nutri_uid if body else None
    )

    if not created:
        response.status_code = status.HTTP_200_OK
        return {
            "success": True,
            "message": "Already requested",
            "data": serialize_appointment(appt)
        }

    return {
        "success": True,
        "message": "Appointment requested",
        "data": serialize_appointment(appt)
    }

@router.get("")
async def list_appointments(
    claims: Claims = Depends(require_any_role),
    db: Session = Depends(get_db)
):
    """List appointments visible to the caller, newest first."""
    if claims.role not in (Role.PATIENT, Role.PLATFORM_ADMIN):
        claims = await require_clinic_scope(claims)

    service = AppointmentService(db)
    items = service.list_appointments(claims)
    return {"success": True, "data": [serialize_appointment(a) for a in items]}

@router.get("/{appointment_id}")
async def get_appointment(
    appointment_id: str,
    claims: Claims = Depends(require_any_role),
    db: Session = Depends(get_db)
):
    service = AppointmentService(db)
    appt = service.get_appointment(claims, appointment_id)
    return {"success": True, "data": serialize_appointment(appt)}

@router.post("/{appointment_id}/cancel")
async def cancel_appointment(
    appointment_id: str,
    claims: Claims = Depends(require_any_role),
    db: Session = Depends(get_db)
):
    """Cancel an appointment (idempotent, 24h lock on scheduled visits)."""
    service = AppointmentService(db)
    appt, message = service.cancel_appointment(claims, appointment_id)
    return {"success": True, "message": message, "data": serialize_appointment(appt)}

@router.post("/{appointment_id}/schedule")
async def schedule_appointment(
    appointment_id: str,
    body: AppointmentSchedule,
    claims: Claims = Depends(require_role(Role.CLINIC_ADMIN, Role.NUTRI, Role.PATIENT)),
    db: Session = Depends(get_db)
):
    """Schedule a requested appointment."""
    if claims.role != Role.PATIENT:
        claims = await require_clinic_scope(claims)

    service = AppointmentService(db)
    appt, message = service.schedule_appointment(
        claims, appointment_id, body.scheduled_for, body.nutri_uid
    )
    return {"success": True, "message": message, "data": serialize_appointment(appt)}

@router.post("/{appointment_id}/complete")
async def complete_appointment(
    appointment_id: str,
    claims: Claims = Depends(require_role(Role.CLINIC_ADMIN, Role.NUTRI, Role.PLATFORM_ADMIN)),
    db: Session = Depends(get_db)
):
    """Mark a scheduled appointment as completed."""
    service = AppointmentService(db)
    appt, message = service.complete_appointment(claims, appointment_id)
    return {"success": True, "message": message, "data": serialize_appointment(appt)}
