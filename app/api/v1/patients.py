from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from ...core.database import get_db
from ...core.security import Claims, Role
from ...api.deps import (
    get_identity_provider, get_patient_claims, require_clinic_scope, require_role
)
from ...services.identity_service import IdentityProvider
from ...services.patient_service import PatientService, sanitize_patient_for_role
from ...schemas.patients import (
    PatientCreate, PatientUpdate, PatientLink, PatientMoveClinic
)

router = APIRouter(prefix="/patients", tags=["Patients"])

TEAM_ROLES = (Role.CLINIC_ADMIN, Role.NUTRI, Role.STAFF, Role.PLATFORM_ADMIN)

@router.get("")
async def list_patients(
    claims: Claims = Depends(require_role(*TEAM_ROLES)),
    db: Session = Depends(get_db)
):
    """List patients of the caller's clinic (all clinics for platform_admin)."""
    claims = await require_clinic_scope(claims)

    service = PatientService(db)
    items = service.list_patients(claims)
    return {
        "success": True,
        "data": [sanitize_patient_for_role(claims.role, p) for p in items]
    }

@router.get("/me")
async def get_my_profile(
    claims: Claims = Depends(get_patient_claims),
    db: Session = Depends(get_db)
):
    """Patient profile linked to the caller's uid."""
    service = PatientService(db)
    patient = service.get_own_profile(claims)
    return {"success": True, "data": sanitize_patient_for_role(claims.role, patient)}

@router.get("/{patient_id}")
async def get_patient(
    patient_id: str,
    claims: Claims = Depends(require_role(*TEAM_ROLES)),
    db: Session = Depends(get_db)
):
    service = PatientService(db)
    patient = service.get_patient(claims, patient_id)
    return {"success": True, "data": sanitize_patient_for_role(claims.role, patient)}

@router.post("", status_code=status.HTTP_201_CREATED)
async def create_patient(
    patient_data: PatientCreate,
    claims: Claims = Depends(require_role(*TEAM_ROLES, Role.PATIENT)),
    db: Session = Depends(get_db)
):
    """Create a patient.

    Clinic roles create inside the clinic of their claims, platform_admin must
    pass ``clinicId`` and patients create (and link) their own profile.
    """
    service = PatientService(db)
    patient = service.create_patient(claims, patient_data)
    return {
        "success": True,
        "message": "Patient created",
        "data": sanitize_patient_for_role(claims.role, patient)
    }

@router.patch("/{patient_id}/link")
async def link_patient(
    patient_id: str,
    link_data: PatientLink,
    claims: Claims = Depends(
        require_role(Role.CLINIC_ADMIN, Role.NUTRI, Role.PLATFORM_ADMIN, Role.PATIENT)
    ),
    db: Session = Depends(get_db),
    identity: IdentityProvider = Depends(get_identity_provider)
):
    """Link or unlink a patient record to an identity-provider user."""
    service = PatientService(db, identity)
    patient, message = service.link_patient(claims, patient_id, link_data.linked_uid)
    return {
        "success": True,
        "message": message,
        "data": sanitize_patient_for_role(claims.role, patient)
    }

@router.patch("/{patient_id}")
async def update_patient(
    patient_id: str,
    update_data: PatientUpdate,
    claims: Claims = Depends(require_role(*TEAM_ROLES)),
    db: Session = Depends(get_db)
):
    """Update contact fields (and the assigned nutri where the role allows it)."""
    service = PatientService(db)
    patient = service.update_patient(claims, patient_id, update_data)
    return {
        "success": True,
        "message": "Patient updated",
        "data": sanitize_patient_for_role(claims.role, patient)
    }

@router.post("/{patient_id}/move-clinic")
async def move_patient_clinic(
    patient_id: str,
    move_data: PatientMoveClinic,
    claims: Claims = Depends(require_role(Role.PLATFORM_ADMIN)),
    db: Session = Depends(get_db)
):
    """Move a patient to another clinic (platform_admin only, audited)."""
    service = PatientService(db)
    patient, message = service.move_clinic(
        claims, patient_id, move_data.clinic_id, move_data.reason
    )
    if message == "No changes":
        return {
            "success": True,
            "message": message,
            "data": {"id": patient.id, "clinicId": patient.clinic_id}
        }

    return {
        "success": True,
        "message": message,
        "data": sanitize_patient_for_role(claims.role, patient)
    }
