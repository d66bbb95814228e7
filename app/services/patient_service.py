from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session
from typing import Any, Dict, FrozenSet, List, Optional, Tuple
import logging

from ..core.authz import log_event
from ..core.config import settings
from ..core.database import transaction, utcnow
from ..core.errors import Conflict, Forbidden, NotFound, ValidationFailed
from ..core.security import Claims, Role
from ..core.tenancy import get_scoped
from ..models.patient import Patient, PatientAudit
from ..schemas.patients import PatientCreate, PatientUpdate
from .identity_service import IdentityProvider

logger = logging.getLogger(__name__)

CONTACT_FIELDS: FrozenSet[str] = frozenset({"name", "email", "phone"})

# Fields each role may write through PATCH /patients/{id}
PATIENT_WRITABLE_FIELDS: Dict[Role, FrozenSet[str]] = {
    Role.PLATFORM_ADMIN: CONTACT_FIELDS | {"assigned_nutri_uid"},
    Role.CLINIC_ADMIN: CONTACT_FIELDS | {"assigned_nutri_uid"},
    # nutri can be assigned to patients but never assigns
    Role.NUTRI: CONTACT_FIELDS,
    Role.STAFF: CONTACT_FIELDS,
    Role.PATIENT: frozenset(),
}

# Roles that may set or clear linkedUid on any patient of their scope
LINK_MANAGER_ROLES: FrozenSet[Role] = frozenset(
    {Role.PLATFORM_ADMIN, Role.CLINIC_ADMIN, Role.NUTRI}
)

def sanitize_patient_for_role(role: Role, patient: Patient) -> Dict[str, Any]:
    """Project a patient for the caller's role.

    staff only sees identity and contact data; audit timestamps are kept for
    clinical, administrative and platform roles.
    """
    view = {
        "id": patient.id,
        "clinicId": patient.clinic_id,
        "name": patient.name,
        "email": patient.email,
        "phone": patient.phone,
        "linkedUid": patient.linked_uid,
    }
    if role == Role.STAFF:
        return view

    view.update({
        "assignedNutriUid": patient.assigned_nutri_uid,
        "createdAt": patient.created_at,
        "updatedAt": patient.updated_at,
    })
    return view

class PatientService:
    def __init__(self, db: Session, identity: Optional[IdentityProvider] = None):
        self.db = db
        self.identity = identity or IdentityProvider(db)

    def _scoped_or_404(
        self,
        claims: Claims,
        patient_id: str,
        for_update: bool = False
    ) -> Patient:
        patient = get_scoped(self.db, Patient, patient_id, claims, for_update=for_update)
        if not patient:
            raise NotFound()
        return patient

    def _commit_unique_link(self) -> None:
        try:
            self.db.commit()
        except IntegrityError:
            self.db.rollback()
            raise Conflict("A patient is already linked to this user")

    def list_patients(self, claims: Claims) -> List[Patient]:
        query = self.db.query(Patient)
        if not claims.is_platform:
            query = query.filter(Patient.clinic_id == claims.clinic_id)
        return query.order_by(Patient.created_at).limit(settings.PATIENT_LIST_LIMIT).all()

    def get_patient(self, claims: Claims, patient_id: str) -> Patient:
        return self._scoped_or_404(claims, patient_id)

    def get_own_profile(self, claims: Claims) -> Patient:
        patient = self.db.query(Patient).filter(Patient.linked_uid == claims.uid).first()
        if not patient:
            raise NotFound("Patient profile not found")
        return patient

    def create_patient(self, claims: Claims, data: PatientCreate) -> Patient:
        """Create a patient; the clinic comes from claims except for platform_admin."""
        linked_uid = None

        if claims.role == Role.PLATFORM_ADMIN:
            if not data.clinic_id:
                raise ValidationFailed(
                    "clinicId is required for platform_admin when creating patients"
                )
            clinic_id = data.clinic_id
        elif claims.role == Role.PATIENT:
            clinic_id = claims.clinic_id
            if not clinic_id:
                raise Forbidden("Patient tried to create profile without clinicId claim", claims)

            existing = self.db.query(Patient).filter(Patient.linked_uid == claims.uid).first()
            if existing:
                raise Conflict(
                    "A patient is already linked to this user", data={"id": existing.id}
                )
            linked_uid = claims.uid
        else:
            clinic_id = claims.clinic_id

        if not clinic_id:
            raise Forbidden("Missing clinicId claim on patient creation", claims)

        now = utcnow()
        patient = Patient(
            clinic_id=clinic_id,
            name=data.name,
            email=data.email,
            phone=data.phone,
            linked_uid=linked_uid,
            created_at=now,
            updated_at=now,
        )
        self.db.add(patient)
        self._commit_unique_link()
        self.db.refresh(patient)

        log_event(
            "patient_created", claims, clinic_id=clinic_id,
            data={"patientId": patient.id, "selfService": linked_uid is not None}
        )
        return patient

    def update_patient(self, claims: Claims, patient_id: str, data: PatientUpdate) -> Patient:
        requested = data.model_fields_set
        allowed = PATIENT_WRITABLE_FIELDS.get(claims.role, frozenset())
        denied = requested - allowed
        if denied:
            raise Forbidden(
                f"{claims.role.value} {claims.uid} may not write {sorted(denied)} "
                f"on patient {patient_id}",
                claims
            )
        if "name" in requested and data.name is None:
            raise ValidationFailed(errors={"name": ["name cannot be null"]})

        with transaction(self.db):
            patient = self._scoped_or_404(claims, patient_id, for_update=True)
            for field in requested:
                setattr(patient, field, getattr(data, field))
            patient.updated_at = utcnow()

        self.db.refresh(patient)
        return patient

    def link_patient(self, claims: Claims, patient_id: str, linked_uid: Optional[str]) -> Tuple[Patient, str]:
        """Bind a patient record to an identity-provider uid, or clear it.

        Returns the patient and a response message.
        """
        if claims.role == Role.PATIENT:
            return self._self_link(claims, patient_id, linked_uid)

        if claims.role not in LINK_MANAGER_ROLES:
            raise Forbidden("role may not link patients", claims)

        patient = self._scoped_or_404(claims, patient_id, for_update=True)

        if linked_uid is not None and not self.identity.get_user(linked_uid):
            raise ValidationFailed("linkedUid does not exist in Auth")

        patient.linked_uid = linked_uid
        patient.updated_at = utcnow()
        self._commit_unique_link()
        self.db.refresh(patient)

        log_event(
            "patient_linked", claims, clinic_id=patient.clinic_id,
            data={"patientId": patient.id, "linkedUid": linked_uid}
        )
        return patient, "Patient linked" if linked_uid else "Patient unlinked"

    def _self_link(self, claims: Claims, patient_id: str, linked_uid: Optional[str]) -> Tuple[Patient, str]:
        if linked_uid is None:
            raise Forbidden("Patient attempted to unlink self", claims)
        if linked_uid != claims.uid:
            raise Forbidden(
                f"Patient {claims.uid} tried to link different uid {linked_uid}", claims
            )

        patient = self.db.query(Patient).filter(
            Patient.id == patient_id
        ).with_for_update().first()
        if not patient:
            raise NotFound()

        if claims.clinic_id and patient.clinic_id != claims.clinic_id:
            raise Forbidden(
                f"Patient {claims.uid} tried to link profile from clinic {patient.clinic_id}",
                claims
            )

        if patient.linked_uid and patient.linked_uid != claims.uid:
            raise Conflict("Patient is already linked to another user")

        if patient.linked_uid == claims.uid:
            return patient, "Patient already linked to this user"

        patient.linked_uid = claims.uid
        patient.updated_at = utcnow()
        self._commit_unique_link()
        self.db.refresh(patient)

        log_event(
            "patient_linked", claims, clinic_id=patient.clinic_id,
            data={"patientId": patient.id, "linkedUid": claims.uid}
        )
        return patient, "Patient linked"

    def move_clinic(
        self,
        claims: Claims,
        patient_id: str,
        to_clinic_id: str,
        reason: Optional[str] = None
    ) -> Tuple[Patient, str]:
        """Move a patient to another clinic and append the audit record atomically."""
        if not claims.is_platform:
            raise Forbidden("only platform_admin may move patients", claims)

        with transaction(self.db):
            patient = self.db.query(Patient).filter(
                Patient.id == patient_id
            ).with_for_update().first()
            if not patient:
                raise NotFound()

            from_clinic_id = patient.clinic_id
            if from_clinic_id == to_clinic_id:
                return patient, "No changes"

            now = utcnow()
            patient.clinic_id = to_clinic_id
            patient.updated_at = now
            self.db.add(PatientAudit(
                patient_id=patient.id,
                action="MOVE_CLINIC",
                from_clinic_id=from_clinic_id,
                to_clinic_id=to_clinic_id,
                by_uid=claims.uid,
                by_role=claims.role.value if claims.role else None,
                reason=reason,
                at=now,
            ))

        self.db.refresh(patient)
        logger.info(f"Patient {patient.id} moved from {from_clinic_id} to {to_clinic_id}")
        log_event(
            "patient_moved", claims, clinic_id=to_clinic_id,
            data={"patientId": patient.id, "fromClinicId": from_clinic_id}
        )
        return patient, "Patient clinic moved"
