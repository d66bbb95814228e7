from sqlalchemy.orm import Session
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional, Tuple
import logging

from ..core.authz import log_event
from ..core.config import settings
from ..core.database import transaction, utcnow
from ..core.errors import Conflict, Forbidden, IntegrityFault, NotFound
from ..core.security import Claims, Role
from ..core.tenancy import get_scoped
from ..models.appointment import Appointment, AppointmentStatus, TERMINAL_STATUSES
from ..models.patient import Patient

logger = logging.getLogger(__name__)

def serialize_appointment(appt: Appointment) -> Dict[str, Any]:
    return {
        "id": appt.id,
        "clinicId": appt.clinic_id,
        "patientId": appt.patient_id,
        "patientUid": appt.patient_uid,
        "nutriUid": appt.nutri_uid,
        "status": AppointmentStatus(appt.status).value,
        "requestedAt": appt.requested_at,
        "scheduledFor": appt.scheduled_for,
        "cancelledAt": appt.cancelled_at,
        "cancelledByUid": appt.cancelled_by_uid,
        "cancelledByRole": appt.cancelled_by_role,
        "completedAt": appt.completed_at,
        "completedByUid": appt.completed_by_uid,
        "completedByRole": appt.completed_by_role,
        "createdAt": appt.created_at,
        "updatedAt": appt.updated_at,
    }

def to_naive_utc(value: datetime) -> datetime:
    if value.tzinfo is not None:
        value = value.astimezone(timezone.utc).replace(tzinfo=None)
    return value

def cancellation_decision(
    status: AppointmentStatus,
    scheduled_for: Optional[datetime],
    now: datetime,
    lock: Optional[timedelta] = None
) -> Optional[str]:
    """Decide whether a non-cancelled appointment may be cancelled at ``now``.

    Returns None when allowed, otherwise the denial reason. completed never
    cancels; requested always does; scheduled only while at least ``lock``
    (24h by default) remains before the visit. A scheduled appointment with
    no date is corrupt data and raises IntegrityFault.
    """
    if lock is None:
        lock = timedelta(hours=settings.CANCELLATION_LOCK_HOURS)

    if status == AppointmentStatus.COMPLETED:
        return "Cannot cancel a completed appointment"
    if status in (AppointmentStatus.REQUESTED, AppointmentStatus.CANCELLED):
        return None

    if scheduled_for is None:
        raise IntegrityFault("scheduledFor missing on scheduled appointment")

    if scheduled_for - now < lock:
        return (
            f"Cancellation allowed only if >= {int(lock.total_seconds() // 3600)}h "
            "before scheduled time"
        )
    return None

def ensure_cancellable(
    status: AppointmentStatus,
    scheduled_for: Optional[datetime],
    now: datetime,
    claims: Optional[Claims] = None,
    lock: Optional[timedelta] = None
) -> None:
    reason = cancellation_decision(status, scheduled_for, now, lock)
    if reason:
        raise Forbidden(reason, claims)

class AppointmentService:
    def __init__(self, db: Session):
        self.db = db

    def _linked_patient(self, claims: Claims) -> Patient:
        patient = self.db.query(Patient).filter(Patient.linked_uid == claims.uid).first()
        if not patient:
            raise Forbidden("Patient profile not linked", claims)
        if not patient.clinic_id:
            logger.error(f"Patient {patient.id} linked to {claims.uid} has no clinic_id")
            raise IntegrityFault("Patient profile missing clinicId")
        return patient

    def _load_for_update(self, appointment_id: str) -> Appointment:
        appt = self.db.query(Appointment).filter(
            Appointment.id == appointment_id
        ).with_for_update().first()
        if not appt:
            raise NotFound("Appointment not found")
        return appt

    def _ensure_clinic_access(self, appt: Appointment, claims: Claims) -> None:
        if claims.is_platform:
            return
        if not claims.clinic_id:
            raise Forbidden("Missing clinicId claim", claims)
        if appt.clinic_id != claims.clinic_id:
            raise Forbidden(
                f"Appointment {appt.id} belongs to another clinic", claims
            )

    def request_appointment(
        self,
        claims: Claims,
        nutri_uid: Optional[str] = None
    ) -> Tuple[Appointment, bool]:
        """Create a requested appointment for the caller's linked patient.

        Returns the appointment and whether it was newly created; a pending
        request for the same nutri is returned as-is.
        """
        if nutri_uid:
            same_nutri = Appointment.nutri_uid == nutri_uid
        else:
            same_nutri = Appointment.nutri_uid.is_(None)
        existing = self.db.query(Appointment).filter(
            Appointment.patient_uid == claims.uid,
            same_nutri,
            Appointment.status == AppointmentStatus.REQUESTED
        ).first()
        if existing:
            return existing, False

        patient = self._linked_patient(claims)

        now = utcnow()
        with transaction(self.db):
            appt = Appointment(
                clinic_id=patient.clinic_id,
                patient_id=patient.id,
                patient_uid=claims.uid,
                nutri_uid=nutri_uid,
                status=AppointmentStatus.REQUESTED,
                requested_at=now,
                scheduled_for=None,
                created_at=now,
                updated_at=now,
            )
            self.db.add(appt)
        self.db.refresh(appt)

        log_event(
            "appointment_requested", claims, clinic_id=appt.clinic_id,
            data={"appointmentId": appt.id, "patientId": appt.patient_id}
        )
        return appt, True

    def list_appointments(self, claims: Claims) -> List[Appointment]:
        query = self.db.query(Appointment)

        if claims.role == Role.PATIENT:
            query = query.filter(Appointment.patient_uid == claims.uid)
        elif claims.role == Role.PLATFORM_ADMIN:
            pass
        else:
            query = query.filter(Appointment.clinic_id == claims.clinic_id)

        return query.order_by(
            Appointment.created_at.desc()
        ).limit(settings.APPOINTMENT_LIST_LIMIT).all()

    def get_appointment(self, claims: Claims, appointment_id: str) -> Appointment:
        if claims.role == Role.PATIENT:
            appt = self.db.query(Appointment).filter(
                Appointment.id == appointment_id,
                Appointment.patient_uid == claims.uid
            ).first()
        else:
            appt = get_scoped(self.db, Appointment, appointment_id, claims)

        if not appt:
            raise NotFound("Appointment not found")
        return appt

    def cancel_appointment(
        self,
        claims: Claims,
        appointment_id: str,
        now: Optional[datetime] = None
    ) -> Tuple[Appointment, str]:
        """Cancel atomically; cancelling twice returns the stored record unchanged."""
        with transaction(self.db):
            appt = self._load_for_update(appointment_id)

            if claims.role == Role.PATIENT:
                if appt.patient_uid != claims.uid:
                    raise Forbidden(
                        f"Patient tried to cancel appointment {appt.id} of another patient",
                        claims
                    )
            else:
                self._ensure_clinic_access(appt, claims)

            if appt.status == AppointmentStatus.CANCELLED:
                return appt, "Already cancelled"

            current = now or utcnow()
            ensure_cancellable(
                AppointmentStatus(appt.status), appt.scheduled_for, current, claims
            )

            appt.status = AppointmentStatus.CANCELLED
            appt.cancelled_at = current
            appt.cancelled_by_uid = claims.uid
            appt.cancelled_by_role = claims.role.value
            appt.updated_at = current

        self.db.refresh(appt)
        log_event(
            "appointment_cancelled", claims, clinic_id=appt.clinic_id,
            data={"appointmentId": appt.id}
        )
        return appt, "Cancelled"

    def schedule_appointment(
        self,
        claims: Claims,
        appointment_id: str,
        scheduled_for: datetime,
        nutri_uid: str
    ) -> Tuple[Appointment, str]:
        if claims.role == Role.NUTRI and nutri_uid != claims.uid:
            raise Forbidden("nutri can only schedule appointments for own uid", claims)

        new_scheduled = to_naive_utc(scheduled_for)

        with transaction(self.db):
            appt = self._load_for_update(appointment_id)

            if claims.role == Role.PATIENT:
                if appt.patient_uid != claims.uid:
                    raise Forbidden("Patients can only schedule own appointments", claims)
            else:
                self._ensure_clinic_access(appt, claims)

            status = AppointmentStatus(appt.status)
            if status in TERMINAL_STATUSES:
                raise Conflict(f"Cannot schedule a {status.value} appointment")

            if (
                status == AppointmentStatus.SCHEDULED
                and appt.scheduled_for == new_scheduled
                and appt.nutri_uid == nutri_uid
            ):
                return appt, "Already scheduled"

            if status != AppointmentStatus.REQUESTED:
                raise Conflict(f"Cannot schedule from status={status.value}")

            if claims.role == Role.NUTRI and appt.nutri_uid != claims.uid:
                raise Forbidden(
                    "nutri can only schedule requests addressed to own uid", claims
                )
            if claims.role == Role.PATIENT and appt.nutri_uid and appt.nutri_uid != nutri_uid:
                raise Forbidden(
                    "Patients cannot change the assigned nutri when scheduling", claims
                )

            appt.status = AppointmentStatus.SCHEDULED
            appt.scheduled_for = new_scheduled
            appt.nutri_uid = nutri_uid
            appt.updated_at = utcnow()

        self.db.refresh(appt)
        log_event(
            "appointment_scheduled", claims, clinic_id=appt.clinic_id,
            data={"appointmentId": appt.id, "scheduledFor": appt.scheduled_for}
        )
        return appt, "Scheduled"

    def complete_appointment(
        self,
        claims: Claims,
        appointment_id: str
    ) -> Tuple[Appointment, str]:
        with transaction(self.db):
            appt = self._load_for_update(appointment_id)
            self._ensure_clinic_access(appt, claims)

            status = AppointmentStatus(appt.status)
            if status == AppointmentStatus.CANCELLED:
                raise Conflict("Cannot complete a cancelled appointment")
            if status == AppointmentStatus.COMPLETED:
                return appt, "Already completed"
            if status != AppointmentStatus.SCHEDULED:
                raise Conflict("Only scheduled appointments can be completed")

            if claims.role == Role.NUTRI and appt.nutri_uid != claims.uid:
                raise Forbidden("nutri can only complete own appointments", claims)

            now = utcnow()
            appt.status = AppointmentStatus.COMPLETED
            appt.completed_at = now
            appt.completed_by_uid = claims.uid
            appt.completed_by_role = claims.role.value
            appt.updated_at = now

        self.db.refresh(appt)
        log_event(
            "appointment_completed", claims, clinic_id=appt.clinic_id,
            data={"appointmentId": appt.id}
        )
        return appt, "Completed"
