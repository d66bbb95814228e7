from sqlalchemy.orm import Session
from typing import Optional
import logging

from ..core.database import utcnow
from ..core.errors import Unauthenticated
from ..core.security import Claims, Role, decode_id_token, claims_from_payload
from ..models.identity import IdentityUser

logger = logging.getLogger(__name__)

class IdentityProvider:
    """Verifies ID tokens and exposes the provider's user registry."""

    def __init__(self, db: Session):
        self.db = db

    def verify(self, token: str) -> Claims:
        """Resolve a bearer token into claims.

        Every failure (bad signature, expiry, wrong issuer, unknown or disabled
        user) raises the same Unauthenticated error.
        """
        payload = decode_id_token(token)
        if not payload or not payload.sub:
            raise Unauthenticated()

        user = self.get_user(payload.sub)
        if not user or user.disabled:
            logger.info(f"Rejected token for unknown or disabled uid {payload.sub}")
            raise Unauthenticated()

        return claims_from_payload(payload)

    def get_user(self, uid: str) -> Optional[IdentityUser]:
        return self.db.query(IdentityUser).filter(IdentityUser.uid == uid).first()

    def create_user(
        self,
        uid: str,
        email: Optional[str] = None,
        role: Optional[Role] = None,
        clinic_id: Optional[str] = None,
        disabled: bool = False
    ) -> IdentityUser:
        """Register a user with the provider, as its admin SDK would."""
        user = IdentityUser(
            uid=uid,
            email=email,
            role=Role(role).value if role else None,
            clinic_id=clinic_id,
            disabled=disabled,
        )
        self.db.add(user)
        self.db.commit()
        self.db.refresh(user)
        return user

    def set_custom_claims(
        self,
        uid: str,
        role: Role,
        clinic_id: Optional[str]
    ) -> Optional[IdentityUser]:
        """Store the role/clinic claims for a user; None if the uid is unknown."""
        user = self.get_user(uid)
        if not user:
            return None

        user.role = Role(role).value
        user.clinic_id = clinic_id
        user.updated_at = utcnow()
        self.db.commit()
        self.db.refresh(user)
        return user
