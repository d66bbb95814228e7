from sqlalchemy import Column, String, DateTime, Boolean

from ..core.database import Base, utcnow

class IdentityUser(Base):
    """User registry of the identity provider.

    ``role`` and ``clinic_id`` are the custom claims minted into the user's
    next ID token.
    """
    __tablename__ = "identity_users"

    uid = Column(String(128), primary_key=True)
    email = Column(String(255), nullable=True, index=True)
    role = Column(String(32), nullable=True)
    clinic_id = Column(String(64), nullable=True)
    disabled = Column(Boolean, nullable=False, default=False)

    created_at = Column(DateTime, nullable=False, default=utcnow)
    updated_at = Column(DateTime, nullable=False, default=utcnow)

    def __repr__(self):
        return f"<IdentityUser(uid='{self.uid}', email='{self.email}', role='{self.role}')>"
