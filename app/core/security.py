from datetime import datetime, timedelta, timezone
from typing import Optional
from jose import JWTError, jwt
from fastapi.security import HTTPBearer
from pydantic import BaseModel, ConfigDict
from enum import Enum

from .config import settings

# OpenAPI bearer scheme; the resolver parses the header itself with parse_bearer
security = HTTPBearer(auto_error=False)

class Role(str, Enum):
    PLATFORM_ADMIN = "platform_admin"
    CLINIC_ADMIN = "clinic_admin"
    NUTRI = "nutri"
    STAFF = "staff"
    PATIENT = "patient"

# Roles that operate inside exactly one clinic
CLINIC_ROLES = frozenset({Role.CLINIC_ADMIN, Role.NUTRI, Role.STAFF})

class Claims(BaseModel):
    """Verified identity and authorization attributes of the caller."""
    model_config = ConfigDict(frozen=True)

    uid: str
    email: Optional[str] = None
    role: Optional[Role] = None
    clinic_id: Optional[str] = None

    @property
    def is_platform(self) -> bool:
        return self.role == Role.PLATFORM_ADMIN

class TokenPayload(BaseModel):
    sub: Optional[str] = None
    email: Optional[str] = None
    role: Optional[str] = None
    clinicId: Optional[str] = None
    iss: Optional[str] = None
    exp: Optional[int] = None

def parse_bearer(header_value: Optional[str]) -> Optional[str]:
    """Return the token of an ``Authorization: Bearer <token>`` header."""
    if not header_value:
        return None
    parts = header_value.split(" ")
    if len(parts) != 2:
        return None
    scheme, token = parts
    if scheme != "Bearer" or not token:
        return None
    return token

# JWT utilities
def create_id_token(
    uid: str,
    email: Optional[str] = None,
    role: Optional[Role] = None,
    clinic_id: Optional[str] = None,
    expires_delta: Optional[timedelta] = None
) -> str:
    """Mint a signed ID token carrying custom claims.

    Used by local tooling and tests to stand in for the identity provider.
    """
    if expires_delta is None:
        expires_delta = timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES)
    to_encode = {
        "sub": uid,
        "email": email,
        "iss": settings.TOKEN_ISSUER,
        "exp": datetime.now(timezone.utc) + expires_delta,
    }
    if role is not None:
        to_encode["role"] = Role(role).value
    if clinic_id is not None:
        to_encode["clinicId"] = clinic_id

    return jwt.encode(
        to_encode,
        settings.SECRET_KEY,
        algorithm=settings.ALGORITHM
    )

def decode_id_token(token: str) -> Optional[TokenPayload]:
    """Verify signature, expiry and issuer of an ID token."""
    try:
        payload = jwt.decode(
            token,
            settings.SECRET_KEY,
            algorithms=[settings.ALGORITHM],
            issuer=settings.TOKEN_ISSUER,
        )
        return TokenPayload(**payload)

    except (JWTError, ValueError):
        return None

def claims_from_payload(payload: TokenPayload) -> Claims:
    """Build caller claims; an unrecognised role claim counts as no role."""
    try:
        role = Role(payload.role) if payload.role else None
    except ValueError:
        role = None

    return Claims(
        uid=payload.sub,
        email=payload.email,
        role=role,
        clinic_id=payload.clinicId or None,
    )
