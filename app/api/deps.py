from fastapi import Depends, HTTPException, status, Request
from fastapi.security import HTTPAuthorizationCredentials
from sqlalchemy.orm import Session
from typing import Optional

from ..core.authz import check_clinic_scope, check_role
from ..core.config import settings
from ..core.database import get_db, get_redis
from ..core.errors import Forbidden, Unauthenticated
from ..core.security import security, parse_bearer, Claims, Role
from ..services.identity_service import IdentityProvider

def get_identity_provider(db: Session = Depends(get_db)) -> IdentityProvider:
    """Identity provider bound to the request's session."""
    return IdentityProvider(db)

async def get_current_claims(
    request: Request,
    _credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
    identity: IdentityProvider = Depends(get_identity_provider)
) -> Claims:
    """Extract and verify the bearer ID token from the Authorization header.

    The scheme must be exactly ``Bearer``; HTTPBearer only documents it.
    """
    token = parse_bearer(request.headers.get("Authorization"))
    if token is None:
        raise Unauthenticated("Missing Authorization Bearer token")

    return identity.verify(token)

# Role-based access control dependencies
def require_role(*allowed_roles: Role):
    """Create a dependency that requires one of the given roles."""
    async def role_checker(
        claims: Claims = Depends(get_current_claims)
    ) -> Claims:
        reason = check_role(claims, allowed_roles)
        if reason:
            raise Forbidden(reason, claims)
        return claims

    return role_checker

async def require_any_role(
    claims: Claims = Depends(get_current_claims)
) -> Claims:
    """Any authenticated caller that carries a role claim."""
    reason = check_role(claims, Role)
    if reason:
        raise Forbidden(reason, claims)
    return claims

async def require_clinic_scope(
    claims: Claims = Depends(require_any_role)
) -> Claims:
    """Non-platform callers must carry a clinic claim."""
    reason = check_clinic_scope(claims)
    if reason:
        raise Forbidden(reason, claims)
    return claims

# Specific role dependencies
get_patient_claims = require_role(Role.PATIENT)

get_clinic_team_claims = require_role(Role.CLINIC_ADMIN, Role.NUTRI, Role.STAFF)

# Rate limiting dependency
async def rate_limit_check(
    request: Request,
    redis_client = Depends(get_redis)
) -> None:
    """Fixed-window rate limit per client IP and path."""
    client_ip = request.client.host if request.client else "unknown"
    key = f"rate_limit:{request.url.path}:{client_ip}"

    current_requests = redis_client.get(key)
    if current_requests is None:
        redis_client.setex(key, 3600, 1)  # 1 hour window
    else:
        if int(current_requests) >= settings.DEV_RATE_LIMIT_PER_HOUR:
            raise HTTPException(
                status_code=status.HTTP_429_TOO_MANY_REQUESTS,
                detail="Too many requests. Please try again later."
            )
        redis_client.incr(key)
