"""
Role and clinic-scope gates plus the structured audit trail.

Denial reasons are only ever logged; responses carry a generic "Forbidden".
"""
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, Optional
import json
import logging

from fastapi import Request

from .security import Claims, Role

logger = logging.getLogger(__name__)


def check_role(claims: Claims, allowed_roles: Iterable[Role]) -> Optional[str]:
    """Return a denial reason, or None when the role is allowed."""
    allowed = frozenset(allowed_roles)
    if claims.role is None:
        return "missing role claim"
    if claims.role not in allowed:
        return (
            f"role '{claims.role.value}' not in "
            f"{sorted(role.value for role in allowed)}"
        )
    return None


def check_clinic_scope(claims: Claims) -> Optional[str]:
    """Every non-platform actor must carry a clinic asserted by the identity provider."""
    if claims.role == Role.PLATFORM_ADMIN:
        return None
    if not claims.clinic_id:
        return "missing clinic scope"
    return None


def log_authz_denied(
    request: Request,
    status: int,
    reason: str,
    claims: Optional[Claims] = None
) -> Dict[str, Any]:
    payload = {
        "event": "authz_denied",
        "status": status,
        "method": request.method,
        "endpoint": request.url.path,
        "role": claims.role.value if claims and claims.role else None,
        "uid": claims.uid if claims else None,
        "clinicId": claims.clinic_id if claims else None,
        "reason": reason,
    }
    logger.warning(json.dumps(payload))
    return payload


def log_event(
    event: str,
    claims: Optional[Claims] = None,
    clinic_id: Optional[str] = None,
    data: Optional[Dict[str, Any]] = None
) -> Dict[str, Any]:
    """Emit a single-line JSON domain event."""
    payload: Dict[str, Any] = {
        "ts": datetime.now(timezone.utc).isoformat(),
        "event": event,
        "actorUid": claims.uid if claims else None,
        "actorRole": claims.role.value if claims and claims.role else None,
        "clinicId": clinic_id or (claims.clinic_id if claims else None),
    }
    if data:
        payload["data"] = data
    logger.info(json.dumps(payload, default=str))
    return payload
