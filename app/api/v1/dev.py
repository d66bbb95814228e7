from fastapi import APIRouter, Depends
import logging
import secrets

from ...core.authz import log_event
from ...core.config import settings
from ...core.errors import Forbidden, NotFound, ValidationFailed
from ...core.security import CLINIC_ROLES
from ...api.deps import get_identity_provider, rate_limit_check
from ...services.identity_service import IdentityProvider
from ...schemas.auth import SetClaimsRequest

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/dev", tags=["Development"])

@router.post("/set-claims")
async def set_claims(
    claims_data: SetClaimsRequest,
    identity: IdentityProvider = Depends(get_identity_provider),
    _: None = Depends(rate_limit_check)
):
    """Assign role/clinic custom claims to an identity user (non-production only)."""
    if settings.is_production:
        raise NotFound()

    if not settings.DEV_ADMIN_SECRET or not secrets.compare_digest(
        claims_data.secret, settings.DEV_ADMIN_SECRET
    ):
        raise Forbidden("Invalid dev secret")

    if claims_data.role in CLINIC_ROLES and not claims_data.clinic_id:
        raise ValidationFailed("clinicId is required for this role")

    user = identity.set_custom_claims(
        claims_data.uid, claims_data.role, claims_data.clinic_id
    )
    if not user:
        raise NotFound("User not found in Auth")

    logger.info(f"Claims updated for {user.uid}: role={user.role} clinicId={user.clinic_id}")
    log_event(
        "claims_updated",
        clinic_id=claims_data.clinic_id,
        data={"uid": user.uid, "role": user.role}
    )

    return {
        "success": True,
        "message": "Claims updated",
        "data": {"uid": user.uid, "role": user.role, "clinicId": user.clinic_id}
    }
