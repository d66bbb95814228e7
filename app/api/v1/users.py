from fastapi import APIRouter, Depends

from ...core.authz import log_event
from ...core.security import Claims
from ...api.deps import get_clinic_team_claims, get_current_claims, require_clinic_scope

router = APIRouter(tags=["Users"])

@router.get("/health")
async def api_health():
    return {"success": True, "data": {"ok": True}, "message": "api healthy"}

@router.get("/users/me")
async def get_current_user_info(
    claims: Claims = Depends(get_current_claims)
):
    """Get the verified identity and claims of the caller."""
    log_event("login", claims, data={"endpoint": "/users/me", "email": claims.email})

    return {
        "success": True,
        "data": {
            "uid": claims.uid,
            "email": claims.email,
            "role": claims.role.value if claims.role else None,
            "clinicId": claims.clinic_id,
        }
    }

@router.get("/secure/clinic-scope")
async def clinic_scope_check(
    claims: Claims = Depends(get_clinic_team_claims)
):
    """Succeeds only for clinic team roles with a clinic claim."""
    await require_clinic_scope(claims)
    return {"success": True, "data": {"ok": True}, "message": "clinic scoped access granted"}
