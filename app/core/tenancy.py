from typing import Optional, Type, TypeVar
from sqlalchemy.orm import Session

from .errors import Forbidden
from .security import Claims

T = TypeVar("T")

def get_in_clinic(
    db: Session,
    model: Type[T],
    doc_id: str,
    clinic_id: str,
    for_update: bool = False
) -> Optional[T]:
    """Fetch a record only if it belongs to ``clinic_id``.

    A record from another clinic is reported exactly like a missing one so ids
    cannot be enumerated across tenants.
    """
    query = db.query(model).filter(model.id == doc_id)
    if for_update:
        query = query.with_for_update()
    obj = query.first()

    if obj is None:
        return None
    stored_clinic_id = getattr(obj, "clinic_id", None)
    if not stored_clinic_id or stored_clinic_id != clinic_id:
        return None
    return obj

def get_scoped(
    db: Session,
    model: Type[T],
    doc_id: str,
    claims: Claims,
    for_update: bool = False
) -> Optional[T]:
    """Platform role reads anything; every other role goes through get_in_clinic."""
    if claims.is_platform:
        query = db.query(model).filter(model.id == doc_id)
        if for_update:
            query = query.with_for_update()
        return query.first()

    if not claims.clinic_id:
        raise Forbidden("missing clinic scope", claims)

    return get_in_clinic(db, model, doc_id, claims.clinic_id, for_update=for_update)
