"""Admin API for customer notification preferences."""

from fastapi import APIRouter, Body, Depends, Request
from fastapi.responses import JSONResponse
from pydantic import ValidationError
from sqlalchemy.orm import Session

from ..audit.service import audit
from ..auth.models import User
from ..customers.models import Customer
from ..database.base import get_db
from ..dependencies import get_preference_store, require_admin
from .schemas import PreferencesUpdateRequest
from .service import PreferenceStore, as_uuid

router = APIRouter(prefix="/admin/customers", tags=["preferences"])


def _customer_exists(db: Session, customer_id: str) -> bool:
    try:
        uid = as_uuid(customer_id)
    except ValueError:
        return False
    return db.query(Customer.id).filter(Customer.id == uid).first() is not None


@router.get("/{customer_id}/notification-preferences")
def get_preferences(
    customer_id: str,
    db: Session = Depends(get_db),
    store: PreferenceStore = Depends(get_preference_store),
    user: User = Depends(require_admin),
):
    if not _customer_exists(db, customer_id):
        return JSONResponse({"error": "Customer not found"}, status_code=404)
    return JSONResponse({"customer_id": customer_id, "preferences": store.get(customer_id).model_dump()})


@router.put("/{customer_id}/notification-preferences")
def update_preferences(
    customer_id: str,
    request: Request,
    body: dict = Body(...),
    db: Session = Depends(get_db),
    store: PreferenceStore = Depends(get_preference_store),
    user: User = Depends(require_admin),
):
    try:
        patch = PreferencesUpdateRequest.model_validate(body)
    except ValidationError:
        return JSONResponse({"error": "Preference values must be booleans"}, status_code=400)
    fields = patch.model_dump(exclude_none=True)
    if not fields:
        return JSONResponse({"error": "No preference fields provided"}, status_code=400)
    if not _customer_exists(db, customer_id):
        return JSONResponse({"error": "Customer not found"}, status_code=404)

    result = store.update(customer_id, fields)
    if not result.success:
        return JSONResponse({"error": result.error}, status_code=500)

    audit(db, request, "preferences_update", f"customer={customer_id}, fields={sorted(fields)}", user_id=user.id)
    db.commit()
    return JSONResponse({"ok": True, "preferences": store.get(customer_id).model_dump()})
