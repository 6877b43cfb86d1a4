# portal/api/v1/settings.py
from typing import Optional

from fastapi import APIRouter, Depends, Query

from portal.api.deps import require_super_admin
from portal.core.errors import PortalError
from portal.core.responses import success_response
from portal.models.common import BulkSettingsIn, SettingIn
from portal.policy.access import Principal
from portal.repositories import system_settings
from portal.repositories.audit import record_audit
from portal.repositories.base import _to_id

router = APIRouter(prefix="/settings", tags=["settings"])


@router.get("")
async def list_settings(category: Optional[str] = Query(None), search: Optional[str] = Query(None),
                        principal: Principal = Depends(require_super_admin)):
    grouped = await system_settings.list_settings(category, search)
    data = {cat: [_to_id(s) for s in rows] for cat, rows in grouped.items()}
    return success_response("Settings retrieved successfully", data)


@router.put("/bulk")
async def bulk_update(payload: BulkSettingsIn, principal: Principal = Depends(require_super_admin)):
    updated, errors = [], []
    for item in payload.settings:
        try:
            doc = await system_settings.update_value(item.key, item.value, principal.id)
        except PortalError as exc:
            errors.append({"key": item.key, "message": exc.message})
            continue
        updated.append(_to_id(doc))
    await record_audit(principal.id, "settings_bulk_updated", "system_settings",
                       details={"updated": [s["key"] for s in updated], "failed": len(errors)})
    message = f"Updated {len(updated)} settings"
    if errors:
        message += f", {len(errors)} failed"
    return success_response(message, {"updated": updated, "errors": errors})


@router.get("/{key}")
async def get_setting(key: str, principal: Principal = Depends(require_super_admin)):
    return success_response("Setting retrieved successfully", _to_id(await system_settings.get_setting(key)))


@router.put("")
async def upsert_setting(payload: SettingIn, principal: Principal = Depends(require_super_admin)):
    doc = await system_settings.upsert_setting(payload.key, payload.value, payload.category,
                                               payload.description, principal.id)
    await record_audit(principal.id, "setting_saved", "system_settings", payload.key)
    return success_response("Setting saved successfully", _to_id(doc))


@router.delete("/{key}")
async def delete_setting(key: str, principal: Principal = Depends(require_super_admin)):
    await system_settings.delete_setting(key)
    await record_audit(principal.id, "setting_deleted", "system_settings", key)
    return success_response("Setting deleted successfully")
