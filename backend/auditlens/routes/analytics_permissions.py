"""
Analytics Permission Administration Endpoints

Admin-only management of the per-user analytics permission records.
Validation errors come back as a 400 listing every invalid field.
"""

import logging
from typing import Any, Dict

from beanie import PydanticObjectId
from fastapi import APIRouter, Body, Depends, Query
from pydantic import BaseModel

from ..auth import require_admin, user_object_id
from ..models.enums import EndpointName
from ..services.permissions.permission_service import (
    AnalyticsPermissionService,
    get_permission_service,
    permission_view,
)
from ..utils.logging_security import sanitize_id_for_log
from .analytics import encode

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/permissions", tags=["Analytics Permissions"])


class ToggleRequest(BaseModel):
    """Body of the toggle endpoints"""

    enabled: bool


@router.get("", summary="List configured permission records")
async def list_permissions(
    _current_user: Dict[str, Any] = Depends(require_admin),
    permissions: AnalyticsPermissionService = Depends(get_permission_service),
) -> Any:
    return encode(await permissions.list_permissions())


@router.get("/analysts", summary="List analyst users with their permission digest")
async def list_analyst_users(
    _current_user: Dict[str, Any] = Depends(require_admin),
    permissions: AnalyticsPermissionService = Depends(get_permission_service),
) -> Any:
    return encode(await permissions.list_analyst_users())


@router.get("/companies", summary="Companies available for assignment")
async def get_available_companies(
    only_flagged: bool = Query(False, alias="onlyFlagged"),
    only_active: bool = Query(True, alias="onlyActive"),
    _current_user: Dict[str, Any] = Depends(require_admin),
    permissions: AnalyticsPermissionService = Depends(get_permission_service),
) -> Any:
    return encode(await permissions.get_available_companies(only_flagged=only_flagged, only_active=only_active))


@router.post("/initialize", summary="Create default records for every analyst")
async def initialize_analyst_permissions(
    current_user: Dict[str, Any] = Depends(require_admin),
    permissions: AnalyticsPermissionService = Depends(get_permission_service),
) -> Any:
    result = await permissions.initialize_analyst_permissions()
    logger.info(f"Analyst permissions initialized by {sanitize_id_for_log(current_user.get('id'))}")
    return result


@router.post("/cleanup", summary="Delete records of deleted users")
async def cleanup_orphan_permissions(
    _current_user: Dict[str, Any] = Depends(require_admin),
    permissions: AnalyticsPermissionService = Depends(get_permission_service),
) -> Any:
    return await permissions.cleanup_orphan_permissions()


@router.get("/{user_id}", summary="Get a user's permissions")
async def get_permissions(
    user_id: PydanticObjectId,
    _current_user: Dict[str, Any] = Depends(require_admin),
    permissions: AnalyticsPermissionService = Depends(get_permission_service),
) -> Any:
    """Returns the stored record, creating the unrestricted default if absent."""
    return encode(permission_view(await permissions.get_permissions(user_id)))


@router.put("/{user_id}", summary="Create or replace a user's permissions")
async def upsert_permissions(
    user_id: PydanticObjectId,
    data: Dict[str, Any] = Body(...),
    current_user: Dict[str, Any] = Depends(require_admin),
    permissions: AnalyticsPermissionService = Depends(get_permission_service),
) -> Any:
    """
    Full replace: editable fields missing from the body return to their defaults.

    Example Body:
        {
            "customPermissionsEnabled": true,
            "globalOnlyFlaggedCompanies": false,
            "globalExcludedCompanies": ["65f1c0ffee00000000000001"],
            "endpoints": {"entidadesCriticas": {"maxResults": 10}},
            "visibleSections": {"alertasActivas": false}
        }
    """
    permission = await permissions.upsert_permissions(user_id, data, user_object_id(current_user))
    return encode(permission_view(permission))


@router.patch("/{user_id}", summary="Update part of a user's permissions")
async def partial_update_permissions(
    user_id: PydanticObjectId,
    updates: Dict[str, Any] = Body(...),
    current_user: Dict[str, Any] = Depends(require_admin),
    permissions: AnalyticsPermissionService = Depends(get_permission_service),
) -> Any:
    """Only the keys present are changed; endpoint filters and section flags merge per key."""
    permission = await permissions.partial_update(user_id, updates, user_object_id(current_user))
    return encode(permission_view(permission))


@router.delete("/{user_id}", summary="Reset a user's permissions to the default")
async def reset_permissions(
    user_id: PydanticObjectId,
    _current_user: Dict[str, Any] = Depends(require_admin),
    permissions: AnalyticsPermissionService = Depends(get_permission_service),
) -> Any:
    return await permissions.reset_permissions(user_id)


@router.post("/{user_id}/toggle", summary="Switch custom permissions on or off")
async def toggle_permissions(
    user_id: PydanticObjectId,
    request: ToggleRequest,
    current_user: Dict[str, Any] = Depends(require_admin),
    permissions: AnalyticsPermissionService = Depends(get_permission_service),
) -> Any:
    return await permissions.toggle_permissions(user_id, request.enabled, user_object_id(current_user))


@router.post("/{user_id}/toggle-flagged", summary="Restrict to flagged companies")
async def toggle_flagged_only(
    user_id: PydanticObjectId,
    request: ToggleRequest,
    current_user: Dict[str, Any] = Depends(require_admin),
    permissions: AnalyticsPermissionService = Depends(get_permission_service),
) -> Any:
    return await permissions.toggle_flagged_only(user_id, request.enabled, user_object_id(current_user))


@router.get("/{user_id}/summary", summary="Permission summary")
async def get_summary(
    user_id: PydanticObjectId,
    _current_user: Dict[str, Any] = Depends(require_admin),
    permissions: AnalyticsPermissionService = Depends(get_permission_service),
) -> Any:
    return encode(await permissions.get_summary(user_id))


@router.get("/{user_id}/preview", summary="Preview what a user would see")
async def preview_permissions(
    user_id: PydanticObjectId,
    endpoint: EndpointName = Query(EndpointName.GLOBAL_DASHBOARD),
    _current_user: Dict[str, Any] = Depends(require_admin),
    permissions: AnalyticsPermissionService = Depends(get_permission_service),
) -> Any:
    return encode(await permissions.preview(user_id, endpoint))
