"""
Analytics Dashboard Endpoints

Read-only dashboards for analysts and admins. Every endpoint loads the
caller's permission record, checks the endpoint and company access rules,
runs the analytics service with the derived company filter and passes the
result through the response filter before serialization.
"""

import logging
from typing import Any, Dict, Optional

from beanie import PydanticObjectId
from bson import ObjectId
from fastapi import APIRouter, Depends, HTTPException, Query, status
from fastapi.encoders import jsonable_encoder

from ..auth import require_analytics_role, user_object_id
from ..errors import BadParametersError, NotFoundError
from ..models.enums import EndpointName, ScopeKind
from ..models.permission_models import AnalyticsPermission
from ..services.analytics import AnalyticsService, DashboardFilters, get_analytics_service
from ..services.permissions import evaluator
from ..services.permissions.permission_service import (
    AnalyticsPermissionService,
    apply_max_results,
    company_filter_for,
    get_permission_service,
)
from ..services.permissions.response_filter import apply_response_filter
from ..utils.logging_security import sanitize_for_log, sanitize_id_for_log

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Analytics"])

# Domain errors mapped by the registered exception handlers
PASSTHROUGH_ERRORS = (HTTPException, NotFoundError, BadParametersError)


def encode(payload: Any) -> Any:
    """JSON-ready payload (ObjectIds as strings)."""
    return jsonable_encoder(payload, custom_encoder={ObjectId: str})


async def load_permission(
    current_user: Dict[str, Any] = Depends(require_analytics_role),
    permissions: AnalyticsPermissionService = Depends(get_permission_service),
) -> AnalyticsPermission:
    """The caller's permission record (created unrestricted on first access)."""
    return await permissions.get_permissions(user_object_id(current_user))


def dashboard_filters(
    year: Optional[int] = Query(None, ge=1970, le=9999),
    start_date: Optional[str] = Query(None, alias="startDate"),
    end_date: Optional[str] = Query(None, alias="endDate"),
    limit: Optional[int] = Query(None, ge=1, le=500),
    prioritize_flagged: bool = Query(False, alias="prioritizeFlagged"),
    solo_activas: bool = Query(False, alias="soloActivas"),
    severidad: Optional[str] = Query(None),
) -> DashboardFilters:
    return DashboardFilters(
        year=year,
        start_date=start_date,
        end_date=end_date,
        limit=limit,
        prioritize_flagged=prioritize_flagged,
        solo_activas=solo_activas,
        severidad=severidad,
    )


def require_endpoint(permission: AnalyticsPermission, endpoint: EndpointName) -> None:
    """
    Raises:
        HTTPException: 403 when the endpoint is disabled for the caller
    """
    if not evaluator.is_endpoint_enabled(permission, endpoint):
        logger.warning(
            f"Endpoint disabled: user {sanitize_id_for_log(str(permission.user_id))} -> {endpoint.value}"
        )
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="This analytics endpoint is not available for your account",
        )


async def require_company(
    permissions: AnalyticsPermissionService,
    permission: AnalyticsPermission,
    company_id: Any,
    endpoint: EndpointName,
) -> None:
    """
    Raises:
        HTTPException: 403 when the company is not visible on the endpoint
    """
    if not await permissions.check_permission_access(permission, company_id, endpoint):
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Access denied to this company analytics")


async def audit_filter(
    permissions: AnalyticsPermissionService, permission: AnalyticsPermission, endpoint: EndpointName
) -> Dict[str, Any]:
    """Audit filter fragment for the caller ({} when unrestricted)."""
    allowed = await evaluator.get_allowed_company_ids(permission, endpoint, permissions.companies)
    return company_filter_for(allowed)


def shaped(payload: Any, permission: AnalyticsPermission, endpoint: EndpointName) -> Any:
    filtered = apply_response_filter(
        payload, evaluator.permission_info(permission), evaluator.get_excluded_fields(permission, endpoint)
    )
    return encode(filtered)


@router.get("/dashboard/global", summary="Global analytics dashboard")
async def get_global_dashboard(
    filters: DashboardFilters = Depends(dashboard_filters),
    permission: AnalyticsPermission = Depends(load_permission),
    permissions: AnalyticsPermissionService = Depends(get_permission_service),
    analytics: AnalyticsService = Depends(get_analytics_service),
) -> Any:
    """
    Global statistics, breakdowns, monthly trend, evaluated entities,
    recent evaluations and active alerts over the companies the caller may see.
    """
    endpoint = EndpointName.GLOBAL_DASHBOARD
    require_endpoint(permission, endpoint)
    try:
        permission_filter = await audit_filter(permissions, permission, endpoint)
        dashboard = await analytics.get_dashboard(ScopeKind.GLOBAL, None, filters, permission_filter)
        return shaped(dashboard, permission, endpoint)
    except PASSTHROUGH_ERRORS:
        raise
    except Exception as e:
        logger.error(f"Error building global dashboard: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Failed to load global dashboard")


@router.get("/dashboard/company/{company_id}", summary="Company analytics dashboard")
async def get_company_dashboard(
    company_id: PydanticObjectId,
    filters: DashboardFilters = Depends(dashboard_filters),
    permission: AnalyticsPermission = Depends(load_permission),
    permissions: AnalyticsPermissionService = Depends(get_permission_service),
    analytics: AnalyticsService = Depends(get_analytics_service),
) -> Any:
    endpoint = EndpointName.COMPANY_DASHBOARD
    require_endpoint(permission, endpoint)
    await require_company(permissions, permission, company_id, endpoint)
    try:
        dashboard = await analytics.get_dashboard(ScopeKind.COMPANY, company_id, filters)
        return shaped(dashboard, permission, endpoint)
    except PASSTHROUGH_ERRORS:
        raise
    except Exception as e:
        logger.error(
            f"Error building company dashboard for {sanitize_id_for_log(str(company_id))}: {e}", exc_info=True
        )
        raise HTTPException(status_code=500, detail="Failed to load company dashboard")


@router.get("/dashboard/audit/{audit_id}", summary="Single audit dashboard")
async def get_audit_dashboard(
    audit_id: PydanticObjectId,
    permission: AnalyticsPermission = Depends(load_permission),
    permissions: AnalyticsPermissionService = Depends(get_permission_service),
    analytics: AnalyticsService = Depends(get_analytics_service),
) -> Any:
    """Audit dashboard; the audit's company must be visible on auditDashboard."""
    endpoint = EndpointName.AUDIT_DASHBOARD
    require_endpoint(permission, endpoint)
    try:
        company_id = await analytics.get_audit_company_id(audit_id)
        if company_id is None:
            raise NotFoundError("Audit", str(audit_id))
        await require_company(permissions, permission, company_id, endpoint)

        dashboard = await analytics.get_dashboard(ScopeKind.AUDIT, audit_id)
        return shaped(dashboard, permission, endpoint)
    except PASSTHROUGH_ERRORS:
        raise
    except Exception as e:
        logger.error(
            f"Error building audit dashboard for {sanitize_id_for_log(str(audit_id))}: {e}", exc_info=True
        )
        raise HTTPException(status_code=500, detail="Failed to load audit dashboard")


@router.get("/dashboard/audit/{audit_id}/summary", summary="Single audit summary")
async def get_audit_summary(
    audit_id: PydanticObjectId,
    permission: AnalyticsPermission = Depends(load_permission),
    permissions: AnalyticsPermissionService = Depends(get_permission_service),
    analytics: AnalyticsService = Depends(get_analytics_service),
) -> Any:
    endpoint = EndpointName.AUDIT_DASHBOARD
    require_endpoint(permission, endpoint)
    try:
        company_id = await analytics.get_audit_company_id(audit_id)
        if company_id is None:
            raise NotFoundError("Audit", str(audit_id))
        await require_company(permissions, permission, company_id, endpoint)
        return encode(await analytics.get_audit_summary(audit_id))
    except PASSTHROUGH_ERRORS:
        raise
    except Exception as e:
        logger.error(
            f"Error building audit summary for {sanitize_id_for_log(str(audit_id))}: {e}", exc_info=True
        )
        raise HTTPException(status_code=500, detail="Failed to load audit summary")


@router.get("/entidades-criticas", summary="Top critical-risk entities")
async def get_top_critical_entities(
    filters: DashboardFilters = Depends(dashboard_filters),
    permission: AnalyticsPermission = Depends(load_permission),
    permissions: AnalyticsPermissionService = Depends(get_permission_service),
    analytics: AnalyticsService = Depends(get_analytics_service),
) -> Any:
    """
    Companies ranked by active critical, then active high findings.

    ``prioritizeFlagged`` puts flagged companies first; the endpoint's
    result cap narrows the ranking and its summary together.
    """
    endpoint = EndpointName.ENTIDADES_CRITICAS
    require_endpoint(permission, endpoint)
    try:
        permission_filter = await audit_filter(permissions, permission, endpoint)
        ranking = await analytics.get_top_critical_entities(
            filters, permission_filter, max_results=evaluator.get_max_results(permission, endpoint)
        )
        return shaped(ranking, permission, endpoint)
    except PASSTHROUGH_ERRORS:
        raise
    except Exception as e:
        logger.error(f"Error ranking critical entities: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Failed to load critical entities")


@router.get("/vulnerabilidades/entidad/{company_id}", summary="Vulnerabilities of one entity")
async def get_company_vulnerabilities(
    company_id: PydanticObjectId,
    filters: DashboardFilters = Depends(dashboard_filters),
    permission: AnalyticsPermission = Depends(load_permission),
    permissions: AnalyticsPermissionService = Depends(get_permission_service),
    analytics: AnalyticsService = Depends(get_analytics_service),
) -> Any:
    endpoint = EndpointName.VULNERABILIDADES_ENTIDAD
    require_endpoint(permission, endpoint)
    await require_company(permissions, permission, company_id, endpoint)
    try:
        listing = await analytics.get_company_vulnerabilities(company_id, filters)
        listing["vulnerabilidades"] = apply_max_results(permission, endpoint, listing["vulnerabilidades"])
        return shaped(listing, permission, endpoint)
    except PASSTHROUGH_ERRORS:
        raise
    except Exception as e:
        logger.error(
            f"Error listing vulnerabilities of {sanitize_id_for_log(str(company_id))} "
            f"(severidad={sanitize_for_log(filters.severidad)}): {e}",
            exc_info=True,
        )
        raise HTTPException(status_code=500, detail="Failed to load entity vulnerabilities")


@router.get("/vulnerabilidades", summary="Recurring and active critical vulnerabilities")
async def get_vulnerability_overview(
    filters: DashboardFilters = Depends(dashboard_filters),
    permission: AnalyticsPermission = Depends(load_permission),
    permissions: AnalyticsPermissionService = Depends(get_permission_service),
    analytics: AnalyticsService = Depends(get_analytics_service),
) -> Any:
    endpoint = EndpointName.GLOBAL_DASHBOARD
    require_endpoint(permission, endpoint)
    try:
        permission_filter = await audit_filter(permissions, permission, endpoint)
        overview = await analytics.get_vulnerability_overview(filters, permission_filter)
        return shaped(overview, permission, endpoint)
    except PASSTHROUGH_ERRORS:
        raise
    except Exception as e:
        logger.error(f"Error building vulnerability overview: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Failed to load vulnerability overview")


@router.get("/trends", summary="Monthly, severity and annual trends")
async def get_trends(
    filters: DashboardFilters = Depends(dashboard_filters),
    permission: AnalyticsPermission = Depends(load_permission),
    permissions: AnalyticsPermissionService = Depends(get_permission_service),
    analytics: AnalyticsService = Depends(get_analytics_service),
) -> Any:
    endpoint = EndpointName.GLOBAL_DASHBOARD
    require_endpoint(permission, endpoint)
    try:
        permission_filter = await audit_filter(permissions, permission, endpoint)
        return shaped(await analytics.get_trends(filters, permission_filter), permission, endpoint)
    except PASSTHROUGH_ERRORS:
        raise
    except Exception as e:
        logger.error(f"Error building trends: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Failed to load trends")


@router.get("/company-stats", summary="Entity catalog statistics")
async def get_company_statistics(
    permission: AnalyticsPermission = Depends(load_permission),
    permissions: AnalyticsPermissionService = Depends(get_permission_service),
    analytics: AnalyticsService = Depends(get_analytics_service),
) -> Any:
    endpoint = EndpointName.GLOBAL_DASHBOARD
    require_endpoint(permission, endpoint)
    try:
        company_filter = await permissions.company_match_for(permission, endpoint)
        return shaped(await analytics.get_company_statistics(company_filter), permission, endpoint)
    except PASSTHROUGH_ERRORS:
        raise
    except Exception as e:
        logger.error(f"Error building company statistics: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Failed to load company statistics")


@router.get("/companies-with-stats", summary="Entities with their audit and finding counters")
async def get_companies_with_stats(
    filters: DashboardFilters = Depends(dashboard_filters),
    permission: AnalyticsPermission = Depends(load_permission),
    permissions: AnalyticsPermissionService = Depends(get_permission_service),
    analytics: AnalyticsService = Depends(get_analytics_service),
) -> Any:
    endpoint = EndpointName.GLOBAL_DASHBOARD
    require_endpoint(permission, endpoint)
    try:
        company_filter = await permissions.company_match_for(permission, endpoint)
        listing = await analytics.get_companies_with_stats(filters, company_filter)
        listing["companies"] = apply_max_results(permission, endpoint, listing["companies"])
        return shaped(listing, permission, endpoint)
    except PASSTHROUGH_ERRORS:
        raise
    except Exception as e:
        logger.error(f"Error listing companies with stats: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Failed to load companies")
