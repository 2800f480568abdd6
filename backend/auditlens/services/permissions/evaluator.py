"""
Permission Evaluator

Pure reads over a loaded AnalyticsPermission record. Nothing here mutates
the record and nothing raises for a missing sub-record: an absent endpoint
filter or section flag always means "use the permissive default".

Master switch:
    While ``customPermissionsEnabled`` is off every function returns its most
    permissive answer without looking at the restriction fields, which may
    hold stale data.

Company filters:
    ``get_allowed_company_ids`` returns the UNRESTRICTED sentinel for an
    unrestricted user. An empty list is a different answer: it matches no
    company at all.
"""

import logging
from enum import Enum
from typing import Any, Dict, List, Optional, Union

from beanie import PydanticObjectId

from ...models.enums import SECTION_NAMES, EndpointName, SectionName
from ...models.permission_models import AnalyticsPermissionBase, EndpointFilter, PermissionInfo
from ...repositories import CompanyRepository

logger = logging.getLogger(__name__)


class Unrestricted(Enum):
    """Sentinel type for "do not filter by company"."""

    UNRESTRICTED = "unrestricted"

    def __repr__(self) -> str:
        return "UNRESTRICTED"


UNRESTRICTED = Unrestricted.UNRESTRICTED

AllowedCompanies = Union[List[PydanticObjectId], Unrestricted]


def _endpoint_filter(permission: AnalyticsPermissionBase, endpoint: EndpointName) -> Optional[EndpointFilter]:
    if permission.endpoints is None:
        return None
    return permission.endpoints.get(endpoint)


def _contains(ids: List[Any], company_id: Any) -> bool:
    target = str(company_id)
    return any(str(value) == target for value in ids)


def is_endpoint_enabled(permission: AnalyticsPermissionBase, endpoint: EndpointName) -> bool:
    """False only when the endpoint is explicitly disabled under an active master switch."""
    if not permission.custom_permissions_enabled:
        return True
    endpoint_filter = _endpoint_filter(permission, endpoint)
    return endpoint_filter is None or endpoint_filter.enabled is not False


def should_filter_by_flagged(permission: AnalyticsPermissionBase, endpoint: EndpointName) -> bool:
    """Whether only flagged (cuadroDeMando) companies are visible on this endpoint."""
    if not permission.custom_permissions_enabled:
        return False
    if permission.global_only_flagged_companies:
        return True
    endpoint_filter = _endpoint_filter(permission, endpoint)
    return bool(endpoint_filter and endpoint_filter.only_flagged_companies)


def is_company_allowed(permission: AnalyticsPermissionBase, company_id: Any, endpoint: EndpointName) -> bool:
    """
    Whether a company passes the exclusion and allow-list rules of an endpoint.

    Global exclusion is checked first and always wins. An endpoint allow-list
    takes priority over the global one; no allow-list at all means allowed.
    The flagged-company rule needs the company document and is applied by
    the permission service.
    """
    if not permission.custom_permissions_enabled:
        return True
    if _contains(permission.global_excluded_companies, company_id):
        return False
    if not is_endpoint_enabled(permission, endpoint):
        return False

    endpoint_filter = _endpoint_filter(permission, endpoint)
    if endpoint_filter and endpoint_filter.allowed_companies:
        return _contains(endpoint_filter.allowed_companies, company_id)
    if permission.global_allowed_companies:
        return _contains(permission.global_allowed_companies, company_id)
    return True


def company_query(permission: AnalyticsPermissionBase, endpoint: EndpointName) -> Optional[Dict[str, Any]]:
    """
    Company predicate for the endpoint, or None for an unrestricted user.

    Example:
        {"status": True, "cuadroDeMando": True, "_id": {"$in": [...], "$nin": [...]}}
    """
    if not permission.custom_permissions_enabled:
        return None

    query: Dict[str, Any] = {"status": True}
    if should_filter_by_flagged(permission, endpoint):
        query["cuadroDeMando"] = True

    endpoint_filter = _endpoint_filter(permission, endpoint)
    id_clause: Dict[str, Any] = {}
    if endpoint_filter and endpoint_filter.allowed_companies:
        id_clause["$in"] = list(endpoint_filter.allowed_companies)
    elif permission.global_allowed_companies:
        id_clause["$in"] = list(permission.global_allowed_companies)
    if permission.global_excluded_companies:
        id_clause["$nin"] = list(permission.global_excluded_companies)
    if id_clause:
        query["_id"] = id_clause
    return query


async def get_allowed_company_ids(
    permission: AnalyticsPermissionBase,
    endpoint: EndpointName,
    companies: Optional[CompanyRepository] = None,
) -> AllowedCompanies:
    """
    Materialize the companies a user may see on an endpoint.

    Returns:
        UNRESTRICTED when the master switch is off, otherwise the (possibly
        empty) list of matching company ids
    """
    query = company_query(permission, endpoint)
    if query is None:
        return UNRESTRICTED
    companies = companies or CompanyRepository()
    return await companies.find_ids(query)


def get_max_results(permission: AnalyticsPermissionBase, endpoint: EndpointName) -> int:
    """Result cap for the endpoint (0 = unlimited)."""
    if not permission.custom_permissions_enabled:
        return 0
    endpoint_filter = _endpoint_filter(permission, endpoint)
    return endpoint_filter.max_results if endpoint_filter else 0


def get_excluded_fields(permission: AnalyticsPermissionBase, endpoint: EndpointName) -> List[str]:
    if not permission.custom_permissions_enabled:
        return []
    endpoint_filter = _endpoint_filter(permission, endpoint)
    return list(endpoint_filter.excluded_fields) if endpoint_filter else []


def get_visible_sections(permission: AnalyticsPermissionBase) -> Dict[str, bool]:
    """
    Visibility of every known section.

    Only an explicit False hides a section, so sections added after a record
    was written stay visible for it.
    """
    if not permission.custom_permissions_enabled or permission.visible_sections is None:
        return {name: True for name in SECTION_NAMES}
    return {name: permission.visible_sections.is_visible(SectionName(name)) for name in SECTION_NAMES}


def has_restrictions(permission: AnalyticsPermissionBase) -> bool:
    """True iff the master switch is on and a company-level restriction is configured."""
    return bool(
        permission.custom_permissions_enabled
        and (
            permission.global_only_flagged_companies
            or permission.global_allowed_companies
            or permission.global_excluded_companies
        )
    )


def permission_info(permission: AnalyticsPermissionBase) -> PermissionInfo:
    """Digest attached to filtered dashboard payloads as ``_permissionInfo``."""
    return PermissionInfo(
        custom_permissions_enabled=permission.custom_permissions_enabled,
        global_only_flagged_companies=permission.global_only_flagged_companies,
        visible_sections=get_visible_sections(permission),
        has_restrictions=has_restrictions(permission),
    )
