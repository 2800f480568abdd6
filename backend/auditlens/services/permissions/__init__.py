"""
AuditLens Analytics Permissions

Per-user restrictions on the analytics dashboards: which endpoints are
enabled, which companies are visible and which payload sections are shown.

Modules:
    evaluator: Pure access decisions and filters over a loaded record
    permission_service: Administration, lazy creation and access checks
    response_filter: Section hiding applied to outgoing dashboard payloads
"""

from .evaluator import (
    UNRESTRICTED,
    company_query,
    get_allowed_company_ids,
    get_excluded_fields,
    get_max_results,
    get_visible_sections,
    has_restrictions,
    is_company_allowed,
    is_endpoint_enabled,
    permission_info,
    should_filter_by_flagged,
)
from .permission_service import AnalyticsPermissionService, get_permission_service, validate_permission_data
from .response_filter import apply_response_filter, filter_payload

__all__ = [
    "UNRESTRICTED",
    "AnalyticsPermissionService",
    "get_permission_service",
    "validate_permission_data",
    "company_query",
    "get_allowed_company_ids",
    "get_excluded_fields",
    "get_max_results",
    "get_visible_sections",
    "has_restrictions",
    "is_company_allowed",
    "is_endpoint_enabled",
    "permission_info",
    "should_filter_by_flagged",
    "apply_response_filter",
    "filter_payload",
]
