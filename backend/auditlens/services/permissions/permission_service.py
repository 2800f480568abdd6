"""
Analytics Permission Service

Administration of per-user analytics permissions and the access checks
and company filters derived from them.

Records are created lazily: reading the permissions of a user without a
record creates the unrestricted default. Full upsert replaces every
editable field; partial update only touches the keys it receives, merging
endpoint filters and section flags key by key.

Usage:
    >>> service = get_permission_service()
    >>> await service.check_access(user_id, company_id, EndpointName.COMPANY_DASHBOARD)
    True
    >>> await service.build_company_filter(user_id, EndpointName.GLOBAL_DASHBOARD)
    {'company': {'$in': [...]}}
"""

import logging
from functools import lru_cache
from typing import Any, Dict, List, Optional, Tuple

from beanie import PydanticObjectId
from bson import ObjectId
from pydantic import ValidationError

from ...config import get_settings
from ...errors import BadParametersError, NotFoundError
from ...models.enums import ENDPOINT_NAMES, SECTION_NAMES, EndpointName, UserRole
from ...models.permission_models import (
    EDITABLE_PERMISSION_FIELDS,
    AnalyticsPermission,
    AnalyticsPermissionBase,
)
from ...repositories import AnalyticsPermissionRepository, CompanyRepository, UserRepository
from ...utils.logging_security import sanitize_for_log, sanitize_id_for_log
from . import evaluator
from .evaluator import UNRESTRICTED
from .response_filter import section_summary

logger = logging.getLogger(__name__)

# Keys a client may echo back from a read; ignored on write
READ_ONLY_KEYS = frozenset(
    ["_id", "id", "userId", "createdAt", "updatedAt", "createdBy", "updatedBy", "revision_id", "__v"]
)

ENDPOINT_FILTER_KEYS = ["enabled", "onlyFlaggedCompanies", "allowedCompanies", "excludedFields", "maxResults"]

ErrorList = List[Tuple[Optional[str], str]]


def parse_endpoint(value: Any) -> EndpointName:
    """
    Raises:
        BadParametersError: Unknown endpoint name
    """
    try:
        return EndpointName(value)
    except ValueError:
        raise BadParametersError.single("endpoint", f"Invalid endpoint name: {value}") from None


def _check_company_ids(value: Any, field: str, errors: ErrorList) -> None:
    if not isinstance(value, list):
        errors.append((field, f"{field} must be a list of company ids"))
        return
    for index, company_id in enumerate(value):
        if not ObjectId.is_valid(str(company_id)) or isinstance(company_id, bool):
            errors.append((f"{field}[{index}]", f"Invalid company ID at {field}[{index}]: {company_id}"))


def _check_flag(value: Any, field: str, errors: ErrorList, nullable: bool = False) -> None:
    if value is None and nullable:
        return
    if not isinstance(value, bool):
        errors.append((field, f"{field} must be a boolean"))


def _check_endpoint_filter(name: str, value: Any, errors: ErrorList) -> None:
    prefix = f"endpoints.{name}"
    if value is None:
        return
    if not isinstance(value, dict):
        errors.append((prefix, f"{prefix} must be an object"))
        return
    for key, item in value.items():
        field = f"{prefix}.{key}"
        if key not in ENDPOINT_FILTER_KEYS:
            errors.append((field, f"Unknown endpoint filter field: {key}"))
        elif key in ("enabled", "onlyFlaggedCompanies"):
            _check_flag(item, field, errors, nullable=key == "enabled")
        elif key == "allowedCompanies":
            _check_company_ids(item, field, errors)
        elif key == "excludedFields":
            if not isinstance(item, list) or not all(isinstance(entry, str) for entry in item):
                errors.append((field, f"{field} must be a list of field names"))
        elif key == "maxResults":
            if isinstance(item, bool) or not isinstance(item, int) or item < 0:
                errors.append((field, f"{field} must be a non-negative integer"))


def validate_permission_data(data: Any) -> ErrorList:
    """
    Check an administrative payload (camelCase keys).

    Every problem is collected, not just the first one.

    Returns:
        ``(field, message)`` pairs; empty when the payload is valid
    """
    if not isinstance(data, dict):
        return [(None, "Permission data must be an object")]

    errors: ErrorList = []
    for key, value in data.items():
        if key in READ_ONLY_KEYS:
            continue
        if key not in EDITABLE_PERMISSION_FIELDS:
            errors.append((key, f"Unknown permission field: {key}"))
        elif key in ("customPermissionsEnabled", "globalOnlyFlaggedCompanies"):
            _check_flag(value, key, errors)
        elif key in ("globalAllowedCompanies", "globalExcludedCompanies"):
            _check_company_ids(value, key, errors)
        elif key in ("endpoints", "visibleSections") and value is None:
            continue
        elif key == "endpoints":
            if not isinstance(value, dict):
                errors.append((key, "endpoints must be an object"))
                continue
            for name, endpoint_filter in value.items():
                if name not in ENDPOINT_NAMES:
                    errors.append((f"endpoints.{name}", f"Invalid endpoint name: {name}"))
                else:
                    _check_endpoint_filter(name, endpoint_filter, errors)
        elif key == "visibleSections":
            if not isinstance(value, dict):
                errors.append((key, "visibleSections must be an object"))
                continue
            for name, visible in value.items():
                if name not in SECTION_NAMES:
                    errors.append((f"visibleSections.{name}", f"Invalid section name: {name}"))
                else:
                    _check_flag(visible, f"visibleSections.{name}", errors, nullable=True)
        elif key == "notes":
            if value is not None and not isinstance(value, str):
                errors.append((key, "notes must be a string"))
    return errors


def _editable(data: Dict[str, Any]) -> Dict[str, Any]:
    return {key: value for key, value in data.items() if key not in READ_ONLY_KEYS}


def build_fields(user_id: PydanticObjectId, data: Dict[str, Any]) -> AnalyticsPermissionBase:
    """
    Validate an administrative payload into permission fields.

    Raises:
        BadParametersError: Listing every invalid field
    """
    errors = validate_permission_data(data)
    if errors:
        raise BadParametersError(errors, message="Invalid permission data")
    try:
        return AnalyticsPermissionBase.model_validate({**_editable(data), "userId": user_id})
    except ValidationError as e:
        raise BadParametersError(
            [(".".join(str(part) for part in err["loc"]) or None, err["msg"]) for err in e.errors()],
            message="Invalid permission data",
        ) from e


def current_fields(permission: Any) -> AnalyticsPermissionBase:
    """Editable view of a stored record (works on any object carrying the fields)."""
    return AnalyticsPermissionBase(
        **{name: getattr(permission, name) for name in AnalyticsPermissionBase.model_fields}
    )


def merge_update(current: Dict[str, Any], updates: Dict[str, Any]) -> Dict[str, Any]:
    """
    Apply a partial update to a camelCase record dict.

    Endpoint filters and section flags merge per key; every other key is
    replaced. A None endpoint or section map is stored as given.
    """
    merged = dict(current)
    for key, value in _editable(updates).items():
        if key == "endpoints" and value is not None:
            endpoints = dict(merged.get("endpoints") or {})
            for name, override in value.items():
                if override is None:
                    endpoints[name] = None
                else:
                    endpoints[name] = {**(endpoints.get(name) or {}), **override}
            merged["endpoints"] = endpoints
        elif key == "visibleSections" and value is not None:
            merged["visibleSections"] = {**(merged.get("visibleSections") or {}), **value}
        else:
            merged[key] = value
    return merged


def permission_view(permission: Any, user: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
    """camelCase representation of a stored record for API responses."""
    view = current_fields(permission).model_dump(by_alias=True)
    view["id"] = getattr(permission, "id", None)
    view["createdAt"] = getattr(permission, "created_at", None)
    view["updatedAt"] = getattr(permission, "updated_at", None)
    if user is not None:
        view["user"] = user
    return view


def company_filter_for(
    allowed: evaluator.AllowedCompanies, base_filter: Optional[Dict[str, Any]] = None
) -> Dict[str, Any]:
    """Audit filter for an allowed-company answer (UNRESTRICTED leaves base untouched)."""
    base = dict(base_filter or {})
    if allowed is UNRESTRICTED:
        return base
    return {**base, "company": {"$in": list(allowed)}}


def apply_max_results(permission: AnalyticsPermissionBase, endpoint: EndpointName, results: List[Any]) -> List[Any]:
    max_results = evaluator.get_max_results(permission, endpoint)
    if max_results > 0 and len(results) > max_results:
        return results[:max_results]
    return results


def entity_company_id(entity: Dict[str, Any]) -> Optional[str]:
    for key in ("company", "companyId", "_id", "id"):
        value = entity.get(key)
        if value is not None:
            return str(value)
    return None


class AnalyticsPermissionService:
    """
    Permission administration and access decisions.

    Example:
        >>> service = AnalyticsPermissionService()
        >>> permission = await service.get_permissions(user_id)
        >>> permission.custom_permissions_enabled
        False
    """

    def __init__(
        self,
        permissions: Optional[AnalyticsPermissionRepository] = None,
        users: Optional[UserRepository] = None,
        companies: Optional[CompanyRepository] = None,
        preview_sample_size: Optional[int] = None,
    ):
        self.permissions = permissions or AnalyticsPermissionRepository()
        self.users = users or UserRepository()
        self.companies = companies or CompanyRepository()
        self.preview_sample_size = preview_sample_size or get_settings().preview_sample_size

    # Reads

    async def get_permissions(self, user_id: PydanticObjectId) -> AnalyticsPermission:
        """The user's record, created with unrestricted defaults on first access."""
        return await self.permissions.get_or_create(user_id)

    async def list_permissions(self) -> Dict[str, Any]:
        records = await self.permissions.list_all()
        identities = await self.users.find_identities([record.user_id for record in records])
        by_id = {str(identity["_id"]): identity for identity in identities}
        return {
            "total": len(records),
            "permissions": [permission_view(record, by_id.get(str(record.user_id))) for record in records],
        }

    async def list_analyst_users(self) -> Dict[str, Any]:
        """Enabled analysts with a digest of their permission record (None when absent)."""
        analysts = await self.users.find_analysts()
        records = await self.permissions.find_by_user_ids([analyst.id for analyst in analysts])
        by_user = {str(record.user_id): record for record in records}

        listing = []
        for analyst in analysts:
            record = by_user.get(str(analyst.id))
            listing.append(
                {
                    "id": analyst.id,
                    "username": analyst.username,
                    "firstname": analyst.firstname,
                    "lastname": analyst.lastname,
                    "email": analyst.email,
                    "role": analyst.role,
                    "createdAt": getattr(analyst, "created_at", None),
                    "hasCustomPermissions": bool(record and record.custom_permissions_enabled),
                    "permissionInfo": (
                        {
                            "customPermissionsEnabled": record.custom_permissions_enabled,
                            "globalOnlyFlaggedCompanies": record.global_only_flagged_companies,
                            "lastUpdated": record.updated_at,
                        }
                        if record
                        else None
                    ),
                }
            )
        return {"total": len(listing), "analysts": listing}

    async def get_summary(self, user_id: PydanticObjectId) -> Dict[str, Any]:
        permission = await self.get_permissions(user_id)
        endpoints = permission.endpoints
        return {
            "userId": permission.user_id,
            "customPermissionsEnabled": permission.custom_permissions_enabled,
            "globalOnlyFlaggedCompanies": permission.global_only_flagged_companies,
            "globalAllowedCompaniesCount": len(permission.global_allowed_companies),
            "globalExcludedCompaniesCount": len(permission.global_excluded_companies),
            "endpointsConfig": {
                name.value: (
                    endpoints.get(name).enabled if endpoints is not None and endpoints.get(name) is not None else None
                )
                for name in EndpointName
            },
        }

    async def get_available_companies(self, only_flagged: bool = False, only_active: bool = True) -> Dict[str, Any]:
        """Companies an administrator can assign, split by the flagged marker."""
        query: Dict[str, Any] = {}
        if only_active:
            query["status"] = True
        if only_flagged:
            query["cuadroDeMando"] = True

        companies = await self.companies.find_summaries(query)
        flagged = [company for company in companies if company.get("cuadroDeMando")]
        return {
            "total": len(companies),
            "totalCuadroDeMando": len(flagged),
            "companies": {
                "cuadroDeMando": flagged,
                "sinCuadroDeMando": [company for company in companies if not company.get("cuadroDeMando")],
                "all": companies,
            },
        }

    async def preview(self, user_id: PydanticObjectId, endpoint: Any = EndpointName.GLOBAL_DASHBOARD) -> Dict[str, Any]:
        """What the user would see on an endpoint: company count and sample, and section visibility."""
        endpoint = parse_endpoint(endpoint)
        permission = await self.get_permissions(user_id)
        allowed = await evaluator.get_allowed_company_ids(permission, endpoint, self.companies)

        if allowed is UNRESTRICTED:
            count: Any = "unlimited"
            sample = await self.companies.find_summaries({"status": True}, limit=self.preview_sample_size)
        else:
            count = len(allowed)
            sample = (
                await self.companies.find_summaries({"_id": {"$in": allowed}}, limit=self.preview_sample_size)
                if allowed
                else []
            )

        return {
            "userId": user_id,
            "endpoint": endpoint.value,
            "customPermissionsEnabled": permission.custom_permissions_enabled,
            "globalOnlyFlaggedCompanies": permission.global_only_flagged_companies,
            "preview": {
                "companiesCount": count,
                "companiesSample": sample,
                **section_summary(evaluator.get_visible_sections(permission)),
            },
        }

    # Writes

    async def upsert_permissions(
        self, user_id: PydanticObjectId, data: Dict[str, Any], acting_user_id: Optional[PydanticObjectId]
    ) -> AnalyticsPermission:
        """
        Create or fully replace a user's permission record.

        Editable fields omitted from data are reset to their defaults.

        Raises:
            BadParametersError: Invalid payload (every problem listed)
            NotFoundError: The user does not exist
        """
        fields = build_fields(user_id, data)

        user = await self.users.find_by_id(user_id)
        if user is None:
            raise NotFoundError("User", str(user_id))
        if user.role not in (UserRole.ANALYST.value, UserRole.ADMIN.value):
            logger.warning(
                f"Setting analytics permissions for user {sanitize_id_for_log(str(user_id))} "
                f"with role {sanitize_for_log(user.role)}"
            )

        existing = await self.permissions.find_by_user_id(user_id)
        if existing is not None:
            permission = await self.permissions.apply_fields(existing, fields, acting_user_id)
        else:
            permission = await self.permissions.create_from_fields(fields, acting_user_id)

        logger.info(
            f"Analytics permissions of {sanitize_id_for_log(str(user_id))} replaced by "
            f"{sanitize_id_for_log(str(acting_user_id))}"
        )
        return permission

    async def partial_update(
        self, user_id: PydanticObjectId, updates: Dict[str, Any], acting_user_id: Optional[PydanticObjectId]
    ) -> AnalyticsPermission:
        """
        Update only the keys present in updates.

        Raises:
            BadParametersError: Invalid payload (every problem listed)
            NotFoundError: The user has no permission record
        """
        errors = validate_permission_data(updates)
        if errors:
            raise BadParametersError(errors, message="Invalid permission data")

        permission = await self.permissions.find_by_user_id(user_id)
        if permission is None:
            raise NotFoundError("Analytics permission", str(user_id))

        merged = merge_update(current_fields(permission).model_dump(by_alias=True), updates)
        fields = build_fields(user_id, merged)
        updated = await self.permissions.apply_fields(permission, fields, acting_user_id)

        logger.info(
            f"Analytics permissions of {sanitize_id_for_log(str(user_id))} updated "
            f"({', '.join(sorted(_editable(updates)))}) by {sanitize_id_for_log(str(acting_user_id))}"
        )
        return updated

    async def toggle_permissions(
        self, user_id: PydanticObjectId, enabled: bool, acting_user_id: Optional[PydanticObjectId]
    ) -> Dict[str, Any]:
        permission = await self.partial_update(user_id, {"customPermissionsEnabled": enabled}, acting_user_id)
        return {
            "message": "Custom permissions enabled" if enabled else "Custom permissions disabled",
            "customPermissionsEnabled": permission.custom_permissions_enabled,
        }

    async def toggle_flagged_only(
        self, user_id: PydanticObjectId, enabled: bool, acting_user_id: Optional[PydanticObjectId]
    ) -> Dict[str, Any]:
        """Switch the global flagged-only filter; also turns the master switch on."""
        permission = await self.partial_update(
            user_id,
            {"customPermissionsEnabled": True, "globalOnlyFlaggedCompanies": enabled},
            acting_user_id,
        )
        return {
            "message": "Only flagged companies enabled" if enabled else "All companies enabled",
            "globalOnlyFlaggedCompanies": permission.global_only_flagged_companies,
        }

    async def reset_permissions(self, user_id: PydanticObjectId) -> Dict[str, Any]:
        """Delete the record; the next read recreates the unrestricted default."""
        deleted = await self.permissions.delete_by_user_id(user_id)
        logger.info(f"Analytics permissions of {sanitize_id_for_log(str(user_id))} reset")
        return {"message": "Permissions reset to default", "deleted": deleted}

    async def initialize_analyst_permissions(self) -> Dict[str, Any]:
        """Create the default record for every analyst that has none."""
        analyst_ids = await self.users.find_analyst_ids()
        existing = {str(user_id) for user_id in await self.permissions.list_user_ids()}

        created = 0
        for analyst_id in analyst_ids:
            if str(analyst_id) in existing:
                continue
            await self.permissions.get_or_create(analyst_id)
            created += 1

        logger.info(f"Initialized analytics permissions: {created} created, {len(analyst_ids) - created} skipped")
        return {
            "message": "Analyst permissions initialized",
            "created": created,
            "skipped": len(analyst_ids) - created,
            "total": len(analyst_ids),
        }

    async def cleanup_orphan_permissions(self) -> Dict[str, Any]:
        """Delete records whose user no longer exists."""
        user_ids = await self.permissions.list_user_ids()
        alive = {str(user_id) for user_id in await self.users.existing_ids(user_ids)}
        orphans = [user_id for user_id in user_ids if str(user_id) not in alive]
        deleted = await self.permissions.delete_by_user_ids(orphans)
        if deleted:
            logger.info(f"Removed {deleted} orphan analytics permission records")
        return {"message": "Orphan permissions cleaned up", "deleted": deleted}

    # Access decisions

    async def check_permission_access(
        self, permission: AnalyticsPermissionBase, company_id: Any, endpoint: EndpointName
    ) -> bool:
        """
        Access decision for a loaded record.

        Adds the flagged-company rule to the evaluator's exclusion and
        allow-list checks, reading the company when flagged filtering applies.
        """
        if not permission.custom_permissions_enabled:
            return True
        if not evaluator.is_endpoint_enabled(permission, endpoint):
            logger.warning(
                f"Endpoint {endpoint.value} disabled for user {sanitize_id_for_log(str(permission.user_id))}"
            )
            return False
        if not evaluator.is_company_allowed(permission, company_id, endpoint):
            logger.warning(
                f"Access denied: user {sanitize_id_for_log(str(permission.user_id))} -> "
                f"company {sanitize_id_for_log(str(company_id))} ({endpoint.value})"
            )
            return False
        if evaluator.should_filter_by_flagged(permission, endpoint):
            company = await self.companies.find_by_id(company_id)
            if company is None or company.cuadro_de_mando is not True:
                logger.warning(
                    f"Access denied: company {sanitize_id_for_log(str(company_id))} is not flagged ({endpoint.value})"
                )
                return False
        return True

    async def check_access(self, user_id: PydanticObjectId, company_id: Any, endpoint: Any) -> bool:
        """Whether the user may see the company's analytics on the endpoint."""
        endpoint = parse_endpoint(endpoint)
        return await self.check_permission_access(await self.get_permissions(user_id), company_id, endpoint)

    async def get_allowed_company_ids(self, user_id: PydanticObjectId, endpoint: Any) -> evaluator.AllowedCompanies:
        permission = await self.get_permissions(user_id)
        return await evaluator.get_allowed_company_ids(permission, parse_endpoint(endpoint), self.companies)

    async def build_company_filter(
        self, user_id: PydanticObjectId, endpoint: Any, base_filter: Optional[Dict[str, Any]] = None
    ) -> Dict[str, Any]:
        """
        Audit filter fragment for the user on an endpoint.

        Returns base_filter unchanged for an unrestricted user, otherwise adds
        ``{"company": {"$in": ids}}`` (an empty list matches nothing).
        """
        return company_filter_for(await self.get_allowed_company_ids(user_id, endpoint), base_filter)

    async def build_aggregation_company_match(self, user_id: PydanticObjectId, endpoint: Any) -> Dict[str, Any]:
        return await self.company_match_for(await self.get_permissions(user_id), parse_endpoint(endpoint))

    async def company_match_for(self, permission: AnalyticsPermissionBase, endpoint: EndpointName) -> Dict[str, Any]:
        """``$match`` stage body for pipelines over the companies collection ({} when unrestricted)."""
        allowed = await evaluator.get_allowed_company_ids(permission, endpoint, self.companies)
        if allowed is UNRESTRICTED:
            return {}
        return {"_id": {"$in": list(allowed)}}

    async def filter_entities(
        self, user_id: PydanticObjectId, endpoint: Any, entities: List[Dict[str, Any]]
    ) -> List[Dict[str, Any]]:
        """Keep the entities whose company id is allowed."""
        allowed = await self.get_allowed_company_ids(user_id, endpoint)
        if allowed is UNRESTRICTED:
            return entities
        allowed_ids = {str(company_id) for company_id in allowed}
        return [entity for entity in entities if entity_company_id(entity) in allowed_ids]

    async def apply_max_results(self, user_id: PydanticObjectId, endpoint: Any, results: List[Any]) -> List[Any]:
        permission = await self.get_permissions(user_id)
        return apply_max_results(permission, parse_endpoint(endpoint), results)


@lru_cache()
def get_permission_service() -> AnalyticsPermissionService:
    return AnalyticsPermissionService()
