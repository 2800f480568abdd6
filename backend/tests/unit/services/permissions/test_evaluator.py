"""
Unit tests for the permission evaluator.

Validates:
- Master switch: every answer is permissive while it is off
- Exclusion precedence over every allow-list
- Endpoint allow-list priority over the global one
- Company query construction and the UNRESTRICTED sentinel
"""

from unittest.mock import AsyncMock, MagicMock

import pytest
from beanie import PydanticObjectId

from auditlens.models.enums import SECTION_NAMES, EndpointName
from auditlens.services.permissions import evaluator
from auditlens.services.permissions.evaluator import UNRESTRICTED

A = PydanticObjectId()
B = PydanticObjectId()
C = PydanticObjectId()

GLOBAL = EndpointName.GLOBAL_DASHBOARD
COMPANY = EndpointName.COMPANY_DASHBOARD


@pytest.fixture
def stale_restrictions() -> dict:
    """Every restriction populated; only the master switch decides whether they apply."""
    return {
        "globalOnlyFlaggedCompanies": True,
        "globalAllowedCompanies": [str(A)],
        "globalExcludedCompanies": [str(B)],
        "endpoints": {
            "globalDashboard": {"enabled": False, "maxResults": 3, "excludedFields": ["logo"]},
        },
        "visibleSections": {"stats": False, "alertasActivas": False},
    }


@pytest.mark.unit
class TestMasterSwitch:
    @pytest.mark.asyncio
    async def test_off_ignores_populated_restrictions(self, make_permission, stale_restrictions: dict) -> None:
        permission = make_permission(customPermissionsEnabled=False, **stale_restrictions)
        companies = MagicMock()
        companies.find_ids = AsyncMock()

        assert evaluator.get_visible_sections(permission) == {name: True for name in SECTION_NAMES}
        assert await evaluator.get_allowed_company_ids(permission, GLOBAL, companies) is UNRESTRICTED
        companies.find_ids.assert_not_awaited()
        assert evaluator.is_endpoint_enabled(permission, GLOBAL) is True
        assert evaluator.is_company_allowed(permission, B, GLOBAL) is True
        assert evaluator.should_filter_by_flagged(permission, GLOBAL) is False
        assert evaluator.get_max_results(permission, GLOBAL) == 0
        assert evaluator.get_excluded_fields(permission, GLOBAL) == []
        assert evaluator.has_restrictions(permission) is False

    @pytest.mark.asyncio
    async def test_on_materializes_a_list(self, make_permission) -> None:
        permission = make_permission(customPermissionsEnabled=True)
        companies = MagicMock()
        companies.find_ids = AsyncMock(return_value=[])

        allowed = await evaluator.get_allowed_company_ids(permission, GLOBAL, companies)

        assert allowed == []
        assert allowed is not UNRESTRICTED
        companies.find_ids.assert_awaited_once_with({"status": True})


@pytest.mark.unit
class TestIsCompanyAllowed:
    def test_global_exclusion_beats_endpoint_allow_list(self, make_permission) -> None:
        permission = make_permission(
            customPermissionsEnabled=True,
            globalExcludedCompanies=[str(A)],
            endpoints={"companyDashboard": {"allowedCompanies": [str(A)]}},
        )

        assert evaluator.is_company_allowed(permission, A, COMPANY) is False

    def test_endpoint_allow_list_takes_priority(self, make_permission) -> None:
        permission = make_permission(
            customPermissionsEnabled=True,
            globalAllowedCompanies=[str(A)],
            endpoints={"companyDashboard": {"allowedCompanies": [str(B)]}},
        )

        assert evaluator.is_company_allowed(permission, B, COMPANY) is True
        assert evaluator.is_company_allowed(permission, A, COMPANY) is False
        # Other endpoints fall back to the global list
        assert evaluator.is_company_allowed(permission, A, GLOBAL) is True

    def test_no_allow_list_means_allowed(self, make_permission) -> None:
        permission = make_permission(customPermissionsEnabled=True)
        assert evaluator.is_company_allowed(permission, C, COMPANY) is True

    def test_disabled_endpoint_denies(self, make_permission) -> None:
        permission = make_permission(customPermissionsEnabled=True, endpoints={"companyDashboard": {"enabled": False}})
        assert evaluator.is_company_allowed(permission, C, COMPANY) is False

    def test_string_ids_compare_equal(self, make_permission) -> None:
        permission = make_permission(customPermissionsEnabled=True, globalAllowedCompanies=[str(A)])
        assert evaluator.is_company_allowed(permission, str(A), GLOBAL) is True


@pytest.mark.unit
class TestEndpointFlags:
    def test_absent_endpoint_filter_is_enabled(self, make_permission) -> None:
        permission = make_permission(customPermissionsEnabled=True, endpoints=None)

        assert evaluator.is_endpoint_enabled(permission, COMPANY) is True
        assert evaluator.get_max_results(permission, COMPANY) == 0

    def test_null_enabled_is_enabled(self, make_permission) -> None:
        permission = make_permission(customPermissionsEnabled=True, endpoints={"companyDashboard": {"enabled": None}})
        assert evaluator.is_endpoint_enabled(permission, COMPANY) is True

    def test_flagged_on_endpoint_only(self, make_permission) -> None:
        permission = make_permission(
            customPermissionsEnabled=True, endpoints={"entidadesCriticas": {"onlyFlaggedCompanies": True}}
        )

        assert evaluator.should_filter_by_flagged(permission, EndpointName.ENTIDADES_CRITICAS) is True
        assert evaluator.should_filter_by_flagged(permission, GLOBAL) is False

    def test_global_flagged_applies_everywhere(self, make_permission) -> None:
        permission = make_permission(customPermissionsEnabled=True, globalOnlyFlaggedCompanies=True)
        assert all(evaluator.should_filter_by_flagged(permission, endpoint) for endpoint in EndpointName)


@pytest.mark.unit
class TestCompanyQuery:
    def test_unrestricted_has_no_query(self, make_permission) -> None:
        assert evaluator.company_query(make_permission(), GLOBAL) is None

    def test_full_query(self, make_permission) -> None:
        permission = make_permission(
            customPermissionsEnabled=True,
            globalOnlyFlaggedCompanies=True,
            globalAllowedCompanies=[str(A), str(C)],
            globalExcludedCompanies=[str(B)],
        )

        assert evaluator.company_query(permission, GLOBAL) == {
            "status": True,
            "cuadroDeMando": True,
            "_id": {"$in": [A, C], "$nin": [B]},
        }

    def test_endpoint_allow_list_replaces_global(self, make_permission) -> None:
        permission = make_permission(
            customPermissionsEnabled=True,
            globalAllowedCompanies=[str(A)],
            endpoints={"globalDashboard": {"allowedCompanies": [str(C)]}},
        )

        assert evaluator.company_query(permission, GLOBAL)["_id"] == {"$in": [C]}


@pytest.mark.unit
class TestResponseDirectives:
    def test_visible_sections_only_hide_explicit_false(self, make_permission) -> None:
        permission = make_permission(
            customPermissionsEnabled=True, visibleSections={"stats": False, "alertasActivas": None}
        )

        visible = evaluator.get_visible_sections(permission)

        assert visible["stats"] is False
        assert visible["alertasActivas"] is True
        assert set(visible) == set(SECTION_NAMES)

    def test_missing_sections_record_is_all_visible(self, make_permission) -> None:
        permission = make_permission(customPermissionsEnabled=True, visibleSections=None)
        assert all(evaluator.get_visible_sections(permission).values())

    def test_max_results_and_excluded_fields(self, make_permission, stale_restrictions: dict) -> None:
        permission = make_permission(customPermissionsEnabled=True, **stale_restrictions)

        assert evaluator.get_max_results(permission, GLOBAL) == 3
        assert evaluator.get_excluded_fields(permission, GLOBAL) == ["logo"]

    def test_permission_info(self, make_permission) -> None:
        permission = make_permission(customPermissionsEnabled=True, globalExcludedCompanies=[str(A)])

        info = evaluator.permission_info(permission).model_dump(by_alias=True)

        assert info["customPermissionsEnabled"] is True
        assert info["hasRestrictions"] is True
        assert info["globalOnlyFlaggedCompanies"] is False

    def test_switch_on_without_company_rules_has_no_restrictions(self, make_permission) -> None:
        permission = make_permission(customPermissionsEnabled=True, visibleSections={"stats": False})
        assert evaluator.has_restrictions(permission) is False
