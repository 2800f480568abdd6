"""
Unit test fixtures and helpers.

Provides lightweight fixtures for unit testing that do NOT require
database connections or running services. Permission records are built
as AnalyticsPermissionBase models, which carry every field the evaluator
and the permission service read without needing an initialized Beanie.
"""

from typing import Any, Callable

import pytest
from beanie import PydanticObjectId

from auditlens.models.permission_models import AnalyticsPermissionBase


@pytest.fixture
def user_id() -> PydanticObjectId:
    return PydanticObjectId()


@pytest.fixture
def make_permission(user_id: PydanticObjectId) -> Callable[..., AnalyticsPermissionBase]:
    """
    Build a permission record from camelCase keys.

    Example:
        perm = make_permission(customPermissionsEnabled=True, globalOnlyFlaggedCompanies=True)
    """

    def _make(**fields: Any) -> AnalyticsPermissionBase:
        return AnalyticsPermissionBase.model_validate({"userId": user_id, **fields})

    return _make


@pytest.fixture
def unrestricted_permission(make_permission: Callable[..., AnalyticsPermissionBase]) -> AnalyticsPermissionBase:
    """Default record: master switch off."""
    return make_permission()
