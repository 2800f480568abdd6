"""
Fixtures for route tests.

The application is built with create_app() and exercised through
TestClient without entering its lifespan, so no MongoDB is needed.
Authentication and both services are replaced through dependency
overrides; the permission service is the real one over mocked
repositories.
"""

from types import SimpleNamespace
from typing import Any, Callable, Dict, Generator
from unittest.mock import AsyncMock, MagicMock

import pytest
from beanie import PydanticObjectId
from fastapi import FastAPI
from fastapi.testclient import TestClient

from auditlens.auth import get_current_user
from auditlens.main import create_app
from auditlens.models.permission_models import AnalyticsPermissionBase
from auditlens.services.analytics import get_analytics_service
from auditlens.services.permissions.permission_service import AnalyticsPermissionService, get_permission_service

CALLER_ID = PydanticObjectId()


@pytest.fixture
def current_user() -> Dict[str, Any]:
    return {"id": str(CALLER_ID), "username": "analyst1", "role": "analyst"}


@pytest.fixture
def stored_permission() -> AnalyticsPermissionBase:
    """The caller's record; tests replace it to add restrictions."""
    return AnalyticsPermissionBase(user_id=CALLER_ID)


@pytest.fixture
def repos(stored_permission: AnalyticsPermissionBase) -> SimpleNamespace:
    permissions = MagicMock()
    permissions.get_or_create = AsyncMock(return_value=stored_permission)
    permissions.find_by_user_id = AsyncMock(return_value=None)
    permissions.create_from_fields = AsyncMock(side_effect=lambda fields, acting: fields)
    permissions.apply_fields = AsyncMock(side_effect=lambda permission, fields, acting: fields)

    users = MagicMock()
    users.find_by_id = AsyncMock(return_value=SimpleNamespace(role="analyst"))

    companies = MagicMock()
    companies.find_ids = AsyncMock(return_value=[])
    companies.find_by_id = AsyncMock(return_value=None)
    companies.find_summaries = AsyncMock(return_value=[])
    return SimpleNamespace(permissions=permissions, users=users, companies=companies)


@pytest.fixture
def analytics() -> MagicMock:
    service = MagicMock()
    service.get_dashboard = AsyncMock(return_value={"stats": {"totalEvaluaciones": 3}, "alertasActivas": []})
    service.get_audit_company_id = AsyncMock(return_value=PydanticObjectId())
    service.get_top_critical_entities = AsyncMock(return_value={"resumen": {}, "entidades": [1, 2, 3]})
    service.get_company_vulnerabilities = AsyncMock(return_value={"vulnerabilidades": []})
    return service


@pytest.fixture
def app(
    current_user: Dict[str, Any], repos: SimpleNamespace, analytics: MagicMock
) -> Generator[FastAPI, None, None]:
    application = create_app()
    permission_service = AnalyticsPermissionService(
        permissions=repos.permissions, users=repos.users, companies=repos.companies, preview_sample_size=5
    )
    application.dependency_overrides[get_current_user] = lambda: current_user
    application.dependency_overrides[get_permission_service] = lambda: permission_service
    application.dependency_overrides[get_analytics_service] = lambda: analytics
    yield application
    application.dependency_overrides.clear()


@pytest.fixture
def client(app: FastAPI) -> TestClient:
    return TestClient(app)


@pytest.fixture
def restrict(repos: SimpleNamespace) -> Callable[..., AnalyticsPermissionBase]:
    """Replace the caller's record with one built from camelCase keys."""

    def _restrict(**fields: Any) -> AnalyticsPermissionBase:
        permission = AnalyticsPermissionBase.model_validate({"userId": CALLER_ID, **fields})
        repos.permissions.get_or_create = AsyncMock(return_value=permission)
        return permission

    return _restrict
