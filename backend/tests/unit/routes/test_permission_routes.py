"""
Route tests for analytics permission administration.

Only admins may call these endpoints; validation problems come back as a
400 listing every invalid field.
"""

from typing import Any, Dict
from unittest.mock import AsyncMock

import jwt
import pytest
from beanie import PydanticObjectId
from fastapi import FastAPI
from fastapi.testclient import TestClient

from auditlens.auth import get_current_user
from auditlens.config import get_settings
from auditlens.models.permission_models import AnalyticsPermissionBase

ADMIN_ID = PydanticObjectId()


@pytest.fixture
def admin(current_user: Dict[str, Any]) -> Dict[str, Any]:
    current_user.update({"id": str(ADMIN_ID), "username": "admin", "role": "admin"})
    return current_user


def _url(user_id: Any, suffix: str = "") -> str:
    return f"/api/analytics/permissions/{user_id}{suffix}"


@pytest.mark.unit
class TestAdminOnly:
    def test_analyst_is_rejected(self, client: TestClient) -> None:
        response = client.get(_url(PydanticObjectId()))

        assert response.status_code == 403
        assert response.json()["message"] == "Admin privileges required"

    def test_real_admin_token(self, app: FastAPI, repos) -> None:
        del app.dependency_overrides[get_current_user]
        settings = get_settings()
        token = jwt.encode({"id": str(ADMIN_ID), "role": "admin"}, settings.secret_key, algorithm=settings.algorithm)
        repos.permissions.get_or_create = AsyncMock(return_value=AnalyticsPermissionBase(user_id=ADMIN_ID))

        response = TestClient(app).get(_url(ADMIN_ID), headers={"Authorization": f"Bearer {token}"})

        assert response.status_code == 200

    def test_token_without_id(self, app: FastAPI) -> None:
        del app.dependency_overrides[get_current_user]
        settings = get_settings()
        token = jwt.encode({"role": "admin"}, settings.secret_key, algorithm=settings.algorithm)

        response = TestClient(app).get(_url(ADMIN_ID), headers={"Authorization": f"Bearer {token}"})

        assert response.status_code == 401


@pytest.mark.unit
@pytest.mark.usefixtures("admin")
class TestReadEndpoints:
    def test_get_creates_default(self, client: TestClient, repos) -> None:
        user_id = PydanticObjectId()
        repos.permissions.get_or_create = AsyncMock(return_value=AnalyticsPermissionBase(user_id=user_id))

        response = client.get(_url(user_id))

        assert response.status_code == 200
        body = response.json()
        assert body["userId"] == str(user_id)
        assert body["customPermissionsEnabled"] is False
        assert body["visibleSections"]["stats"] is True
        repos.permissions.get_or_create.assert_awaited_once_with(user_id)

    def test_invalid_user_id(self, client: TestClient) -> None:
        assert client.get(_url("12345")).status_code == 400

    def test_preview_rejects_unknown_endpoint(self, client: TestClient) -> None:
        response = client.get(_url(PydanticObjectId(), "/preview"), params={"endpoint": "adminDashboard"})

        assert response.status_code == 400

    def test_preview(self, client: TestClient) -> None:
        response = client.get(_url(PydanticObjectId(), "/preview"), params={"endpoint": "companyDashboard"})

        assert response.status_code == 200
        assert response.json()["preview"]["companiesCount"] == "unlimited"

    def test_available_companies_are_not_shadowed_by_user_route(self, client: TestClient, repos) -> None:
        repos.companies.find_summaries = AsyncMock(return_value=[{"name": "ACME", "cuadroDeMando": True}])

        response = client.get("/api/analytics/permissions/companies", params={"onlyFlagged": "true"})

        assert response.status_code == 200
        assert response.json()["totalCuadroDeMando"] == 1
        repos.companies.find_summaries.assert_awaited_once_with({"status": True, "cuadroDeMando": True})


@pytest.mark.unit
@pytest.mark.usefixtures("admin")
class TestWriteEndpoints:
    def test_put_lists_every_invalid_field(self, client: TestClient, repos) -> None:
        response = client.put(
            _url(PydanticObjectId()),
            json={"customPermissionsEnabled": "yes", "globalAllowedCompanies": ["bad"], "surprise": True},
        )

        assert response.status_code == 400
        fields = {detail["field"] for detail in response.json()["details"]}
        assert fields == {"customPermissionsEnabled", "globalAllowedCompanies[0]", "surprise"}
        repos.permissions.create_from_fields.assert_not_awaited()

    def test_put_creates_record(self, client: TestClient, repos) -> None:
        user_id = PydanticObjectId()
        company_id = PydanticObjectId()

        response = client.put(
            _url(user_id),
            json={"customPermissionsEnabled": True, "globalExcludedCompanies": [str(company_id)]},
        )

        assert response.status_code == 200
        assert response.json()["globalExcludedCompanies"] == [str(company_id)]
        fields, acting = repos.permissions.create_from_fields.await_args.args
        assert fields.user_id == user_id
        assert acting == ADMIN_ID

    def test_put_for_unknown_user(self, client: TestClient, repos) -> None:
        repos.users.find_by_id = AsyncMock(return_value=None)

        response = client.put(_url(PydanticObjectId()), json={})

        assert response.status_code == 404
        assert response.json()["message"] == "User not found"

    def test_patch_without_record(self, client: TestClient) -> None:
        response = client.patch(_url(PydanticObjectId()), json={"notes": "x"})

        assert response.status_code == 404

    def test_patch_merges(self, client: TestClient, repos) -> None:
        user_id = PydanticObjectId()
        repos.permissions.find_by_user_id = AsyncMock(
            return_value=AnalyticsPermissionBase.model_validate(
                {"userId": user_id, "customPermissionsEnabled": True, "notes": "keep"}
            )
        )

        response = client.patch(_url(user_id), json={"visibleSections": {"alertasActivas": False}})

        body = response.json()
        assert response.status_code == 200
        assert body["notes"] == "keep"
        assert body["visibleSections"]["alertasActivas"] is False
        assert body["visibleSections"]["stats"] is True

    def test_toggle(self, client: TestClient, repos) -> None:
        user_id = PydanticObjectId()
        repos.permissions.find_by_user_id = AsyncMock(return_value=AnalyticsPermissionBase(user_id=user_id))

        response = client.post(_url(user_id, "/toggle"), json={"enabled": True})

        assert response.json() == {"message": "Custom permissions enabled", "customPermissionsEnabled": True}

    def test_toggle_requires_boolean(self, client: TestClient) -> None:
        response = client.post(_url(PydanticObjectId(), "/toggle"), json={})

        assert response.status_code == 400

    def test_reset(self, client: TestClient, repos) -> None:
        repos.permissions.delete_by_user_id = AsyncMock(return_value=True)

        response = client.delete(_url(PydanticObjectId()))

        assert response.json() == {"message": "Permissions reset to default", "deleted": True}

    def test_initialize(self, client: TestClient, repos) -> None:
        repos.users.find_analyst_ids = AsyncMock(return_value=[PydanticObjectId()])
        repos.permissions.list_user_ids = AsyncMock(return_value=[])

        response = client.post("/api/analytics/permissions/initialize")

        assert response.status_code == 200
        assert response.json()["created"] == 1
