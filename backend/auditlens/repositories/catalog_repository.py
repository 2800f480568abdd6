"""
Catalog Repositories
Users, procedure/alcance templates and platform settings.
"""

import logging
from typing import Any, Dict, List, Optional

from beanie import PydanticObjectId

from ..models.catalog_models import AlcanceTemplate, AppSettings, ProcedureTemplate, User
from ..models.enums import UserRole
from .base_repository import BaseRepository

logger = logging.getLogger(__name__)

# Colors used when settings carry no cvssColors block
DEFAULT_CVSS_COLORS = {
    "criticalColor": "#dc2626",
    "highColor": "#ea580c",
    "mediumColor": "#d97706",
    "lowColor": "#65a30d",
    "noneColor": "#0891b2",
}


class UserRepository(BaseRepository[User]):
    """Repository for User documents."""

    def __init__(self) -> None:
        super().__init__(User)

    async def find_by_id(self, user_id: PydanticObjectId) -> Optional[User]:
        return await self.find_one({"_id": user_id})

    async def exists(self, user_id: PydanticObjectId) -> bool:
        return await self.count({"_id": user_id}) > 0

    async def find_analysts(self) -> List[User]:
        """Enabled users holding the analyst role, sorted by username."""
        return await self.find_many(
            {"role": UserRole.ANALYST.value, "enabled": True},
            sort=[("username", 1)],
        )

    async def find_identities(self, user_ids: List[PydanticObjectId]) -> List[Dict[str, Any]]:
        """username/firstname/lastname of the given users, as raw dicts."""
        if not user_ids:
            return []
        return await self.aggregate(
            [
                {"$match": {"_id": {"$in": user_ids}}},
                {"$project": {"username": 1, "firstname": 1, "lastname": 1}},
            ]
        )

    async def existing_ids(self, user_ids: List[PydanticObjectId]) -> List[PydanticObjectId]:
        """Subset of user_ids that still belong to a user document."""
        if not user_ids:
            return []
        rows = await self.aggregate([{"$match": {"_id": {"$in": user_ids}}}, {"$project": {"_id": 1}}])
        return [row["_id"] for row in rows]

    async def find_analyst_ids(self) -> List[PydanticObjectId]:
        """Ids of every analyst, enabled or not."""
        rows = await self.aggregate([{"$match": {"role": UserRole.ANALYST.value}}, {"$project": {"_id": 1}}])
        return [row["_id"] for row in rows]


class ProcedureTemplateRepository(BaseRepository[ProcedureTemplate]):
    """Repository for the procedure template catalog."""

    def __init__(self) -> None:
        super().__init__(ProcedureTemplate)

    async def as_lookup(self) -> Dict[str, Dict[str, Any]]:
        """Catalog keyed by code: ``{code: {"name": ..., "color": ...}}``."""
        templates = await self.find_many()
        return {t.code: {"name": t.name, "color": t.color} for t in templates}


class AlcanceTemplateRepository(BaseRepository[AlcanceTemplate]):
    """Repository for the alcance (scope tag) template catalog."""

    def __init__(self) -> None:
        super().__init__(AlcanceTemplate)

    async def as_lookup(self) -> Dict[str, Optional[str]]:
        """Catalog keyed by name: ``{name: color}``."""
        templates = await self.find_many()
        return {t.name: t.color for t in templates}


class SettingsRepository(BaseRepository[AppSettings]):
    """Repository for the single platform settings document."""

    def __init__(self) -> None:
        super().__init__(AppSettings)

    async def get_cvss_colors(self) -> Dict[str, str]:
        """
        Severity display colors from ``report.public.cvssColors``.

        Missing keys fall back to DEFAULT_CVSS_COLORS individually.
        """
        settings = await self.find_one({})
        colors: Dict[str, Any] = {}
        if settings is not None:
            colors = (settings.report or {}).get("public", {}).get("cvssColors", {}) or {}
        return {key: colors.get(key) or default for key, default in DEFAULT_CVSS_COLORS.items()}
