"""
Analytics Permission Repository

Persistence for the per-user AnalyticsPermission record. Writes are plain
document replaces, so two administrators editing the same record resolve
as last write wins.
"""

import logging
from datetime import datetime
from typing import List, Optional

from beanie import PydanticObjectId
from pymongo.errors import DuplicateKeyError

from ..errors import InternalError
from ..models.permission_models import AnalyticsPermission, AnalyticsPermissionBase
from ..utils.logging_security import sanitize_id_for_log
from .base_repository import BaseRepository

logger = logging.getLogger(__name__)

# Identity fields never overwritten by an administrative update
PRESERVED_FIELDS = ("user_id", "created_by", "updated_by")


class AnalyticsPermissionRepository(BaseRepository[AnalyticsPermission]):
    """
    Repository for AnalyticsPermission documents.

    Example:
        repo = AnalyticsPermissionRepository()
        perm = await repo.get_or_create(user_id)
    """

    def __init__(self) -> None:
        super().__init__(AnalyticsPermission)

    async def find_by_user_id(self, user_id: PydanticObjectId) -> Optional[AnalyticsPermission]:
        return await self.find_one({"userId": user_id})

    async def get_or_create(
        self, user_id: PydanticObjectId, created_by: Optional[PydanticObjectId] = None
    ) -> AnalyticsPermission:
        """
        Load the user's record, creating the unrestricted default if absent.

        Concurrent first access is safe: the unique index on userId rejects
        the second insert and the winner's record is read back.
        """
        existing = await self.find_by_user_id(user_id)
        if existing is not None:
            return existing

        try:
            return await self.create(AnalyticsPermission(user_id=user_id, created_by=created_by or user_id))
        except DuplicateKeyError as e:
            logger.debug(f"Permission record for {sanitize_id_for_log(str(user_id))} created concurrently")
            existing = await self.find_by_user_id(user_id)
            if existing is None:
                raise InternalError(f"Permission record for user {user_id} conflicted and could not be read") from e
            return existing

    async def create_from_fields(
        self, fields: AnalyticsPermissionBase, acting_user_id: Optional[PydanticObjectId]
    ) -> AnalyticsPermission:
        """Insert a new record from validated administrative fields."""
        permission = AnalyticsPermission(
            **fields.model_dump(exclude={"created_by", "updated_by"}),
            created_by=acting_user_id,
            updated_by=acting_user_id,
        )
        return await self.create(permission)

    async def apply_fields(
        self,
        permission: AnalyticsPermission,
        fields: AnalyticsPermissionBase,
        acting_user_id: Optional[PydanticObjectId],
    ) -> AnalyticsPermission:
        """
        Overwrite every editable field of an existing record and persist it.

        userId and createdBy are kept from the stored record.
        """
        for name in AnalyticsPermissionBase.model_fields:
            if name in PRESERVED_FIELDS:
                continue
            setattr(permission, name, getattr(fields, name))
        permission.updated_by = acting_user_id
        return await self.replace(permission)

    async def replace(self, permission: AnalyticsPermission) -> AnalyticsPermission:
        """Persist the in-memory record, stamping updatedAt."""
        permission.updated_at = datetime.utcnow()
        return await self.save(permission)

    async def delete_by_user_id(self, user_id: PydanticObjectId) -> bool:
        return await self.delete_one({"userId": user_id})

    async def list_all(self) -> List[AnalyticsPermission]:
        return await self.find_many({}, sort=[("updatedAt", -1)])

    async def list_user_ids(self) -> List[PydanticObjectId]:
        rows = await self.aggregate([{"$project": {"userId": 1}}])
        return [row["userId"] for row in rows]

    async def find_by_user_ids(self, user_ids: List[PydanticObjectId]) -> List[AnalyticsPermission]:
        if not user_ids:
            return []
        return await self.find_many({"userId": {"$in": user_ids}})

    async def delete_by_user_ids(self, user_ids: List[PydanticObjectId]) -> int:
        """Delete the records of every listed user; returns how many were removed."""
        deleted = 0
        for user_id in user_ids:
            if await self.delete_by_user_id(user_id):
                deleted += 1
        return deleted
