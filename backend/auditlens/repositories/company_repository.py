"""
Company Repository
Query logic for evaluated entities and their associated clients.
"""

import logging
from typing import Any, Dict, List, Optional

from beanie import PydanticObjectId

from ..models.catalog_models import Client, Company
from .base_repository import BaseRepository

logger = logging.getLogger(__name__)


class CompanyRepository(BaseRepository[Company]):
    """
    Repository for Company documents.

    Example:
        repo = CompanyRepository()
        ids = await repo.find_ids({"status": True, "cuadroDeMando": True})
    """

    def __init__(self) -> None:
        super().__init__(Company)

    async def find_by_id(self, company_id: PydanticObjectId) -> Optional[Company]:
        return await self.find_one({"_id": company_id})

    async def find_ids(self, query: Dict[str, Any]) -> List[PydanticObjectId]:
        """
        Materialize the ids of every company matching query.

        Args:
            query: MongoDB query over persisted company fields

        Returns:
            Company ids, in natural order
        """
        rows = await self.aggregate([{"$match": query}, {"$project": {"_id": 1}}])
        return [row["_id"] for row in rows]

    async def find_summaries(
        self, query: Dict[str, Any], limit: Optional[int] = None
    ) -> List[Dict[str, Any]]:
        """
        Lightweight company listing sorted by name.

        Returns:
            Dicts with _id, name, shortName, cuadroDeMando, status, nivel, categoria
        """
        pipeline: List[Dict[str, Any]] = [
            {"$match": query},
            {"$sort": {"name": 1}},
            {"$project": {"name": 1, "shortName": 1, "cuadroDeMando": 1, "status": 1, "nivel": 1, "categoria": 1}},
        ]
        if limit:
            pipeline.append({"$limit": limit})
        return await self.aggregate(pipeline)

    async def count_active(self, company_id: Optional[Any] = None) -> int:
        """
        Active companies, optionally narrowed by an ``_id`` constraint.

        Args:
            company_id: Plain id or an operator fragment such as ``{"$in": [...]}``
        """
        query: Dict[str, Any] = {"status": True}
        if company_id is not None:
            query["_id"] = company_id
        return await self.count(query)

    async def find_with_fields(self, query: Dict[str, Any]) -> List[Dict[str, Any]]:
        """Raw company documents for statistics (nivel, categoria, maturity)."""
        return await self.aggregate(
            [
                {"$match": query},
                {
                    "$project": {
                        "name": 1,
                        "shortName": 1,
                        "status": 1,
                        "cuadroDeMando": 1,
                        "nivel": 1,
                        "categoria": 1,
                        "nivelDeMadurez": 1,
                    }
                },
            ]
        )


class ClientRepository(BaseRepository[Client]):
    """Repository for Client documents."""

    def __init__(self) -> None:
        super().__init__(Client)

    async def find_by_company(self, company_id: PydanticObjectId) -> List[Dict[str, Any]]:
        """Clients of a company as raw dicts (firstname, lastname, email, phone)."""
        return await self.aggregate(
            [
                {"$match": {"company": company_id}},
                {"$project": {"firstname": 1, "lastname": 1, "email": 1, "phone": 1}},
            ]
        )

    async def count_by_companies(self, company_ids: List[PydanticObjectId]) -> Dict[str, int]:
        """Client count per company, keyed by company id string (companies without clients are absent)."""
        if not company_ids:
            return {}
        rows = await self.aggregate(
            [
                {"$match": {"company": {"$in": company_ids}}},
                {"$group": {"_id": "$company", "cantidad": {"$sum": 1}}},
            ]
        )
        return {str(row["_id"]): row["cantidad"] for row in rows}
