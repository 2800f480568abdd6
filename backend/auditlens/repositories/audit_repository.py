"""
Audit Repository

Query logic for the audits collection and its 1:1 side collections
(auditprocedures, auditstatus). Aggregations return raw dicts keyed by
persisted field names; analytics services do the arithmetic.
"""

import logging
from typing import Any, Dict, List, Optional

from beanie import PydanticObjectId

from ..models.audit_models import Audit, AuditProcedure, AuditStatus
from .base_repository import BaseRepository

logger = logging.getLogger(__name__)

# Projection used wherever only findings-related fields are needed
FINDINGS_PROJECTION = {
    "company": 1,
    "createdAt": 1,
    "name": 1,
    "auditType": 1,
    "findings": 1,
}


def _lookup_one(from_collection: str, local_field: str, foreign_field: str, as_field: str) -> List[Dict[str, Any]]:
    """$lookup followed by an $unwind that keeps unmatched documents."""
    return [
        {
            "$lookup": {
                "from": from_collection,
                "localField": local_field,
                "foreignField": foreign_field,
                "as": as_field,
            }
        },
        {"$unwind": {"path": f"${as_field}", "preserveNullAndEmptyArrays": True}},
    ]


class AuditRepository(BaseRepository[Audit]):
    """
    Repository for Audit documents.

    Example:
        repo = AuditRepository()
        total = await repo.count({"state": "APPROVED"})
        rows = await repo.find_findings({"company": company_id})
    """

    def __init__(self) -> None:
        super().__init__(Audit)

    async def find_by_id(self, audit_id: PydanticObjectId) -> Optional[Audit]:
        """Find an audit by its id."""
        return await self.find_one({"_id": audit_id})

    async def get_company_id(self, audit_id: PydanticObjectId) -> Optional[PydanticObjectId]:
        """Company of an audit, or None when the audit does not exist."""
        rows = await self.aggregate([{"$match": {"_id": audit_id}}, {"$project": {"company": 1}}])
        return rows[0].get("company") if rows else None

    async def find_findings(self, query: Dict[str, Any]) -> List[Dict[str, Any]]:
        """
        Findings-bearing projection of every audit matching query.

        Returns:
            Dicts with _id, company, createdAt, name, auditType, findings
        """
        return await self.aggregate([{"$match": query}, {"$project": FINDINGS_PROJECTION}])

    async def find_findings_with_company(
        self, query: Dict[str, Any], sort: Optional[Dict[str, int]] = None
    ) -> List[Dict[str, Any]]:
        """
        Findings projection joined with the audit's company document.

        Returns:
            Dicts with findings fields plus ``companyInfo`` (absent when the
            company reference is dangling)
        """
        pipeline: List[Dict[str, Any]] = [{"$match": query}]
        if sort:
            pipeline.append({"$sort": sort})
        pipeline.extend(_lookup_one("companies", "company", "_id", "companyInfo"))
        pipeline.append({"$project": {**FINDINGS_PROJECTION, "companyInfo": 1}})
        return await self.aggregate(pipeline)

    async def find_date_ranges(self, query: Dict[str, Any]) -> List[Dict[str, Any]]:
        """date_start/date_end of audits matching query that declare both."""
        match = {**query, "date_start": {"$exists": True}, "date_end": {"$exists": True}}
        return await self.aggregate([{"$match": match}, {"$project": {"date_start": 1, "date_end": 1}}])

    async def distinct_companies(self, query: Dict[str, Any]) -> List[Any]:
        """Distinct company ids among audits matching query."""
        return await self.distinct("company", query)

    async def count_by_procedure(self, query: Dict[str, Any]) -> List[Dict[str, Any]]:
        """Audit counts grouped by linked procedure origen (``_id`` may be None)."""
        pipeline = [
            {"$match": query},
            *_lookup_one("auditprocedures", "_id", "auditId", "procedure"),
            {"$group": {"_id": "$procedure.origen", "cantidad": {"$sum": 1}}},
            {"$sort": {"cantidad": -1}},
        ]
        return await self.aggregate(pipeline)

    async def count_by_alcance(self, query: Dict[str, Any]) -> List[Dict[str, Any]]:
        """
        Audit counts per scope tag.

        The procedure's alcance array is unwound first, so an audit with two
        tags counts once in each tag's bucket.
        """
        pipeline = [
            {"$match": query},
            *_lookup_one("auditprocedures", "_id", "auditId", "procedure"),
            {"$unwind": {"path": "$procedure.alcance", "preserveNullAndEmptyArrays": True}},
            {"$group": {"_id": "$procedure.alcance", "cantidad": {"$sum": 1}}},
            {"$sort": {"cantidad": -1}},
        ]
        return await self.aggregate(pipeline)

    async def count_by_type(self, query: Dict[str, Any]) -> List[Dict[str, Any]]:
        """Audit counts grouped by declared auditType."""
        pipeline = [
            {"$match": query},
            {"$group": {"_id": "$auditType", "cantidad": {"$sum": 1}}},
            {"$sort": {"cantidad": -1}},
        ]
        return await self.aggregate(pipeline)

    async def monthly_rollup(self, query: Dict[str, Any]) -> List[Dict[str, Any]]:
        """
        Per-month rollup of audits matching query.

        Returns:
            Dicts with _id (month 1-12), evaluaciones, vulnerabilidades and
            findings (one list of findings per audit)
        """
        pipeline = [
            {"$match": query},
            {
                "$project": {
                    "month": {"$month": "$createdAt"},
                    "findingsCount": {"$size": {"$ifNull": ["$findings", []]}},
                    "findings": 1,
                }
            },
            {
                "$group": {
                    "_id": "$month",
                    "evaluaciones": {"$sum": 1},
                    "vulnerabilidades": {"$sum": "$findingsCount"},
                    "findings": {"$push": "$findings"},
                }
            },
            {"$sort": {"_id": 1}},
        ]
        return await self.aggregate(pipeline)

    async def evaluated_entities(self, query: Dict[str, Any]) -> List[Dict[str, Any]]:
        """
        Audits matching query grouped by company, most evaluated first.

        Returns:
            Dicts with _id (company id), nombre, nombreCorto, cuadroDeMando,
            evaluaciones, ultimaEval, ultimoEstado, estado, allFindings
        """
        pipeline = [
            {"$match": query},
            *_lookup_one("companies", "company", "_id", "companyInfo"),
            *_lookup_one("auditstatus", "_id", "auditId", "statusInfo"),
            {"$sort": {"createdAt": 1}},
            {
                "$group": {
                    "_id": "$company",
                    "nombre": {"$first": "$companyInfo.name"},
                    "nombreCorto": {"$first": "$companyInfo.shortName"},
                    "cuadroDeMando": {"$first": "$companyInfo.cuadroDeMando"},
                    "evaluaciones": {"$sum": 1},
                    "ultimaEval": {"$max": "$createdAt"},
                    "ultimoEstado": {"$last": "$statusInfo.status"},
                    "estado": {"$last": "$state"},
                    "allFindings": {"$push": "$findings"},
                }
            },
            {"$sort": {"evaluaciones": -1}},
        ]
        return await self.aggregate(pipeline)

    async def find_recent(self, query: Dict[str, Any], limit: int) -> List[Dict[str, Any]]:
        """
        Most recent audits matching query with company, procedure and status joined.

        Returns:
            Dicts with _id, name, createdAt, auditType, company, companyInfo,
            procedure, statusInfo
        """
        pipeline = [
            {"$match": query},
            {"$sort": {"createdAt": -1}},
            {"$limit": limit},
            *_lookup_one("companies", "company", "_id", "companyInfo"),
            *_lookup_one("auditprocedures", "_id", "auditId", "procedure"),
            *_lookup_one("auditstatus", "_id", "auditId", "statusInfo"),
            {
                "$project": {
                    "name": 1,
                    "createdAt": 1,
                    "auditType": 1,
                    "company": 1,
                    "companyInfo.name": 1,
                    "companyInfo.shortName": 1,
                    "procedure": 1,
                    "statusInfo.status": 1,
                }
            },
        ]
        return await self.aggregate(pipeline)

    async def count_overdue(self, query: Dict[str, Any], today: str) -> int:
        """
        Audits still in EDIT whose planned end date is before ``today``.

        Args:
            query: Base filter
            today: ISO date (YYYY-MM-DD); date_end is stored as an ISO string
        """
        return await self.count({**query, "date_end": {"$lt": today}, "state": "EDIT"})


class AuditProcedureRepository(BaseRepository[AuditProcedure]):
    """Repository for AuditProcedure documents (one per audit)."""

    def __init__(self) -> None:
        super().__init__(AuditProcedure)

    async def find_by_audit(self, audit_id: PydanticObjectId) -> Optional[AuditProcedure]:
        return await self.find_one({"auditId": audit_id})


class AuditStatusRepository(BaseRepository[AuditStatus]):
    """Repository for AuditStatus documents (one per audit)."""

    def __init__(self) -> None:
        super().__init__(AuditStatus)

    async def find_by_audit(self, audit_id: PydanticObjectId) -> Optional[AuditStatus]:
        return await self.find_one({"auditId": audit_id})

    async def count_by_status(self, audit_query: Dict[str, Any]) -> List[Dict[str, Any]]:
        """
        Status counts for audits matching ``audit_query``.

        The audit filter is applied after joining, so every key is
        re-rooted under ``audit.``.
        """
        match_stage = {f"audit.{key}": value for key, value in audit_query.items()}
        pipeline = [
            {
                "$lookup": {
                    "from": "audits",
                    "localField": "auditId",
                    "foreignField": "_id",
                    "as": "audit",
                }
            },
            {"$unwind": {"path": "$audit", "preserveNullAndEmptyArrays": False}},
            {"$match": match_stage},
            {"$group": {"_id": "$status", "cantidad": {"$sum": 1}}},
            {"$sort": {"cantidad": -1}},
        ]
        return await self.aggregate(pipeline)
