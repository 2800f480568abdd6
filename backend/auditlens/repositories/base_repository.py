"""
Base Repository for MongoDB Operations

Every AuditLens collection (audits, companies, catalogs, analytics
permissions) is read through a subclass of BaseRepository. Each call is
timed; calls slower than the threshold are logged as warnings and
failures are logged with the filter shape before being re-raised.
"""

import logging
import time
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Dict, Generic, List, Optional, Tuple, TypeVar

from beanie import Document

from ..utils.logging_security import sanitize_query_for_log

T = TypeVar("T", bound=Document)

SLOW_QUERY_SECONDS = 1.0


class _QueryStats:
    """Filled in by the caller inside a timed block."""

    def __init__(self) -> None:
        self.result_count: Optional[int] = None


class BaseRepository(Generic[T]):
    """
    Typed access to one Beanie Document collection.

    Queries and pipelines use persisted (camelCase / Spanish) field
    names, not the Python attribute names of the model.

    Example:
        class AuditRepository(BaseRepository[Audit]):
            def __init__(self):
                super().__init__(Audit)
    """

    def __init__(self, model: type[T]):
        self.model = model
        self.logger = logging.getLogger(f"{__name__}.{model.__name__}")
        self._slow_query_threshold = SLOW_QUERY_SECONDS

    @asynccontextmanager
    async def _timed(self, operation: str, query: Dict[str, Any]) -> AsyncIterator[_QueryStats]:
        stats = _QueryStats()
        started = time.time()
        try:
            yield stats
        except Exception as e:
            self.logger.error(
                f"{operation} on {self.model.__name__} failed for filter {sanitize_query_for_log(query)}: {e}"
            )
            raise
        self._log_query_performance(operation, query, time.time() - started, stats.result_count)

    async def find_one(self, query: Dict[str, Any]) -> Optional[T]:
        """
        Fetch the first document matching ``query``.

        Example:
            company = await repo.find_one({"_id": company_id})
        """
        async with self._timed("find_one", query):
            return await self.model.find_one(query)

    async def find_many(
        self,
        query: Optional[Dict[str, Any]] = None,
        skip: int = 0,
        limit: Optional[int] = None,
        sort: Optional[List[Tuple[str, int]]] = None,
    ) -> List[T]:
        """
        Fetch all documents matching ``query``.

        Args:
            query: Filter, all documents when omitted
            skip: Documents to skip before collecting
            limit: Cap on returned documents; None or 0 means no cap
            sort: (field, direction) pairs, e.g. [("createdAt", -1)]
        """
        query = query or {}
        async with self._timed("find_many", query) as stats:
            cursor = self.model.find(query)
            if sort:
                cursor = cursor.sort(sort)
            if skip:
                cursor = cursor.skip(skip)
            if limit:
                cursor = cursor.limit(limit)
            documents = await cursor.to_list()
            stats.result_count = len(documents)
        return documents

    async def count(self, query: Optional[Dict[str, Any]] = None) -> int:
        query = query or {}
        async with self._timed("count", query) as stats:
            total = await self.model.find(query).count()
            stats.result_count = total
        return total

    async def distinct(self, field: str, query: Optional[Dict[str, Any]] = None) -> List[Any]:
        """
        Distinct values of a persisted field among matching documents.

        Example:
            company_ids = await repo.distinct("company", {"state": "APPROVED"})
        """
        query = query or {}
        async with self._timed(f"distinct({field})", query) as stats:
            values = await self.model.distinct(field, query)
            stats.result_count = len(values)
        return values

    async def create(self, document: T) -> T:
        """Insert ``document``; duplicate-key errors propagate to the caller."""
        async with self._timed("create", {"collection": self.model.__name__}):
            await document.insert()
        return document

    async def save(self, document: T) -> T:
        """Replace the stored document with its in-memory state (last write wins)."""
        async with self._timed("save", {"_id": getattr(document, "id", None)}):
            await document.save()
        return document

    async def delete_one(self, query: Dict[str, Any]) -> bool:
        """Delete the first match; False when nothing matched."""
        async with self._timed("delete_one", query):
            document = await self.model.find_one(query)
            if document is None:
                return False
            await document.delete()
        return True

    async def aggregate(self, pipeline: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
        """
        Run an aggregation pipeline and return the raw result rows.

        Example:
            rows = await repo.aggregate([
                {"$match": {"state": "EDIT"}},
                {"$group": {"_id": "$auditType", "cantidad": {"$sum": 1}}},
            ])
        """
        stages = {name: None for stage in pipeline for name in stage}
        async with self._timed(f"aggregate[{len(pipeline)} stages]", stages) as stats:
            rows = await self.model.aggregate(pipeline).to_list()
            stats.result_count = len(rows)
        return rows

    def _log_query_performance(
        self,
        operation: str,
        query: Dict[str, Any],
        duration: float,
        result_count: Optional[int] = None,
    ) -> None:
        summary = f"{operation} completed in {duration:.3f}s"
        if result_count is not None:
            summary += f" ({result_count} results)"

        if duration > self._slow_query_threshold:
            self.logger.warning(f"SLOW QUERY: {summary} - filter {sanitize_query_for_log(query)}")
        else:
            self.logger.debug(summary)
