"""
Analytics Service

Entry point for every dashboard read. Composes the period filter with the
caller's permission-derived company filter and fans independent section
computations out concurrently.

Usage:
    >>> from auditlens.services.analytics import get_analytics_service
    >>> analytics = get_analytics_service()
    >>> dashboard = await analytics.get_dashboard(ScopeKind.GLOBAL, None, DashboardFilters(year=2024))
    >>> len(dashboard["tendenciaMensual"])
    12
"""

import asyncio
import logging
from functools import lru_cache
from typing import Any, Dict, Optional

from beanie import PydanticObjectId

from ...config import get_settings
from ...errors import BadParametersError, NotFoundError
from ...models.enums import ScopeKind
from ...repositories import (
    AlcanceTemplateRepository,
    AuditProcedureRepository,
    AuditRepository,
    AuditStatusRepository,
    ClientRepository,
    CompanyRepository,
    ProcedureTemplateRepository,
    SettingsRepository,
    UserRepository,
)
from ...utils.logging_security import sanitize_id_for_log
from .audit_dashboard import AuditDashboardService
from .company_stats import CompanyStatsService
from .entities import EntityAnalytics
from .global_stats import GlobalStatsService
from .helpers import build_date_filter, merge_filters
from .models import DashboardFilters
from .trends import TrendAnalyzer
from .vulnerabilities import VulnerabilityAnalytics

logger = logging.getLogger(__name__)


def _period(filters: DashboardFilters, date_filter: Dict[str, Any]) -> Dict[str, Any]:
    return {
        "year": filters.year or date_filter["$gte"].year,
        "startDate": date_filter["$gte"],
        "endDate": date_filter["$lte"],
    }


class AnalyticsService:
    """
    Main entry point for analytics dashboards.

    Permission filters are fragments such as ``{"company": {"$in": [...]}}``
    or ``{}`` for an unrestricted caller. They are merged over the period
    filter, so a permission key always wins on collision.
    """

    def __init__(
        self,
        audits: Optional[AuditRepository] = None,
        procedures: Optional[AuditProcedureRepository] = None,
        statuses: Optional[AuditStatusRepository] = None,
        companies: Optional[CompanyRepository] = None,
        clients: Optional[ClientRepository] = None,
        users: Optional[UserRepository] = None,
        procedure_templates: Optional[ProcedureTemplateRepository] = None,
        alcance_templates: Optional[AlcanceTemplateRepository] = None,
        settings_repo: Optional[SettingsRepository] = None,
    ):
        settings = get_settings()
        self.settings = settings

        audits = audits or AuditRepository()
        statuses = statuses or AuditStatusRepository()
        companies = companies or CompanyRepository()
        clients = clients or ClientRepository()
        settings_repo = settings_repo or SettingsRepository()
        self.companies = companies

        self.global_stats = GlobalStatsService(
            audits=audits,
            statuses=statuses,
            companies=companies,
            procedure_templates=procedure_templates or ProcedureTemplateRepository(),
            alcance_templates=alcance_templates or AlcanceTemplateRepository(),
            settings_repo=settings_repo,
            default_average_duration_days=settings.default_average_duration_days,
        )
        self.trends = TrendAnalyzer(audits=audits)
        self.entities = EntityAnalytics(
            audits=audits,
            companies=companies,
            clients=clients,
            high_severity_alert_threshold=settings.high_severity_alert_threshold,
        )
        self.audit_dashboard = AuditDashboardService(
            audits=audits,
            procedures=procedures or AuditProcedureRepository(),
            statuses=statuses,
            companies=companies,
            users=users or UserRepository(),
            settings_repo=settings_repo,
        )
        self.vulnerabilities = VulnerabilityAnalytics(audits=audits, companies=companies)
        self.company_stats = CompanyStatsService(companies=companies, audits=audits, clients=clients)

    async def get_dashboard(
        self,
        scope_kind: ScopeKind,
        scope_id: Optional[PydanticObjectId] = None,
        filters: Optional[DashboardFilters] = None,
        permission_filter: Optional[Dict[str, Any]] = None,
    ) -> Dict[str, Any]:
        """
        Dashboard payload for a scope.

        Args:
            scope_kind: global, company or audit
            scope_id: Company or audit id (required for those scopes)
            filters: Period filters
            permission_filter: Company filter fragment for the caller (global scope)

        Raises:
            BadParametersError: Missing scope id
            NotFoundError: Unknown company or audit
        """
        filters = filters or DashboardFilters()
        scope_kind = ScopeKind(scope_kind)

        if scope_kind == ScopeKind.GLOBAL:
            return await self.get_global_dashboard(filters, permission_filter)

        if scope_id is None:
            raise BadParametersError.single("scopeId", f"A scope id is required for the {scope_kind.value} dashboard")

        if scope_kind == ScopeKind.COMPANY:
            return await self.get_company_dashboard(scope_id, filters)
        return await self.audit_dashboard.get_audit_dashboard(scope_id)

    async def get_global_dashboard(
        self, filters: DashboardFilters, permission_filter: Optional[Dict[str, Any]] = None
    ) -> Dict[str, Any]:
        date_filter = build_date_filter(filters.start_date, filters.end_date, filters.year)
        query = merge_filters({"createdAt": date_filter}, permission_filter)
        year = filters.year or date_filter["$gte"].year

        logger.info(f"Global dashboard for year {year} (company filter: {'yes' if permission_filter else 'no'})")

        (
            stats,
            por_procedimiento,
            por_alcance,
            por_estado,
            por_tipo,
            por_severidad,
            tendencia,
            entidades,
            recientes,
            alertas,
        ) = await asyncio.gather(
            self.global_stats.get_global_stats(query),
            self.global_stats.get_by_procedure(query),
            self.global_stats.get_by_alcance(query),
            self.global_stats.get_by_status(query),
            self.global_stats.get_by_type(query),
            self.global_stats.get_severity_breakdown(query),
            self.trends.monthly_trend(year, permission_filter),
            self.entities.evaluated_entities(query),
            self.entities.recent_evaluations(query, self.settings.recent_evaluations_limit),
            self.entities.active_alerts(query),
        )

        return {
            "period": _period(filters, date_filter),
            "stats": stats,
            "evaluacionesPorProcedimiento": por_procedimiento,
            "evaluacionesPorAlcance": por_alcance,
            "evaluacionesPorEstado": por_estado,
            "evaluacionesPorTipo": por_tipo,
            "vulnerabilidadesPorSeveridad": por_severidad,
            "tendenciaMensual": tendencia,
            "entidadesEvaluadas": entidades,
            "evaluacionesRecientes": recientes,
            "alertasActivas": alertas,
        }

    async def get_company_dashboard(self, company_id: PydanticObjectId, filters: DashboardFilters) -> Dict[str, Any]:
        """
        Dashboard of one company. Access to the company is checked by the caller.

        Raises:
            NotFoundError: The company does not exist
        """
        company = await self.entities.company_info(company_id)
        if company is None:
            raise NotFoundError("Company", str(company_id))

        date_filter = build_date_filter(filters.start_date, filters.end_date, filters.year)
        query = {"company": company_id, "createdAt": date_filter}
        year = filters.year or date_filter["$gte"].year

        logger.info(f"Company dashboard for {sanitize_id_for_log(str(company_id))}, year {year}")

        (
            stats,
            por_procedimiento,
            por_alcance,
            por_estado,
            por_tipo,
            por_severidad,
            tendencia,
            recientes,
            alertas,
            clientes,
        ) = await asyncio.gather(
            self.global_stats.get_company_stats(query),
            self.global_stats.get_by_procedure(query),
            self.global_stats.get_by_alcance(query),
            self.global_stats.get_by_status(query),
            self.global_stats.get_by_type(query),
            self.global_stats.get_severity_breakdown(query),
            self.trends.monthly_trend(year, {"company": company_id}),
            self.entities.recent_evaluations(query, self.settings.recent_evaluations_limit),
            self.entities.active_alerts(query),
            self.entities.associated_clients(company_id),
        )

        return {
            "period": _period(filters, date_filter),
            "company": company,
            "stats": stats,
            "evaluacionesPorProcedimiento": por_procedimiento,
            "evaluacionesPorAlcance": por_alcance,
            "evaluacionesPorEstado": por_estado,
            "evaluacionesPorTipo": por_tipo,
            "vulnerabilidadesPorSeveridad": por_severidad,
            "tendenciaMensual": tendencia,
            "evaluacionesRecientes": recientes,
            "alertasActivas": alertas,
            "clientesAsociados": clientes,
        }

    async def get_top_critical_entities(
        self,
        filters: Optional[DashboardFilters] = None,
        permission_filter: Optional[Dict[str, Any]] = None,
        max_results: int = 0,
    ) -> Dict[str, Any]:
        """
        Critical-risk company ranking for the period, with totals over the ranking.

        A positive ``max_results`` caps the ranking before the totals are
        computed, so ``resumen`` never counts companies left out of ``entidades``.
        """
        filters = filters or DashboardFilters()
        date_filter = build_date_filter(filters.start_date, filters.end_date, filters.year)
        query = merge_filters({"createdAt": date_filter}, permission_filter)
        limit = filters.limit or self.settings.top_entities_default_limit
        if max_results > 0:
            limit = min(limit, max_results)

        ranking = await self.entities.top_critical_entities(
            query, limit=limit, prioritize_flagged=filters.prioritize_flagged
        )
        return {"period": _period(filters, date_filter), **ranking}

    async def get_company_vulnerabilities(
        self, company_id: PydanticObjectId, filters: Optional[DashboardFilters] = None
    ) -> Dict[str, Any]:
        filters = filters or DashboardFilters()
        date_filter = build_date_filter(filters.start_date, filters.end_date, filters.year)
        listing = await self.vulnerabilities.company_vulnerabilities(
            company_id, date_filter, solo_activas=filters.solo_activas, severidad=filters.severidad
        )
        return {"period": _period(filters, date_filter), **listing}

    async def get_trends(
        self, filters: Optional[DashboardFilters] = None, permission_filter: Optional[Dict[str, Any]] = None
    ) -> Dict[str, Any]:
        """Monthly, severity and year-over-year trends for a year."""
        filters = filters or DashboardFilters()
        year = filters.year or build_date_filter()["$gte"].year
        mensual, severidad, comparativa = await asyncio.gather(
            self.trends.monthly_trend(year, permission_filter),
            self.trends.severity_trend(year, permission_filter),
            self.trends.annual_comparison(year, permission_filter),
        )
        return {
            "year": year,
            "tendenciaMensual": mensual,
            "tendenciaSeveridad": severidad,
            "comparativaAnual": comparativa,
        }

    async def get_vulnerability_overview(
        self, filters: Optional[DashboardFilters] = None, permission_filter: Optional[Dict[str, Any]] = None
    ) -> Dict[str, Any]:
        """Most recurrent vulnerabilities and the active critical backlog for the period."""
        filters = filters or DashboardFilters()
        date_filter = build_date_filter(filters.start_date, filters.end_date, filters.year)
        query = merge_filters({"createdAt": date_filter}, permission_filter)
        top, criticas = await asyncio.gather(
            self.vulnerabilities.top_vulnerabilities(query, filters.limit or 10),
            self.vulnerabilities.active_critical_vulnerabilities(query),
        )
        return {"period": _period(filters, date_filter), "topVulnerabilidades": top, "criticasActivas": criticas}

    async def get_company_statistics(self, company_filter: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        return await self.company_stats.company_statistics(company_filter)

    async def get_companies_with_stats(
        self, filters: Optional[DashboardFilters] = None, company_filter: Optional[Dict[str, Any]] = None
    ) -> Dict[str, Any]:
        filters = filters or DashboardFilters()
        date_filter = build_date_filter(filters.start_date, filters.end_date, filters.year)
        companies = await self.company_stats.companies_with_stats(company_filter, {"createdAt": date_filter})
        return {"period": _period(filters, date_filter), "companies": companies}

    async def get_audit_company_id(self, audit_id: PydanticObjectId) -> Optional[PydanticObjectId]:
        return await self.audit_dashboard.get_audit_company_id(audit_id)

    async def get_audit_summary(self, audit_id: PydanticObjectId) -> Dict[str, Any]:
        """
        Raises:
            NotFoundError: The audit does not exist
        """
        summary = await self.audit_dashboard.get_audit_summary(audit_id)
        if summary is None:
            raise NotFoundError("Audit", str(audit_id))
        return summary


@lru_cache()
def get_analytics_service() -> AnalyticsService:
    """Shared AnalyticsService (repositories are stateless)."""
    return AnalyticsService()
