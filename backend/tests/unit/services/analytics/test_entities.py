"""
Unit tests for EntityAnalytics.

Covers the critical-risk ranking (rollup, ordering, truncation, totals),
the evaluated-entities table, recent evaluations and active alerts.
"""

from datetime import datetime
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import pytest
from beanie import PydanticObjectId

from auditlens.services.analytics.entities import EntityAnalytics, rank_entities, summarize_ranking

from ...factories import CRITICAL_VECTOR, HIGH_VECTOR, LOW_VECTOR, make_finding


def _company(name: str, flagged: bool = False, **extra) -> dict:  # type: ignore[no-untyped-def]
    return {"_id": PydanticObjectId(), "name": name, "shortName": name[:3], "cuadroDeMando": flagged, **extra}


def _row(company: dict, findings: list, created: datetime = datetime(2024, 5, 1)) -> dict:
    return {"companyInfo": company, "createdAt": created, "findings": findings}


def _service(**audit_methods) -> EntityAnalytics:  # type: ignore[no-untyped-def]
    audits = MagicMock()
    for name, value in audit_methods.items():
        setattr(audits, name, AsyncMock(return_value=value))
    return EntityAnalytics(audits=audits, companies=MagicMock(), clients=MagicMock(), high_severity_alert_threshold=2)


@pytest.mark.unit
class TestTopCriticalEntities:
    @pytest.mark.asyncio
    async def test_rollup_and_risk(self) -> None:
        alpha = _company("Alpha", nivelDeMadurez="4")
        rows = [
            _row(alpha, [make_finding(status="ok"), make_finding(status="partial"), make_finding()]),
            _row(alpha, [make_finding(HIGH_VECTOR, "ko"), make_finding(LOW_VECTOR)], datetime(2024, 7, 2)),
        ]

        result = await _service(find_findings_with_company=rows).top_critical_entities({})

        entity = result["entidades"][0]
        assert entity["totalAuditorias"] == 2
        assert entity["criticas"] == 3
        assert entity["criticasActivas"] == 2
        assert entity["criticasRemediadas"] == 1
        assert entity["criticasParciales"] == 1
        assert entity["criticasSinVerificar"] == 1
        assert entity["altasActivas"] == 1
        assert entity["bajas"] == 1
        assert entity["nivelMadurez"] == 4
        assert entity["ultimaAuditoria"] == "2024-07-02"
        assert entity["tasaRemediacionCriticas"] == 33
        assert entity["riesgo"]["nivel"] == "High"

    @pytest.mark.asyncio
    async def test_ordering_and_limit(self) -> None:
        a = _company("A")
        b = _company("B", flagged=True)
        c = _company("C")
        rows = [
            _row(a, [make_finding()] * 3),
            _row(b, [make_finding(HIGH_VECTOR)]),
            _row(c, [make_finding(), make_finding(HIGH_VECTOR), make_finding(HIGH_VECTOR)]),
        ]
        service = _service(find_findings_with_company=rows)

        plain = await service.top_critical_entities({}, limit=2)
        flagged_first = await service.top_critical_entities({}, limit=2, prioritize_flagged=True)

        assert [e["nombre"] for e in plain["entidades"]] == ["A", "C"]
        assert [e["nombre"] for e in flagged_first["entidades"]] == ["B", "A"]
        assert plain["resumen"]["totalEmpresas"] == 2
        assert plain["resumen"]["totalCriticasActivas"] == 4

    @pytest.mark.asyncio
    async def test_rows_without_company_are_skipped(self) -> None:
        rows = [{"companyInfo": None, "findings": [make_finding()]}]

        result = await _service(find_findings_with_company=rows).top_critical_entities({})

        assert result["entidades"] == []
        assert result["resumen"]["tasaRemediacionCriticas"] == 100


@pytest.mark.unit
class TestRankingHelpers:
    def test_high_breaks_critical_ties(self) -> None:
        entities = [
            {"nombre": "x", "criticasActivas": 1, "altasActivas": 0, "cuadroDeMando": False},
            {"nombre": "y", "criticasActivas": 1, "altasActivas": 4, "cuadroDeMando": False},
        ]
        assert [e["nombre"] for e in rank_entities(entities)] == ["y", "x"]

    def test_empty_summary_rates_default_to_100(self) -> None:
        summary = summarize_ranking([])

        assert summary["totalEmpresas"] == 0
        assert summary["tasaRemediacionGeneral"] == 100


@pytest.mark.unit
class TestEvaluatedEntities:
    @pytest.mark.asyncio
    async def test_table_rows(self) -> None:
        rows = [
            {
                "_id": "c1",
                "nombre": None,
                "nombreCorto": "ACME",
                "cuadroDeMando": True,
                "evaluaciones": 2,
                "ultimaEval": datetime(2024, 3, 4),
                "ultimoEstado": None,
                "estado": "EDIT",
                "allFindings": [[make_finding(CRITICAL_VECTOR, "ok")], [make_finding(HIGH_VECTOR, "ko")]],
            }
        ]

        table = await _service(evaluated_entities=rows).evaluated_entities({})

        assert table[0]["id"] == 1
        assert table[0]["nombre"] == "ACME"
        assert table[0]["vulnCriticas"] == 1
        assert table[0]["vulnAltas"] == 1
        assert table[0]["estado"] == "EDIT"
        assert table[0]["ultimaEval"] == "2024-03-04"
        assert table[0]["tasaRemediacion"] == 50


@pytest.mark.unit
class TestRecentEvaluations:
    @pytest.mark.asyncio
    async def test_procedure_documentation_is_grouped(self) -> None:
        rows = [
            {
                "_id": "a1",
                "company": "c1",
                "companyInfo": {"name": "ACME"},
                "statusInfo": {"status": "EVALUANDO"},
                "procedure": {"origen": "PR01", "alcance": ["Web"], "informe": {"cite": "X-1"}},
                "createdAt": datetime(2024, 2, 1),
            },
            {"_id": "a2"},
        ]
        service = _service(find_recent=rows)

        recent = await service.recent_evaluations({}, limit=5)

        service.audits.find_recent.assert_awaited_once_with({}, 5)
        assert recent[0]["entidad"] == "ACME"
        assert recent[0]["procedimiento"]["documentacionEvaluacion"]["informe"] == {"cite": "X-1"}
        assert recent[0]["fechaInicio"] == "2024-02-01"
        assert recent[1]["entidad"] == "Sin entidad"
        assert recent[1]["estado"] == "Sin estado"
        assert recent[1]["procedimiento"] is None


@pytest.mark.unit
class TestActiveAlerts:
    @pytest.mark.asyncio
    async def test_all_three_alerts(self) -> None:
        rows = [{"findings": [make_finding(status="ko")] + [make_finding(HIGH_VECTOR)] * 3}]
        service = _service(find_findings=rows, count_overdue=2)

        alerts = await service.active_alerts({}, now=datetime(2024, 6, 1))

        assert [a["tipo"] for a in alerts] == ["critica", "alta", "media"]
        assert all(a["fecha"] == "2024-06-01" for a in alerts)
        service.audits.count_overdue.assert_awaited_once_with({}, "2024-06-01")

    @pytest.mark.asyncio
    async def test_no_alerts(self) -> None:
        service = _service(find_findings=[{"findings": [make_finding(status="ok")]}], count_overdue=0)
        assert await service.active_alerts({}) == []


@pytest.mark.unit
class TestCompanyInfo:
    @pytest.mark.asyncio
    async def test_missing_company(self) -> None:
        service = _service()
        service.companies.find_by_id = AsyncMock(return_value=None)

        assert await service.company_info(PydanticObjectId()) is None

    @pytest.mark.asyncio
    async def test_company_and_clients(self) -> None:
        service = _service()
        company = SimpleNamespace(
            id="c1",
            name="ACME",
            short_name="AC",
            logo=None,
            cuadro_de_mando=True,
            nivel="CENTRAL",
            categoria="A",
            status=True,
        )
        service.companies.find_by_id = AsyncMock(return_value=company)
        service.clients.find_by_company = AsyncMock(return_value=[{"_id": "k1", "firstname": "Ana", "lastname": None}])

        info = await service.company_info(PydanticObjectId())
        clients = await service.associated_clients(PydanticObjectId())

        assert info["shortName"] == "AC"
        assert info["cuadroDeMando"] is True
        assert clients == [{"id": "k1", "nombre": "Ana", "email": None, "phone": None}]
