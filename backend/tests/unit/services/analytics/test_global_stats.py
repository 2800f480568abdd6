"""
Unit tests for GlobalStatsService.

Every repository is an AsyncMock-backed double, so the tests exercise the
arithmetic and labelling done on top of the aggregation rows.
"""

from unittest.mock import AsyncMock, MagicMock

import pytest

from auditlens.services.analytics.global_stats import (
    GlobalStatsService,
    count_active_criticals,
    normalize_procedure_code,
)

from ...factories import CRITICAL_VECTOR, HIGH_VECTOR, make_finding

COLORS = {
    "criticalColor": "#c",
    "highColor": "#h",
    "mediumColor": "#m",
    "lowColor": "#l",
    "noneColor": "#n",
}


@pytest.fixture
def repos() -> dict:
    audits = MagicMock()
    audits.count = AsyncMock(side_effect=lambda query: {None: 10, "EDIT": 4, "APPROVED": 5}[query.get("state")])
    audits.distinct_companies = AsyncMock(return_value=["a", "b", "c"])
    audits.find_findings = AsyncMock(
        return_value=[
            {"findings": [make_finding(CRITICAL_VECTOR, "ok"), make_finding(CRITICAL_VECTOR, "partial")]},
            {"findings": [make_finding(HIGH_VECTOR, "ko"), make_finding(HIGH_VECTOR)]},
        ]
    )
    audits.find_date_ranges = AsyncMock(return_value=[])

    companies = MagicMock()
    companies.count_active = AsyncMock(return_value=8)

    settings_repo = MagicMock()
    settings_repo.get_cvss_colors = AsyncMock(return_value=COLORS)

    return {
        "audits": audits,
        "statuses": MagicMock(),
        "companies": companies,
        "procedure_templates": MagicMock(),
        "alcance_templates": MagicMock(),
        "settings_repo": settings_repo,
    }


@pytest.mark.unit
class TestGlobalStats:
    @pytest.mark.asyncio
    async def test_counters(self, repos: dict) -> None:
        service = GlobalStatsService(**repos)

        stats = await service.get_global_stats({"createdAt": {}})

        assert stats["totalEvaluaciones"] == 10
        assert stats["evaluacionesActivas"] == 4
        assert stats["evaluacionesCompletadas"] == 5
        assert stats["entidadesEvaluadas"] == 3
        assert stats["totalEntidades"] == 8
        assert stats["porcentajeCobertura"] == 37.5
        assert stats["vulnCriticasActivas"] == 1
        assert stats["tasaRemediacion"] == 25
        assert stats["verificacion"] == {
            "remediadas": 1,
            "noRemediadas": 1,
            "parciales": 1,
            "sinVerificar": 1,
            "totalVerificadas": 3,
        }
        assert stats["tiempoPromedioDias"] == 12.4

    @pytest.mark.asyncio
    async def test_coverage_uses_permission_company_constraint(self, repos: dict) -> None:
        service = GlobalStatsService(**repos)
        constraint = {"$in": ["a"]}

        await service.get_global_stats({"company": constraint})

        repos["companies"].count_active.assert_awaited_once_with(constraint)

    @pytest.mark.asyncio
    async def test_zero_companies_gives_zero_coverage(self, repos: dict) -> None:
        repos["companies"].count_active = AsyncMock(return_value=0)

        stats = await GlobalStatsService(**repos).get_global_stats({})

        assert stats["porcentajeCobertura"] == 0.0


@pytest.mark.unit
class TestAverageDuration:
    @pytest.mark.asyncio
    async def test_mean_of_usable_ranges(self, repos: dict) -> None:
        repos["audits"].find_date_ranges = AsyncMock(
            return_value=[
                {"date_start": "2024-01-01", "date_end": "2024-01-11"},
                {"date_start": "2024-02-01", "date_end": "2024-02-06"},
                {"date_start": "bad", "date_end": "2024-02-06"},
            ]
        )

        assert await GlobalStatsService(**repos).average_duration_days({}) == 7.5

    @pytest.mark.asyncio
    async def test_configured_fallback(self, repos: dict) -> None:
        service = GlobalStatsService(**repos, default_average_duration_days=3.0)
        assert await service.average_duration_days({}) == 3.0


@pytest.mark.unit
class TestBreakdowns:
    @pytest.mark.asyncio
    async def test_severity_breakdown_uses_settings_colors(self, repos: dict) -> None:
        breakdown = await GlobalStatsService(**repos).get_severity_breakdown({})

        assert [row["name"] for row in breakdown] == ["Critical", "High", "Medium", "Low", "Info"]
        assert breakdown[0] == {"name": "Critical", "value": 2, "color": "#c"}
        assert breakdown[1]["value"] == 2

    @pytest.mark.asyncio
    async def test_procedure_codes_are_labelled_from_catalog(self, repos: dict) -> None:
        repos["audits"].count_by_procedure = AsyncMock(
            return_value=[
                {"_id": "VERIF-004", "cantidad": 3},
                {"_id": "PR99", "cantidad": 2},
                {"_id": None, "cantidad": 1},
            ]
        )
        repos["procedure_templates"].as_lookup = AsyncMock(
            return_value={"VERIF-001": {"name": "Verificación", "color": "#123456"}}
        )

        breakdown = await GlobalStatsService(**repos).get_by_procedure({})

        assert breakdown[0] == {"tipo": "VERIF-004 - Verificación", "cantidad": 3, "color": "#123456"}
        assert breakdown[1] == {"tipo": "PR99", "cantidad": 2, "color": "#6b7280"}
        assert breakdown[2]["tipo"] == "Sin procedimiento"

    @pytest.mark.asyncio
    async def test_alcance_counts(self, repos: dict) -> None:
        repos["audits"].count_by_alcance = AsyncMock(
            return_value=[{"_id": "Externo", "cantidad": 4}, {"_id": None, "cantidad": 1}]
        )
        repos["alcance_templates"].as_lookup = AsyncMock(return_value={"Externo": "#abcdef"})

        breakdown = await GlobalStatsService(**repos).get_by_alcance({})

        assert breakdown == [
            {"alcance": "Externo", "cantidad": 4, "color": "#abcdef"},
            {"alcance": "Sin alcance", "cantidad": 1, "color": "#6b7280"},
        ]

    @pytest.mark.asyncio
    async def test_status_and_type_placeholders(self, repos: dict) -> None:
        repos["statuses"].count_by_status = AsyncMock(return_value=[{"_id": None, "cantidad": 2}])
        repos["audits"].count_by_type = AsyncMock(return_value=[{"_id": "Web", "cantidad": 1}, {"cantidad": 3}])
        service = GlobalStatsService(**repos)

        assert await service.get_by_status({}) == [{"estado": "Sin estado", "cantidad": 2}]
        assert await service.get_by_type({}) == [{"tipo": "Web", "cantidad": 1}, {"tipo": "Sin tipo", "cantidad": 3}]


@pytest.mark.unit
class TestHelpers:
    @pytest.mark.parametrize(
        "code,expected",
        [("PR01", "PR01"), ("VERIF-003", "VERIF-001"), ("verif", "VERIF-001"), ("RETEST-2", "RETEST"), ("", "")],
    )
    def test_normalize_procedure_code(self, code: str, expected: str) -> None:
        assert normalize_procedure_code(code) == expected

    def test_partial_criticals_are_active(self) -> None:
        lists = [[make_finding(status="ok"), make_finding(status="partial"), make_finding()], None]
        assert count_active_criticals(lists) == 2
