"""
Unit tests for VulnerabilityAnalytics.
"""

from datetime import datetime
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import pytest
from beanie import PydanticObjectId

from auditlens.errors import BadParametersError, NotFoundError
from auditlens.models.enums import SeverityLabel
from auditlens.services.analytics.vulnerabilities import VulnerabilityAnalytics, parse_severity

from ...factories import CRITICAL_VECTOR, HIGH_VECTOR, LOW_VECTOR, make_finding

COMPANY = SimpleNamespace(id="c1", name="ACME", short_name="AC", cuadro_de_mando=False)


def _service(rows: list, company=COMPANY) -> VulnerabilityAnalytics:  # type: ignore[no-untyped-def]
    audits = MagicMock()
    audits.find_findings = AsyncMock(return_value=rows)
    audits.find_findings_with_company = AsyncMock(return_value=rows)
    companies = MagicMock()
    companies.find_by_id = AsyncMock(return_value=company)
    return VulnerabilityAnalytics(audits=audits, companies=companies)


ROWS = [
    {
        "_id": "a1",
        "name": "Old audit",
        "createdAt": datetime(2024, 1, 10),
        "findings": [
            make_finding(CRITICAL_VECTOR, "ok", title="SQLi", vulnType="Web"),
            make_finding(LOW_VECTOR, title="Banner"),
        ],
    },
    {
        "_id": "a2",
        "name": "New audit",
        "createdAt": datetime(2024, 5, 10),
        "findings": [
            make_finding(CRITICAL_VECTOR, "ko", title="SQLi", vulnType="Web"),
            make_finding(HIGH_VECTOR, "partial", title="XSS"),
        ],
    },
]


@pytest.mark.unit
class TestParseSeverity:
    @pytest.mark.parametrize(
        "value,label",
        [("Critical", SeverityLabel.CRITICAL), ("crítica", SeverityLabel.CRITICAL), (" alta ", SeverityLabel.HIGH)],
    )
    def test_aliases(self, value: str, label: SeverityLabel) -> None:
        assert parse_severity(value) == label

    def test_empty_means_no_filter(self) -> None:
        assert parse_severity(None) is None
        assert parse_severity("") is None

    def test_unknown_is_rejected(self) -> None:
        with pytest.raises(BadParametersError):
            parse_severity("catastrophic")


@pytest.mark.unit
class TestCompanyVulnerabilities:
    @pytest.mark.asyncio
    async def test_sorted_by_score_then_newest(self) -> None:
        listing = await _service(ROWS).company_vulnerabilities(PydanticObjectId(), {})

        items = listing["vulnerabilidades"]
        assert [(i["title"], i["auditName"]) for i in items] == [
            ("SQLi", "New audit"),
            ("SQLi", "Old audit"),
            ("XSS", "New audit"),
            ("Banner", "Old audit"),
        ]
        assert items[0]["esActiva"] is True
        assert items[1]["retestStatusLabel"] == "Remediated"
        assert items[3]["retestStatus"] == "unknown"
        assert "_sortDate" not in items[0]
        assert listing["stats"]["totalAuditorias"] == 2
        assert listing["stats"]["total"] == 4

    @pytest.mark.asyncio
    async def test_active_and_severity_filters(self) -> None:
        listing = await _service(ROWS).company_vulnerabilities(
            PydanticObjectId(), {}, solo_activas=True, severidad="critical"
        )

        assert [i["auditName"] for i in listing["vulnerabilidades"]] == ["New audit"]
        assert listing["filters"] == {"soloActivas": True, "severidad": "critical"}
        # Stats describe the whole period, not the filtered listing
        assert listing["stats"]["total"] == 4

    @pytest.mark.asyncio
    async def test_unknown_company(self) -> None:
        with pytest.raises(NotFoundError):
            await _service(ROWS, company=None).company_vulnerabilities(PydanticObjectId(), {})

    @pytest.mark.asyncio
    async def test_bad_severity_checked_before_lookup(self) -> None:
        service = _service(ROWS)

        with pytest.raises(BadParametersError):
            await service.company_vulnerabilities(PydanticObjectId(), {}, severidad="nope")
        service.companies.find_by_id.assert_not_awaited()


@pytest.mark.unit
class TestTopVulnerabilities:
    @pytest.mark.asyncio
    async def test_grouped_by_title_and_category(self) -> None:
        top = await _service(ROWS).top_vulnerabilities({}, limit=2)

        assert len(top) == 2
        assert top[0]["title"] == "SQLi"
        assert top[0]["count"] == 2
        assert top[0]["severidad"] == "Critical"
        assert top[0]["tasaRemediacion"] == 50


@pytest.mark.unit
class TestActiveCriticals:
    @pytest.mark.asyncio
    async def test_only_unremediated_criticals(self) -> None:
        rows = [dict(row, companyInfo={"_id": "c1", "name": "ACME"}) for row in ROWS]

        backlog = await _service(rows).active_critical_vulnerabilities({}, now=datetime(2024, 6, 9))

        assert len(backlog) == 1
        assert backlog[0]["auditId"] == "a2"
        assert backlog[0]["diasSinRemediar"] == 30
        assert backlog[0]["company"] == {"id": "c1", "name": "ACME"}
