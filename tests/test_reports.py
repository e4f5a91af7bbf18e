import io

import pytest
from openpyxl import load_workbook

from covenant_engine.models import CovenantStatus, WaiverStatus
from covenant_engine.reports import generate_compliance_report
from covenant_engine.timeline import build_portfolio_timelines
from covenant_engine.waiver_state import enrich_portfolio


@pytest.fixture
def portfolio(make_covenant, make_waiver, as_of):
    covenants = [
        make_covenant([25.0], covenant_id="COV-1"),
        make_covenant([10.0, -5.0], status=CovenantStatus.WAIVED, covenant_id="COV-2"),
        make_covenant([-8.0], status=CovenantStatus.BREACHED, covenant_id="COV-3"),
    ]
    waivers = [
        make_waiver(covenant_id="COV-2", waiver_id="W-2", expires_in_days=12),
        make_waiver(covenant_id="COV-3", waiver_id="W-3", status=WaiverStatus.PENDING, decided_days_ago=None),
    ]
    return covenants, waivers


def _load(payload):
    return load_workbook(io.BytesIO(payload))


class TestComplianceReport:
    def test_sheets(self, portfolio, as_of):
        covenants, waivers = portfolio
        enriched = enrich_portfolio(covenants, waivers, as_of)
        timelines = build_portfolio_timelines(covenants, waivers)
        wb = _load(generate_compliance_report(enriched, timelines, as_of))
        assert wb.sheetnames == ["Summary", "Priority", "Timeline"]

    def test_summary(self, portfolio, as_of):
        covenants, waivers = portfolio
        wb = _load(generate_compliance_report(enrich_portfolio(covenants, waivers, as_of), as_of=as_of))
        ws = wb["Summary"]
        assert ws["A1"].value == "Covenant Compliance Report"
        assert ws["A2"].value == "As of: 2024-06-30 12:00 UTC"
        assert ws["A4"].value == "Portfolio Health Score"
        assert ws["B5"].value == 3

    def test_priority_sheet(self, portfolio, as_of):
        covenants, waivers = portfolio
        wb = _load(generate_compliance_report(enrich_portfolio(covenants, waivers, as_of), as_of=as_of))
        ws = wb["Priority"]
        header = [c.value for c in ws[1]]
        assert header[:3] == ["Covenant ID", "Name", "Status"]
        ids = [ws.cell(row=r, column=1).value for r in range(2, ws.max_row + 1)]
        assert sorted(ids) == ["COV-1", "COV-2", "COV-3"]
        assert ids[-1] == "COV-1"

        waived_row = ids.index("COV-2") + 2
        assert ws.cell(row=waived_row, column=3).value == "waived_expiring_soon"
        assert ws.cell(row=waived_row, column=8).value == 12

    def test_empty_portfolio(self, as_of):
        wb = _load(generate_compliance_report([], as_of=as_of))
        assert wb.sheetnames == ["Summary"]

    def test_summary_status_counts(self, portfolio, as_of):
        covenants, waivers = portfolio
        enriched = enrich_portfolio(covenants, waivers, as_of)
        ws = _load(generate_compliance_report(enriched, as_of=as_of))["Summary"]
        assert ws["A8"].value == "Critical Attention"
        assert ws["A9"].value is None
        assert ws["A10"].value == "Display Status"
        expected = sorted(e.unified_state.display_status.value for e in enriched)
        assert [ws.cell(row=r, column=1).value for r in range(11, 14)] == expected
        assert [ws.cell(row=r, column=2).value for r in range(11, 14)] == [1, 1, 1]
        assert ws["A11"].font.bold

    def test_priority_header_styled(self, portfolio, as_of):
        covenants, waivers = portfolio
        ws = _load(generate_compliance_report(enrich_portfolio(covenants, waivers, as_of), as_of=as_of))["Priority"]
        for cell in ws[1]:
            assert cell.font.bold
            assert cell.fill.start_color.rgb.endswith("1F4E79")
            assert cell.alignment.horizontal == "center"
        assert ws.column_dimensions["A"].width == 15
