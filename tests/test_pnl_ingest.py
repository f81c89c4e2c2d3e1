"""Tests for P&L sheet ingestion: month headers, category matching, diagnostics."""

from datetime import date

import pytest

from dashboard_service.errors import ConfigurationError, UpstreamFetchError
from dashboard_service.ingest.pnl import (
    ACTUAL,
    BUDGET,
    detect_month_columns,
    infer_sheet_data_type,
    ingest_pnl,
    match_category,
    parse_amount,
    parse_month_header,
)
from tests.conftest import make_sheets

SHEET_ID = "pnl-sheet"
TODAY = date(2025, 6, 1)


def _pnl_rows():
    return [
        ["Profit & Loss", "", "", "", ""],
        ["", "Category", "Jan 2025", "Feb 2025", "Mar 2025 Budget"],
        ["Revenue", "", "", "", ""],
        ["Food", "", "1,200,000", "1,300,000", "1,500,000"],
        ["", "Beer", "500,000", "-", ""],
        ["Net Sales", "", "1,700,000", "1,300,000", "1,500,000"],
        ["COGS", "", "(400,000)", "300,000", ""],
        ["Misc adjustments", "", "1", "2", "3"],
        ["Food", "", "9", "9", "9"],
        ["EBIT", "", "800,000", "", ""],
    ]


# ---------------------------------------------------------------------------
# Header and cell parsing
# ---------------------------------------------------------------------------
class TestParseMonthHeader:

    @pytest.mark.parametrize("raw,expected", [
        ("Jan 2025", (2025, 1, ACTUAL)),
        ("Feb-25", (2025, 2, ACTUAL)),
        ("Mar", (2026, 3, ACTUAL)),
        ("01/2025", (2025, 1, ACTUAL)),
        ("2025-04", (2025, 4, ACTUAL)),
        ("Budget May 2025", (2025, 5, BUDGET)),
        ("Sept '25", (2025, 9, ACTUAL)),
        ("December 2024 Actual", (2024, 12, ACTUAL)),
        ("T1", (2026, 1, ACTUAL)),
        ("T12 2025", (2025, 12, ACTUAL)),
        ("Tháng 3 Budget", (2026, 3, BUDGET)),
    ])
    def test_recognised_headers(self, raw, expected):
        assert parse_month_header(raw, 2026) == expected

    @pytest.mark.parametrize("raw", ["Total", "", None, "13/2025", "YTD", "T13"])
    def test_rejected_headers(self, raw):
        assert parse_month_header(raw, 2026) is None

    def test_default_type_applies_without_tag(self):
        assert parse_month_header("Jan 2025", 2026, BUDGET) == (2025, 1, BUDGET)

    def test_sheet_name_infers_budget(self):
        assert infer_sheet_data_type("Budget 2025") == BUDGET
        assert infer_sheet_data_type("PnL 2025") == ACTUAL
        assert infer_sheet_data_type(None) == ACTUAL


class TestParseAmount:

    @pytest.mark.parametrize("raw,expected", [
        ("1,200,000", 1200000.0),
        ("(1,200)", -1200.0),
        ("-", 0.0),
        ("1.234.567", 1234567.0),
        ("", None),
        ("   ", None),
        (None, None),
    ])
    def test_values(self, raw, expected):
        assert parse_amount(raw) == expected


class TestMatchCategory:

    @pytest.mark.parametrize("label,field", [
        ("Net Sales", "net_sales"),
        ("  labour   cost: ", "labor_cost"),
        ("COGS", "cogs"),
        ("Shisha", "revenue_shisha"),
        ("EBIT", "ebit"),
    ])
    def test_known_labels(self, label, field):
        assert match_category(label) == field

    def test_section_heading_is_not_a_category(self):
        assert match_category("Revenue") is None


class TestDetectMonthColumns:

    def test_finds_header_row(self):
        header_row, columns = detect_month_columns(_pnl_rows(), 2025, ACTUAL)
        assert header_row == 1
        assert [c.label for c in columns] == [
            "2025-01 (actual)", "2025-02 (actual)", "2025-03 (budget)",
        ]

    def test_year_override(self):
        _, columns = detect_month_columns(_pnl_rows(), 2025, ACTUAL, year_override=2024)
        assert {c.year for c in columns} == {2024}

    def test_no_header(self):
        assert detect_month_columns([["Food", "", "100"]], 2025, ACTUAL) == (None, [])


# ---------------------------------------------------------------------------
# ingest_pnl
# ---------------------------------------------------------------------------
class TestIngestPnl:

    @pytest.mark.asyncio
    async def test_writes_matched_categories_per_month(self, store):
        sheets = make_sheets(_pnl_rows())

        result = await ingest_pnl(store, sheets, SHEET_ID, "PnL 2025", today=TODAY)

        assert result.success is True
        assert result.processed == 3
        assert result.month_columns == ["2025-01 (actual)", "2025-02 (actual)", "2025-03 (budget)"]
        jan = store.pnl[(2025, 1, ACTUAL)]
        assert jan == {
            "revenue_food": 1200000.0,
            "revenue_beer": 500000.0,
            "net_sales": 1700000.0,
            "cogs": -400000.0,
            "ebit": 800000.0,
        }
        assert store.pnl[(2025, 2, ACTUAL)]["revenue_beer"] == 0.0
        assert "revenue_beer" not in store.pnl[(2025, 3, BUDGET)]
        sheets.fetch_values.assert_awaited_once_with(SHEET_ID, "PnL 2025!A1:AZ200")

    @pytest.mark.asyncio
    async def test_debug_diagnostics(self, store):
        result = await ingest_pnl(store, make_sheets(_pnl_rows()), SHEET_ID, "PnL 2025", today=TODAY)

        debug = result.debug
        assert debug["headerRow"] == 1
        assert debug["source"] == "api"
        assert debug["matchedCategories"] == ["revenue_food", "revenue_beer", "net_sales", "cogs", "ebit"]
        assert debug["unmatchedLabels"] == ["Revenue", "Misc adjustments"]
        assert debug["duplicateLabels"] == ["Food"]
        assert debug["sections"] == {
            "revenue": {"written": 8, "changed": 8},
            "costs": {"written": 2, "changed": 2},
            "results": {"written": 1, "changed": 1},
        }
        assert debug["sampleValues"][0]["period"] == "2025-01"

    @pytest.mark.asyncio
    async def test_resync_reports_no_changes(self, store):
        sheets = make_sheets(_pnl_rows())
        await ingest_pnl(store, sheets, SHEET_ID, "PnL 2025", today=TODAY)

        result = await ingest_pnl(store, sheets, SHEET_ID, "PnL 2025", today=TODAY)

        assert result.debug["sections"]["revenue"] == {"written": 8, "changed": 0}

    @pytest.mark.asyncio
    async def test_partial_tab_keeps_other_categories(self, store):
        store.pnl[(2025, 1, ACTUAL)] = {"labor_cost": 250000.0}
        rows = [["", "", "Jan 2025"], ["Food", "", "1,000"]]

        await ingest_pnl(store, make_sheets(rows), SHEET_ID, "PnL", today=TODAY)

        assert store.pnl[(2025, 1, ACTUAL)] == {"labor_cost": 250000.0, "revenue_food": 1000.0}

    @pytest.mark.asyncio
    async def test_year_override(self, store):
        result = await ingest_pnl(
            store, make_sheets(_pnl_rows()), SHEET_ID, "PnL", year_override=2024, today=TODAY
        )
        assert result.month_columns[0] == "2024-01 (actual)"
        assert (2024, 1, ACTUAL) in store.pnl
        assert result.debug["yearOverride"] == 2024

    @pytest.mark.asyncio
    async def test_no_matching_categories_gives_hint(self, store):
        rows = [["", "", "Jan 2025", "Feb 2025"], ["Umsatz", "", "1", "2"]]

        result = await ingest_pnl(store, make_sheets(rows), SHEET_ID, "PnL", today=TODAY)

        body = result.to_response()
        assert body["success"] is False
        assert body["errorCode"] == "no_matching_categories"
        assert body["monthColumns"] == ["2025-01 (actual)", "2025-02 (actual)"]
        assert "hint" in body
        assert store.sync_logs[-1]["status"] == "failed"

    @pytest.mark.asyncio
    async def test_no_month_columns(self, store):
        result = await ingest_pnl(store, make_sheets([["Food", "", "1"]]), SHEET_ID, "PnL", today=TODAY)

        body = result.to_response()
        assert body["errorCode"] == "no_month_columns"
        assert body["monthColumns"] == []
        assert store.pnl == {}

    @pytest.mark.asyncio
    async def test_csv_url_bypasses_values_api(self, store):
        sheets = make_sheets(csv_rows=_pnl_rows(), configured=False)

        result = await ingest_pnl(
            store, sheets, SHEET_ID, "PnL 2025", csv_url="https://example.test/pnl.csv", today=TODAY
        )

        assert result.processed == 3
        assert result.debug["source"] == "csv"
        sheets.fetch_values.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_missing_sheet_name(self, store):
        with pytest.raises(ConfigurationError, match="sheetName is required"):
            await ingest_pnl(store, make_sheets(), SHEET_ID, None)

    @pytest.mark.asyncio
    async def test_fetch_failure_propagates(self, store):
        sheets = make_sheets()
        sheets.fetch_values.side_effect = UpstreamFetchError("Sheets API error: quota", status=429)

        with pytest.raises(UpstreamFetchError):
            await ingest_pnl(store, sheets, SHEET_ID, "PnL", today=TODAY)
        assert store.sync_logs[0]["status"] == "failed"

    @pytest.mark.asyncio
    async def test_unexpected_error_still_closes_log(self, store):
        sheets = make_sheets()
        sheets.fetch_csv_rows.side_effect = UnicodeDecodeError("utf-8", b"\xff", 0, 1, "invalid start byte")

        with pytest.raises(UnicodeDecodeError):
            await ingest_pnl(store, sheets, SHEET_ID, "PnL", csv_url="https://example.com/pnl.csv", today=TODAY)

        assert store.sync_logs[0]["status"] == "failed"
        assert "invalid start byte" in store.sync_logs[0]["error_message"]
