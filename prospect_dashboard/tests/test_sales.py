"""
Test Module for OEC sales, P&L complaints and the P&L statement.

Covers:
- To-do deduplication into sale periods with the calendar-month window
- Merging uploads without double counting known to-dos
- Range counts of sales
- CSV and JSON upload parsing with per-row errors
- Complaint type mapping and per-service sale deduplication
- Date-range removal of complaints
- P&L configuration validation and statement formulas
"""

from datetime import datetime, timezone

import pytest

from prospect_dashboard.models import (
    Complaint,
    ComplaintsUpload,
    OverseasSalesUpload,
    PnLConfig,
    ServiceKey,
    TodoRow,
)
from prospect_dashboard.services.complaints import (
    delete_complaints_range,
    filter_complaints_by_date_range,
    get_service_volumes,
    load_complaints,
    process_complaints,
    service_for,
    upload_complaints,
)
from prospect_dashboard.services.ingestion import load_rows, read_csv_rows
from prospect_dashboard.services.overseas_sales import (
    get_sales_in_range,
    load_overseas_sales,
    merge_overseas_sales,
    process_overseas_sales,
    summarize,
    upload_overseas_sales,
)
from prospect_dashboard.services.pnl import (
    build_pnl,
    default_config,
    load_config,
    months_in_range,
    parse_config,
    reset_config,
    save_config,
    validate_number,
)

NOW = datetime(2026, 6, 1, 12, 0, tzinfo=timezone.utc)


def todo(todo_id: str, created: str, contract: str = "K1", client: str = "C1", maid: str = "H1") -> TodoRow:
    return TodoRow(id=todo_id, contractId=contract, clientId=client, housemaidId=maid, createdAt=created)


def complaint(complaint_type: str, created: str, contract: str = "K1", client: str = "C1", maid: str = "H1") -> Complaint:
    return Complaint(
        complaintType=complaint_type,
        creationDate=created,
        contractId=contract,
        clientId=client,
        housemaidId=maid,
    )


# =============================================================================
# OVERSEAS SALES
# =============================================================================

class TestProcessOverseasSales:
    """Tests for to-do deduplication."""

    def test_window_splits_periods(self):
        data = process_overseas_sales(
            [
                todo("T1", "2026-01-10 09:00:00"),
                todo("T2", "2026-02-01 09:00:00"),
                todo("T3", "2026-04-11 09:00:00"),
            ],
            now=NOW,
        )
        assert data.totalRawTodos == 3
        assert data.totalDedupedSales == 2
        (sale,) = data.sales
        assert sale.id == "sale_K1_C1_H1"
        assert sale.occurrenceCount == 3
        assert sale.deduplicatedCount == 2
        assert [p.todoIds for p in sale.periods] == [["T1", "T2"], ["T3"]]
        assert sale.firstSaleDate == "2026-01-10T09:00:00.000Z"
        assert sale.lastSaleDate == "2026-04-11T09:00:00.000Z"
        assert data.salesByMonth == {"2026-01": 1, "2026-04": 1}
        assert data.lastUpdated == "2026-06-01T12:00:00.000Z"

    def test_different_housemaid_is_different_sale(self):
        data = process_overseas_sales([
            todo("T1", "2026-01-10"),
            todo("T2", "2026-01-11", maid="H2"),
        ])
        assert data.totalDedupedSales == 2
        assert {s.id for s in data.sales} == {"sale_K1_C1_H1", "sale_K1_C1_H2"}

    def test_undated_todo_counts_occurrence_only(self):
        data = process_overseas_sales([todo("T1", "2026-01-10"), todo("T2", "not a date")])
        (sale,) = data.sales
        assert sale.occurrenceCount == 2
        assert sale.deduplicatedCount == 1
        assert sale.relatedTodoIds == ["T1", "T2"]

    def test_merge_ignores_known_todos(self):
        existing = process_overseas_sales([todo("T1", "2026-01-10")])
        data, added = merge_overseas_sales(existing, [todo("T1", "2026-01-10"), todo("T2", "2026-05-01")])
        assert added == 1
        assert data.totalRawTodos == 2
        assert data.totalDedupedSales == 2

        unchanged, added = merge_overseas_sales(data, [todo("T2", "2026-05-01")])
        assert added == 0
        assert unchanged is data

    def test_sales_in_range(self):
        data = process_overseas_sales([
            todo("T1", "2026-01-10"),
            todo("T2", "2026-04-11"),
            todo("T3", "2026-01-31", contract="K2"),
        ])
        assert get_sales_in_range(data, "2026-01-01", "2026-01-31") == 2
        assert get_sales_in_range(data, "2026-04-11", "2026-04-11") == 1
        assert get_sales_in_range(data, "2026-02-01", "2026-03-31") == 0

    def test_summarize_excludes_raw_todos(self):
        assert summarize(None)["sales"] == []
        summary = summarize(process_overseas_sales([todo("T1", "2026-01-10")]))
        assert "rawTodos" not in summary
        assert summary["totalDedupedSales"] == 1


class TestOverseasSalesUpload:

    @pytest.mark.asyncio
    async def test_csv_upload(self, store):
        csv_text = (
            "id,CONTRACT_ID,CLIENT_ID,HOUSEMAID_ID,CREATION_DATE\n"
            "T1,K1,C1,00123,2026-01-10 10:00:00\n"
            "T2,K1,C1,00123,2026-01-20 10:00:00\n"
        )
        data, added, errors = await upload_overseas_sales(store, OverseasSalesUpload(csvText=csv_text))
        assert errors == []
        assert added == 2
        assert data.totalDedupedSales == 1
        assert data.sales[0].housemaidId == "00123", (
            "Ids must keep their leading zeros"
        )

        stored = await load_overseas_sales(store)
        assert stored.totalRawTodos == 2

    @pytest.mark.asyncio
    async def test_upload_merges_then_replaces(self, store):
        await upload_overseas_sales(store, OverseasSalesUpload(todos=[{"id": "T1", "createdAt": "2026-01-10"}]))
        data, added, _ = await upload_overseas_sales(
            store, OverseasSalesUpload(todos=[{"id": "T2", "createdAt": "2026-01-11", "contractId": "K9"}])
        )
        assert added == 1
        assert data.totalRawTodos == 2

        data, added, _ = await upload_overseas_sales(
            store, OverseasSalesUpload(todos=[{"id": "T3", "createdAt": "2026-01-12"}], replace=True)
        )
        assert data.totalRawTodos == 1

    @pytest.mark.asyncio
    async def test_invalid_rows_reported(self, store):
        _, added, errors = await upload_overseas_sales(
            store, OverseasSalesUpload(todos=[{"id": "T1", "createdAt": "2026-01-10"}, {"createdAt": "2026-01-11"}])
        )
        assert added == 1
        assert len(errors) == 1
        assert errors[0].row_number == 2
        assert errors[0].as_dict()["rowNumber"] == 2


class TestRowParsing:

    def test_neither_rows_nor_csv(self):
        with pytest.raises(ValueError):
            load_rows(TodoRow)

    def test_empty_csv(self):
        rows, errors = read_csv_rows("   ")
        assert rows == []
        assert errors[0].field == "file"

    def test_header_only_csv(self):
        rows, errors = read_csv_rows("id,createdAt\n")
        assert rows == []
        assert errors[0].message == "CSV contains no data rows"


# =============================================================================
# COMPLAINTS
# =============================================================================

class TestComplaints:
    """Tests for complaint mapping and per-service sales."""

    @pytest.mark.parametrize(
        "complaint_type,expected",
        [
            ("Overseas Employment Certificate", ServiceKey.OEC),
            ("  travel to lebanon ", ServiceKey.TTL),
            ("Schengen Countries", ServiceKey.SCHENGEN),
            ("Ethiopian PP Renewal", ServiceKey.ETHIOPIAN_PP),
            ("Something else", None),
            ("", None),
        ],
    )
    def test_service_for(self, complaint_type, expected):
        assert service_for(complaint_type) == expected

    def test_dedup_per_service(self):
        data = process_complaints(
            [
                complaint("Overseas Employment Certificate", "2026-01-10"),
                complaint("OEC", "2026-02-10"),
                complaint("Travel to Lebanon", "2026-01-15"),
                complaint("Overseas", "2026-05-01"),
                complaint("Unknown", "2026-01-10"),
            ],
            now=NOW,
        )
        oec = data.services["oec"]
        assert oec.uniqueSales == 2
        assert oec.totalComplaints == 3
        assert oec.byMonth == {"2026-01": 1, "2026-05": 1}
        assert oec.sales[0].id == "sale_oec_K1_C1_H1_2026-01-10"
        assert oec.sales[0].occurrenceCount == 2
        assert data.services["ttl"].uniqueSales == 1
        assert data.unmappedCount == 1
        assert data.rawComplaintsCount == 5
        assert data.summary.totalUniqueSales == 3
        assert data.summary.totalUniqueClients == 1
        assert set(data.services) == {key.value for key in ServiceKey}

    def test_undated_complaint_uses_processing_time(self):
        data = process_complaints([complaint("GCC", "")], now=NOW)
        assert data.services["gcc"].sales[0].firstSaleDate == "2026-06-01T12:00:00.000Z"

    def test_filter_by_date_range(self):
        data = process_complaints([
            complaint("OEC", "2026-01-10"),
            complaint("OEC", "2026-02-10", contract="K2"),
            complaint("OEC", ""),
        ], now=NOW)
        filtered, removed = filter_complaints_by_date_range(data, "2026-02-01", "2026-02-28")
        assert removed == 1
        assert filtered.rawComplaintsCount == 2

        same, removed = filter_complaints_by_date_range(data)
        assert removed == 0
        assert same is data

    def test_service_volumes(self):
        data = process_complaints([
            complaint("OEC", "2026-01-10"),
            complaint("OWWA", "2026-01-20"),
            complaint("OWWA", "2026-03-20", contract="K2"),
        ])
        volumes = get_service_volumes(data, "2026-01-01", "2026-01-31")
        assert volumes["oec"] == 1
        assert volumes["owwa"] == 1
        assert volumes["ttl"] == 0
        assert get_service_volumes(data)["owwa"] == 2
        assert get_service_volumes(None)["oec"] == 0

    @pytest.mark.asyncio
    async def test_upload_append_and_delete_range(self, store):
        await upload_complaints(store, ComplaintsUpload(complaints=[
            {"COMPLAINT_TYPE": "OEC", "CREATION_DATE": "2026-01-10", "CONTRACT_ID": "K1"},
        ]))
        data, received, errors = await upload_complaints(store, ComplaintsUpload(
            csvText="complaintType,creationDate,contractId\nOWWA,2026-02-10,K1\n",
            mode="append",
        ))
        assert received == 1
        assert errors == []
        assert data.rawComplaintsCount == 2

        data, removed = await delete_complaints_range(store, "2026-02-01", None)
        assert removed == 1
        assert (await load_complaints(store)).rawComplaintsCount == 1

    @pytest.mark.asyncio
    async def test_delete_range_without_data(self, store):
        data, removed = await delete_complaints_range(store, "2026-01-01", "2026-01-31")
        assert data is None
        assert removed == 0


# =============================================================================
# P&L
# =============================================================================

class TestPnLConfig:

    @pytest.mark.parametrize(
        "value,expected",
        [(5, 5.0), ("12.5", 12.5), (-1, 9.0), ("abc", 9.0), (True, 9.0), (None, 9.0), (float("nan"), 9.0)],
    )
    def test_validate_number(self, value, expected):
        assert validate_number(value, default=9.0) == expected

    def test_parse_config_falls_back_per_field(self):
        config = parse_config({
            "serviceCosts": {"oec": "70", "owwa": -5, "unknown": 1},
            "serviceFees": {"oec": 30},
            "monthlyFixedCosts": {"laborCost": 1000, "llm": "x"},
        })
        assert config.serviceCosts["oec"] == 70.0
        assert config.serviceCosts["owwa"] == 92.0
        assert "unknown" not in config.serviceCosts
        assert config.serviceFees["oec"] == 30.0
        assert config.monthlyFixedCosts.laborCost == 1000.0
        assert config.monthlyFixedCosts.llm == 3650.0

    def test_parse_config_non_mapping(self):
        assert parse_config("nonsense") == default_config()

    @pytest.mark.asyncio
    async def test_storage_round_trip(self, store):
        assert await load_config(store) == default_config()
        saved = await save_config(store, {"serviceFees": {"ttl": 100}})
        assert (await load_config(store)).serviceFees["ttl"] == 100.0
        assert saved.serviceFees["ttl"] == 100.0
        assert await reset_config(store) == default_config()
        assert await load_config(store) == default_config()


class TestPnLStatement:

    def test_formulas(self):
        config = default_config()
        config.serviceFees["oec"] = 40.0
        statement = build_pnl({"oec": 10}, config, months=2)

        oec = next(s for s in statement.services if s.serviceKey == ServiceKey.OEC)
        assert oec.price == pytest.approx(101.5)
        assert oec.totalRevenue == pytest.approx(1015.0)
        assert oec.totalCost == pytest.approx(615.0)
        assert oec.grossProfit == pytest.approx(400.0)

        fixed = config.monthlyFixedCosts.total() * 2
        assert statement.fixedCosts == pytest.approx(fixed)
        assert statement.grossProfit == pytest.approx(400.0)
        assert statement.netProfit == pytest.approx(400.0 - fixed)
        assert len(statement.services) == len(ServiceKey)

    def test_zero_volume_services(self):
        statement = build_pnl({}, PnLConfig(), months=1)
        assert statement.totalRevenue == 0
        assert all(s.volume == 0 for s in statement.services)

    @pytest.mark.parametrize(
        "start,end,expected",
        [
            ("2026-01-15", "2026-03-01", 3),
            ("2026-01-01", "2026-01-31", 1),
            ("2025-12-20", "2026-01-05", 2),
            (None, "2026-01-05", 1),
            (None, None, 1),
        ],
    )
    def test_months_in_range(self, start, end, expected):
        assert months_in_range(start, end) == expected
