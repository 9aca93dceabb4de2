"""
Test Module for the HTTP API.

Runs the FastAPI application through TestClient with the store, settings,
classifier and lock manager overridden by the fixtures in conftest.py.

Covers:
- Ingestion authentication (missing key configuration, bad and good tokens)
- Ingest -> process -> read flow for one date
- 409 for a date whose processing lock is held, 404 for unknown dates,
  400 for malformed dates
- Admin operations on a date
- OEC sales, complaints and P&L endpoints
- Payment uploads and the conversions view
"""

import asyncio

import pytest

pytestmark = pytest.mark.api

DATE = "2026-02-10"
AUTH = {"Authorization": "Bearer test-ingest-key"}


def ingest_payload(make_conversation) -> dict:
    return {
        "date": DATE,
        "fileName": "chats.csv",
        "conversations": [
            make_conversation("c1", clientId="C1", contractId="K1", contractType="CC"),
            make_conversation("c2", clientId="C1", chatStartDateTime="2026-02-10T10:00:00Z"),
            make_conversation("c3", maidId="M1", contractId="K1"),
            make_conversation("c4", messages=""),
        ],
    }


# =============================================================================
# SERVICE
# =============================================================================

class TestService:

    def test_health(self, client):
        response = client.get("/health")
        assert response.status_code == 200
        assert response.json() == {"status": "healthy"}

    def test_root(self, client):
        assert client.get("/").json()["name"] == "Prospect Dashboard API"


# =============================================================================
# INGESTION
# =============================================================================

class TestIngestAuth:
    """Tests for the bearer token of POST /ingest/daily."""

    def test_missing_header(self, client, make_conversation):
        response = client.post("/ingest/daily", json=ingest_payload(make_conversation))
        assert response.status_code == 401

    def test_wrong_token(self, client, make_conversation):
        response = client.post(
            "/ingest/daily",
            json=ingest_payload(make_conversation),
            headers={"Authorization": "Bearer nope"},
        )
        assert response.status_code == 401

    def test_bare_token_accepted(self, client, make_conversation):
        response = client.post(
            "/ingest/daily",
            json=ingest_payload(make_conversation),
            headers={"Authorization": "test-ingest-key"},
        )
        assert response.status_code == 200

    def test_unconfigured_key(self, client, test_settings, make_conversation):
        test_settings.ingest_api_key = None
        response = client.post("/ingest/daily", json=ingest_payload(make_conversation), headers=AUTH)
        assert response.status_code == 500, (
            "Ingestion must be refused while no key is configured"
        )

    def test_empty_conversations(self, client):
        response = client.post("/ingest/daily", json={"date": DATE, "conversations": []}, headers=AUTH)
        assert response.status_code == 400

    def test_invalid_date(self, client, make_conversation):
        payload = ingest_payload(make_conversation)
        payload["date"] = "10/02/2026"
        response = client.post("/ingest/daily", json=payload, headers=AUTH)
        assert response.status_code == 422

    def test_describe(self, client):
        assert client.get("/ingest/daily").json()["requiredFields"] == ["date", "conversations"]


# =============================================================================
# DAILY FLOW
# =============================================================================

class TestDailyFlow:
    """Ingest, process and read one date end to end."""

    def test_ingest_process_read(self, client, fake_classifier, make_conversation):
        from prospect_dashboard.models import ClassificationResult

        response = client.post("/ingest/daily", json=ingest_payload(make_conversation), headers=AUTH)
        assert response.status_code == 200
        body = response.json()
        assert body["imported"] == 2
        assert body["skipped"] == 1
        assert body["totalConversations"] == 2
        assert "batch" not in body

        fake_classifier.results["client:C1"] = ClassificationResult(isOECProspect=True, oecConverted=True)
        fake_classifier.results["maid:M1"] = ClassificationResult(isOECProspect=True)

        response = client.post("/process/date", json={"date": DATE})
        assert response.status_code == 200
        assert response.json()["isComplete"] is True

        results = client.get(f"/dates/{DATE}").json()
        assert results["totalProcessed"] == 2
        assert results["prospects"]["oec"] == 1, (
            "Client and maid of contract K1 are one household"
        )
        assert results["conversions"]["oec"] == 1
        assert results["byContractType"]["CC"]["oec"] == 1
        assert results["fileName"] == "chats.csv"

        dates = client.get("/dates").json()["dates"]
        assert [item["date"] for item in dates] == [DATE]

        prospects = client.get(f"/dates/{DATE}/prospects").json()["prospects"]
        assert {p["id"] for p in prospects} == {"client:C1", "maid:M1"}

        households = client.get(f"/dates/{DATE}/households").json()["households"]
        assert len(households) == 1
        assert households[0]["householdId"] == "K1"

    def test_process_busy_date(self, client, lock_manager, make_conversation):
        client.post("/ingest/daily", json=ingest_payload(make_conversation), headers=AUTH)
        asyncio.run(lock_manager.acquire(DATE, holder="other-worker"))

        response = client.post("/process/date", json={"date": DATE})
        assert response.status_code == 409
        assert response.json()["detail"]["holder"] == "other-worker"

    def test_process_unknown_date(self, client):
        assert client.post("/process/date", json={"date": DATE}).status_code == 404

    def test_process_invalid_batch_size(self, client):
        assert client.post("/process/date", json={"date": DATE, "batchSize": 0}).status_code == 422

    def test_unknown_date_reads(self, client):
        results = client.get(f"/dates/{DATE}")
        assert results.status_code == 200
        assert results.json()["totalConversations"] == 0
        assert client.get(f"/dates/{DATE}/prospects").status_code == 404
        assert client.get(f"/dates/{DATE}/households").status_code == 404

    def test_malformed_date(self, client):
        assert client.get("/dates/2026-13-01").status_code == 400
        assert client.post("/dates/yesterday/reset").status_code == 400


class TestDateAdmin:

    def test_admin_operations(self, client, make_conversation):
        client.post("/ingest/daily", json=ingest_payload(make_conversation), headers=AUTH)
        client.post("/process/date", json={"date": DATE})

        response = client.post(f"/dates/{DATE}/reset")
        assert response.status_code == 200
        assert client.get(f"/dates/{DATE}").json()["totalProcessed"] == 0

        response = client.post(f"/dates/{DATE}/stop")
        assert response.status_code == 200
        assert response.json()["processedCount"] == 0

        report = client.post(f"/dates/{DATE}/deduplicate").json()
        assert report["before"] == report["after"] == 2

        assert client.delete(f"/dates/{DATE}").status_code == 200
        assert client.delete(f"/dates/{DATE}").status_code == 404
        assert client.post(f"/dates/{DATE}/reset").status_code == 404


# =============================================================================
# SALES AND P&L
# =============================================================================

class TestOverseasSalesApi:

    def test_upload_and_range(self, client):
        response = client.post("/overseas-sales", json={"todos": [
            {"id": "T1", "contractId": "K1", "createdAt": "2026-01-10"},
            {"id": "T2", "contractId": "K1", "createdAt": "2026-02-10"},
            {"id": "T3", "contractId": "K2", "createdAt": "2026-03-05"},
        ]})
        assert response.status_code == 200
        assert response.json()["totalDedupedSales"] == 2

        data = client.get("/overseas-sales").json()
        assert "rawTodos" not in data
        assert data["salesByMonth"] == {"2026-01": 1, "2026-03": 1}

        in_range = client.get("/overseas-sales/range", params={"startDate": "2026-01-01", "endDate": "2026-02-28"})
        assert in_range.json()["sales"] == 1

        assert client.delete("/overseas-sales").json()["deleted"] is True
        assert client.get("/overseas-sales").json()["totalDedupedSales"] == 0

    def test_upload_without_rows(self, client):
        assert client.post("/overseas-sales", json={}).status_code == 400

    def test_range_requires_valid_dates(self, client):
        response = client.get("/overseas-sales/range", params={"startDate": "2026-1-1", "endDate": "2026-02-28"})
        assert response.status_code == 400


class TestComplaintsAndPnLApi:

    def test_complaints_and_statement(self, client):
        response = client.post("/pnl-complaints", json={"complaints": [
            {"complaintType": "Overseas Employment Certificate", "creationDate": "2026-01-10", "contractId": "K1"},
            {"complaintType": "Travel to Lebanon", "creationDate": "2026-01-12", "contractId": "K2"},
            {"complaintType": "Carpet cleaning", "creationDate": "2026-01-12", "contractId": "K3"},
        ]})
        assert response.status_code == 200
        body = response.json()
        assert body["received"] == 3
        assert body["unmappedCount"] == 1
        assert body["summary"]["totalUniqueSales"] == 2

        stored = client.get("/pnl-complaints").json()["data"]
        assert "rawComplaints" not in stored

        volumes = client.get("/pnl-complaints/volumes", params={"startDate": "2026-01-01", "endDate": "2026-01-31"})
        assert volumes.json()["volumes"]["ttl"] == 1

        client.put("/pnl/config", json={"serviceFees": {"ttl": 50}})
        statement = client.get("/pnl", params={"startDate": "2026-01-01", "endDate": "2026-01-31"}).json()
        ttl = next(s for s in statement["services"] if s["serviceKey"] == "ttl")
        assert ttl["volume"] == 1
        assert ttl["grossProfit"] == 50.0
        assert statement["months"] == 1

        removed = client.delete("/pnl-complaints/range", params={"startDate": "2026-01-11"})
        assert removed.json()["removed"] == 2

    def test_delete_range_needs_bounds(self, client):
        assert client.delete("/pnl-complaints/range").status_code == 400

    def test_delete_range_without_data(self, client):
        assert client.delete("/pnl-complaints/range", params={"endDate": "2026-01-31"}).status_code == 404

    def test_pnl_config_endpoints(self, client):
        default = client.get("/pnl/config").json()
        assert default["serviceCosts"]["oec"] == 61.5

        saved = client.put("/pnl/config", json={"serviceCosts": {"oec": -3, "owwa": "100"}}).json()
        assert saved["serviceCosts"]["oec"] == 61.5
        assert saved["serviceCosts"]["owwa"] == 100.0

        assert client.delete("/pnl/config").json() == default

    def test_empty_complaints(self, client):
        assert client.get("/pnl-complaints").json() == {"data": None}


class TestPaymentsApi:

    def test_upload_requires_token(self, client):
        response = client.post("/ingest/payments", json={"payments": [{"CONTRACT_ID": "K1"}]})
        assert response.status_code == 401

    def test_upload_and_summary(self, client):
        assert client.get("/ingest/payments").json()["totalPayments"] == 0

        response = client.post("/ingest/payments", headers=AUTH, json={"payments": [
            {"PAYMENT_TYPE": "OEC", "CONTRACT_ID": "K1", "STATUS": "RECEIVED", "DATE_OF_PAYMENT": DATE},
            {"PAYMENT_TYPE": "OEC", "CONTRACT_ID": "K1", "STATUS": "RECEIVED", "DATE_OF_PAYMENT": DATE},
            {"PAYMENT_TYPE": "OWWA", "CONTRACT_ID": "K2", "STATUS": "PRE_PDP", "DATE_OF_PAYMENT": DATE},
        ]})
        assert response.status_code == 200
        body = response.json()
        assert body["data"]["totalPayments"] == 2
        assert body["data"]["skippedRows"] == 1
        assert body["data"]["breakdown"]["oec"] == 1

        summary = client.get("/ingest/payments").json()
        assert summary["receivedPayments"] == 1
        assert summary["uploadDate"] is not None

    def test_empty_upload(self, client):
        response = client.post("/ingest/payments", headers=AUTH, json={"payments": []})
        assert response.status_code == 400

    def test_conversions_for_processed_date(self, client, fake_classifier, make_conversation):
        from prospect_dashboard.models import ClassificationResult

        client.post("/ingest/daily", json=ingest_payload(make_conversation), headers=AUTH)
        fake_classifier.results["client:C1"] = ClassificationResult(isOECProspect=True)
        client.post("/process/date", json={"date": DATE})

        no_payments = client.get(f"/conversions/{DATE}").json()
        assert no_payments["message"] == "No payment data available"

        client.post("/ingest/payments", headers=AUTH, json={"payments": [
            {"PAYMENT_TYPE": "Overseas Employment Certificate", "CONTRACT_ID": "K1",
             "STATUS": "RECEIVED", "DATE_OF_PAYMENT": DATE},
        ]})
        body = client.get(f"/conversions/{DATE}", params={"includeComplaints": "true"}).json()
        assert body["totalConversions"] == 1
        assert body["conversions"][0]["contractId"] == "K1"
        assert body["byService"]["oec"] == 1
        assert body["complaintsAnalysis"]["cleanConversionStats"]["oec"]["cleanConversions"] == 1

    def test_conversions_errors(self, client):
        assert client.get(f"/conversions/{DATE}").status_code == 404
        assert client.get("/conversions/10-02-2026").status_code == 400
