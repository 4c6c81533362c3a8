"""
tests/test_api.py

HTTP surface: uploads, scope lookups, session lifecycle, counts, metrics,
audit listing and export, error mapping.
"""

from __future__ import annotations

import csv
import io

import pytest
from fastapi.testclient import TestClient

from cyclecount.core.config import settings
from cyclecount.main import create_app

CSV_UPLOAD = (
    "Location,Bin,PalletID,ItemNumber,SystemQuantity\n"
    "Area-A,A-1,PAL-001,SKU-1001,50\n"
    "Area-A,A-1,PAL-002,SKU-1002,75\n"
    "Area-A,A-2,PAL-003,SKU-1003,20\n"
    "Area-A,A-1,PAL-001,SKU-1001,50\n"
    "Area-B,B-1,PAL-004,SKU-2001,120\n"
).encode("utf-8")


@pytest.fixture()
def client(pipeline):
    with TestClient(create_app(pipeline)) as test_client:
        yield test_client


@pytest.fixture()
def uploaded(client):
    response = client.post("/v1/imports", files={"file": ("inventory.csv", CSV_UPLOAD, "text/csv")})
    assert response.status_code == 200
    return response.json()


@pytest.fixture()
def session_id(client, uploaded) -> str:
    response = client.post(
        "/v1/sessions/",
        json={"location": "Area-A", "bins": ["A-1"], "user_id": "op-1"},
    )
    assert response.status_code == 201
    return response.json()["session_id"]


class TestHealth:
    def test_health(self, client) -> None:
        assert client.get("/health").json()["status"] == "healthy"

    def test_api_root(self, client) -> None:
        assert "sessions" in client.get("/v1/").json()["endpoints"]


class TestImports:
    def test_upload_csv(self, uploaded) -> None:
        assert uploaded["record_count"] == 4
        assert uploaded["duplicate_count"] == 1
        assert uploaded["rejected"][0]["row_number"] == 5
        assert uploaded["file_name"] == "inventory.csv"

    def test_unsupported_upload(self, client) -> None:
        response = client.post("/v1/imports", files={"file": ("inventory.pdf", b"%PDF", "application/pdf")})

        assert response.status_code == 400
        assert response.json()["code"] == "IMPORT_FAILED"

    def test_locations_and_bins(self, client, uploaded) -> None:
        assert client.get("/v1/inventory/locations").json() == ["Area-A", "Area-B"]

        bins = client.get("/v1/inventory/locations/Area-A/bins").json()
        assert bins == {"location": "Area-A", "bins": ["A-1", "A-2"], "pallet_count": 3}

    def test_bin_prefix(self, client, uploaded) -> None:
        bins = client.get("/v1/inventory/locations/Area-A/bins", params={"prefix": "A-2"}).json()
        assert bins["bins"] == ["A-2"]
        assert bins["pallet_count"] == 1

    def test_pallets_in_bins(self, client, uploaded) -> None:
        pallets = client.get("/v1/inventory/locations/Area-A/pallets", params={"bins": ["A-1"]}).json()
        assert sorted(p["pallet_id"] for p in pallets) == ["PAL-001", "PAL-002"]


class TestSessions:
    def test_open_session(self, client, session_id) -> None:
        session = client.get(f"/v1/sessions/{session_id}").json()

        assert session["status"] == "in-progress"
        assert session["total_pallets"] == 2
        assert session["bins"] == ["A-1"]

    def test_open_session_without_bins(self, client, uploaded) -> None:
        response = client.post("/v1/sessions/", json={"location": "Area-A", "bins": [], "user_id": "op-1"})

        assert response.status_code == 422
        assert response.json()["code"] == "INVALID_SCOPE"

    def test_unknown_session(self, client) -> None:
        response = client.get("/v1/sessions/SES-0")

        assert response.status_code == 404
        assert response.json()["code"] == "SESSION_NOT_FOUND"

    def test_list_sessions(self, client, session_id) -> None:
        listed = client.get("/v1/sessions/", params={"session_status": "in-progress"}).json()
        assert [s["session_id"] for s in listed] == [session_id]

    def test_record_count(self, client, session_id) -> None:
        response = client.post(
            f"/v1/sessions/{session_id}/counts",
            json={"pallet_id": "PAL-002", "counted_quantity": 70, "user_id": "op-1"},
        )

        assert response.status_code == 201
        action = response.json()
        assert action["variance"] == -5
        assert action["bin"] == "A-1"
        assert client.get(f"/v1/sessions/{session_id}").json()["variance_count"] == 1

    def test_count_out_of_scope(self, client, session_id) -> None:
        response = client.post(
            f"/v1/sessions/{session_id}/counts",
            json={"pallet_id": "PAL-003", "counted_quantity": 20, "user_id": "op-1"},
        )

        assert response.status_code == 404
        assert response.json()["code"] == "RECORD_NOT_FOUND"

    def test_negative_count(self, client, session_id) -> None:
        response = client.post(
            f"/v1/sessions/{session_id}/counts",
            json={"pallet_id": "PAL-001", "counted_quantity": -1, "user_id": "op-1"},
        )

        assert response.status_code == 422
        assert response.json()["code"] == "INVALID_QUANTITY"

    def test_recount_and_actions(self, client, session_id) -> None:
        for quantity in (40, 50):
            client.post(
                f"/v1/sessions/{session_id}/counts",
                json={"pallet_id": "PAL-001", "counted_quantity": quantity, "user_id": "op-1"},
            )

        effective = client.get(f"/v1/sessions/{session_id}/actions").json()
        history = client.get(f"/v1/sessions/{session_id}/actions", params={"include_superseded": True}).json()

        assert [a["counted_quantity"] for a in effective] == [50]
        assert [a["counted_quantity"] for a in history] == [40, 50]
        assert history[1]["supersedes"] == history[0]["action_id"]

    def test_lifecycle(self, client, session_id) -> None:
        assert client.post(f"/v1/sessions/{session_id}/complete").json()["status"] == "completed"

        closed = client.post(
            f"/v1/sessions/{session_id}/counts",
            json={"pallet_id": "PAL-001", "counted_quantity": 50, "user_id": "op-1"},
        )
        assert closed.status_code == 409
        assert closed.json()["code"] == "SESSION_CLOSED"

        assert client.post(f"/v1/sessions/{session_id}/submit").json()["status"] == "submitted"

        again = client.post(f"/v1/sessions/{session_id}/complete")
        assert again.status_code == 409
        assert again.json()["code"] == "INVALID_TRANSITION"

    def test_metrics(self, client, session_id) -> None:
        for pallet_id, quantity in (("PAL-001", 50), ("PAL-002", 80)):
            client.post(
                f"/v1/sessions/{session_id}/counts",
                json={"pallet_id": pallet_id, "counted_quantity": quantity, "user_id": "op-1"},
            )

        report = client.get(f"/v1/sessions/{session_id}/metrics").json()

        assert report["metrics"]["completion_percentage"] == "100.00"
        assert report["metrics"]["counted_pallets"] == 2
        assert report["variance"]["accuracy_percentage"] == "50.00"
        assert report["variance"]["positive_count"] == 1
        assert report["variance"]["total_variance"] == 5


class TestAudit:
    def test_recent_entries(self, client, session_id) -> None:
        entries = client.get("/v1/audit/", params={"limit": 2}).json()

        assert [e["action"] for e in entries] == ["Session started", "Inventory imported"]

    def test_entries_for_session(self, client, session_id) -> None:
        entries = client.get("/v1/audit/", params={"session_id": session_id}).json()
        assert [e["action"] for e in entries] == ["Session started"]

    def test_export_csv(self, client, session_id) -> None:
        response = client.get("/v1/audit/export", params={"format": "csv"})

        assert response.status_code == 200
        assert response.headers["content-type"].startswith("text/csv")
        assert "audit_log.csv" in response.headers["content-disposition"]
        rows = list(csv.DictReader(io.StringIO(response.text)))
        assert [r["action"] for r in rows] == ["Inventory imported", "Session started"]

    def test_export_rejects_unknown_format(self, client) -> None:
        assert client.get("/v1/audit/export", params={"format": "xml"}).status_code == 422

    def test_save_export(self, client, session_id, tmp_path, monkeypatch) -> None:
        monkeypatch.setattr(settings, "EXPORT_DIR", str(tmp_path))

        saved = client.post("/v1/audit/export", params={"format": "jsonl"}).json()

        assert saved["entries"] == 2
        assert saved["path"].startswith(str(tmp_path))
        with open(saved["path"], encoding="utf-8") as handle:
            assert len(handle.read().splitlines()) == 2
