"""
Tests for the HTTP API: zones, records, keys, audit, backups, health and the live views
"""

import json
from datetime import datetime

import pytest
from fastapi.testclient import TestClient

from conftest import TENANT_A, TENANT_B, FakeProvider, FakeRunner, make_settings
from ddi_gateway.main import create_app
from ddi_gateway.services.dns_provider import Available, Unavailable


async def healthy_probe():
    return {"status": "healthy", "message": "ok", "timestamp": datetime.utcnow().isoformat()}


STABLE_PROBES = {"dns_service": healthy_probe, "memory_usage": healthy_probe, "disk_space": healthy_probe}

HEADERS = {"X-Tenant-ID": TENANT_A, "X-User-ID": "admin"}


def build_client(settings, provider):
    app = create_app(
        settings=settings,
        provider=provider,
        command_runner=FakeRunner(),
        monitor_probes=STABLE_PROBES
    )
    return TestClient(app)


@pytest.fixture
def fake_provider():
    return FakeProvider()


@pytest.fixture
def client(settings, fake_provider):
    with build_client(settings, Available(fake_provider)) as test_client:
        yield test_client


@pytest.fixture
def zone(client):
    response = client.post("/api/zones", json={
        "name": "example.com",
        "primary_ns": "ns1.example.com",
        "admin_email": "hostmaster@example.com",
    }, headers=HEADERS)
    assert response.status_code == 201
    return response.json()["zone"]


def test_root(client):
    data = client.get("/").json()
    assert data["status"] == "running"


class TestZones:
    def test_create_and_get(self, client, zone):
        assert zone["name"] == "example.com"
        assert zone["type"] == "master"
        assert zone["serial"] >= int(datetime.utcnow().strftime("%Y%m%d00"))

        response = client.get("/api/zones/example.com", headers=HEADERS)
        assert response.status_code == 200
        assert response.json()["record_count"] == 0

    def test_duplicate_zone_conflicts(self, client, zone):
        response = client.post("/api/zones", json={"name": "Example.COM."}, headers=HEADERS)
        assert response.status_code == 409
        assert response.json()["error_code"] == "CONFLICTEXCEPTION"

    def test_zones_are_tenant_scoped(self, client, zone):
        assert [z["name"] for z in client.get("/api/zones", headers=HEADERS).json()] == ["example.com"]
        assert client.get("/api/zones", headers={"X-Tenant-ID": TENANT_B}).json() == []
        assert client.get("/api/zones/example.com", headers={"X-Tenant-ID": TENANT_B}).status_code == 404

    def test_update_bumps_serial(self, client, zone):
        response = client.put("/api/zones/example.com", json={"minimum_ttl": 600}, headers=HEADERS)
        assert response.status_code == 200
        updated = response.json()["zone"]
        assert updated["minimum_ttl"] == 600
        assert updated["serial"] > zone["serial"]

    def test_invalid_zone_name(self, client):
        response = client.post("/api/zones", json={"name": "bad_zone!.com"}, headers=HEADERS)
        assert response.status_code == 422
        body = response.json()
        assert body["error_code"] == "VALIDATIONEXCEPTION"
        assert body["details"]["errors"]
        assert body["path"] == "/api/zones"
        assert body["method"] == "POST"

    def test_delete(self, client, zone):
        assert client.delete("/api/zones/example.com", headers=HEADERS).json() == {
            "deleted": True, "zone": "example.com"
        }
        assert client.get("/api/zones/example.com", headers=HEADERS).status_code == 404
        assert client.delete("/api/zones/example.com", headers=HEADERS).status_code == 404


class TestRecords:
    def test_create_list_update_delete(self, client, zone, fake_provider):
        response = client.post("/api/zones/example.com/records", json={
            "name": "www", "type": "A", "value": "203.0.113.10"
        }, headers=HEADERS)
        assert response.status_code == 201
        created = response.json()
        assert created["record"]["ttl"] == 300
        assert created["warnings"] == []
        assert created["dns_sync"]["status"] == "synced"
        assert fake_provider.upserts[-1]["zone"] == "example.com"

        records = client.get("/api/zones/example.com/records", params={"type": "A"}, headers=HEADERS).json()
        assert [(r["name"], r["value"]) for r in records] == [("www", "203.0.113.10")]

        response = client.put(
            "/api/zones/example.com/records/www/A", json={"value": "203.0.113.11"}, headers=HEADERS
        )
        assert response.status_code == 200
        assert response.json()["records"][0]["value"] == "203.0.113.11"

        response = client.delete("/api/zones/example.com/records/www/A", headers=HEADERS)
        assert response.json()["deleted"] == 1
        assert fake_provider.deletes[-1] == {"zone": "example.com", "name": "www", "type": "A"}
        assert client.get("/api/zones/example.com/records", headers=HEADERS).json() == []

    def test_validation_error_body(self, client, zone):
        response = client.post("/api/zones/example.com/records", json={
            "name": "www", "type": "A", "value": "999.1.1.1"
        }, headers=HEADERS)

        assert response.status_code == 422
        body = response.json()
        assert body["message"] == "Record validation failed"
        assert "Invalid octet 999 at position 1 (must be 0-255)" in body["details"]["errors"]
        assert "timestamp" in body

    def test_record_in_missing_zone(self, client):
        response = client.post("/api/zones/missing.com/records", json={
            "name": "www", "type": "A", "value": "203.0.113.10"
        }, headers=HEADERS)
        assert response.status_code == 404

    def test_cname_conflict(self, client, zone):
        client.post("/api/zones/example.com/records", json={
            "name": "www", "type": "A", "value": "203.0.113.10"
        }, headers=HEADERS)
        response = client.post("/api/zones/example.com/records", json={
            "name": "www", "type": "CNAME", "value": "web.example.com"
        }, headers=HEADERS)
        assert response.status_code == 409

    def test_bulk_create_and_delete(self, client, zone):
        records = [{"name": f"host{i}", "type": "A", "value": f"203.0.113.{i}"} for i in range(1, 6)]
        response = client.post("/api/zones/example.com/records/bulk", json={"records": records}, headers=HEADERS)
        assert response.status_code == 201
        assert response.json()["created"] == 5

        response = client.post("/api/zones/example.com/records/bulk-delete", json={
            "records": [{"name": "host1", "type": "A"}, {"name": "host2", "type": "A"}]
        }, headers=HEADERS)
        assert response.json()["deleted"] == 2
        assert len(client.get("/api/zones/example.com/records", headers=HEADERS).json()) == 3

    def test_bulk_is_all_or_nothing(self, client, zone):
        records = [
            {"name": "good", "type": "A", "value": "203.0.113.1"},
            {"name": "bad", "type": "A", "value": "not-an-ip"},
        ]
        response = client.post("/api/zones/example.com/records/bulk", json={"records": records}, headers=HEADERS)
        assert response.status_code == 422
        assert client.get("/api/zones/example.com/records", headers=HEADERS).json() == []

    def test_bulk_limit(self, client, zone):
        records = [{"name": f"h{i}", "type": "A", "value": "203.0.113.1"} for i in range(101)]
        response = client.post("/api/zones/example.com/records/bulk", json={"records": records}, headers=HEADERS)
        assert response.status_code == 422
        assert response.json()["details"]["errors"] == ["Received 101 records; the maximum is 100"]

    def test_import_and_export(self, client, zone):
        content = "mail 3600 IN A 203.0.113.25\nftp 3600 IN A 203.0.113.26\n"
        response = client.post("/api/zones/example.com/import", json={"content": content}, headers=HEADERS)
        assert response.status_code == 201
        assert response.json()["imported"] == 2

        response = client.get("/api/zones/example.com/export", headers=HEADERS)
        assert response.status_code == 200
        assert response.headers["content-disposition"] == 'attachment; filename="example.com.zone"'
        assert "203.0.113.25" in response.text

        response = client.get("/api/zones/example.com/export", params={"format": "json"}, headers=HEADERS)
        assert response.headers["content-disposition"] == 'attachment; filename="example.com.json"'
        assert len(json.loads(response.text)["records"]) == 2


def test_tsig_keys(client):
    response = client.post("/api/tsig-keys", json={"name": "ddns-key"}, headers=HEADERS)
    assert response.status_code == 201
    secret = response.json()["secret"]
    assert secret

    listed = client.get("/api/tsig-keys", headers=HEADERS).json()
    assert [k["name"] for k in listed] == ["ddns-key"]
    assert listed[0]["secret"] is None

    key_file = client.get("/api/tsig-keys/key-file", headers=HEADERS).text
    assert secret in key_file

    assert client.post("/api/tsig-keys", json={"name": "ddns-key"}, headers=HEADERS).status_code == 409
    assert client.delete("/api/tsig-keys/ddns-key", headers=HEADERS).json() == {"deleted": True, "name": "ddns-key"}


def test_audit_logs(client, zone):
    client.post("/api/zones/example.com/records", json={
        "name": "www", "type": "A", "value": "203.0.113.10"
    }, headers=HEADERS)

    entries = client.get("/api/audit-logs", headers=HEADERS).json()
    assert [e["operation"] for e in entries] == ["CREATE_RECORD", "CREATE_ZONE"]
    assert entries[0]["user_id"] == "admin"

    filtered = client.get("/api/audit-logs", params={"operation": "CREATE_ZONE"}, headers=HEADERS).json()
    assert len(filtered) == 1
    assert client.get("/api/audit-logs", headers={"X-Tenant-ID": TENANT_B}).json() == []


def test_backups(client, zone):
    client.post("/api/zones/example.com/records", json={
        "name": "www", "type": "A", "value": "203.0.113.10"
    }, headers=HEADERS)

    response = client.post("/api/backups", headers=HEADERS)
    assert response.status_code == 201
    manifest = response.json()
    assert manifest["type"] == "full"
    assert manifest["tenantId"] == TENANT_A

    backups = client.get("/api/backups").json()
    assert [b["id"] for b in backups] == [manifest["id"]]
    assert backups[0]["complete"] is True

    client.delete("/api/zones/example.com", headers=HEADERS)
    restored = client.post(f"/api/backups/{manifest['id']}/restore", headers=HEADERS).json()
    assert restored["restored"] == 1
    assert len(client.get("/api/zones/example.com/records", headers=HEADERS).json()) == 1

    assert client.delete(f"/api/backups/{manifest['id']}").json() == {"deleted": True, "id": manifest["id"]}
    assert client.get(f"/api/backups/{manifest['id']}").status_code == 404


class TestHealth:
    def test_run_checks(self, client):
        assert client.get("/api/health").json()["totalChecks"] == 0

        status = client.post("/api/health/run").json()
        assert status["overall"] == "healthy"
        assert status["totalChecks"] == 5
        assert status["failedChecks"] == 0

        assert client.get("/api/health").json()["totalChecks"] == 5

    def test_metrics(self, client, zone):
        client.post("/api/zones/example.com/records", json={
            "name": "www", "type": "A", "value": "203.0.113.10"
        }, headers=HEADERS)

        metrics = client.get("/api/health/metrics").json()
        assert metrics["errors"] == 0
        assert metrics["errorRate"] == 0.0
        assert "avgResponseTime" in metrics

    def test_rejected_writes_raise_error_rate(self, client, zone):
        for _ in range(5):
            response = client.post("/api/zones/example.com/records", json={
                "name": "www", "type": "A", "value": "999.1.1.1"
            }, headers=HEADERS)
            assert response.status_code == 422
        response = client.post("/api/zones/example.com/records", json={
            "name": "www", "type": "A", "value": "203.0.113.10"
        }, headers=HEADERS)
        assert response.status_code == 201

        metrics = client.get("/api/health/metrics").json()
        assert metrics["errors"] == 5
        assert metrics["queries"] >= 6
        assert metrics["errorRate"] > 25.0

        alert_types = {a["type"] for a in client.get("/api/health/alerts").json()}
        assert {"high_error_rate", "critical_error_rate"} <= alert_types

    def test_alerts(self, client):
        alert = client.app.state.monitor.create_alert("test", "something happened", "warning")

        alerts = client.get("/api/health/alerts").json()
        assert [a["id"] for a in alerts] == [alert.id]

        response = client.post(f"/api/health/alerts/{alert.id}/acknowledge")
        assert response.status_code == 200
        assert response.json()["acknowledged"] is True
        assert client.get("/api/health/alerts").json() == []
        assert len(client.get("/api/health/alerts", params={"include_acknowledged": True}).json()) == 1

        assert client.post("/api/health/alerts/alert-missing/acknowledge").status_code == 404

    def test_websocket_ping(self, client):
        with client.websocket_connect("/api/ws/health") as websocket:
            first = websocket.receive_json()
            assert first["type"] == "health:status"
            assert "overall" in first["data"]

            websocket.send_text("ping")
            assert websocket.receive_text() == "pong"


class TestLiveDNS:
    def test_available_provider(self, client):
        assert client.get("/api/dns/status").json()["running"] is True
        assert client.get("/api/dns/ddns-status").json()["d2_running"] is True
        assert client.get("/api/dns/zones").json() == {"zones": []}

    def test_unavailable_provider(self, settings):
        with build_client(settings, Unavailable("DNS provider disabled")) as client:
            status = client.get("/api/dns/status").json()
            assert status["running"] is False
            assert status["setup_required"] is True

            zones = client.get("/api/dns/zones").json()
            assert zones["setup_required"] is True
            assert zones["message"] == "DNS provider disabled"

            records = client.get("/api/dns/zones/example.com/records").json()
            assert records["zone"] == "example.com"

            client.post("/api/zones", json={"name": "example.com"}, headers=HEADERS)
            created = client.post("/api/zones/example.com/records", json={
                "name": "www", "type": "A", "value": "203.0.113.10"
            }, headers=HEADERS).json()
            assert created["dns_sync"] == {"status": "skipped", "message": "DNS provider disabled"}


def test_dhcp_command_with_unreachable_agent(tmp_path):
    settings = make_settings(tmp_path, KEA_CA_URL="http://127.0.0.1:1/")
    with build_client(settings, Unavailable("DNS provider disabled")) as client:
        response = client.post("/api/dhcp/command", json={"command": "lease4-get-all"})

    assert response.status_code == 503
    assert response.json()["error_code"] == "UPSTREAMUNAVAILABLEEXCEPTION"
