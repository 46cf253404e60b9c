"""
Tests for health probes, metrics and alert thresholds
"""

import asyncio
from datetime import datetime, timedelta
from types import SimpleNamespace

import psutil
import pytest

from conftest import make_settings
from ddi_gateway.core.exceptions import ProbeFailure
from ddi_gateway.services.monitoring_service import MAX_ALERTS, DNSMonitor


async def healthy_probe():
    return {"status": "healthy", "message": "ok", "timestamp": datetime.utcnow().isoformat()}


async def failing_probe():
    raise ProbeFailure("DNS service check failed: connection refused")


# Host-dependent probes replaced so results do not depend on the machine
STABLE_PROBES = {"dns_service": healthy_probe, "memory_usage": healthy_probe, "disk_space": healthy_probe}


@pytest.fixture
def monitor(settings, store, database, events):
    return DNSMonitor(
        settings, store=store, database=database, events=events,
        probes=STABLE_PROBES
    )


def test_error_rate_just_over_ten_percent_gives_one_warning(settings):
    monitor = DNSMonitor(settings)
    monitor.metrics.queries = 100
    monitor.metrics.errors = 11

    alerts = monitor.check_error_threshold()

    assert [(a.type, a.severity) for a in alerts] == [("high_error_rate", "warning")]
    assert monitor.alerts[0].message == "Error rate is 11.0%"


def test_error_rate_over_twenty_five_percent_adds_critical(settings):
    monitor = DNSMonitor(settings)
    monitor.metrics.queries = 100
    monitor.metrics.errors = 26

    alerts = monitor.check_error_threshold()

    assert [a.severity for a in alerts] == ["warning", "critical"]
    assert monitor.get_alerts()[0].type == "critical_error_rate"


def test_error_rate_without_queries_is_zero(settings):
    monitor = DNSMonitor(settings)
    assert monitor.metrics.error_rate == 0.0
    assert monitor.check_error_threshold() == []


def test_record_query_updates_metrics(settings):
    monitor = DNSMonitor(settings)
    monitor.record_query(response_time=10.0)
    monitor.record_query(response_time=20.0)
    monitor.record_query(error=True)

    metrics = monitor.get_metrics()
    assert metrics["queries"] == 3
    assert metrics["errors"] == 1
    assert metrics["avgResponseTime"] == 15.0
    assert metrics["errorRate"] == pytest.approx(33.333, rel=1e-3)
    # One error in three queries is above both thresholds
    assert {a.type for a in monitor.get_alerts()} == {"high_error_rate", "critical_error_rate"}


def test_record_operation_failure_counts_as_error(settings):
    monitor = DNSMonitor(settings)
    monitor.record_operation("record_created", True)
    monitor.record_operation("record_created", False)
    assert monitor.metrics.errors == 1
    assert monitor.metrics.queries == 2
    assert monitor.get_metrics()["errorRate"] == 50.0


def test_alerts_are_bounded_newest_first(settings):
    monitor = DNSMonitor(settings)
    for i in range(MAX_ALERTS + 5):
        monitor.create_alert("test", f"alert {i}")

    alerts = monitor.get_alerts()
    assert len(alerts) == MAX_ALERTS
    assert alerts[0].message == f"alert {MAX_ALERTS + 4}"


def test_acknowledge_alert(settings):
    monitor = DNSMonitor(settings)
    alert = monitor.create_alert("test", "something happened", "warning")

    assert monitor.acknowledge_alert(alert.id) is alert
    assert alert.acknowledged_at is not None
    assert monitor.get_alerts() == []
    assert monitor.get_alerts(include_acknowledged=True) == [alert]
    assert monitor.acknowledge_alert("alert-missing") is None


def test_clear_old_alerts(settings):
    monitor = DNSMonitor(settings)
    stale = monitor.create_alert("test", "stale")
    stale.timestamp = datetime.utcnow() - timedelta(hours=25)
    monitor.create_alert("test", "fresh")

    assert monitor.clear_old_alerts() == 1
    assert [a.message for a in monitor.get_alerts()] == ["fresh"]


async def test_run_health_checks_all_healthy(monitor, store):
    await store.create_zone(monitor.settings.DEFAULT_TENANT_ID, {"name": "example.com"})

    status = await monitor.run_health_checks()

    assert status["overall"] == "healthy"
    assert status["totalChecks"] == 5
    assert status["failedChecks"] == 0
    assert status["checks"]["zone_health"]["zones"] == 1
    assert monitor.get_metrics()["zones"] == 1


async def test_failing_probe_marks_overall_unhealthy(settings, store, database, events):
    monitor = DNSMonitor(
        settings, store=store, database=database, events=events,
        probes={**STABLE_PROBES, "dns_service": failing_probe}
    )

    status = await monitor.run_health_checks()

    assert status["overall"] == "unhealthy"
    assert status["failedChecks"] == 1
    assert status["checks"]["dns_service"]["status"] == "failed"
    assert "connection refused" in status["checks"]["dns_service"]["message"]
    # The other probes still ran
    assert status["checks"]["database"]["status"] == "healthy"


async def test_missing_database_fails_only_that_check(settings):
    monitor = DNSMonitor(settings, probes={**STABLE_PROBES, "zone_health": healthy_probe})

    status = await monitor.run_health_checks()

    assert status["checks"]["database"]["status"] == "failed"
    assert status["failedChecks"] == 1


async def test_memory_probe_threshold(tmp_path):
    monitor = DNSMonitor(make_settings(tmp_path, MEMORY_ALERT_PERCENT=0.0))
    with pytest.raises(ProbeFailure):
        await monitor.check_memory_usage()

    relaxed = DNSMonitor(make_settings(tmp_path, MEMORY_ALERT_PERCENT=100.0))
    assert (await relaxed.check_memory_usage())["status"] == "healthy"


async def test_disk_probe_uses_nearest_existing_directory(tmp_path):
    monitor = DNSMonitor(make_settings(tmp_path, BACKUP_DIR=str(tmp_path / "not" / "yet" / "there")))
    result = await monitor.check_disk_space()
    assert result["path"] == str(tmp_path)
    assert result["status"] == "healthy"
    assert "lowSpace" in result


async def test_low_disk_space_is_reported_not_failed(tmp_path, monkeypatch):
    full_disk = SimpleNamespace(total=100 * 1024 ** 3, used=99 * 1024 ** 3, free=1024 ** 3, percent=99.0)
    monkeypatch.setattr(psutil, "disk_usage", lambda path: full_disk)

    result = await DNSMonitor(make_settings(tmp_path)).check_disk_space()
    assert result["status"] == "healthy"
    assert result["lowSpace"] is True
    assert result["message"] == "Low disk space: 1.0% free"


async def test_health_checked_event(monitor, events):
    received = []
    events.subscribe("health:checked", lambda event, payload: received.append(payload["overall"]))

    await monitor.run_health_checks()
    await events.drain()

    assert received == ["healthy"]


async def test_start_runs_checks_and_stop_cancels(monitor):
    await monitor.start(interval=3600)
    assert monitor.running
    for _ in range(100):
        if monitor.health_checks:
            break
        await asyncio.sleep(0.01)
    assert monitor.get_health_status()["totalChecks"] == 5

    await monitor.stop()
    assert not monitor.running
    assert monitor._check_task is None
