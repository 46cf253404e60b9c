"""
DNS monitoring and alerting: periodic health probes, metrics and an in-memory alert feed
"""

import asyncio
import time
import uuid
from collections import deque
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any, Awaitable, Callable, Deque, Dict, List, Optional

import dns.asyncquery
import dns.exception
import dns.message
import psutil
from sqlalchemy.exc import SQLAlchemyError

from ..core.config import Settings
from ..core.database import Database
from ..core.exceptions import ProbeFailure
from ..core.logging_config import get_monitoring_logger
from .dns_store import DNSStore
from .event_bus import EventBus

Probe = Callable[[], Awaitable[Dict[str, Any]]]

HEALTHY = "healthy"
FAILED = "failed"

RESPONSE_TIME_WINDOW = 1000
MAX_ALERTS = 100
WARNING_ERROR_RATE = 10.0
CRITICAL_ERROR_RATE = 25.0
DISK_FREE_MIN_PERCENT = 5.0


def _now_iso() -> str:
    return datetime.utcnow().isoformat()


@dataclass
class MonitorMetrics:
    """Counters owned by one monitor instance"""
    queries: int = 0
    errors: int = 0
    zones: int = 0
    records: int = 0
    response_times: Deque[float] = field(default_factory=lambda: deque(maxlen=RESPONSE_TIME_WINDOW))
    started_at: float = field(default_factory=time.monotonic)

    @property
    def error_rate(self) -> float:
        return (self.errors / self.queries) * 100 if self.queries > 0 else 0.0


@dataclass
class Alert:
    type: str
    message: str
    severity: str = "info"
    id: str = field(default_factory=lambda: f"alert-{int(time.time() * 1000)}-{uuid.uuid4().hex[:9]}")
    timestamp: datetime = field(default_factory=datetime.utcnow)
    acknowledged: bool = False
    acknowledged_at: Optional[datetime] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "type": self.type,
            "message": self.message,
            "severity": self.severity,
            "timestamp": self.timestamp.isoformat(),
            "acknowledged": self.acknowledged,
            "acknowledgedAt": self.acknowledged_at.isoformat() if self.acknowledged_at else None,
        }


class DNSMonitor:
    """Health checks, metrics and alerting for the DNS stack.

    Probes run concurrently; a probe that raises is recorded as a failed
    check without affecting the others. Results are kept per check name,
    latest wins.
    """

    def __init__(
        self,
        settings: Settings,
        store: Optional[DNSStore] = None,
        database: Optional[Database] = None,
        events: Optional[EventBus] = None,
        probes: Optional[Dict[str, Probe]] = None
    ):
        self.settings = settings
        self.store = store
        self.database = database
        self.events = events or EventBus()
        self.metrics = MonitorMetrics()
        self.alerts: Deque[Alert] = deque(maxlen=MAX_ALERTS)
        self.health_checks: Dict[str, Dict[str, Any]] = {}
        self.running = False
        self._check_task: Optional[asyncio.Task] = None
        self._logger = get_monitoring_logger()

        self.probes: Dict[str, Probe] = {
            "dns_service": self.check_dns_service,
            "database": self.check_database,
            "disk_space": self.check_disk_space,
            "memory_usage": self.check_memory_usage,
            "zone_health": self.check_zone_health,
        }
        if probes:
            self.probes.update(probes)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def start(self, interval: Optional[float] = None) -> None:
        """Start the health-check loop; the first run happens immediately"""
        if self.running:
            self._logger.warning("DNS monitor is already running")
            return

        self.running = True
        check_interval = interval if interval is not None else self.settings.HEALTH_CHECK_INTERVAL
        self._check_task = asyncio.create_task(self._monitor_loop(check_interval))
        self._logger.info(f"DNS monitor started with {check_interval}s interval")
        self.events.emit("monitor:started", {"interval": check_interval})

    async def stop(self) -> None:
        if not self.running:
            return

        self.running = False
        if self._check_task and not self._check_task.done():
            self._check_task.cancel()
            try:
                await self._check_task
            except asyncio.CancelledError:
                pass
        self._check_task = None

        self._logger.info("DNS monitor stopped")
        self.events.emit("monitor:stopped", {})

    async def _monitor_loop(self, interval: float) -> None:
        while self.running:
            try:
                await self.run_health_checks()
                self.clear_old_alerts()
            except asyncio.CancelledError:
                raise
            except Exception as e:
                self._logger.error(f"Error in health check loop: {e}")
            await asyncio.sleep(interval)

    # ------------------------------------------------------------------
    # Metrics
    # ------------------------------------------------------------------

    def record_query(self, response_time: Optional[float] = None, error: bool = False) -> None:
        self.metrics.queries += 1
        if response_time is not None:
            self.metrics.response_times.append(response_time)
        if error:
            self.metrics.errors += 1
            self.check_error_threshold()

        self.events.emit("query:recorded", {"response_time": response_time, "error": error})

    def record_operation(self, operation: str, success: bool, duration: Optional[float] = None) -> None:
        self.metrics.queries += 1
        if not success:
            self.metrics.errors += 1
            self.check_error_threshold()

        self.events.emit("operation:recorded", {
            "operation": operation,
            "success": success,
            "duration": duration,
            "timestamp": _now_iso(),
        })

    def get_metrics(self) -> Dict[str, Any]:
        samples = self.metrics.response_times
        avg_response_time = sum(samples) / len(samples) if samples else 0
        return {
            "queries": self.metrics.queries,
            "errors": self.metrics.errors,
            "zones": self.metrics.zones,
            "records": self.metrics.records,
            "avgResponseTime": round(avg_response_time, 2),
            "errorRate": self.metrics.error_rate,
            "uptime": time.monotonic() - self.metrics.started_at,
            "timestamp": _now_iso(),
        }

    # ------------------------------------------------------------------
    # Health checks
    # ------------------------------------------------------------------

    async def run_health_checks(self) -> Dict[str, Any]:
        names = list(self.probes)
        results = await asyncio.gather(*(self.probes[name]() for name in names), return_exceptions=True)

        for name, result in zip(names, results):
            if isinstance(result, BaseException):
                if isinstance(result, asyncio.CancelledError):
                    raise result
                self._logger.warning(f"Health check {name} failed: {result}")
                self.health_checks[name] = {
                    "status": FAILED,
                    "message": str(result),
                    "timestamp": _now_iso(),
                }
            else:
                self.health_checks[name] = result

        status = self.get_health_status()
        self.events.emit("health:checked", status)
        return status

    def get_health_status(self) -> Dict[str, Any]:
        failed = [name for name, check in self.health_checks.items() if check.get("status") != HEALTHY]
        return {
            "overall": HEALTHY if not failed else "unhealthy",
            "checks": dict(self.health_checks),
            "failedChecks": len(failed),
            "totalChecks": len(self.health_checks),
            "timestamp": _now_iso(),
        }

    async def check_dns_service(self) -> Dict[str, Any]:
        """Ask the nameserver for the probe name; any answer, NXDOMAIN included, counts as up"""
        start = time.monotonic()
        query = dns.message.make_query(self.settings.DNS_PROBE_NAME, "SOA")
        try:
            await dns.asyncquery.udp(
                query, self.settings.DNS_SERVER, port=self.settings.DNS_PORT,
                timeout=self.settings.DNS_QUERY_TIMEOUT
            )
        except (dns.exception.DNSException, OSError) as e:
            raise ProbeFailure(f"DNS service check failed: {e}") from e

        response_time = round((time.monotonic() - start) * 1000, 2)
        self.metrics.response_times.append(response_time)
        return {
            "status": HEALTHY,
            "responseTime": response_time,
            "message": "DNS service is responding",
            "timestamp": _now_iso(),
        }

    async def check_database(self) -> Dict[str, Any]:
        if self.database is None:
            raise ProbeFailure("Database check failed: no database configured")

        start = time.monotonic()
        try:
            await self.database.ping()
        except (SQLAlchemyError, OSError) as e:
            raise ProbeFailure(f"Database check failed: {e}") from e

        return {
            "status": HEALTHY,
            "responseTime": round((time.monotonic() - start) * 1000, 2),
            "message": "Database is accessible",
            "timestamp": _now_iso(),
        }

    async def check_disk_space(self) -> Dict[str, Any]:
        path = self.settings.backup_dir
        while not path.exists() and path != path.parent:
            path = path.parent
        try:
            usage = await asyncio.to_thread(psutil.disk_usage, str(path))
        except OSError as e:
            raise ProbeFailure(f"Disk space check failed: {e}") from e

        # Informational only; memory is the one probe with a hard limit
        free_percent = round(100 - usage.percent, 2)
        low_space = free_percent < DISK_FREE_MIN_PERCENT
        if low_space:
            self._logger.warning(f"Low disk space on {path}: {free_percent}% free")
        return {
            "status": HEALTHY,
            "path": str(path),
            "freeGb": round(usage.free / 1024 ** 3, 2),
            "usedPercent": usage.percent,
            "lowSpace": low_space,
            "message": (
                f"Low disk space: {free_percent}% free" if low_space else "Sufficient disk space available"
            ),
            "timestamp": _now_iso(),
        }

    async def check_memory_usage(self) -> Dict[str, Any]:
        memory = psutil.virtual_memory()
        if memory.percent > self.settings.MEMORY_ALERT_PERCENT:
            raise ProbeFailure(f"Memory check failed: High memory usage: {memory.percent:.1f}%")

        process = psutil.Process()
        return {
            "status": HEALTHY,
            "memoryUsage": {
                "rss": round(process.memory_info().rss / 1024 / 1024),
                "systemUsedPercent": round(memory.percent, 2),
            },
            "message": "Memory usage is normal",
            "timestamp": _now_iso(),
        }

    async def check_zone_health(self) -> Dict[str, Any]:
        if self.store is None:
            raise ProbeFailure("Zone health check failed: no store configured")

        tenant_id = self.settings.DEFAULT_TENANT_ID
        try:
            zones = await self.store.count_zones(tenant_id)
            records = await self.store.count_records(tenant_id)
        except SQLAlchemyError as e:
            raise ProbeFailure(f"Zone health check failed: {e}") from e

        self.metrics.zones = zones
        self.metrics.records = records
        return {
            "status": HEALTHY,
            "zones": zones,
            "records": records,
            "message": f"{zones} zones with {records} records",
            "timestamp": _now_iso(),
        }

    # ------------------------------------------------------------------
    # Alerts
    # ------------------------------------------------------------------

    def check_error_threshold(self) -> List[Alert]:
        """Append a warning above 10% errors and a critical alert above 25%"""
        error_rate = self.metrics.error_rate
        created = []
        if error_rate > WARNING_ERROR_RATE:
            created.append(self.create_alert("high_error_rate", f"Error rate is {error_rate:.1f}%", "warning"))
        if error_rate > CRITICAL_ERROR_RATE:
            created.append(self.create_alert(
                "critical_error_rate", f"Critical error rate: {error_rate:.1f}%", "critical"
            ))
        return created

    def create_alert(self, alert_type: str, message: str, severity: str = "info") -> Alert:
        alert = Alert(type=alert_type, message=message, severity=severity)
        # Newest first; the deque drops the oldest past MAX_ALERTS
        self.alerts.appendleft(alert)

        log = self._logger.error if severity == "critical" else self._logger.warning
        log(f"DNS Alert [{severity.upper()}]: {message}")
        self.events.emit("alert:created", alert.to_dict())
        return alert

    def acknowledge_alert(self, alert_id: str) -> Optional[Alert]:
        for alert in self.alerts:
            if alert.id == alert_id:
                alert.acknowledged = True
                alert.acknowledged_at = datetime.utcnow()
                self.events.emit("alert:acknowledged", alert.to_dict())
                return alert
        return None

    def get_alerts(self, include_acknowledged: bool = False) -> List[Alert]:
        if include_acknowledged:
            return list(self.alerts)
        return [alert for alert in self.alerts if not alert.acknowledged]

    def clear_old_alerts(self, max_age: Optional[timedelta] = None) -> int:
        max_age = max_age if max_age is not None else timedelta(hours=self.settings.ALERT_RETENTION_HOURS)
        cutoff = datetime.utcnow() - max_age
        kept = [alert for alert in self.alerts if alert.timestamp > cutoff]
        removed = len(self.alerts) - len(kept)
        if removed:
            self.alerts = deque(kept, maxlen=MAX_ALERTS)
            self._logger.info(f"Cleared {removed} old alerts")
        return removed
