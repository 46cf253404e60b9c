"""
Health, metrics and alert endpoints
"""

from typing import List

from fastapi import APIRouter, Depends, Query

from ...core.dependencies import get_monitor
from ...core.exceptions import NotFoundException
from ...schemas.system import AlertResponse
from ...services.monitoring_service import DNSMonitor

router = APIRouter()


@router.get("")
async def get_health(monitor: DNSMonitor = Depends(get_monitor)):
    """Latest result of every health check"""
    return monitor.get_health_status()


@router.post("/run")
async def run_health_checks(monitor: DNSMonitor = Depends(get_monitor)):
    """Run all probes now and return the refreshed status"""
    return await monitor.run_health_checks()


@router.get("/metrics")
async def get_metrics(monitor: DNSMonitor = Depends(get_monitor)):
    return monitor.get_metrics()


@router.get("/alerts", response_model=List[AlertResponse])
async def get_alerts(
    include_acknowledged: bool = Query(False),
    monitor: DNSMonitor = Depends(get_monitor)
):
    """Alerts, newest first"""
    return [alert.to_dict() for alert in monitor.get_alerts(include_acknowledged)]


@router.post("/alerts/{alert_id}/acknowledge", response_model=AlertResponse)
async def acknowledge_alert(alert_id: str, monitor: DNSMonitor = Depends(get_monitor)):
    alert = monitor.acknowledge_alert(alert_id)
    if alert is None:
        raise NotFoundException(f"Alert '{alert_id}' not found")
    return alert.to_dict()
