"""
FastAPI dependencies for request context and application services
"""

from typing import Optional

from fastapi import Header, Request

from ..services.backup_service import BackupManager
from ..services.base_service import Actor
from ..services.dns_provider import ProviderHandle
from ..services.dns_store import DNSStore
from ..services.kea_client import KeaClient
from ..services.monitoring_service import DNSMonitor
from ..services.record_service import DNSRecordService
from ..services.tsig_service import TsigKeyService
from ..services.zone_service import DNSZoneService


def get_client_ip(request: Request) -> str:
    """Extract client IP from request, considering proxies"""
    forwarded_for = request.headers.get("X-Forwarded-For")
    if forwarded_for:
        return forwarded_for.split(",")[0].strip()
    real_ip = request.headers.get("X-Real-IP")
    if real_ip:
        return real_ip
    return request.client.host if request.client else "unknown"


def get_tenant_id(request: Request, x_tenant_id: Optional[str] = Header(None)) -> str:
    """Tenant from ``X-Tenant-ID``; the default tenant when absent"""
    return x_tenant_id or request.app.state.settings.DEFAULT_TENANT_ID


def get_actor(request: Request, x_user_id: Optional[str] = Header(None)) -> Actor:
    return Actor(
        user_id=x_user_id,
        source_ip=get_client_ip(request),
        user_agent=request.headers.get("User-Agent"),
    )


def get_store(request: Request) -> DNSStore:
    return request.app.state.store


def get_zone_service(request: Request) -> DNSZoneService:
    return request.app.state.zone_service


def get_record_service(request: Request) -> DNSRecordService:
    return request.app.state.record_service


def get_tsig_service(request: Request) -> TsigKeyService:
    return request.app.state.tsig_service


def get_backup_manager(request: Request) -> BackupManager:
    return request.app.state.backup_manager


def get_monitor(request: Request) -> DNSMonitor:
    return request.app.state.monitor


def get_provider(request: Request) -> ProviderHandle:
    return request.app.state.provider


def get_kea_client(request: Request) -> KeaClient:
    return request.app.state.kea_client
