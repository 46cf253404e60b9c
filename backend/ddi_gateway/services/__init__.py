# Services package

from .backup_service import BackupManager
from .base_service import Actor, AuditedService
from .dns_provider import Available, BindDNSProvider, DNSProvider, Unavailable, resolve_dns_provider
from .dns_store import DNSStore
from .event_bus import EventBus
from .kea_client import KeaClient
from .monitoring_service import DNSMonitor
from .record_service import DNSRecordService
from .tsig_service import TsigKeyService
from .zone_service import DNSZoneService

__all__ = [
    'Actor',
    'AuditedService',
    'Available',
    'BackupManager',
    'BindDNSProvider',
    'DNSMonitor',
    'DNSProvider',
    'DNSRecordService',
    'DNSStore',
    'DNSZoneService',
    'EventBus',
    'KeaClient',
    'TsigKeyService',
    'Unavailable',
    'resolve_dns_provider',
]
