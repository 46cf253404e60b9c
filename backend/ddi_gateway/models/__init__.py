"""
Database models for the DDI gateway
"""

from .dns import DNSRecord, TsigKey, Zone
from .audit import AuditLog

__all__ = [
    "Zone",
    "DNSRecord",
    "TsigKey",
    "AuditLog",
]
