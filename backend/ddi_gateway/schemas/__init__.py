# Schemas package

from .dns import (
    # Zone schemas
    ZoneCreate,
    ZoneUpdate,
    ZoneResponse,
    # DNS record schemas
    RecordCreate,
    RecordUpdate,
    RecordKey,
    RecordResponse,
    BulkRecordCreate,
    BulkRecordDelete,
    ZoneFileImport,
    # TSIG and audit
    TsigKeyCreate,
    TsigKeyResponse,
    AuditLogResponse,
)
from .system import AlertResponse, BackupResponse, KeaCommand

__all__ = [
    "ZoneCreate",
    "ZoneUpdate",
    "ZoneResponse",
    "RecordCreate",
    "RecordUpdate",
    "RecordKey",
    "RecordResponse",
    "BulkRecordCreate",
    "BulkRecordDelete",
    "ZoneFileImport",
    "TsigKeyCreate",
    "TsigKeyResponse",
    "AuditLogResponse",
    "AlertResponse",
    "BackupResponse",
    "KeaCommand",
]
