"""
DNS-related Pydantic schemas for the DDI gateway

Request bodies are shape-checked here only; DNS semantics (names, values,
TTL ranges) are judged by the validation service so that errors and
warnings come back in one report.
"""

from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field


class ZoneType(str, Enum):
    """DNS zone type enumeration"""
    MASTER = "master"
    SLAVE = "slave"
    FORWARD = "forward"


class ExportFormat(str, Enum):
    BIND = "bind"
    JSON = "json"


class ZoneCreate(BaseModel):
    """Schema for creating a zone"""
    name: str = Field(..., min_length=1, max_length=253, description="DNS zone name (e.g., example.com)")
    type: ZoneType = Field(default=ZoneType.MASTER, description="Type of DNS zone")
    primary_ns: Optional[str] = Field(None, max_length=253, description="Primary nameserver for the SOA")
    admin_email: Optional[str] = Field(None, max_length=255, description="Administrator email address")
    refresh_interval: Optional[int] = Field(None, description="SOA refresh interval in seconds")
    retry_interval: Optional[int] = Field(None, description="SOA retry interval in seconds")
    expire_interval: Optional[int] = Field(None, description="SOA expire interval in seconds")
    minimum_ttl: Optional[int] = Field(None, description="SOA minimum TTL in seconds")


class ZoneUpdate(BaseModel):
    """Schema for updating a zone; omitted fields are left unchanged"""
    type: Optional[ZoneType] = None
    status: Optional[str] = Field(None, description="active or inactive")
    primary_ns: Optional[str] = Field(None, max_length=253)
    admin_email: Optional[str] = Field(None, max_length=255)
    refresh_interval: Optional[int] = None
    retry_interval: Optional[int] = None
    expire_interval: Optional[int] = None
    minimum_ttl: Optional[int] = None


class ZoneResponse(BaseModel):
    id: str
    tenant_id: str
    name: str
    type: str
    status: str
    primary_ns: Optional[str] = None
    admin_email: Optional[str] = None
    serial: int
    refresh_interval: int
    retry_interval: int
    expire_interval: int
    minimum_ttl: int
    created_by: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    record_count: Optional[int] = None


class RecordCreate(BaseModel):
    """Schema for creating a DNS record"""
    name: str = Field(..., min_length=1, max_length=255, description="Owner name relative to the zone, or @")
    type: str = Field(..., min_length=1, max_length=10, description="Record type (A, AAAA, CNAME, MX, ...)")
    value: str = Field(..., description="Record data")
    ttl: Optional[int] = Field(None, description="Time to live in seconds (default 300)")
    priority: Optional[int] = Field(None, description="Priority for MX and SRV records")
    weight: Optional[int] = Field(None, description="Weight for SRV records")
    port: Optional[int] = Field(None, description="Port for SRV records")


class RecordUpdate(BaseModel):
    """Schema for updating the records addressed by (name, type[, match_value])"""
    value: Optional[str] = None
    ttl: Optional[int] = None
    priority: Optional[int] = None
    weight: Optional[int] = None
    port: Optional[int] = None
    match_value: Optional[str] = Field(None, description="Only update the record with this current value")


class RecordKey(BaseModel):
    name: str = Field(..., min_length=1)
    type: str = Field(..., min_length=1)
    value: Optional[str] = Field(None, description="Narrow the key to one record of a multi-value RRset")


class RecordResponse(BaseModel):
    id: str
    zone_id: str
    name: str
    type: str
    value: str
    ttl: int
    priority: Optional[int] = None
    weight: Optional[int] = None
    port: Optional[int] = None
    status: str
    created_by: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class BulkRecordCreate(BaseModel):
    records: List[RecordCreate] = Field(..., description="At most 100 records, applied all-or-nothing")


class BulkRecordDelete(BaseModel):
    records: List[RecordKey] = Field(..., description="At most 100 record keys, applied all-or-nothing")


class ZoneFileImport(BaseModel):
    content: str = Field(..., description="BIND zone file text")
    include_soa: bool = Field(default=False, description="Also import SOA records found in the file")


class TsigKeyCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)
    algorithm: str = Field(default="hmac-sha256")
    secret: Optional[str] = Field(None, description="Base64 secret; generated when omitted")


class TsigKeyResponse(BaseModel):
    id: str
    name: str
    algorithm: str
    created_at: Optional[datetime] = None
    last_used: Optional[datetime] = None
    usage_count: int = 0
    secret: Optional[str] = Field(None, description="Only present in the response to key creation")


class AuditLogResponse(BaseModel):
    id: str
    user_id: Optional[str] = None
    operation: str
    resource_type: str
    resource_id: Optional[str] = None
    details: Dict[str, Any] = Field(default_factory=dict)
    source_ip: Optional[str] = None
    user_agent: Optional[str] = None
    success: bool
    error_message: Optional[str] = None
    created_at: Optional[datetime] = None
