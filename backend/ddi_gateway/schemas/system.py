"""
Schemas for backups, monitoring and the DHCP control proxy
"""

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field


class BackupManifestResponse(BaseModel):
    id: str
    type: str
    timestamp: str
    tenantId: Optional[str] = None
    components: List[Dict[str, Any]] = Field(default_factory=list)


class BackupResponse(BaseModel):
    id: str
    name: str
    path: str
    size: int
    created: str
    compressed: bool
    complete: bool
    manifest: Optional[BackupManifestResponse] = None


class BackupCleanupResponse(BaseModel):
    deleted: int
    retention_days: int


class AlertResponse(BaseModel):
    id: str
    type: str
    message: str
    severity: str
    timestamp: str
    acknowledged: bool
    acknowledgedAt: Optional[str] = None


class KeaCommand(BaseModel):
    """A Kea control-agent command forwarded as-is"""
    command: str = Field(..., min_length=1, description="Kea command name, e.g. lease4-get-all")
    service: Optional[List[str]] = Field(None, description="Target daemons (default dhcp4)")
    arguments: Optional[Dict[str, Any]] = None
