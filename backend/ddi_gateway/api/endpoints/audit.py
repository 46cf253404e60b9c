"""
Audit log endpoints (read-only)
"""

from datetime import datetime
from typing import List, Optional

from fastapi import APIRouter, Depends, Query

from ...core.dependencies import get_store, get_tenant_id
from ...schemas.dns import AuditLogResponse
from ...services.dns_store import DNSStore

router = APIRouter()


@router.get("", response_model=List[AuditLogResponse])
async def list_audit_logs(
    start_date: Optional[datetime] = Query(None),
    end_date: Optional[datetime] = Query(None),
    operation: Optional[str] = Query(None, description="e.g. CREATE_RECORD"),
    user_id: Optional[str] = Query(None),
    resource_type: Optional[str] = Query(None),
    limit: int = Query(100, ge=1, le=1000),
    offset: int = Query(0, ge=0),
    tenant_id: str = Depends(get_tenant_id),
    store: DNSStore = Depends(get_store)
):
    """Audit entries for the tenant, newest first"""
    entries = await store.get_audit_logs(
        tenant_id,
        start_date=start_date,
        end_date=end_date,
        operation=operation,
        user_id=user_id,
        resource_type=resource_type,
        limit=limit,
        offset=offset,
    )
    return [entry.to_dict() for entry in entries]
