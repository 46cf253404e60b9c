"""
DNS records management endpoints, scoped to a zone
"""

from typing import List, Optional

from fastapi import APIRouter, Depends, Query, Response, status

from ...core.dependencies import get_actor, get_record_service, get_tenant_id
from ...schemas.dns import (
    BulkRecordCreate, BulkRecordDelete, ExportFormat, RecordCreate, RecordResponse,
    RecordUpdate, ZoneFileImport
)
from ...services.base_service import Actor
from ...services.record_service import DNSRecordService

router = APIRouter()


@router.get("/{zone_name}/records", response_model=List[RecordResponse])
async def list_records(
    zone_name: str,
    record_type: Optional[str] = Query(None, alias="type", description="Filter by record type"),
    name: Optional[str] = Query(None, description="Filter by owner name"),
    limit: int = Query(1000, ge=1, le=10000),
    offset: int = Query(0, ge=0),
    tenant_id: str = Depends(get_tenant_id),
    record_service: DNSRecordService = Depends(get_record_service)
):
    """Active records of a zone ordered by name and type"""
    return await record_service.list_records(
        tenant_id, zone_name, record_type=record_type, name=name, limit=limit, offset=offset
    )


@router.post("/{zone_name}/records", status_code=status.HTTP_201_CREATED)
async def create_record(
    zone_name: str,
    record: RecordCreate,
    tenant_id: str = Depends(get_tenant_id),
    actor: Actor = Depends(get_actor),
    record_service: DNSRecordService = Depends(get_record_service)
):
    """Validate, store and publish one record"""
    return await record_service.create_record(tenant_id, zone_name, record.model_dump(exclude_none=True), actor)


@router.put("/{zone_name}/records/{name}/{record_type}")
async def update_record(
    zone_name: str,
    name: str,
    record_type: str,
    updates: RecordUpdate,
    tenant_id: str = Depends(get_tenant_id),
    actor: Actor = Depends(get_actor),
    record_service: DNSRecordService = Depends(get_record_service)
):
    """Update every record at (name, type), or only the one whose value is ``match_value``"""
    changes = updates.model_dump(exclude_none=True)
    match_value = changes.pop("match_value", None)
    return await record_service.update_record(
        tenant_id, zone_name, name, record_type, changes, actor, match_value=match_value
    )


@router.delete("/{zone_name}/records/{name}/{record_type}")
async def delete_record(
    zone_name: str,
    name: str,
    record_type: str,
    value: Optional[str] = Query(None, description="Only delete the record with this value"),
    tenant_id: str = Depends(get_tenant_id),
    actor: Actor = Depends(get_actor),
    record_service: DNSRecordService = Depends(get_record_service)
):
    return await record_service.delete_record(
        tenant_id, zone_name, name, record_type, actor, match_value=value
    )


@router.post("/{zone_name}/records/bulk", status_code=status.HTTP_201_CREATED)
async def bulk_create_records(
    zone_name: str,
    payload: BulkRecordCreate,
    tenant_id: str = Depends(get_tenant_id),
    actor: Actor = Depends(get_actor),
    record_service: DNSRecordService = Depends(get_record_service)
):
    """Create up to 100 records in one transaction"""
    records = [record.model_dump(exclude_none=True) for record in payload.records]
    return await record_service.bulk_create_records(tenant_id, zone_name, records, actor)


@router.post("/{zone_name}/records/bulk-delete")
async def bulk_delete_records(
    zone_name: str,
    payload: BulkRecordDelete,
    tenant_id: str = Depends(get_tenant_id),
    actor: Actor = Depends(get_actor),
    record_service: DNSRecordService = Depends(get_record_service)
):
    """Delete up to 100 records in one transaction"""
    keys = [key.model_dump(exclude_none=True) for key in payload.records]
    return await record_service.bulk_delete_records(tenant_id, zone_name, keys, actor)


@router.post("/{zone_name}/import", status_code=status.HTTP_201_CREATED)
async def import_zone_file(
    zone_name: str,
    payload: ZoneFileImport,
    tenant_id: str = Depends(get_tenant_id),
    actor: Actor = Depends(get_actor),
    record_service: DNSRecordService = Depends(get_record_service)
):
    """Import records from BIND zone file text"""
    return await record_service.import_zone_file(
        tenant_id, zone_name, payload.content, actor, include_soa=payload.include_soa
    )


@router.get("/{zone_name}/export")
async def export_zone(
    zone_name: str,
    export_format: ExportFormat = Query(ExportFormat.BIND, alias="format"),
    tenant_id: str = Depends(get_tenant_id),
    record_service: DNSRecordService = Depends(get_record_service)
):
    """Download the zone as a BIND zone file or JSON"""
    exported = await record_service.export_zone(tenant_id, zone_name, export_format.value)
    return Response(
        content=exported["content"],
        media_type=exported["content_type"],
        headers={"Content-Disposition": f'attachment; filename="{exported["filename"]}"'}
    )
