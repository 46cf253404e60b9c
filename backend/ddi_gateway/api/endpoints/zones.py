"""
DNS zones management endpoints
"""

from typing import List, Optional

from fastapi import APIRouter, Depends, Query, status

from ...core.dependencies import get_actor, get_tenant_id, get_zone_service
from ...schemas.dns import ZoneCreate, ZoneResponse, ZoneUpdate
from ...services.base_service import Actor
from ...services.zone_service import DNSZoneService

router = APIRouter()


@router.get("", response_model=List[ZoneResponse])
async def list_zones(
    zone_type: Optional[str] = Query(None, alias="type", description="Filter by zone type (master, slave, forward)"),
    zone_status: Optional[str] = Query(None, alias="status", description="Filter by zone status"),
    limit: int = Query(100, ge=1, le=1000, description="Maximum number of items to return"),
    offset: int = Query(0, ge=0, description="Number of items to skip for pagination"),
    tenant_id: str = Depends(get_tenant_id),
    zone_service: DNSZoneService = Depends(get_zone_service)
):
    """List the tenant's zones ordered by name"""
    return await zone_service.list_zones(
        tenant_id, zone_type=zone_type, status=zone_status, limit=limit, offset=offset
    )


@router.post("", status_code=status.HTTP_201_CREATED)
async def create_zone(
    zone_data: ZoneCreate,
    tenant_id: str = Depends(get_tenant_id),
    actor: Actor = Depends(get_actor),
    zone_service: DNSZoneService = Depends(get_zone_service)
):
    """Create a zone; validation warnings are returned alongside it"""
    return await zone_service.create_zone(tenant_id, zone_data.model_dump(mode="json", exclude_none=True), actor)


@router.get("/{zone_name}", response_model=ZoneResponse)
async def get_zone(
    zone_name: str,
    tenant_id: str = Depends(get_tenant_id),
    zone_service: DNSZoneService = Depends(get_zone_service)
):
    return await zone_service.get_zone(tenant_id, zone_name)


@router.put("/{zone_name}")
async def update_zone(
    zone_name: str,
    zone_data: ZoneUpdate,
    tenant_id: str = Depends(get_tenant_id),
    actor: Actor = Depends(get_actor),
    zone_service: DNSZoneService = Depends(get_zone_service)
):
    """Update zone settings; the serial is bumped"""
    return await zone_service.update_zone(
        tenant_id, zone_name, zone_data.model_dump(mode="json", exclude_none=True), actor
    )


@router.delete("/{zone_name}")
async def delete_zone(
    zone_name: str,
    tenant_id: str = Depends(get_tenant_id),
    actor: Actor = Depends(get_actor),
    zone_service: DNSZoneService = Depends(get_zone_service)
):
    """Delete a zone and all of its records"""
    return await zone_service.delete_zone(tenant_id, zone_name, actor)
