"""
Zone management service
"""

from typing import Any, Dict, List, Optional

from ..core.exceptions import DDIGatewayException, NotFoundException, ValidationException
from ..core.logging_config import get_logger
from ..models.dns import Zone
from .base_service import Actor, AuditedService
from .validation import validate_zone

logger = get_logger(__name__)


class DNSZoneService(AuditedService):
    """Validated, audited zone CRUD"""

    resource_type = "zone"

    async def list_zones(
        self,
        tenant_id: str,
        zone_type: Optional[str] = None,
        status: Optional[str] = None,
        limit: int = 100,
        offset: int = 0
    ) -> List[Dict[str, Any]]:
        zones = await self.store.get_zones(tenant_id, zone_type=zone_type, status=status, limit=limit, offset=offset)
        return [zone.to_dict() for zone in zones]

    async def get_zone(self, tenant_id: str, name: str) -> Dict[str, Any]:
        zone = await self._require(tenant_id, name)
        data = zone.to_dict()
        data["record_count"] = await self.store.count_records(tenant_id, zone.name)
        return data

    async def create_zone(self, tenant_id: str, zone_data: Dict[str, Any], actor: Actor) -> Dict[str, Any]:
        name = (zone_data.get("name") or "").strip().rstrip(".").lower()
        validation = validate_zone({**zone_data, "name": name})
        if not validation.is_valid:
            await self._audit(
                tenant_id, actor, "CREATE_ZONE", name, details={"errors": validation.errors},
                success=False, error_message="Zone validation failed"
            )
            raise ValidationException("Zone validation failed", validation.errors, validation.warnings)

        try:
            zone = await self.store.create_zone(tenant_id, {**zone_data, "name": name}, created_by=actor.user_id)
        except DDIGatewayException as e:
            await self._audit(tenant_id, actor, "CREATE_ZONE", name, success=False, error_message=e.message)
            raise

        await self._audit(tenant_id, actor, "CREATE_ZONE", zone.name, details={"zone": zone.to_dict()})
        self.events.emit("zone_created", {"tenant_id": tenant_id, "zone": zone.to_dict()})
        return {"zone": zone.to_dict(), "warnings": validation.warnings}

    async def update_zone(
        self, tenant_id: str, name: str, updates: Dict[str, Any], actor: Actor
    ) -> Dict[str, Any]:
        zone = await self._require(tenant_id, name)
        merged = {**zone.to_dict(), **{k: v for k, v in updates.items() if v is not None}}
        validation = validate_zone(merged)
        if not validation.is_valid:
            await self._audit(
                tenant_id, actor, "UPDATE_ZONE", zone.name, details={"errors": validation.errors},
                success=False, error_message="Zone validation failed"
            )
            raise ValidationException("Zone validation failed", validation.errors, validation.warnings)

        try:
            updated = await self.store.update_zone(tenant_id, zone.name, updates)
        except DDIGatewayException as e:
            await self._audit(tenant_id, actor, "UPDATE_ZONE", zone.name, success=False, error_message=e.message)
            raise

        await self._audit(
            tenant_id, actor, "UPDATE_ZONE", updated.name,
            details={"changes": {k: v for k, v in updates.items() if v is not None}, "serial": updated.serial}
        )
        self.events.emit("zone_updated", {"tenant_id": tenant_id, "zone": updated.to_dict()})
        return {"zone": updated.to_dict(), "warnings": validation.warnings}

    async def delete_zone(self, tenant_id: str, name: str, actor: Actor) -> Dict[str, Any]:
        try:
            zone = await self.store.delete_zone(tenant_id, name)
        except DDIGatewayException as e:
            await self._audit(tenant_id, actor, "DELETE_ZONE", name, success=False, error_message=e.message)
            raise

        await self._audit(tenant_id, actor, "DELETE_ZONE", zone.name, details={"zone": zone.to_dict()})
        self.events.emit("zone_deleted", {"tenant_id": tenant_id, "zone": zone.name})
        return {"deleted": True, "zone": zone.name}

    async def _require(self, tenant_id: str, name: str) -> Zone:
        zone = await self.store.get_zone(tenant_id, name)
        if zone is None:
            raise NotFoundException(f"Zone '{name}' not found")
        return zone
