"""
DNS record write path: validation, relational store, then the DNS provider

The store is the system of record. A record change is committed first and
then pushed to the nameserver; a provider failure is reported in the
``dns_sync`` part of the response and does not undo the committed change.
"""

import json
from typing import Any, Dict, Iterable, List, Optional, Tuple

import dns.exception

from ..core.exceptions import (
    DDIGatewayException, NotFoundException, TransactionFailureException, ValidationException
)
from ..core.logging_config import get_logger
from .base_service import Actor, AuditedService
from .dns_provider import ProviderHandle, Unavailable
from .dns_store import MAX_BATCH_SIZE, DNSStore, check_batch_size
from .event_bus import EventBus
from .validation import validate_record
from .zone_file import encode_zone, parse_zone_file

logger = get_logger(__name__)

SYNC_SYNCED = "synced"
SYNC_SKIPPED = "skipped"
SYNC_FAILED = "failed"

EXPORT_FORMATS = ("bind", "json")


def _normalize(record_data: Dict[str, Any]) -> Dict[str, Any]:
    record = dict(record_data)
    record["name"] = (record.get("name") or "").strip()
    record["type"] = (record.get("type") or "").upper()
    if record.get("ttl") is None:
        record["ttl"] = 300
    return record


def _summarize_sync(results: List[Dict[str, Any]]) -> Dict[str, Any]:
    """Fold per-RRset sync results into one status"""
    if not results:
        return {"status": SYNC_SKIPPED, "message": "Nothing to synchronize"}
    failures = [r for r in results if r["status"] == SYNC_FAILED]
    if failures:
        return {
            "status": SYNC_FAILED,
            "message": f"{len(failures)} of {len(results)} updates failed",
            "failures": failures,
        }
    if all(r["status"] == SYNC_SKIPPED for r in results):
        return results[0]
    return {"status": SYNC_SYNCED, "rrsets": len(results)}


class DNSRecordService(AuditedService):
    """Validated, audited record operations with nameserver synchronization"""

    resource_type = "dns_record"

    def __init__(self, store: DNSStore, provider: ProviderHandle, events: Optional[EventBus] = None):
        super().__init__(store, events)
        self.provider = provider

    async def list_records(
        self,
        tenant_id: str,
        zone_name: str,
        record_type: Optional[str] = None,
        name: Optional[str] = None,
        limit: int = 1000,
        offset: int = 0
    ) -> List[Dict[str, Any]]:
        if await self.store.get_zone(tenant_id, zone_name) is None:
            raise NotFoundException(f"Zone '{zone_name}' not found")
        records = await self.store.get_records(
            tenant_id, zone_name, record_type=record_type, name=name, limit=limit, offset=offset
        )
        return [record.to_dict() for record in records]

    async def create_record(
        self, tenant_id: str, zone_name: str, record_data: Dict[str, Any], actor: Actor
    ) -> Dict[str, Any]:
        record_data = _normalize(record_data)
        resource_id = f"{zone_name}/{record_data['name']}/{record_data['type']}"

        validation = validate_record(record_data)
        if not validation.is_valid:
            await self._audit(
                tenant_id, actor, "CREATE_RECORD", resource_id,
                details={"record": record_data, "errors": validation.errors},
                success=False, error_message="Record validation failed"
            )
            raise ValidationException("Record validation failed", validation.errors, validation.warnings)

        try:
            record = await self.store.create_record(tenant_id, zone_name, record_data, created_by=actor.user_id)
        except DDIGatewayException as e:
            await self._audit(
                tenant_id, actor, "CREATE_RECORD", resource_id,
                details={"record": record_data}, success=False, error_message=e.message
            )
            raise

        sync = await self._sync_rrset(tenant_id, zone_name, record.name, record.record_type)
        await self._audit(
            tenant_id, actor, "CREATE_RECORD", resource_id,
            details={"record": record.to_dict(), "warnings": validation.warnings, "dns_sync": sync}
        )
        self.events.emit("record_created", {
            "tenant_id": tenant_id, "zone": zone_name, "record": record.to_dict()
        })
        return {"record": record.to_dict(), "warnings": validation.warnings, "dns_sync": sync}

    async def update_record(
        self,
        tenant_id: str,
        zone_name: str,
        name: str,
        record_type: str,
        updates: Dict[str, Any],
        actor: Actor,
        match_value: Optional[str] = None
    ) -> Dict[str, Any]:
        record_type = record_type.upper()
        resource_id = f"{zone_name}/{name}/{record_type}"
        changes = {k: v for k, v in updates.items() if v is not None}

        try:
            existing = await self.store.get_record(tenant_id, zone_name, name, record_type, match_value)
            if not existing:
                raise NotFoundException(f"Record {name} {record_type} not found in zone '{zone_name}'")
        except DDIGatewayException as e:
            await self._audit(tenant_id, actor, "UPDATE_RECORD", resource_id, success=False, error_message=e.message)
            raise

        errors: List[str] = []
        warnings: List[str] = []
        for record in existing:
            validation = validate_record({**record.to_dict(), **changes})
            errors.extend(e for e in validation.errors if e not in errors)
            warnings.extend(w for w in validation.warnings if w not in warnings)
        if errors:
            await self._audit(
                tenant_id, actor, "UPDATE_RECORD", resource_id,
                details={"changes": changes, "errors": errors},
                success=False, error_message="Record validation failed"
            )
            raise ValidationException("Record validation failed", errors, warnings)

        try:
            updated = await self.store.update_record(
                tenant_id, zone_name, name, record_type, changes, match_value=match_value
            )
        except DDIGatewayException as e:
            await self._audit(
                tenant_id, actor, "UPDATE_RECORD", resource_id,
                details={"changes": changes}, success=False, error_message=e.message
            )
            raise

        sync = await self._sync_rrset(tenant_id, zone_name, name, record_type)
        records = [record.to_dict() for record in updated]
        await self._audit(
            tenant_id, actor, "UPDATE_RECORD", resource_id,
            details={"changes": changes, "records": records, "dns_sync": sync}
        )
        self.events.emit("record_updated", {"tenant_id": tenant_id, "zone": zone_name, "records": records})
        return {"records": records, "warnings": warnings, "dns_sync": sync}

    async def delete_record(
        self,
        tenant_id: str,
        zone_name: str,
        name: str,
        record_type: str,
        actor: Actor,
        match_value: Optional[str] = None
    ) -> Dict[str, Any]:
        record_type = record_type.upper()
        resource_id = f"{zone_name}/{name}/{record_type}"

        try:
            deleted = await self.store.delete_record(tenant_id, zone_name, name, record_type, match_value)
        except DDIGatewayException as e:
            await self._audit(tenant_id, actor, "DELETE_RECORD", resource_id, success=False, error_message=e.message)
            raise

        sync = await self._sync_rrset(tenant_id, zone_name, name, record_type)
        records = [record.to_dict() for record in deleted]
        await self._audit(
            tenant_id, actor, "DELETE_RECORD", resource_id, details={"records": records, "dns_sync": sync}
        )
        self.events.emit("record_deleted", {"tenant_id": tenant_id, "zone": zone_name, "records": records})
        return {"deleted": len(records), "records": records, "dns_sync": sync}

    async def bulk_create_records(
        self, tenant_id: str, zone_name: str, records: List[Dict[str, Any]], actor: Actor
    ) -> Dict[str, Any]:
        try:
            check_batch_size(records)
            normalized, warnings = self._validate_batch(records)
            created = await self.store.bulk_create_records(
                tenant_id, zone_name, normalized, created_by=actor.user_id
            )
        except DDIGatewayException as e:
            await self._audit(
                tenant_id, actor, "BULK_CREATE_RECORDS", zone_name,
                details={"count": len(records), "errors": getattr(e, "errors", [])},
                success=False, error_message=e.message
            )
            raise

        sync = await self._sync_many(tenant_id, zone_name, ((r.name, r.record_type) for r in created))
        await self._audit(
            tenant_id, actor, "BULK_CREATE_RECORDS", zone_name,
            details={"count": len(created), "dns_sync": sync}
        )
        self.events.emit("record_bulk_created", {
            "tenant_id": tenant_id, "zone": zone_name, "count": len(created)
        })
        return {
            "created": len(created),
            "records": [record.to_dict() for record in created],
            "warnings": warnings,
            "dns_sync": sync,
        }

    async def bulk_delete_records(
        self, tenant_id: str, zone_name: str, keys: List[Dict[str, Any]], actor: Actor
    ) -> Dict[str, Any]:
        try:
            deleted = await self.store.bulk_delete_records(tenant_id, zone_name, keys)
        except DDIGatewayException as e:
            await self._audit(
                tenant_id, actor, "BULK_DELETE_RECORDS", zone_name,
                details={"count": len(keys), "errors": getattr(e, "errors", [])},
                success=False, error_message=e.message
            )
            raise

        sync = await self._sync_many(tenant_id, zone_name, ((r.name, r.record_type) for r in deleted))
        await self._audit(
            tenant_id, actor, "BULK_DELETE_RECORDS", zone_name,
            details={"count": len(deleted), "dns_sync": sync}
        )
        self.events.emit("record_bulk_deleted", {
            "tenant_id": tenant_id, "zone": zone_name, "count": len(deleted)
        })
        return {"deleted": len(deleted), "dns_sync": sync}

    async def import_zone_file(
        self,
        tenant_id: str,
        zone_name: str,
        content: str,
        actor: Actor,
        include_soa: bool = False
    ) -> Dict[str, Any]:
        """Parse BIND text and create its records.

        Every record is validated before anything is written. Records are
        then stored in transactional batches of at most 100.
        """
        parsed = parse_zone_file(content, zone_name)
        records = [r for r in parsed.records if include_soa or r["type"] != "SOA"]
        skipped = len(parsed.records) - len(records)

        try:
            if parsed.errors:
                raise ValidationException("Zone file could not be parsed", errors=parsed.errors)
            if await self.store.get_zone(tenant_id, zone_name) is None:
                raise NotFoundException(f"Zone '{zone_name}' not found")
            normalized, warnings = self._validate_batch(records)

            created = []
            for start in range(0, len(normalized), MAX_BATCH_SIZE):
                created.extend(await self.store.bulk_create_records(
                    tenant_id, zone_name, normalized[start:start + MAX_BATCH_SIZE], created_by=actor.user_id
                ))
        except DDIGatewayException as e:
            await self._audit(
                tenant_id, actor, "IMPORT_ZONE_FILE", zone_name,
                details={"parsed": len(parsed.records), "errors": getattr(e, "errors", [])},
                success=False, error_message=e.message
            )
            raise

        sync = await self._sync_many(tenant_id, zone_name, ((r.name, r.record_type) for r in created))
        await self._audit(
            tenant_id, actor, "IMPORT_ZONE_FILE", zone_name,
            details={"imported": len(created), "skipped": skipped, "dns_sync": sync}
        )
        self.events.emit("record_imported", {"tenant_id": tenant_id, "zone": zone_name, "count": len(created)})
        logger.info(f"Imported {len(created)} records into zone {zone_name} ({skipped} skipped)")
        return {"imported": len(created), "skipped": skipped, "warnings": warnings, "dns_sync": sync}

    async def export_zone(self, tenant_id: str, zone_name: str, export_format: str = "bind") -> Dict[str, Any]:
        """Zone contents as BIND master-file text or JSON"""
        if export_format not in EXPORT_FORMATS:
            raise ValidationException(
                f"Unsupported export format: {export_format}",
                errors=[f"Format must be one of: {', '.join(EXPORT_FORMATS)}"]
            )

        zone = await self.store.get_zone(tenant_id, zone_name)
        if zone is None:
            raise NotFoundException(f"Zone '{zone_name}' not found")
        records = await self.store.get_records(tenant_id, zone.name, limit=100000)

        if export_format == "bind":
            return {
                "content": encode_zone(zone, records),
                "filename": f"{zone.name}.zone",
                "content_type": "text/plain",
            }

        payload = {
            "zone": zone.to_dict(),
            "records": [record.to_dict() for record in records],
            "recordCount": len(records),
        }
        return {
            "content": json.dumps(payload, indent=2),
            "filename": f"{zone.name}.json",
            "content_type": "application/json",
        }

    # ------------------------------------------------------------------

    @staticmethod
    def _validate_batch(records: List[Dict[str, Any]]) -> Tuple[List[Dict[str, Any]], List[str]]:
        normalized = []
        warnings: List[str] = []
        errors: List[Dict[str, Any]] = []
        for index, record_data in enumerate(records):
            record = _normalize(record_data)
            validation = validate_record(record)
            if not validation.is_valid:
                errors.append({"index": index, "record": record, "errors": validation.errors})
            warnings.extend(f"Record {index + 1} ({record['name']} {record['type']}): {w}" for w in validation.warnings)
            normalized.append(record)

        if errors:
            raise TransactionFailureException(
                f"Validation failed for {len(errors)} of {len(records)} records; nothing was applied",
                errors=errors[:MAX_BATCH_SIZE]
            )
        return normalized, warnings

    async def _sync_rrset(self, tenant_id: str, zone_name: str, name: str, record_type: str) -> Dict[str, Any]:
        """Push the store's active RRset at (name, type) to the nameserver"""
        if isinstance(self.provider, Unavailable):
            return {"status": SYNC_SKIPPED, "message": self.provider.reason}

        provider = self.provider.provider
        try:
            rrset = await self.store.get_records(tenant_id, zone_name, record_type=record_type, name=name)
            if rrset:
                members = [record.to_dict() for record in rrset]
                await provider.upsert_record(zone_name, members[0], members)
            else:
                await provider.delete_record(zone_name, name, record_type)
        except (DDIGatewayException, dns.exception.DNSException) as e:
            message = getattr(e, "message", None) or str(e)
            logger.error(f"DNS sync failed for {name} {record_type} in {zone_name}: {message}")
            return {"status": SYNC_FAILED, "message": message, "name": name, "type": record_type}

        await self._record_key_usage(tenant_id, provider.key_name)
        return {"status": SYNC_SYNCED}

    async def _record_key_usage(self, tenant_id: str, key_name: Optional[str]) -> None:
        if not key_name:
            return
        try:
            await self.store.record_tsig_usage(tenant_id, key_name)
        except NotFoundException:
            # Key lives only in the nameserver's key file
            logger.debug(f"TSIG key {key_name} is not managed for tenant {tenant_id}")

    async def _sync_many(
        self, tenant_id: str, zone_name: str, keys: Iterable[Tuple[str, str]]
    ) -> Dict[str, Any]:
        if isinstance(self.provider, Unavailable):
            return {"status": SYNC_SKIPPED, "message": self.provider.reason}

        results = []
        for name, record_type in dict.fromkeys(keys):
            results.append(await self._sync_rrset(tenant_id, zone_name, name, record_type))
        return _summarize_sync(results)
