"""
Tenant-scoped data access for zones, records, TSIG keys and audit logs

Every public method runs in its own unit of work opened through
``Database.transaction``, so the tenant session variable is set before the
first statement and reset afterwards even when the statement fails.
"""

import base64
import binascii
import secrets
from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from ..core.database import Database
from ..core.exceptions import (
    ConflictException, NotFoundException, TransactionFailureException, ValidationException
)
from ..core.logging_config import get_logger
from ..models.audit import AuditLog
from ..models.dns import TSIG_ALGORITHMS, DNSRecord, TsigKey, Zone

logger = get_logger(__name__)

MAX_BATCH_SIZE = 100

ZONE_DEFAULTS = {
    'zone_type': 'master',
    'refresh_interval': 3600,
    'retry_interval': 1800,
    'expire_interval': 604800,
    'minimum_ttl': 300,
}
ZONE_UPDATABLE_FIELDS = (
    'type', 'status', 'primary_ns', 'admin_email', 'refresh_interval',
    'retry_interval', 'expire_interval', 'minimum_ttl',
)
RECORD_UPDATABLE_FIELDS = ('value', 'ttl', 'priority', 'weight', 'port')
SINGLETON_TYPES = ('CNAME', 'SOA')


def next_serial(current: int, now: Optional[datetime] = None) -> int:
    """Serial after a change: at least one more than before, never below YYYYMMDD00"""
    date_serial = int((now or datetime.utcnow()).strftime('%Y%m%d')) * 100
    return max((current or 0) + 1, date_serial)


def check_batch_size(items: Iterable[Any]) -> None:
    count = len(list(items))
    if count > MAX_BATCH_SIZE:
        raise ValidationException(
            f"Bulk operations are limited to {MAX_BATCH_SIZE} records",
            errors=[f"Received {count} records; the maximum is {MAX_BATCH_SIZE}"]
        )


def _is_unique_violation(error: IntegrityError) -> bool:
    message = str(error.orig).lower()
    return 'unique' in message or 'duplicate' in message


class DNSStore:
    """Relational store access layer"""

    def __init__(self, database: Database):
        self.database = database

    # ------------------------------------------------------------------
    # Zones
    # ------------------------------------------------------------------

    async def get_zones(
        self,
        tenant_id: str,
        zone_type: Optional[str] = None,
        status: Optional[str] = None,
        limit: int = 100,
        offset: int = 0
    ) -> List[Zone]:
        async with self.database.transaction(tenant_id) as session:
            query = select(Zone).where(Zone.tenant_id == tenant_id)
            if zone_type:
                query = query.where(Zone.zone_type == zone_type)
            if status:
                query = query.where(Zone.status == status)
            query = query.order_by(Zone.name).limit(limit).offset(offset)
            result = await session.execute(query)
            return list(result.scalars().all())

    async def get_zone(self, tenant_id: str, name: str) -> Optional[Zone]:
        async with self.database.transaction(tenant_id) as session:
            return await self._find_zone(session, tenant_id, name)

    async def count_zones(self, tenant_id: str) -> int:
        async with self.database.transaction(tenant_id) as session:
            result = await session.execute(
                select(func.count(Zone.id)).where(Zone.tenant_id == tenant_id)
            )
            return result.scalar_one()

    async def create_zone(
        self, tenant_id: str, zone_data: Dict[str, Any], created_by: Optional[str] = None
    ) -> Zone:
        name = zone_data['name'].strip().rstrip('.').lower()
        values = dict(ZONE_DEFAULTS)
        for key, value in zone_data.items():
            if value is None or key not in ZONE_UPDATABLE_FIELDS:
                continue
            values['zone_type' if key == 'type' else key] = value

        try:
            async with self.database.transaction(tenant_id) as session:
                if await self._find_zone(session, tenant_id, name):
                    raise ConflictException(f"Zone '{name}' already exists")

                zone = Zone(
                    tenant_id=tenant_id,
                    name=name,
                    serial=next_serial(0),
                    created_by=created_by,
                    **values
                )
                session.add(zone)
                await session.flush()
        except IntegrityError as e:
            if _is_unique_violation(e):
                raise ConflictException(f"Zone '{name}' already exists") from e
            raise

        logger.info(f"Created zone {zone.name} with ID {zone.id} and serial {zone.serial}")
        return zone

    async def update_zone(self, tenant_id: str, name: str, updates: Dict[str, Any]) -> Zone:
        """Merge the given fields into the zone and bump its serial"""
        changes = {k: v for k, v in updates.items() if k in ZONE_UPDATABLE_FIELDS and v is not None}
        if not changes:
            raise ValidationException('No updates provided', errors=['No updates provided'])

        async with self.database.transaction(tenant_id) as session:
            zone = await self._require_zone(session, tenant_id, name)
            for key, value in changes.items():
                setattr(zone, 'zone_type' if key == 'type' else key, value)
            zone.serial = next_serial(zone.serial)
            zone.updated_at = datetime.utcnow()
            await session.flush()

        logger.info(f"Updated zone {zone.name} (serial: {zone.serial})")
        return zone

    async def delete_zone(self, tenant_id: str, name: str) -> Zone:
        """Hard delete; the zone's records go with it through the foreign key"""
        async with self.database.transaction(tenant_id) as session:
            zone = await self._require_zone(session, tenant_id, name)
            await session.delete(zone)
            await session.flush()

        logger.info(f"Deleted zone {zone.name}")
        return zone

    # ------------------------------------------------------------------
    # Records
    # ------------------------------------------------------------------

    async def get_records(
        self,
        tenant_id: str,
        zone_name: str,
        record_type: Optional[str] = None,
        name: Optional[str] = None,
        limit: int = 1000,
        offset: int = 0
    ) -> List[DNSRecord]:
        """Active records of a zone ordered by (name, type); empty when the zone is unknown"""
        async with self.database.transaction(tenant_id) as session:
            query = (
                select(DNSRecord)
                .join(Zone, DNSRecord.zone_id == Zone.id)
                .where(
                    Zone.tenant_id == tenant_id,
                    DNSRecord.tenant_id == tenant_id,
                    Zone.name == zone_name.rstrip('.').lower(),
                    DNSRecord.status == 'active',
                )
            )
            if record_type:
                query = query.where(DNSRecord.record_type == record_type.upper())
            if name:
                query = query.where(DNSRecord.name == name)
            query = query.order_by(DNSRecord.name, DNSRecord.record_type).limit(limit).offset(offset)
            result = await session.execute(query)
            return list(result.scalars().all())

    async def count_records(self, tenant_id: str, zone_name: Optional[str] = None) -> int:
        async with self.database.transaction(tenant_id) as session:
            query = (
                select(func.count(DNSRecord.id))
                .where(DNSRecord.tenant_id == tenant_id, DNSRecord.status == 'active')
            )
            if zone_name:
                query = query.join(Zone, DNSRecord.zone_id == Zone.id).where(
                    Zone.name == zone_name.rstrip('.').lower()
                )
            result = await session.execute(query)
            return result.scalar_one()

    async def create_record(
        self,
        tenant_id: str,
        zone_name: str,
        record_data: Dict[str, Any],
        created_by: Optional[str] = None
    ) -> DNSRecord:
        async with self.database.transaction(tenant_id) as session:
            zone = await self._require_zone(session, tenant_id, zone_name)
            record = await self._insert_record(session, zone, record_data, created_by)
            zone.serial = next_serial(zone.serial)

        logger.info(f"Created {record.record_type} record {record.name} in zone {zone.name}")
        return record

    async def update_record(
        self,
        tenant_id: str,
        zone_name: str,
        name: str,
        record_type: str,
        updates: Dict[str, Any],
        match_value: Optional[str] = None
    ) -> List[DNSRecord]:
        """Update active records addressed by (zone, name, type), optionally narrowed by value"""
        changes = {k: v for k, v in updates.items() if k in RECORD_UPDATABLE_FIELDS}
        if not changes:
            raise ValidationException('No updates provided', errors=['No updates provided'])

        async with self.database.transaction(tenant_id) as session:
            zone = await self._require_zone(session, tenant_id, zone_name)
            records = await self._find_records(session, zone, name, record_type, match_value)
            if not records:
                raise NotFoundException(
                    f"Record {name} {record_type.upper()} not found in zone '{zone.name}'"
                )
            now = datetime.utcnow()
            for record in records:
                for key, value in changes.items():
                    setattr(record, key, value)
                record.updated_at = now
            zone.serial = next_serial(zone.serial)
            await session.flush()

        logger.info(f"Updated {len(records)} {record_type.upper()} record(s) {name} in zone {zone.name}")
        return records

    async def delete_record(
        self,
        tenant_id: str,
        zone_name: str,
        name: str,
        record_type: str,
        match_value: Optional[str] = None
    ) -> List[DNSRecord]:
        """Soft delete: matching records move to status 'deleted' and stay in the table"""
        async with self.database.transaction(tenant_id) as session:
            zone = await self._require_zone(session, tenant_id, zone_name)
            records = await self._soft_delete(session, zone, name, record_type, match_value)
            zone.serial = next_serial(zone.serial)

        logger.info(f"Deleted {len(records)} {record_type.upper()} record(s) {name} from zone {zone.name}")
        return records

    async def get_record(
        self, tenant_id: str, zone_name: str, name: str, record_type: str,
        match_value: Optional[str] = None
    ) -> List[DNSRecord]:
        """Active records at a natural key; empty when nothing matches"""
        async with self.database.transaction(tenant_id) as session:
            zone = await self._require_zone(session, tenant_id, zone_name)
            return await self._find_records(session, zone, name, record_type, match_value)

    async def bulk_create_records(
        self,
        tenant_id: str,
        zone_name: str,
        records: List[Dict[str, Any]],
        created_by: Optional[str] = None
    ) -> List[DNSRecord]:
        """Insert up to 100 records in one transaction; any failure rolls back all of them"""
        check_batch_size(records)
        created: List[DNSRecord] = []
        errors: List[Dict[str, Any]] = []

        async with self.database.transaction(tenant_id) as session:
            zone = await self._require_zone(session, tenant_id, zone_name)
            for index, record_data in enumerate(records):
                try:
                    created.append(await self._insert_record(session, zone, record_data, created_by))
                except ConflictException as e:
                    errors.append({'index': index, 'record': record_data, 'error': e.message})
                except IntegrityError as e:
                    # The session cannot continue after a failed flush
                    errors.append({'index': index, 'record': record_data, 'error': str(e.orig)})
                    break
            if errors:
                raise TransactionFailureException(
                    f"Bulk create failed for {len(errors)} of {len(records)} records; nothing was applied",
                    errors=errors[:MAX_BATCH_SIZE]
                )
            zone.serial = next_serial(zone.serial)

        logger.info(f"Bulk created {len(created)} records in zone {zone.name}")
        return created

    async def bulk_delete_records(
        self,
        tenant_id: str,
        zone_name: str,
        keys: List[Dict[str, Any]]
    ) -> List[DNSRecord]:
        """Soft delete up to 100 natural keys in one transaction; a missing key rolls back all"""
        check_batch_size(keys)
        deleted: List[DNSRecord] = []
        errors: List[Dict[str, Any]] = []

        async with self.database.transaction(tenant_id) as session:
            zone = await self._require_zone(session, tenant_id, zone_name)
            for index, key in enumerate(keys):
                try:
                    deleted.extend(await self._soft_delete(
                        session, zone, key.get('name'), key.get('type') or '', key.get('value')
                    ))
                except NotFoundException as e:
                    errors.append({'index': index, 'record': key, 'error': e.message})
            if errors:
                raise TransactionFailureException(
                    f"Bulk delete failed for {len(errors)} of {len(keys)} records; nothing was applied",
                    errors=errors[:MAX_BATCH_SIZE]
                )
            zone.serial = next_serial(zone.serial)

        logger.info(f"Bulk deleted {len(deleted)} records from zone {zone.name}")
        return deleted

    # ------------------------------------------------------------------
    # TSIG keys
    # ------------------------------------------------------------------

    async def create_tsig_key(
        self,
        tenant_id: str,
        name: str,
        algorithm: str = 'hmac-sha256',
        secret: Optional[str] = None,
        created_by: Optional[str] = None
    ) -> TsigKey:
        """Store a key; a random 256-bit secret is generated when none is given"""
        if algorithm not in TSIG_ALGORITHMS:
            raise ValidationException(
                f"Unsupported TSIG algorithm: {algorithm}",
                errors=[f"Algorithm must be one of: {', '.join(TSIG_ALGORITHMS)}"]
            )
        if secret is None:
            secret = base64.b64encode(secrets.token_bytes(32)).decode('ascii')
        else:
            try:
                base64.b64decode(secret, validate=True)
            except (binascii.Error, ValueError) as e:
                raise ValidationException(
                    'TSIG secret must be base64 encoded', errors=['TSIG secret must be base64 encoded']
                ) from e

        try:
            async with self.database.transaction(tenant_id) as session:
                if await self._find_tsig_key(session, tenant_id, name):
                    raise ConflictException(f"TSIG key '{name}' already exists")
                key = TsigKey(
                    tenant_id=tenant_id, name=name, algorithm=algorithm,
                    secret=secret, created_by=created_by
                )
                session.add(key)
                await session.flush()
        except IntegrityError as e:
            if _is_unique_violation(e):
                raise ConflictException(f"TSIG key '{name}' already exists") from e
            raise

        logger.info(f"Created TSIG key {name} ({algorithm})")
        return key

    async def get_tsig_keys(self, tenant_id: str) -> List[Dict[str, Any]]:
        """Key metadata for listings; secrets are never part of the result"""
        async with self.database.transaction(tenant_id) as session:
            result = await session.execute(
                select(TsigKey).where(TsigKey.tenant_id == tenant_id).order_by(TsigKey.name)
            )
            return [key.to_dict() for key in result.scalars().all()]

    async def get_tsig_keys_with_secrets(self, tenant_id: str) -> List[TsigKey]:
        """Full key rows for key-file rendering; never serialize these to clients"""
        async with self.database.transaction(tenant_id) as session:
            result = await session.execute(
                select(TsigKey).where(TsigKey.tenant_id == tenant_id).order_by(TsigKey.name)
            )
            return list(result.scalars().all())

    async def delete_tsig_key(self, tenant_id: str, name: str) -> None:
        async with self.database.transaction(tenant_id) as session:
            key = await self._find_tsig_key(session, tenant_id, name)
            if key is None:
                raise NotFoundException(f"TSIG key '{name}' not found")
            await session.delete(key)
        logger.info(f"Deleted TSIG key {name}")

    async def record_tsig_usage(self, tenant_id: str, name: str) -> None:
        async with self.database.transaction(tenant_id) as session:
            key = await self._find_tsig_key(session, tenant_id, name)
            if key is None:
                raise NotFoundException(f"TSIG key '{name}' not found")
            key.last_used = datetime.utcnow()
            key.usage_count = (key.usage_count or 0) + 1

    # ------------------------------------------------------------------
    # Audit log
    # ------------------------------------------------------------------

    async def create_audit_log(
        self,
        tenant_id: str,
        operation: str,
        resource_type: str,
        resource_id: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
        user_id: Optional[str] = None,
        source_ip: Optional[str] = None,
        user_agent: Optional[str] = None,
        success: bool = True,
        error_message: Optional[str] = None
    ) -> AuditLog:
        """Append an audit row; rows are never updated or deleted"""
        async with self.database.transaction(tenant_id) as session:
            entry = AuditLog(
                tenant_id=tenant_id,
                user_id=user_id,
                operation=operation,
                resource_type=resource_type,
                resource_id=resource_id,
                details=details or {},
                source_ip=source_ip,
                user_agent=user_agent,
                success=success,
                error_message=error_message,
            )
            session.add(entry)
            await session.flush()
        return entry

    async def get_audit_logs(
        self,
        tenant_id: str,
        start_date: Optional[datetime] = None,
        end_date: Optional[datetime] = None,
        operation: Optional[str] = None,
        user_id: Optional[str] = None,
        resource_type: Optional[str] = None,
        limit: int = 100,
        offset: int = 0
    ) -> List[AuditLog]:
        async with self.database.transaction(tenant_id) as session:
            query = select(AuditLog).where(AuditLog.tenant_id == tenant_id)
            if start_date:
                query = query.where(AuditLog.created_at >= start_date)
            if end_date:
                query = query.where(AuditLog.created_at <= end_date)
            if operation:
                query = query.where(AuditLog.operation == operation)
            if user_id:
                query = query.where(AuditLog.user_id == user_id)
            if resource_type:
                query = query.where(AuditLog.resource_type == resource_type)
            query = query.order_by(AuditLog.created_at.desc()).limit(limit).offset(offset)
            result = await session.execute(query)
            return list(result.scalars().all())

    # ------------------------------------------------------------------
    # Helpers (run inside an open session)
    # ------------------------------------------------------------------

    @staticmethod
    async def _find_zone(session: AsyncSession, tenant_id: str, name: str) -> Optional[Zone]:
        result = await session.execute(
            select(Zone).where(Zone.tenant_id == tenant_id, Zone.name == name.rstrip('.').lower())
        )
        return result.scalar_one_or_none()

    async def _require_zone(self, session: AsyncSession, tenant_id: str, name: str) -> Zone:
        zone = await self._find_zone(session, tenant_id, name)
        if zone is None:
            raise NotFoundException(f"Zone '{name}' not found")
        return zone

    @staticmethod
    async def _find_records(
        session: AsyncSession,
        zone: Zone,
        name: Optional[str],
        record_type: str,
        match_value: Optional[str] = None
    ) -> List[DNSRecord]:
        query = select(DNSRecord).where(
            DNSRecord.zone_id == zone.id,
            DNSRecord.name == name,
            DNSRecord.record_type == record_type.upper(),
            DNSRecord.status == 'active',
        )
        if match_value is not None:
            query = query.where(DNSRecord.value == match_value)
        result = await session.execute(query.order_by(DNSRecord.created_at))
        return list(result.scalars().all())

    @staticmethod
    async def _find_tsig_key(session: AsyncSession, tenant_id: str, name: str) -> Optional[TsigKey]:
        result = await session.execute(
            select(TsigKey).where(TsigKey.tenant_id == tenant_id, TsigKey.name == name)
        )
        return result.scalar_one_or_none()

    async def _check_conflicts(self, session: AsyncSession, zone: Zone, name: str, record_type: str) -> None:
        result = await session.execute(
            select(DNSRecord.record_type).where(
                DNSRecord.zone_id == zone.id,
                DNSRecord.name == name,
                DNSRecord.status == 'active',
            )
        )
        existing = set(result.scalars().all())
        if not existing:
            return

        if record_type in SINGLETON_TYPES and record_type in existing:
            raise ConflictException(f"An active {record_type} record already exists for '{name}'")
        if record_type == 'CNAME':
            raise ConflictException(f"CNAME record '{name}' cannot coexist with other records")
        if 'CNAME' in existing:
            raise ConflictException(f"'{name}' already has a CNAME record; no other records are allowed")

    async def _insert_record(
        self,
        session: AsyncSession,
        zone: Zone,
        record_data: Dict[str, Any],
        created_by: Optional[str]
    ) -> DNSRecord:
        name = record_data['name'].strip()
        record_type = record_data['type'].upper()
        await self._check_conflicts(session, zone, name, record_type)

        record = DNSRecord(
            tenant_id=zone.tenant_id,
            zone_id=zone.id,
            name=name,
            record_type=record_type,
            value=record_data['value'].strip(),
            ttl=record_data.get('ttl') or 300,
            priority=record_data.get('priority'),
            weight=record_data.get('weight'),
            port=record_data.get('port'),
            created_by=created_by,
        )
        session.add(record)
        await session.flush()
        return record

    async def _soft_delete(
        self,
        session: AsyncSession,
        zone: Zone,
        name: Optional[str],
        record_type: str,
        match_value: Optional[str]
    ) -> List[DNSRecord]:
        records = await self._find_records(session, zone, name, record_type, match_value)
        if not records:
            raise NotFoundException(f"Record {name} {record_type.upper()} not found in zone '{zone.name}'")
        now = datetime.utcnow()
        for record in records:
            record.status = 'deleted'
            record.updated_at = now
        await session.flush()
        return records
