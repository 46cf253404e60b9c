"""
Point-in-time backups of zones, database, nameserver config and TSIG key metadata
"""

import asyncio
import json
import os
import shutil
import tarfile
import weakref
from dataclasses import asdict, dataclass, field
from datetime import datetime, timedelta
from enum import Enum
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

from sqlalchemy.engine import make_url
from sqlalchemy.exc import SQLAlchemyError

from ..core.config import Settings
from ..core.exceptions import (
    BackupException, DDIGatewayException, NotFoundException, ValidationException
)
from ..core.logging_config import get_backup_logger
from .base_service import SYSTEM_ACTOR, Actor, AuditedService
from .command_runner import CommandRunner, run_command
from .dns_store import MAX_BATCH_SIZE, DNSStore
from .event_bus import EventBus
from .validation import validate_record
from .zone_file import encode_zone

logger = get_backup_logger()

MANIFEST_FILE = "manifest.json"
ZONES_SUMMARY_FILE = "zones-summary.json"
ARCHIVE_SUFFIX = ".tar.gz"

# One lock per backup root, per event loop
_root_locks: "weakref.WeakKeyDictionary[asyncio.AbstractEventLoop, Dict[str, asyncio.Lock]]" = (
    weakref.WeakKeyDictionary()
)


def _root_lock(root: Path) -> asyncio.Lock:
    locks = _root_locks.setdefault(asyncio.get_running_loop(), {})
    return locks.setdefault(str(root.resolve()), asyncio.Lock())


class ComponentStatus(str, Enum):
    """Outcome of one backup component"""
    SUCCESS = "success"
    WARNING = "warning"


@dataclass
class BackupManifest:
    """Descriptor written last into a backup; its presence marks the backup complete"""
    id: str
    timestamp: datetime
    tenant_id: Optional[str] = None
    type: str = "full"
    components: List[Dict[str, Any]] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "type": self.type,
            "timestamp": self.timestamp.isoformat(),
            "tenantId": self.tenant_id,
            "components": self.components,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'BackupManifest':
        return cls(
            id=data["id"],
            type=data.get("type", "full"),
            timestamp=datetime.fromisoformat(data["timestamp"]),
            tenant_id=data.get("tenantId"),
            components=data.get("components", []),
        )


@dataclass
class BackupEntry:
    """A backup directory or archive found under the backup root"""
    name: str
    path: str
    size: int
    created: datetime
    compressed: bool
    manifest: Optional[BackupManifest] = None

    @property
    def backup_id(self) -> str:
        return self.name[:-len(ARCHIVE_SUFFIX)] if self.compressed else self.name

    @property
    def complete(self) -> bool:
        return self.manifest is not None

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["id"] = self.backup_id
        data["created"] = self.created.isoformat()
        data["complete"] = self.complete
        data["manifest"] = self.manifest.to_dict() if self.manifest else None
        return data


def _write_json(path: Path, data: Any) -> None:
    path.write_text(json.dumps(data, indent=2, default=str))


def _dir_size(path: Path) -> int:
    return sum(p.stat().st_size for p in path.rglob("*") if p.is_file())


def _read_archive_member(archive: Path, member: str) -> Optional[bytes]:
    with tarfile.open(archive, "r:gz") as tar:
        try:
            extracted = tar.extractfile(member)
        except KeyError:
            return None
        return extracted.read() if extracted else None


def _read_zone_documents(source: Path, backup_id: str, compressed: bool) -> List[Dict[str, Any]]:
    """Per-zone JSON documents of a backup, directory or archive"""
    documents = []
    if compressed:
        prefix = f"{backup_id}/zones/"
        with tarfile.open(source, "r:gz") as tar:
            for member in tar.getmembers():
                name = member.name
                if member.isfile() and name.startswith(prefix) and name.endswith(".json") \
                        and not name.endswith(ZONES_SUMMARY_FILE):
                    documents.append(json.loads(tar.extractfile(member).read()))
    else:
        for path in sorted((source / "zones").glob("*.json")):
            if path.name != ZONES_SUMMARY_FILE:
                documents.append(json.loads(path.read_text()))
    return documents


class BackupManager(AuditedService):
    """Creates, lists, prunes, schedules and restores backups"""

    resource_type = "backup"

    def __init__(
        self,
        store: DNSStore,
        settings: Settings,
        events: Optional[EventBus] = None,
        command_runner: CommandRunner = run_command,
        backup_dir: Optional[Path] = None
    ):
        super().__init__(store, events)
        self.settings = settings
        self.backup_dir = Path(backup_dir) if backup_dir else settings.backup_dir
        self.retention_days = settings.BACKUP_RETENTION_DAYS
        self.compression_enabled = settings.BACKUP_COMPRESSION
        self.config_files = [Path(p) for p in settings.BIND_CONFIG_FILES]
        self.default_tenant_id = settings.DEFAULT_TENANT_ID
        self.command_runner = command_runner
        self._schedule_task: Optional[asyncio.Task] = None

    async def initialize(self) -> None:
        await asyncio.to_thread(self.backup_dir.mkdir, parents=True, exist_ok=True)
        logger.info(f"Backup manager initialized at {self.backup_dir}")

    # ------------------------------------------------------------------
    # Full backup
    # ------------------------------------------------------------------

    def _new_backup_id(self, now: datetime) -> str:
        stamp = now.isoformat(timespec="milliseconds").replace(":", "-").replace(".", "-")
        backup_id = f"full-backup-{stamp}Z"
        suffix = 1
        candidate = backup_id
        while (self.backup_dir / candidate).exists() or \
                (self.backup_dir / f"{candidate}{ARCHIVE_SUFFIX}").exists():
            candidate = f"{backup_id}-{suffix}"
            suffix += 1
        return candidate

    async def perform_full_backup(self, tenant_id: Optional[str] = None) -> BackupManifest:
        """Capture zones, database, config and TSIG metadata into one bundle.

        Runs are serialized per backup root. Zone, database and TSIG failures
        abort the run and leave the directory without a manifest; missing
        config files only downgrade the config component to a warning.
        """
        tenant = tenant_id or self.default_tenant_id

        async with _root_lock(self.backup_dir):
            now = datetime.utcnow()
            await asyncio.to_thread(self.backup_dir.mkdir, parents=True, exist_ok=True)
            backup_id = self._new_backup_id(now)
            backup_path = self.backup_dir / backup_id
            logger.info(f"Starting full DNS backup: {backup_id}")

            manifest = BackupManifest(id=backup_id, timestamp=now, tenant_id=tenant_id)
            try:
                await asyncio.to_thread(backup_path.mkdir, parents=True)
                manifest.components.append(await self._backup_zones(tenant, backup_path, backup_id))
                manifest.components.append(await self._backup_database(tenant, backup_path, backup_id))
                manifest.components.append(await self._backup_bind_config(backup_path))
                manifest.components.append(await self._backup_tsig_keys(tenant, backup_path, backup_id))

                await asyncio.to_thread(_write_json, backup_path / MANIFEST_FILE, manifest.to_dict())

                if self.compression_enabled:
                    await self._compress_backup(backup_path, backup_id)
            except BackupException as e:
                logger.error(f"Full backup {backup_id} failed: {e.message}")
                self.events.emit("backup:failed", {"id": backup_id, "component": e.component, "error": e.message})
                raise
            except OSError as e:
                logger.error(f"Full backup {backup_id} failed: {e}")
                self.events.emit("backup:failed", {"id": backup_id, "component": None, "error": str(e)})
                raise BackupException(f"Full backup failed: {e}", backup_id=backup_id) from e

        logger.info(f"Full DNS backup completed: {backup_id}")
        self.events.emit("backup:completed", manifest.to_dict())
        return manifest

    async def _backup_zones(self, tenant_id: str, backup_path: Path, backup_id: str) -> Dict[str, Any]:
        try:
            zones_path = backup_path / "zones"
            await asyncio.to_thread(zones_path.mkdir, exist_ok=True)

            zones = await self.store.get_zones(tenant_id, limit=1000)
            summary: Dict[str, Any] = {"zones": [], "totalRecords": 0}

            for zone in zones:
                records = await self.store.get_records(tenant_id, zone.name, limit=10000)
                file_stem = zone.name.replace(".", "_")
                document = {
                    "zone": zone.to_dict(),
                    "records": [record.to_dict() for record in records],
                    "recordCount": len(records),
                }
                await asyncio.to_thread(_write_json, zones_path / f"{file_stem}.json", document)
                await asyncio.to_thread(
                    (zones_path / f"{file_stem}.zone").write_text, encode_zone(zone, records)
                )
                summary["zones"].append({
                    "name": zone.name, "recordCount": len(records), "fileName": f"{file_stem}.json"
                })
                summary["totalRecords"] += len(records)

            await asyncio.to_thread(_write_json, zones_path / ZONES_SUMMARY_FILE, summary)
        except (SQLAlchemyError, OSError, DDIGatewayException) as e:
            raise BackupException(f"Zone backup failed: {e}", component="zones", backup_id=backup_id) from e

        return {
            "component": "zones",
            "status": ComponentStatus.SUCCESS.value,
            "zonesCount": len(zones),
            "recordsCount": summary["totalRecords"],
            "path": "zones/",
        }

    def _dump_command(self, dump_file: Path) -> Tuple[List[str], Optional[Dict[str, str]], bool]:
        """(command, extra environment, whether stdout is the dump)"""
        url = make_url(self.settings.DATABASE_URL)
        if url.get_backend_name() == "sqlite":
            return ["sqlite3", url.database or ":memory:", ".dump"], None, True

        command = [self.settings.PG_DUMP_PATH]
        if url.host:
            command += ["-h", url.host]
        if url.port:
            command += ["-p", str(url.port)]
        if url.username:
            command += ["-U", url.username]
        command += ["-d", url.database or "", "-f", str(dump_file)]
        env = {"PGPASSWORD": url.password} if url.password else None
        return command, env, False

    async def _database_stats(self, tenant_id: str) -> Dict[str, Any]:
        try:
            return {
                "zones": await self.store.count_zones(tenant_id),
                "records": await self.store.count_records(tenant_id),
                "tsigKeys": len(await self.store.get_tsig_keys(tenant_id)),
                "timestamp": datetime.utcnow().isoformat(),
            }
        except SQLAlchemyError as e:
            logger.warning(f"Could not collect database statistics: {e}")
            return {"error": str(e)}

    async def _backup_database(self, tenant_id: str, backup_path: Path, backup_id: str) -> Dict[str, Any]:
        try:
            db_path = backup_path / "database"
            await asyncio.to_thread(db_path.mkdir, exist_ok=True)
            dump_file = db_path / "database.sql"

            command, extra_env, dump_on_stdout = self._dump_command(dump_file)
            env = {**os.environ, **extra_env} if extra_env else None
            result = await self.command_runner(command, timeout=3600, env=env)
            if result["returncode"] != 0:
                raise BackupException(
                    f"Database backup failed: {command[0]} exited with {result['returncode']}: "
                    f"{result['stderr'].strip()}",
                    component="database", backup_id=backup_id
                )
            if dump_on_stdout:
                await asyncio.to_thread(dump_file.write_text, result["stdout"])

            stats = await self._database_stats(tenant_id)
            await asyncio.to_thread(_write_json, db_path / "database-stats.json", stats)
        except OSError as e:
            raise BackupException(f"Database backup failed: {e}", component="database", backup_id=backup_id) from e

        return {
            "component": "database",
            "status": ComponentStatus.SUCCESS.value,
            "dumpFile": "database.sql",
            "stats": stats,
            "path": "database/",
        }

    async def _backup_bind_config(self, backup_path: Path) -> Dict[str, Any]:
        config_path = backup_path / "config"
        await asyncio.to_thread(config_path.mkdir, exist_ok=True)

        backed_up: List[str] = []
        warnings: List[str] = []
        for config_file in self.config_files:
            try:
                await asyncio.to_thread(shutil.copy2, config_file, config_path / config_file.name)
                backed_up.append(config_file.name)
            except OSError as e:
                logger.warning(f"Could not backup {config_file}: {e}")
                warnings.append(f"Could not backup {config_file}: {e.strerror or e}")

        return {
            "component": "bind_config",
            "status": (ComponentStatus.WARNING if warnings else ComponentStatus.SUCCESS).value,
            "files": backed_up,
            "warnings": warnings,
            "path": "config/",
        }

    async def _backup_tsig_keys(self, tenant_id: str, backup_path: Path, backup_id: str) -> Dict[str, Any]:
        try:
            keys = await self.store.get_tsig_keys(tenant_id)
            # Metadata only; secrets never reach a backup artifact
            keys_for_backup = [
                {
                    "name": key["name"],
                    "algorithm": key["algorithm"],
                    "created_at": key["created_at"],
                    "last_used": key["last_used"],
                    "usage_count": key["usage_count"],
                }
                for key in keys
            ]
            await asyncio.to_thread(_write_json, backup_path / "tsig-keys.json", keys_for_backup)
        except (SQLAlchemyError, OSError) as e:
            raise BackupException(f"TSIG keys backup failed: {e}", component="tsig_keys", backup_id=backup_id) from e

        return {
            "component": "tsig_keys",
            "status": ComponentStatus.SUCCESS.value,
            "keyCount": len(keys),
            "path": "tsig-keys.json",
        }

    async def _compress_backup(self, backup_path: Path, backup_id: str) -> Path:
        archive = backup_path.with_name(f"{backup_path.name}{ARCHIVE_SUFFIX}")

        def compress() -> None:
            with tarfile.open(archive, "w:gz") as tar:
                tar.add(backup_path, arcname=backup_path.name)
            shutil.rmtree(backup_path)

        try:
            await asyncio.to_thread(compress)
        except (OSError, tarfile.TarError) as e:
            raise BackupException(f"Backup compression failed: {e}", component="compression", backup_id=backup_id) from e

        logger.info(f"Backup compressed: {archive}")
        return archive

    # ------------------------------------------------------------------
    # Listing and retention
    # ------------------------------------------------------------------

    def _scan(self) -> List[BackupEntry]:
        if not self.backup_dir.exists():
            return []

        entries = []
        for path in self.backup_dir.iterdir():
            compressed = path.name.endswith(ARCHIVE_SUFFIX)
            if not (path.is_dir() or compressed):
                continue

            manifest = None
            try:
                if compressed:
                    raw = _read_archive_member(path, f"{path.name[:-len(ARCHIVE_SUFFIX)]}/{MANIFEST_FILE}")
                else:
                    manifest_path = path / MANIFEST_FILE
                    raw = manifest_path.read_bytes() if manifest_path.exists() else None
                if raw:
                    manifest = BackupManifest.from_dict(json.loads(raw))
            except (OSError, ValueError, KeyError, tarfile.TarError) as e:
                logger.warning(f"Unreadable manifest in {path.name}: {e}")

            stat = path.stat()
            entries.append(BackupEntry(
                name=path.name,
                path=str(path),
                size=_dir_size(path) if path.is_dir() else stat.st_size,
                created=datetime.fromtimestamp(stat.st_mtime),
                compressed=compressed,
                manifest=manifest,
            ))

        return sorted(entries, key=lambda e: (e.created, e.name), reverse=True)

    async def list_backups(self) -> List[BackupEntry]:
        """Backups under the root, newest first"""
        return await asyncio.to_thread(self._scan)

    def _check_backup_id(self, backup_id: str) -> None:
        if not backup_id or "/" in backup_id or "\\" in backup_id or backup_id.startswith("."):
            raise ValidationException(f"Invalid backup id: {backup_id}", errors=["Invalid backup id"])

    async def get_backup(self, backup_id: str) -> BackupEntry:
        self._check_backup_id(backup_id)
        for entry in await self.list_backups():
            if entry.backup_id == backup_id or entry.name == backup_id:
                return entry
        raise NotFoundException(f"Backup '{backup_id}' not found")

    @staticmethod
    def _remove(entry: BackupEntry) -> None:
        if entry.compressed:
            Path(entry.path).unlink()
        else:
            shutil.rmtree(entry.path)

    async def delete_backup(self, backup_id: str) -> BackupEntry:
        entry = await self.get_backup(backup_id)
        async with _root_lock(self.backup_dir):
            await asyncio.to_thread(self._remove, entry)
        logger.info(f"Deleted backup: {entry.name}")
        return entry

    async def cleanup_old_backups(self) -> int:
        """Delete backups older than the retention window; returns how many went"""
        cutoff = datetime.now() - timedelta(days=self.retention_days)
        deleted_count = 0

        async with _root_lock(self.backup_dir):
            for entry in await self.list_backups():
                if entry.created < cutoff:
                    await asyncio.to_thread(self._remove, entry)
                    deleted_count += 1
                    logger.info(f"Deleted old backup: {entry.name}")

        logger.info(f"Cleanup completed: {deleted_count} old backups deleted")
        return deleted_count

    # ------------------------------------------------------------------
    # Scheduling
    # ------------------------------------------------------------------

    async def run_scheduled_backup(self) -> None:
        """One scheduled run; failures are logged and never propagate"""
        try:
            logger.info("Starting scheduled DNS backup...")
            await self.perform_full_backup()
            await self.cleanup_old_backups()
            logger.info("Scheduled DNS backup completed")
        except Exception as e:
            logger.error(f"Scheduled backup failed: {e}")

    async def _schedule_loop(self, interval_seconds: float) -> None:
        while True:
            await asyncio.sleep(interval_seconds)
            await self.run_scheduled_backup()

    def schedule_backups(self, interval_hours: Optional[float] = None) -> asyncio.Task:
        """Start the backup timer; the first run happens one interval from now"""
        hours = interval_hours if interval_hours is not None else self.settings.BACKUP_INTERVAL_HOURS
        if self._schedule_task and not self._schedule_task.done():
            self._schedule_task.cancel()
        self._schedule_task = asyncio.create_task(self._schedule_loop(hours * 3600))
        logger.info(f"DNS backups scheduled every {hours} hours")
        return self._schedule_task

    async def stop_scheduled_backups(self) -> None:
        """Cancel future scheduled runs; a run already in progress is allowed to finish"""
        task = self._schedule_task
        self._schedule_task = None
        if task is None or task.done():
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass
        logger.info("Scheduled DNS backups stopped")

    # ------------------------------------------------------------------
    # Restore
    # ------------------------------------------------------------------

    async def restore_zones(
        self, backup_id: str, tenant_id: Optional[str] = None, actor: Actor = SYSTEM_ACTOR
    ) -> Dict[str, Any]:
        """Re-create zones and records from a complete backup.

        Zones missing from the store are created. Records already present
        (same name, type and value) are skipped; the rest go through
        validation and are written in transactional batches of 100.
        """
        tenant = tenant_id or self.default_tenant_id
        entry = await self.get_backup(backup_id)
        if not entry.complete:
            raise ValidationException(
                f"Backup '{backup_id}' is incomplete (no {MANIFEST_FILE}); refusing to restore",
                errors=[f"Missing {MANIFEST_FILE}"]
            )

        documents = await asyncio.to_thread(
            _read_zone_documents, Path(entry.path), entry.backup_id, entry.compressed
        )
        results = []
        for document in documents:
            results.append(await self._restore_zone(tenant, document, actor))

        restored = sum(r["restored"] for r in results)
        await self._audit(
            tenant, actor, "RESTORE_ZONES", entry.backup_id,
            details={"zones": len(results), "restored": restored},
            success=all(not r["errors"] for r in results)
        )
        logger.info(f"Restored {restored} records into {len(results)} zones from {entry.backup_id}")
        return {"backup_id": entry.backup_id, "zones": results, "restored": restored}

    async def _restore_zone(self, tenant_id: str, document: Dict[str, Any], actor: Actor) -> Dict[str, Any]:
        zone_data = document["zone"]
        name = zone_data["name"]
        result: Dict[str, Any] = {"name": name, "created_zone": False, "restored": 0, "skipped": 0, "errors": []}

        try:
            if await self.store.get_zone(tenant_id, name) is None:
                await self.store.create_zone(tenant_id, zone_data, created_by=actor.user_id)
                result["created_zone"] = True

            existing = {
                (r.name, r.record_type, r.value)
                for r in await self.store.get_records(tenant_id, name, limit=100000)
            }
            pending = []
            for record in document.get("records", []):
                if record.get("status", "active") != "active" or \
                        (record["name"], record["type"], record["value"]) in existing:
                    result["skipped"] += 1
                    continue
                validation = validate_record(record)
                if not validation.is_valid:
                    result["skipped"] += 1
                    result["errors"].append(f"{record['name']} {record['type']}: {'; '.join(validation.errors)}")
                    continue
                pending.append(record)

            for start in range(0, len(pending), MAX_BATCH_SIZE):
                batch = pending[start:start + MAX_BATCH_SIZE]
                created = await self.store.bulk_create_records(tenant_id, name, batch, created_by=actor.user_id)
                result["restored"] += len(created)
        except DDIGatewayException as e:
            logger.error(f"Restore of zone {name} failed: {e.message}")
            result["errors"].append(e.message)

        return result
