"""
Backup management endpoints
"""

from typing import List

from fastapi import APIRouter, Depends, status

from ...core.dependencies import get_actor, get_backup_manager, get_tenant_id
from ...schemas.system import BackupCleanupResponse, BackupResponse
from ...services.backup_service import BackupManager
from ...services.base_service import Actor

router = APIRouter()


@router.get("", response_model=List[BackupResponse])
async def list_backups(backup_manager: BackupManager = Depends(get_backup_manager)):
    """Backups under the backup root, newest first"""
    return [entry.to_dict() for entry in await backup_manager.list_backups()]


@router.post("", status_code=status.HTTP_201_CREATED)
async def create_backup(
    tenant_id: str = Depends(get_tenant_id),
    backup_manager: BackupManager = Depends(get_backup_manager)
):
    """Run a full backup now; waits for any backup already in progress"""
    manifest = await backup_manager.perform_full_backup(tenant_id)
    return manifest.to_dict()


@router.post("/cleanup", response_model=BackupCleanupResponse)
async def cleanup_backups(backup_manager: BackupManager = Depends(get_backup_manager)):
    deleted = await backup_manager.cleanup_old_backups()
    return {"deleted": deleted, "retention_days": backup_manager.retention_days}


@router.get("/{backup_id}", response_model=BackupResponse)
async def get_backup(backup_id: str, backup_manager: BackupManager = Depends(get_backup_manager)):
    return (await backup_manager.get_backup(backup_id)).to_dict()


@router.delete("/{backup_id}")
async def delete_backup(backup_id: str, backup_manager: BackupManager = Depends(get_backup_manager)):
    entry = await backup_manager.delete_backup(backup_id)
    return {"deleted": True, "id": entry.backup_id}


@router.post("/{backup_id}/restore")
async def restore_backup(
    backup_id: str,
    tenant_id: str = Depends(get_tenant_id),
    actor: Actor = Depends(get_actor),
    backup_manager: BackupManager = Depends(get_backup_manager)
):
    """Re-create zones and records from a complete backup"""
    return await backup_manager.restore_zones(backup_id, tenant_id, actor)
