"""
TSIG key management endpoints
"""

from typing import List

from fastapi import APIRouter, Depends, Response, status

from ...core.dependencies import get_actor, get_tenant_id, get_tsig_service
from ...schemas.dns import TsigKeyCreate, TsigKeyResponse
from ...services.base_service import Actor
from ...services.tsig_service import TsigKeyService

router = APIRouter()


@router.get("", response_model=List[TsigKeyResponse])
async def list_tsig_keys(
    tenant_id: str = Depends(get_tenant_id),
    tsig_service: TsigKeyService = Depends(get_tsig_service)
):
    """Key metadata; secrets are never listed"""
    return await tsig_service.list_keys(tenant_id)


@router.post("", response_model=TsigKeyResponse, status_code=status.HTTP_201_CREATED)
async def create_tsig_key(
    key: TsigKeyCreate,
    tenant_id: str = Depends(get_tenant_id),
    actor: Actor = Depends(get_actor),
    tsig_service: TsigKeyService = Depends(get_tsig_service)
):
    """Create a key; the secret is returned only in this response"""
    return await tsig_service.create_key(
        tenant_id, key.name, actor, algorithm=key.algorithm, secret=key.secret
    )


@router.get("/key-file")
async def get_tsig_key_file(
    tenant_id: str = Depends(get_tenant_id),
    tsig_service: TsigKeyService = Depends(get_tsig_service)
):
    """BIND key include file for the tenant's keys"""
    content = await tsig_service.render_key_file(tenant_id)
    return Response(content=content, media_type="text/plain")


@router.delete("/{name}")
async def delete_tsig_key(
    name: str,
    tenant_id: str = Depends(get_tenant_id),
    actor: Actor = Depends(get_actor),
    tsig_service: TsigKeyService = Depends(get_tsig_service)
):
    return await tsig_service.delete_key(tenant_id, name, actor)
