"""
Live nameserver endpoints backed by the DNS provider
"""

from fastapi import APIRouter, Depends

from ...core.dependencies import get_provider
from ...services.dns_provider import ProviderHandle, Unavailable

router = APIRouter()


@router.get("/status")
async def get_dns_status(provider: ProviderHandle = Depends(get_provider)):
    """Nameserver status from rndc"""
    if isinstance(provider, Unavailable):
        return provider.status()
    return await provider.provider.get_status()


@router.get("/ddns-status")
async def get_ddns_status(provider: ProviderHandle = Depends(get_provider)):
    if isinstance(provider, Unavailable):
        return provider.ddns_status()
    return await provider.provider.get_ddns_status()


@router.get("/zones")
async def get_live_zones(provider: ProviderHandle = Depends(get_provider)):
    """Zones configured on the nameserver"""
    if isinstance(provider, Unavailable):
        return provider.zones()
    return await provider.provider.get_zones()


@router.get("/zones/{zone_name}/records")
async def get_live_records(zone_name: str, provider: ProviderHandle = Depends(get_provider)):
    """Records served by the nameserver, read by zone transfer"""
    if isinstance(provider, Unavailable):
        return provider.records(zone_name)
    return await provider.provider.get_records(zone_name)
