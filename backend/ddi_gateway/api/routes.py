"""
Main API routes configuration
"""

from fastapi import APIRouter

from .endpoints import audit, backup, dhcp, dns, dns_records, health, tsig_keys, websocket, zones

# Create main API router
api_router = APIRouter()

api_router.include_router(zones.router, prefix="/zones", tags=["DNS Zones"])
api_router.include_router(dns_records.router, prefix="/zones", tags=["DNS Records"])
api_router.include_router(tsig_keys.router, prefix="/tsig-keys", tags=["TSIG Keys"])
api_router.include_router(audit.router, prefix="/audit-logs", tags=["Audit Log"])
api_router.include_router(backup.router, prefix="/backups", tags=["Backups"])
api_router.include_router(health.router, prefix="/health", tags=["Health & Monitoring"])
api_router.include_router(dns.router, prefix="/dns", tags=["Nameserver"])
api_router.include_router(dhcp.router, prefix="/dhcp", tags=["DHCP"])

# WebSocket routes
api_router.include_router(websocket.router, prefix="/ws", tags=["WebSocket"])
