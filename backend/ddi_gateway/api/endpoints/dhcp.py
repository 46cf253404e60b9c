"""
Kea control-agent proxy
"""

from fastapi import APIRouter, Depends

from ...core.dependencies import get_kea_client
from ...schemas.system import KeaCommand
from ...services.kea_client import KeaClient

router = APIRouter()


@router.post("/command")
async def run_kea_command(command: KeaCommand, kea_client: KeaClient = Depends(get_kea_client)):
    """Forward one command to the Kea control agent and return the per-service replies"""
    return await kea_client.call(command.command, service=command.service, arguments=command.arguments)
