"""
TSIG key management
"""

from typing import Any, Dict, List, Optional

from ..core.exceptions import DDIGatewayException
from .base_service import Actor, AuditedService
from .dns_provider import render_tsig_key_file


class TsigKeyService(AuditedService):
    """Audited TSIG key operations; secrets leave the gateway only on creation and in the key file"""

    resource_type = "tsig_key"

    async def list_keys(self, tenant_id: str) -> List[Dict[str, Any]]:
        return await self.store.get_tsig_keys(tenant_id)

    async def create_key(
        self,
        tenant_id: str,
        name: str,
        actor: Actor,
        algorithm: str = "hmac-sha256",
        secret: Optional[str] = None
    ) -> Dict[str, Any]:
        try:
            key = await self.store.create_tsig_key(
                tenant_id, name, algorithm=algorithm, secret=secret, created_by=actor.user_id
            )
        except DDIGatewayException as e:
            await self._audit(tenant_id, actor, "CREATE_TSIG_KEY", name, success=False, error_message=e.message)
            raise

        await self._audit(tenant_id, actor, "CREATE_TSIG_KEY", name, details={"algorithm": algorithm})
        self.events.emit("tsig_key_created", {"tenant_id": tenant_id, "key": key.to_dict()})
        # Shown once; listings never include it
        return {**key.to_dict(), "secret": key.secret}

    async def delete_key(self, tenant_id: str, name: str, actor: Actor) -> Dict[str, Any]:
        try:
            await self.store.delete_tsig_key(tenant_id, name)
        except DDIGatewayException as e:
            await self._audit(tenant_id, actor, "DELETE_TSIG_KEY", name, success=False, error_message=e.message)
            raise

        await self._audit(tenant_id, actor, "DELETE_TSIG_KEY", name)
        self.events.emit("tsig_key_deleted", {"tenant_id": tenant_id, "key": name})
        return {"deleted": True, "name": name}

    async def render_key_file(self, tenant_id: str) -> str:
        """BIND key include file for every key of the tenant"""
        keys = await self.store.get_tsig_keys_with_secrets(tenant_id)
        return render_tsig_key_file(keys)
