"""
Base service class with audit logging
"""

from dataclasses import dataclass
from typing import Any, Dict, Optional

from sqlalchemy.exc import SQLAlchemyError

from ..core.logging_config import get_audit_logger, get_logger
from .dns_store import DNSStore
from .event_bus import EventBus

logger = get_logger(__name__)
audit_logger = get_audit_logger()


@dataclass(frozen=True)
class Actor:
    """Who performed an operation, as recorded in the audit log"""
    user_id: Optional[str] = None
    source_ip: Optional[str] = None
    user_agent: Optional[str] = None


SYSTEM_ACTOR = Actor(user_agent="ddi-gateway")

# Emitted once per audited operation with its outcome
OPERATION_EVENT = "dns:operation"


class AuditedService:
    """Base class for services whose operations leave one audit row each"""

    resource_type = "dns"

    def __init__(self, store: DNSStore, events: Optional[EventBus] = None):
        self.store = store
        self.events = events or EventBus()

    async def _audit(
        self,
        tenant_id: str,
        actor: Actor,
        operation: str,
        resource_id: Optional[str],
        details: Optional[Dict[str, Any]] = None,
        success: bool = True,
        error_message: Optional[str] = None,
        resource_type: Optional[str] = None
    ) -> None:
        """Append the audit row for an operation.

        The operation itself has already committed or failed by the time this
        runs, so a failing audit write is logged instead of raised.
        """
        audit_logger.info(
            f"{operation} {resource_id} tenant={tenant_id} user={actor.user_id} "
            f"success={success}" + (f" error={error_message}" if error_message else "")
        )
        try:
            await self.store.create_audit_log(
                tenant_id,
                operation=operation,
                resource_type=resource_type or self.resource_type,
                resource_id=resource_id,
                details=details,
                user_id=actor.user_id,
                source_ip=actor.source_ip,
                user_agent=actor.user_agent,
                success=success,
                error_message=error_message,
            )
        except SQLAlchemyError as e:
            logger.error(f"Failed to write audit log for {operation} {resource_id}: {e}")

        self.events.emit(OPERATION_EVENT, {
            "tenant_id": tenant_id,
            "operation": operation,
            "resource_id": resource_id,
            "success": success,
        })
