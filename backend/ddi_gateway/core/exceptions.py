"""
Custom exceptions for the DDI gateway
"""

from typing import Any, Dict, List, Optional

from fastapi import status


class DDIGatewayException(Exception):
    """Base exception for gateway operations"""

    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR

    def __init__(
        self,
        message: str,
        details: Optional[Dict[str, Any]] = None,
        suggestions: Optional[List[str]] = None
    ):
        self.message = message
        self.details = details or {}
        self.suggestions = suggestions or []
        super().__init__(self.message)


class ValidationException(DDIGatewayException):
    """A candidate zone or record failed validation; nothing was written"""

    status_code = status.HTTP_422_UNPROCESSABLE_ENTITY

    def __init__(
        self,
        message: str,
        errors: Optional[List[str]] = None,
        warnings: Optional[List[str]] = None,
        details: Optional[Dict[str, Any]] = None,
        suggestions: Optional[List[str]] = None
    ):
        self.errors = errors or []
        self.warnings = warnings or []
        details = dict(details or {})
        details.setdefault("errors", self.errors)
        details.setdefault("warnings", self.warnings)
        super().__init__(message, details, suggestions)


class NotFoundException(DDIGatewayException):
    """Referenced zone, record, key or backup does not exist"""

    status_code = status.HTTP_404_NOT_FOUND


class ConflictException(DDIGatewayException):
    """Write would violate a uniqueness rule"""

    status_code = status.HTTP_409_CONFLICT


class UpstreamUnavailableException(DDIGatewayException):
    """DNS provider not configured, or a control-plane call failed or timed out"""

    status_code = status.HTTP_503_SERVICE_UNAVAILABLE

    def __init__(
        self,
        message: str,
        setup_required: bool = False,
        details: Optional[Dict[str, Any]] = None,
        suggestions: Optional[List[str]] = None
    ):
        self.setup_required = setup_required
        details = dict(details or {})
        details.setdefault("setup_required", setup_required)
        if setup_required and not suggestions:
            suggestions = ["Run the BIND9/DDNS setup script and restart the gateway"]
        super().__init__(message, details, suggestions)


class KeaCommandError(DDIGatewayException):
    """Kea control agent answered with a non-zero result code"""

    status_code = status.HTTP_502_BAD_GATEWAY

    def __init__(self, command: str, result: int, text: str):
        self.command = command
        self.result = result
        self.text = text
        super().__init__(
            f"Kea command '{command}' failed: {text}",
            details={"command": command, "result": result}
        )


class DNSUpdateError(DDIGatewayException):
    """Nameserver rejected a dynamic update or a zone transfer"""

    status_code = status.HTTP_502_BAD_GATEWAY


class TransactionFailureException(DDIGatewayException):
    """Multi-statement operation rolled back; nothing was applied"""

    status_code = status.HTTP_409_CONFLICT

    def __init__(
        self,
        message: str,
        errors: Optional[List[Dict[str, Any]]] = None,
        details: Optional[Dict[str, Any]] = None
    ):
        self.errors = errors or []
        details = dict(details or {})
        details.setdefault("errors", self.errors)
        super().__init__(message, details)


class BackupException(DDIGatewayException):
    """A load-bearing backup component failed and the run was aborted"""

    def __init__(self, message: str, component: Optional[str] = None, backup_id: Optional[str] = None):
        self.component = component
        self.backup_id = backup_id
        super().__init__(message, details={"component": component, "backup_id": backup_id})


class ProbeFailure(DDIGatewayException):
    """A health probe failed; converted to a failed check result by the monitor"""

    status_code = status.HTTP_503_SERVICE_UNAVAILABLE
