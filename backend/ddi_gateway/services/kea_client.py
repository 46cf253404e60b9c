"""
Kea control agent JSON-RPC client
"""

import asyncio
from typing import Any, Dict, List, Optional

import aiohttp

from ..core.config import Settings
from ..core.exceptions import KeaCommandError, UpstreamUnavailableException
from ..core.logging_config import get_logger

logger = get_logger(__name__)

# 0 = success, 3 = success with an empty result
KEA_SUCCESS_RESULTS = (0, 3)


class KeaClient:
    """Sends ``{command, service, arguments}`` envelopes to the Kea control agent"""

    def __init__(self, settings: Settings, session: Optional[aiohttp.ClientSession] = None):
        self.url = settings.KEA_CA_URL
        self.timeout = settings.KEA_RPC_TIMEOUT
        self.auth = (
            aiohttp.BasicAuth(settings.KEA_CA_USER, settings.KEA_CA_PASSWORD or "")
            if settings.KEA_CA_USER else None
        )
        self._session = session

    async def call(
        self,
        command: str,
        service: Optional[List[str]] = None,
        arguments: Optional[Dict[str, Any]] = None
    ) -> List[Dict[str, Any]]:
        """Run a command and return the per-service replies.

        Raises ``UpstreamUnavailableException`` on timeouts and transport
        errors and ``KeaCommandError`` when a service answers with a non-zero
        result.
        """
        payload: Dict[str, Any] = {"command": command, "service": service or ["dhcp4"]}
        if arguments is not None:
            payload["arguments"] = arguments

        session = self._session or aiohttp.ClientSession()
        try:
            async with session.post(
                self.url,
                json=payload,
                auth=self.auth,
                timeout=aiohttp.ClientTimeout(total=self.timeout)
            ) as response:
                if response.status != 200:
                    raise UpstreamUnavailableException(
                        f"Kea control agent returned HTTP {response.status}: {response.reason}"
                    )
                replies = await response.json(content_type=None)
        except asyncio.TimeoutError as e:
            logger.warning(f"Kea command {command} timed out after {self.timeout}s")
            raise UpstreamUnavailableException(
                f"Kea command '{command}' timed out after {self.timeout} seconds"
            ) from e
        except aiohttp.ClientError as e:
            logger.error(f"Kea command {command} failed: {e}")
            raise UpstreamUnavailableException(f"Kea command '{command}' failed: {e}") from e
        except ValueError as e:
            raise UpstreamUnavailableException(f"Kea command '{command}' returned invalid JSON: {e}") from e
        finally:
            if self._session is None:
                await session.close()

        if not isinstance(replies, list) or not replies:
            raise UpstreamUnavailableException(f"Kea command '{command}' returned an empty or malformed reply")

        for reply in replies:
            result = reply.get("result", 1) if isinstance(reply, dict) else 1
            if result not in KEA_SUCCESS_RESULTS:
                text = reply.get("text", "unknown error") if isinstance(reply, dict) else str(reply)
                raise KeaCommandError(command, result, text)

        logger.debug(f"Kea command {command} succeeded for {payload['service']}")
        return replies
