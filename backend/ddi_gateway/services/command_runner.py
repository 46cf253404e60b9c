"""
Subprocess helper shared by the DNS provider and the backup manager
"""

import asyncio
from typing import Awaitable, Callable, Dict, List, Mapping, Optional

from ..core.logging_config import get_logger

logger = get_logger(__name__)

CommandRunner = Callable[..., Awaitable[Dict]]


async def run_command(
    command: List[str],
    timeout: float = 30,
    env: Optional[Mapping[str, str]] = None,
    input_data: Optional[bytes] = None
) -> Dict:
    """Run a command and return ``{returncode, stdout, stderr}``.

    Never raises: a timeout gives returncode -1 and a missing binary 127.
    """
    try:
        process = await asyncio.create_subprocess_exec(
            *command,
            stdin=asyncio.subprocess.PIPE if input_data is not None else None,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
            env=dict(env) if env is not None else None
        )
    except FileNotFoundError as e:
        logger.error(f"Command not found: {command[0]}")
        return {"returncode": 127, "stdout": "", "stderr": str(e)}
    except OSError as e:
        logger.error(f"Command failed: {' '.join(command)}: {e}")
        return {"returncode": -1, "stdout": "", "stderr": str(e)}

    try:
        stdout, stderr = await asyncio.wait_for(process.communicate(input_data), timeout=timeout)
    except asyncio.TimeoutError:
        process.kill()
        await process.wait()
        logger.error(f"Command timed out: {' '.join(command)}")
        return {"returncode": -1, "stdout": "", "stderr": "Command timed out"}

    return {
        "returncode": process.returncode,
        "stdout": stdout.decode(errors="replace"),
        "stderr": stderr.decode(errors="replace"),
    }
