"""Reverse name resolution for controller addresses."""

import asyncio
import socket
from typing import Optional

from acipoll.monitoring.logger import StructuredLogger


async def resolve_hostname(address: str, logger: Optional[StructuredLogger] = None) -> str:
    """
    Resolve a controller address to its host name without blocking the loop.

    A ``host:port`` address is resolved on its host part. Any resolution
    failure is logged and the address itself is returned.
    """
    host = address.rsplit(":", 1)[0] if address.count(":") == 1 else address
    loop = asyncio.get_running_loop()
    try:
        hostname, _ = await loop.getnameinfo((host, 0), socket.NI_NAMEREQD)
    except (socket.gaierror, OSError) as e:
        if logger:
            logger.log("hostname_unresolved", address=address, error=str(e))
        return host
    return hostname
