"""Remote-control requests to the device over ECP (External Control Protocol)."""

from __future__ import annotations

import asyncio
import logging

import aiohttp

from . import ECP_PORT, HOME_KEYPRESS_PATH, KEYPRESS_TIMEOUT

logger = logging.getLogger("roku_coverage_tools.device")


async def send_home_keypress(
    host: str,
    port: int = ECP_PORT,
    timeout: float = KEYPRESS_TIMEOUT,
) -> bool:
    """Press Home on the device so the test channel exits.

    Fire-and-forget: any failure is logged and swallowed.

    Returns:
        ``True`` if the device answered, ``False`` otherwise.
    """
    url = f"http://{host}:{port}{HOME_KEYPRESS_PATH}"
    try:
        async with aiohttp.ClientSession(
            timeout=aiohttp.ClientTimeout(total=timeout),
        ) as session:
            async with session.post(url) as resp:
                logger.info(
                    "[DEVICE] Exit signal sent to %s (Home pressed, HTTP %d)",
                    host, resp.status,
                )
                return True
    except asyncio.TimeoutError:
        logger.warning("[DEVICE] Home key-press to %s timed out after %.0fs", url, timeout)
    except aiohttp.ClientError as exc:
        logger.warning("[DEVICE] Failed to send exit signal to %s: %s", url, exc)
    return False
