"""
Reboot Synchronisation

Architectural Intent:
- Reboot a host and wait until it is back, using the kernel boot id as the
  only completion signal (it changes on every boot)
- The connection used to request the reboot is routinely torn down by the
  reboot itself; an SSH disconnect (exit 255) counts as success
- Hosts that do not expose a boot id are rebooted without waiting

Design Decisions:
- Errors while polling are expected (the host is down) and ignored
- An optional timeout bounds the wait (RebootTimeout); without one the wait
  lasts until the task is cancelled
"""

from __future__ import annotations
import asyncio
import logging
from enum import Enum
from typing import Optional, Sequence

from nixmorph.domain.entities.host import Host
from nixmorph.domain.errors import ConnectivityError, MorphError, RebootError, RebootTimeout
from nixmorph.domain.ports.remote_executor_port import RemoteExecutorPort

logger = logging.getLogger(__name__)

BOOT_ID_POLL_INTERVAL = 2.0
REBOOT_COMMAND = ("sudo", "reboot")


class RebootOutcome(str, Enum):
    CONFIRMED = "confirmed"
    UNSUPPORTED = "unsupported"


async def reboot_host(
    remote: RemoteExecutorPort,
    host: Host,
    poll_interval: float = BOOT_ID_POLL_INTERVAL,
    timeout: Optional[float] = None,
    command: Sequence[str] = REBOOT_COMMAND,
) -> RebootOutcome:
    old_boot_id: Optional[str]
    try:
        old_boot_id = await remote.get_boot_id(host) or None
    except MorphError as e:
        old_boot_id = None
        logger.warning("[%s] Error getting boot ID (used to detect reboot completion): %s", host.name, e)

    if old_boot_id is None:
        logger.warning(
            "[%s] Cannot detect when the host has rebooted; health checks might "
            "pass before the reboot has completed.", host.name,
        )

    logger.info("[%s] Asking host to reboot ...", host.name)
    try:
        result = await remote.run(host, *command)
    except ConnectivityError as e:
        raise RebootError(f"could not request reboot: {e}") from e

    if not result.ok:
        if not result.disconnected:
            raise RebootError(
                f"reboot command exited with status {result.exit_status}: "
                f"{result.stderr.strip()}"
            )
        logger.info("[%s] Remote host disconnected.", host.name)
    logger.info("[%s] Asking host to reboot ...: OK", host.name)

    if old_boot_id is None:
        return RebootOutcome.UNSUPPORTED

    await wait_for_new_boot_id(remote, host, old_boot_id, poll_interval, timeout)
    return RebootOutcome.CONFIRMED


async def wait_for_new_boot_id(
    remote: RemoteExecutorPort,
    host: Host,
    old_boot_id: str,
    poll_interval: float = BOOT_ID_POLL_INTERVAL,
    timeout: Optional[float] = None,
) -> str:
    """Poll until the host reports a non-empty boot id different from old_boot_id."""

    async def poll() -> str:
        while True:
            logger.info("[%s] Waiting for host to come online", host.name)
            try:
                new_boot_id = await remote.get_boot_id(host)
            except Exception as e:  # host is down while rebooting
                logger.debug("[%s] boot id poll failed: %s", host.name, e)
                new_boot_id = ""

            if new_boot_id and new_boot_id != old_boot_id:
                logger.info("[%s] Waiting for host to come online: OK", host.name)
                return new_boot_id

            await asyncio.sleep(poll_interval)

    if timeout is None:
        return await poll()
    try:
        return await asyncio.wait_for(poll(), timeout)
    except asyncio.TimeoutError:
        raise RebootTimeout(host.name, timeout) from None
