"""
Fabric Adapter

Architectural Intent:
- Infrastructure adapter implementing RemoteExecutorPort via Fabric/SSH
- One Connection per call; Fabric is blocking, so calls run in the default
  executor and the connection is closed if the awaiting task is cancelled
- Activation runs the closure's switch-to-configuration, setting the system
  profile first for actions that change the boot default

Security:
- SSH connections use connect_timeout, allow_agent, look_for_keys
- Every remote argv is quoted with shlex before it reaches the remote shell
"""

import asyncio
import logging
import shlex
from typing import Callable, Optional, TypeVar

from fabric import Config, Connection
from paramiko.ssh_exception import SSHException

from nixmorph.domain.entities.host import Host
from nixmorph.domain.errors import ActivationError, ConnectivityError
from nixmorph.domain.ports.remote_executor_port import RemoteExecutorPort
from nixmorph.domain.value_objects.deploy_action import DeployAction
from nixmorph.domain.value_objects.remote_result import SSH_DISCONNECT_STATUS, RemoteResult
from nixmorph.infrastructure.config import SSHConfig

logger = logging.getLogger(__name__)

T = TypeVar("T")

BOOT_ID_PATH = "/proc/sys/kernel/random/boot_id"
SYSTEM_PROFILE = "/nix/var/nix/profiles/system"


class FabricAdapter(RemoteExecutorPort):
    """Adapter implementing RemoteExecutorPort via Fabric/SSH."""

    def __init__(self, ssh: Optional[SSHConfig] = None):
        self.ssh = ssh or SSHConfig()

    def _get_connection(self, host: Host) -> Connection:
        target = host.target.with_default_user(self.ssh.default_user)
        connect_kwargs = {
            "allow_agent": True,
            "look_for_keys": True,
        }
        if self.ssh.identity_file:
            connect_kwargs["key_filename"] = self.ssh.identity_file

        kwargs = {}
        if self.ssh.config_file:
            kwargs["config"] = Config(runtime_ssh_path=self.ssh.config_file)
        return Connection(
            host=target.host,
            user=target.user or None,
            port=target.port or None,
            connect_timeout=self.ssh.connect_timeout,
            connect_kwargs=connect_kwargs,
            **kwargs,
        )

    def _sudo(self, host: Host, argv: list[str]) -> list[str]:
        user = host.target_user or self.ssh.default_user
        if self.ssh.use_sudo and user != "root":
            return ["sudo", *argv]
        return argv

    async def _call(self, host: Host, fn: Callable[[Connection], T]) -> T:
        conn = self._get_connection(host)
        loop = asyncio.get_running_loop()
        try:
            return await loop.run_in_executor(None, fn, conn)
        finally:
            # unblocks an executor thread still reading from a cancelled call
            conn.close()

    def _run_blocking(self, conn: Connection, host: Host, command: str) -> RemoteResult:
        try:
            conn.open()
        except (SSHException, OSError) as e:
            raise ConnectivityError(f"cannot connect to {host.target}: {e}") from e

        try:
            result = conn.run(command, hide=True, warn=True, in_stream=False)
        except (SSHException, EOFError, OSError) as e:
            logger.debug("[%s] connection lost: %s", host.name, e)
            return RemoteResult(stdout="", exit_status=SSH_DISCONNECT_STATUS, stderr=str(e))

        # paramiko reports -1 when the channel closed without an exit status
        exit_status = result.exited
        if exit_status is None or exit_status < 0:
            exit_status = SSH_DISCONNECT_STATUS
        return RemoteResult(
            stdout=result.stdout, exit_status=exit_status, stderr=result.stderr
        )

    async def run(self, host: Host, *argv: str) -> RemoteResult:
        command = shlex.join(argv)
        logger.debug("[%s] run: %s", host.name, command)
        return await self._call(host, lambda conn: self._run_blocking(conn, host, command))

    def activation_commands(
        self, host: Host, closure: str, action: DeployAction
    ) -> list[list[str]]:
        commands = []
        if action.sets_boot_profile:
            commands.append(
                self._sudo(host, ["nix-env", "--profile", SYSTEM_PROFILE, "--set", closure])
            )
        commands.append(
            self._sudo(host, [f"{closure}/bin/switch-to-configuration", action.value])
        )
        return commands

    async def activate(self, host: Host, closure: str, action: DeployAction) -> None:
        for argv in self.activation_commands(host, closure, action):
            try:
                result = await self.run(host, *argv)
            except ConnectivityError as e:
                raise ActivationError(str(e)) from e
            if not result.ok:
                detail = result.stderr.strip() or result.stdout.strip()
                raise ActivationError(
                    f"`{shlex.join(argv)}` exited with status {result.exit_status}"
                    + (f": {detail}" if detail else "")
                )
        logger.info("[%s] %s: OK", host.name, action.value)

    async def get_boot_id(self, host: Host) -> str:
        result = await self.run(host, "cat", BOOT_ID_PATH)
        if not result.ok:
            raise ConnectivityError(
                f"reading boot id on {host.name} failed with status {result.exit_status}"
            )
        return result.stdout.strip()
