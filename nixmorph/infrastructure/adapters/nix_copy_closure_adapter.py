"""
nix-copy-closure Adapter

Architectural Intent:
- Infrastructure adapter implementing TransferPort with nix-copy-closure
- One invocation per store path, one host at a time; never batched
- SSH settings reach nix-copy-closure through the destination URI
  (user@host?ssh-key=...) and NIX_SSHOPTS (port, config file, host keys)
"""

import logging
from typing import Optional

from nixmorph.domain.entities.host import Host
from nixmorph.domain.errors import TransferError
from nixmorph.domain.ports.transfer_port import TransferPort
from nixmorph.infrastructure.adapters.nix_adapter import mk_options
from nixmorph.infrastructure.adapters.process import child_env, run_process
from nixmorph.infrastructure.config import SSHConfig

logger = logging.getLogger(__name__)

SKIP_HOST_KEY_CHECK_OPTS = "-o StrictHostKeyChecking=No -o UserKnownHostsFile=/dev/null"


class NixCopyClosureAdapter(TransferPort):
    def __init__(self, ssh: Optional[SSHConfig] = None, command: str = "nix-copy-closure"):
        self.ssh = ssh or SSHConfig()
        self.command = command

    def destination(self, host: Host) -> str:
        target = host.target.with_default_user(self.ssh.default_user)
        destination = target.ssh_destination
        if self.ssh.identity_file:
            destination += f"?ssh-key={self.ssh.identity_file}"
        return destination

    def ssh_opts(self, host: Host) -> str:
        opts = []
        if self.ssh.skip_host_key_check:
            opts.append(SKIP_HOST_KEY_CHECK_OPTS)
        if host.target_port:
            opts.append(f"-p {host.target_port}")
        if self.ssh.config_file:
            opts.append(f"-F {self.ssh.config_file}")
        return " ".join(opts)

    def argv(self, host: Host, path: str) -> list[str]:
        argv = [self.command, "--to", self.destination(host), path]
        argv.extend(mk_options(host.nix_config))
        if host.substitute_on_destination:
            argv.append("--use-substitutes")
        return argv

    async def push(self, host: Host, *paths: str) -> None:
        extra_env = {}
        sshopts = self.ssh_opts(host)
        if sshopts:
            extra_env["NIX_SSHOPTS"] = sshopts
        env = child_env(extra_env)

        for path in paths:
            try:
                result = await run_process(
                    self.argv(host, path), env=env, log_prefix=f"[{host.name}] "
                )
            except OSError as e:
                raise TransferError(f"cannot run {self.command}: {e}") from e
            if not result.ok:
                raise TransferError(
                    f"copying {path} to {host.target} failed: {result.describe()}"
                )
            logger.debug("[%s] copied %s", host.name, path)
