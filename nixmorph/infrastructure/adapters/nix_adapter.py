"""
Nix Adapter

Architectural Intent:
- Infrastructure adapter implementing DeploymentSourcePort (evaluation) and
  BuildPort (batch builds) on top of the Nix CLI
- Every invocation goes through eval-machines.nix with the deployment file as
  networkExpr; the invocation arguments are also handed to Nix as JSON
  (MORPH_ARGS / MORPH_ARGS_FILE) so the Nix side can read them back
- Subprocesses are asyncio children, so cancelling a build stops nix-build

Design Decisions:
- A build produces a single result link whose target holds one link per host
- keep_gc_root places the link in .gcroots/ next to the deployment file;
  otherwise it lives in a temporary directory removed by close()
- An optional build shell (info.buildShell) wraps nix-build in nix-shell --pure
"""

from __future__ import annotations
import json
import logging
import os
import shlex
import shutil
import tempfile
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Mapping, Optional, Sequence

from nixmorph.domain.entities.deployment import Deployment, RegistryNameFactory
from nixmorph.domain.entities.host import Host
from nixmorph.domain.errors import BuildError, ConfigurationError, LinkResolutionError
from nixmorph.domain.ports.build_port import BuildPort
from nixmorph.domain.ports.deployment_source_port import DeploymentSourcePort
from nixmorph.infrastructure.adapters.process import child_env, run_process

logger = logging.getLogger(__name__)

DEPLOYMENT_ATTR = "info.deployment"
BUILD_SHELL_ATTR = "info.buildShell"
MACHINES_ATTR = "machines"
ARGS_FILE_NAME = "morph-args.json"
GC_ROOTS_DIR = ".gcroots"


@dataclass(frozen=True)
class NixContext:
    eval_cmd: str = "nix-instantiate"
    build_cmd: str = "nix-build"
    shell_cmd: str = "nix-shell"
    eval_machines: str = "eval-machines.nix"
    show_trace: bool = False
    keep_gc_root: bool = False
    allow_build_shell: bool = False

    def to_json(self) -> dict[str, Any]:
        return {
            "EvalCmd": self.eval_cmd,
            "BuildCmd": self.build_cmd,
            "ShellCmd": self.shell_cmd,
            "EvalMachines": self.eval_machines,
            "ShowTrace": self.show_trace,
            "KeepGCRoot": self.keep_gc_root,
            "AllowBuildShell": self.allow_build_shell,
        }


def mk_options(nix_config: Mapping[str, str]) -> list[str]:
    """Render nix.conf settings as repeated ``--option name value`` arguments."""
    options: list[str] = []
    for name, value in sorted(nix_config.items()):
        options.extend(["--option", name, value])
    return options


class NixEvaluator(DeploymentSourcePort):
    def __init__(self, context: NixContext) -> None:
        self.context = context

    async def evaluate(self, deployment_path: str, attr: str) -> Any:
        deployment_path = os.path.abspath(deployment_path)
        argv = [
            self.context.eval_cmd,
            "--eval", self.context.eval_machines,
            "--arg", "networkExpr", deployment_path,
            "--argstr", "argsFile", "",
            "--attr", attr,
        ]
        if self.context.show_trace:
            argv.append("--show-trace")
        argv.extend(["--json", "--strict"])

        morph_args = {
            "AsJSON": True,
            "ArgsFile": "",
            "Attr": attr,
            "DeploymentPath": deployment_path,
            "NixContext": self.context.to_json(),
            "Strict": True,
        }
        try:
            result = await run_process(
                argv, env=child_env({"MORPH_ARGS": json.dumps(morph_args)})
            )
        except OSError as e:
            raise ConfigurationError(f"cannot run {self.context.eval_cmd}: {e}") from e
        if not result.ok:
            raise ConfigurationError(
                f"evaluating {attr} of {deployment_path} failed: {result.describe()}"
            )

        try:
            return json.loads(result.stdout)
        except json.JSONDecodeError as e:
            raise ConfigurationError(f"{self.context.eval_cmd} returned invalid JSON: {e}") from e

    async def load(self, deployment_path: str) -> Deployment:
        data = await self.evaluate(deployment_path, DEPLOYMENT_ATTR)
        if not isinstance(data, dict):
            raise ConfigurationError(f"{DEPLOYMENT_ATTR} is not an attribute set")
        try:
            deployment = Deployment.from_dict(data, RegistryNameFactory())
        except (KeyError, TypeError, ValueError) as e:
            raise ConfigurationError(f"invalid deployment {deployment_path}: {e}") from e
        logger.info(
            "Loaded %d host(s) from %s", len(deployment.hosts), deployment_path
        )
        return deployment

    async def build_shell(self, deployment_path: str) -> Optional[str]:
        shell = await self.evaluate(deployment_path, BUILD_SHELL_ATTR)
        return str(shell) if shell else None


class NixBuilder(BuildPort):
    """Builds batches of hosts of one deployment file with nix-build."""

    def __init__(
        self,
        context: NixContext,
        deployment_path: str,
        nix_args: Sequence[str] = (),
        build_targets: str = "",
        evaluator: Optional[NixEvaluator] = None,
    ) -> None:
        self.context = context
        self.deployment_path = os.path.abspath(deployment_path)
        self.nix_args = tuple(nix_args)
        self.build_targets = build_targets
        self.evaluator = evaluator or NixEvaluator(context)
        self._tmpdirs: list[str] = []

    def _result_link(self, tmpdir: str) -> str:
        if self.context.keep_gc_root:
            deployment = Path(self.deployment_path)
            link = deployment.parent / GC_ROOTS_DIR / deployment.name
            try:
                link.parent.mkdir(parents=True, exist_ok=True)
                return str(link)
            except OSError as e:
                logger.warning("Unable to create GC root, skipping: %s", e)
        return os.path.join(tmpdir, "result")

    def build_args(
        self, hosts: Sequence[Host], args_file: str, result_link: str
    ) -> list[str]:
        args = [
            self.context.eval_machines,
            "--arg", "networkExpr", self.deployment_path,
            "--argstr", "argsFile", args_file,
            "--out-link", result_link,
            "--attr", MACHINES_ATTR,
        ]
        args.extend(mk_options(hosts[0].nix_config))
        args.extend(self.nix_args)
        if self.context.show_trace:
            args.append("--show-trace")
        if self.build_targets:
            args.extend(["--arg", "buildTargets", self.build_targets])
        return args

    async def build(self, hosts: Sequence[Host]) -> str:
        if not hosts:
            raise BuildError("nothing to build")

        try:
            tmpdir = tempfile.mkdtemp(prefix="morph-")
        except OSError as e:
            raise BuildError(f"cannot create build directory: {e}") from e
        self._tmpdirs.append(tmpdir)

        result_link = self._result_link(tmpdir)
        args_file = os.path.join(tmpdir, ARGS_FILE_NAME)
        morph_args = {
            "ArgsFile": args_file,
            "Attr": MACHINES_ATTR,
            "DeploymentPath": self.deployment_path,
            "Names": [h.name for h in hosts],
            "NixArgs": list(self.nix_args),
            "NixBuildTargets": self.build_targets,
            "NixConfig": dict(hosts[0].nix_config),
            "NixContext": self.context.to_json(),
            "ResultLinkPath": result_link,
        }
        payload = json.dumps(morph_args)
        try:
            with open(args_file, "w") as f:
                f.write(payload)
        except OSError as e:
            raise BuildError(f"cannot write {args_file}: {e}") from e

        build_args = self.build_args(hosts, args_file, result_link)
        shell = None
        if self.context.allow_build_shell:
            try:
                shell = await self.evaluator.build_shell(self.deployment_path)
            except ConfigurationError as e:
                raise BuildError(f"error getting buildShell: {e}") from e

        if shell:
            argv = [
                self.context.shell_cmd, shell, "--pure",
                "--run", shlex.join([self.context.build_cmd, *build_args]),
            ]
        else:
            argv = [self.context.build_cmd, *build_args]

        try:
            result = await run_process(
                argv,
                env=child_env({"MORPH_ARGS": payload, "MORPH_ARGS_FILE": args_file}),
                log_prefix="[build] ",
            )
        except OSError as e:
            raise BuildError(f"cannot run {argv[0]}: {e}") from e
        if not result.ok:
            raise BuildError(result.describe())

        try:
            return os.readlink(result_link)
        except OSError as e:
            raise LinkResolutionError(result_link, str(e)) from e

    async def close(self) -> None:
        while self._tmpdirs:
            shutil.rmtree(self._tmpdirs.pop(), ignore_errors=True)
