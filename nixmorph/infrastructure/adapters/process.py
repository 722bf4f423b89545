"""
Local Process Runner

Architectural Intent:
- Runs local tools (nix-build, nix-instantiate, nix-copy-closure) as asyncio
  subprocesses so a cancelled pipeline also stops the tool it was waiting on
- stderr is streamed to the log line by line while the tool runs; the tail is
  kept for error messages
"""

from __future__ import annotations
import asyncio
import collections
import logging
import os
import shlex
from dataclasses import dataclass
from typing import Mapping, Optional, Sequence

logger = logging.getLogger(__name__)

TERMINATE_GRACE_SECONDS = 5.0
STDERR_TAIL_LINES = 20


@dataclass(frozen=True)
class ProcessResult:
    argv: tuple[str, ...]
    returncode: int
    stdout: str
    stderr: str

    @property
    def ok(self) -> bool:
        return self.returncode == 0

    def describe(self) -> str:
        message = f"`{shlex.join(self.argv[:1])} ...` exited with status {self.returncode}"
        if self.stderr:
            message += f": {self.stderr.strip().splitlines()[-1]}"
        return message


def child_env(extra: Optional[Mapping[str, str]] = None) -> dict[str, str]:
    env = dict(os.environ)
    env.update(extra or {})
    return env


async def run_process(
    argv: Sequence[str],
    env: Optional[Mapping[str, str]] = None,
    cwd: Optional[str] = None,
    log_prefix: str = "",
) -> ProcessResult:
    """Run argv to completion. Raises OSError if it cannot be started."""
    logger.debug("%sexec: %s", log_prefix, shlex.join(argv))
    proc = await asyncio.create_subprocess_exec(
        *argv,
        stdout=asyncio.subprocess.PIPE,
        stderr=asyncio.subprocess.PIPE,
        env=dict(env) if env is not None else None,
        cwd=cwd,
    )
    tail: collections.deque[str] = collections.deque(maxlen=STDERR_TAIL_LINES)
    try:
        stdout, _ = await asyncio.gather(
            proc.stdout.read(), _stream_stderr(proc.stderr, tail, log_prefix)
        )
        returncode = await proc.wait()
    except asyncio.CancelledError:
        await terminate(proc)
        raise

    return ProcessResult(
        argv=tuple(argv),
        returncode=returncode,
        stdout=stdout.decode(errors="replace"),
        stderr="\n".join(tail),
    )


async def _stream_stderr(
    stream: asyncio.StreamReader, tail: collections.deque, log_prefix: str
) -> None:
    async for raw in stream:
        line = raw.decode(errors="replace").rstrip()
        if line:
            logger.info("%s%s", log_prefix, line)
            tail.append(line)


async def terminate(proc: asyncio.subprocess.Process) -> None:
    """SIGTERM, then SIGKILL if the process has not exited within the grace period."""
    if proc.returncode is not None:
        return
    try:
        proc.terminate()
        try:
            await asyncio.wait_for(proc.wait(), TERMINATE_GRACE_SECONDS)
        except asyncio.TimeoutError:
            logger.warning("pid %d ignored SIGTERM, killing it", proc.pid)
            proc.kill()
            await proc.wait()
    except ProcessLookupError:
        pass
