"""
Build Coordinator

Architectural Intent:
- Owns the closure cache ("closure:<host>" -> resolved store path)
- Hosts are grouped into batches; one build call satisfies a whole batch so
  the build tool's start-up cost is paid once
- A pipeline asking for a closure whose batch build is still running awaits
  that same build instead of starting another one

Failure Semantics:
- A failing batch build fails every host of the batch with BuildError at once
- A missing per-host link after a successful build is LinkResolutionError,
  raised for that host only; the rest of the batch keeps its closures
- A missing cache entry after the batch build completed is a BuildError,
  never a retry condition
"""

from __future__ import annotations
import asyncio
import logging
from pathlib import Path
from typing import Optional, Sequence

from nixmorph.domain.entities.host import Host
from nixmorph.domain.errors import BuildError, KeyNotFoundError, LinkResolutionError
from nixmorph.domain.ports.build_port import BuildPort
from nixmorph.domain.services.keyed_store import KeyedStore

logger = logging.getLogger(__name__)

CLOSURE_KEY_PREFIX = "closure:"


def closure_key(host_name: str) -> str:
    return CLOSURE_KEY_PREFIX + host_name


def resolve_closure(result_root: str, host: Host) -> str:
    """Follow <result_root>/<host name> to the closure it points at."""
    link = Path(result_root) / host.name
    try:
        return str(link.resolve(strict=True))
    except (OSError, RuntimeError) as e:
        raise LinkResolutionError(str(link), str(e)) from e


class BuildCoordinator:
    def __init__(
        self,
        build_port: BuildPort,
        cache: Optional[KeyedStore[str]] = None,
    ) -> None:
        self._build_port = build_port
        self._cache: KeyedStore[str] = cache if cache is not None else KeyedStore("closures")
        self._batch_of: dict[str, int] = {}
        self._batches: list[tuple[Host, ...]] = []
        self._tasks: dict[int, asyncio.Task] = {}
        self._link_errors: dict[str, LinkResolutionError] = {}

    @property
    def cache(self) -> KeyedStore[str]:
        return self._cache

    def add_batch(self, hosts: Sequence[Host]) -> None:
        """Register hosts that should be built by a single build call."""
        batch = tuple(h for h in hosts if h.name not in self._batch_of)
        if not batch:
            return
        index = len(self._batches)
        self._batches.append(batch)
        for host in batch:
            self._batch_of[host.name] = index

    def closure(self, host_name: str) -> Optional[str]:
        key = closure_key(host_name)
        return self._cache.get(key) if key in self._cache else None

    async def closure_for(self, host: Host) -> str:
        key = closure_key(host.name)
        if key in self._cache:
            return self._cache.get(key)

        if host.name not in self._batch_of:
            self.add_batch([host])
        task = self._ensure_started(self._batch_of[host.name])

        # Shielded: one pipeline being cancelled must not abort the build
        # the rest of its batch is waiting on.
        await asyncio.shield(task)

        if host.name in self._link_errors:
            raise self._link_errors[host.name]
        try:
            return self._cache.get(key)
        except KeyNotFoundError as e:
            raise BuildError(
                f"{host.name}: no closure in cache after its batch was built"
            ) from e

    async def build_all(self) -> dict[str, str]:
        """Build every registered batch; returns host name -> closure path."""
        tasks = [self._ensure_started(i) for i in range(len(self._batches))]
        await asyncio.gather(*tasks)
        if self._link_errors:
            raise next(iter(self._link_errors.values()))
        return {
            host.name: self._cache.get(closure_key(host.name))
            for batch in self._batches
            for host in batch
        }

    async def close(self) -> None:
        """Cancel builds nobody is waiting for any more."""
        pending = [t for t in self._tasks.values() if not t.done()]
        for task in pending:
            task.cancel()
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)

    def _ensure_started(self, index: int) -> asyncio.Task:
        task = self._tasks.get(index)
        if task is None:
            task = asyncio.create_task(
                self._build_batch(self._batches[index]), name=f"build-batch-{index}"
            )
            task.add_done_callback(_consume_exception)
            self._tasks[index] = task
        return task

    async def _build_batch(self, batch: tuple[Host, ...]) -> None:
        names = [h.name for h in batch]
        logger.info("Building %d host(s): %s", len(batch), ", ".join(names))
        try:
            result_root = await self._build_port.build(batch)
        except BuildError:
            logger.error("Build failed for: %s", ", ".join(names))
            raise
        except OSError as e:
            logger.error("Build failed for: %s", ", ".join(names))
            raise BuildError(f"build failed: {e}") from e

        logger.info("Build result: %s", result_root)
        for host in batch:
            try:
                closure = resolve_closure(result_root, host)
            except LinkResolutionError as e:
                logger.error("[%s] %s", host.name, e)
                self._link_errors[host.name] = e
                continue
            key = closure_key(host.name)
            if key not in self._cache:
                self._cache.update(key, closure)
            logger.debug("[%s] closure: %s", host.name, closure)


def _consume_exception(task: asyncio.Task) -> None:
    # Waiters re-raise the build error; this keeps asyncio from also
    # reporting it as "never retrieved" when a batch has no waiters left.
    if not task.cancelled():
        task.exception()
