"""
Constraint Registry

Architectural Intent:
- Turns declarative {selector, maxUnavailable} rules into enforced
  concurrency bounds while hosts are being activated
- A host holds one slot per matching constraint for the whole
  unavailability window (activation, reboot, post-deploy checks)

Design Decisions:
- Slots are acquired in a fixed order (constraint declaration order, then
  label name) so hosts with overlapping constraint sets cannot deadlock
- Invalid constraints (maxUnavailable < 1) are rejected before the first
  acquisition instead of turning into a semaphore nobody can ever take
- The returned release is idempotent; a second call never over-frees
"""

from __future__ import annotations
import asyncio
import logging
import threading
from typing import Sequence

from nixmorph.domain.entities.deployment import Constraint
from nixmorph.domain.entities.host import Host

logger = logging.getLogger(__name__)


class SlotRelease:
    """Idempotent release of every slot one host acquired."""

    def __init__(
        self,
        registry: "ConstraintRegistry",
        host_name: str,
        held: list[tuple[Constraint, str, asyncio.Semaphore]],
    ) -> None:
        self._registry = registry
        self._host_name = host_name
        self._held = held
        self._lock = threading.Lock()
        self._released = False

    @property
    def released(self) -> bool:
        return self._released

    @property
    def keys(self) -> list[str]:
        return [key for _, key, _ in self._held]

    def __call__(self) -> None:
        with self._lock:
            if self._released:
                return
            self._released = True
        for constraint, key, semaphore in reversed(self._held):
            semaphore.release()
            self._registry._note_released(constraint, key)
        if self._held:
            logger.debug(
                "[%s] released constraint slots: %s", self._host_name, ", ".join(self.keys)
            )


class ConstraintRegistry:
    def __init__(self, constraints: Sequence[Constraint] = ()) -> None:
        self._constraints = tuple(constraints)
        self._lock = threading.Lock()
        self._in_use: dict[tuple[int, str], int] = {}

    @property
    def constraints(self) -> tuple[Constraint, ...]:
        return self._constraints

    def validate(self) -> None:
        for constraint in self._constraints:
            constraint.validate()

    def matching(self, host: Host) -> list[tuple[Constraint, str, str]]:
        """Every (constraint, label, value) that applies to host, in acquisition order."""
        matches = []
        for constraint in self._constraints:
            for label, value in constraint.matching_keys(host):
                matches.append((constraint, label, value))
        return matches

    async def acquire_all(self, host: Host) -> SlotRelease:
        self.validate()

        held: list[tuple[Constraint, str, asyncio.Semaphore]] = []
        try:
            for constraint, label, value in self.matching(host):
                key = f"{label}={value}"
                semaphore = constraint.semaphore_for(label, value)
                if any(s is semaphore for _, _, s in held):
                    continue
                logger.info(
                    "[%s] constraint '%s'='%s': waiting for slot (concurrency: %d)",
                    host.name, label, value, constraint.max_unavailable,
                )
                await semaphore.acquire()
                held.append((constraint, key, semaphore))
                self._note_acquired(constraint, key)
        except BaseException:
            # Cancelled or failed half-way: give back what we already hold.
            SlotRelease(self, host.name, held)()
            raise

        return SlotRelease(self, host.name, held)

    def in_use(self, constraint: Constraint, key: str) -> int:
        with self._lock:
            return self._in_use.get((id(constraint), key), 0)

    def _note_acquired(self, constraint: Constraint, key: str) -> None:
        with self._lock:
            slot = (id(constraint), key)
            self._in_use[slot] = self._in_use.get(slot, 0) + 1

    def _note_released(self, constraint: Constraint, key: str) -> None:
        with self._lock:
            slot = (id(constraint), key)
            self._in_use[slot] = self._in_use.get(slot, 0) - 1
