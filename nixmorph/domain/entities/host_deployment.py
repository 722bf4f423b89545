"""
Host Deployment Module

Architectural Intent:
- HostDeployment aggregate tracks one host's progress through the pipeline
- Transitions are enforced by domain methods; illegal jumps raise ValueError
- All state changes produce new instances to ensure auditability
- Domain events are collected on the aggregate and published by the pipeline

Stages:
    PENDING -> BUILT -> PUSHED -> PRE_CHECKED -> ACTIVATED
        -> [REBOOTING -> ONLINE] -> POST_CHECKED -> DONE
    BUILT -> DONE and PUSHED -> DONE cover build-only hosts and push-only runs.
    FAILED is reachable from every non-terminal stage.
"""

from __future__ import annotations
from enum import Enum
from typing import Optional

from nixmorph.domain.events.host_events import HostFailedEvent, HostStageChangedEvent


class HostStage(str, Enum):
    PENDING = "pending"
    BUILT = "built"
    PUSHED = "pushed"
    PRE_CHECKED = "pre-checked"
    ACTIVATED = "activated"
    REBOOTING = "rebooting"
    ONLINE = "online"
    POST_CHECKED = "post-checked"
    DONE = "done"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (HostStage.DONE, HostStage.FAILED)

    def __str__(self) -> str:
        return self.value


_TRANSITIONS: dict[HostStage, frozenset[HostStage]] = {
    HostStage.PENDING: frozenset({HostStage.BUILT}),
    HostStage.BUILT: frozenset({HostStage.PUSHED, HostStage.DONE}),
    HostStage.PUSHED: frozenset({HostStage.PRE_CHECKED, HostStage.DONE}),
    HostStage.PRE_CHECKED: frozenset({HostStage.ACTIVATED}),
    HostStage.ACTIVATED: frozenset({HostStage.REBOOTING, HostStage.POST_CHECKED}),
    HostStage.REBOOTING: frozenset({HostStage.ONLINE}),
    HostStage.ONLINE: frozenset({HostStage.POST_CHECKED}),
    HostStage.POST_CHECKED: frozenset({HostStage.DONE}),
}


class HostDeployment:
    __slots__ = (
        "_host_name",
        "_stage",
        "_last_stage",
        "_failed_step",
        "_error",
        "_domain_events",
    )

    def __init__(
        self,
        host_name: str,
        stage: HostStage = HostStage.PENDING,
        last_stage: Optional[HostStage] = None,
        failed_step: Optional[str] = None,
        error: Optional[BaseException] = None,
        domain_events: tuple = (),
    ):
        self._host_name = host_name
        self._stage = stage
        self._last_stage = last_stage or stage
        self._failed_step = failed_step
        self._error = error
        self._domain_events = domain_events

    @property
    def host_name(self) -> str:
        return self._host_name

    @property
    def stage(self) -> HostStage:
        return self._stage

    @property
    def last_stage(self) -> HostStage:
        """Last non-failed stage the host reached."""
        return self._last_stage

    @property
    def failed_step(self) -> Optional[str]:
        return self._failed_step

    @property
    def error(self) -> Optional[BaseException]:
        return self._error

    @property
    def domain_events(self) -> tuple:
        return self._domain_events

    @property
    def succeeded(self) -> bool:
        return self._stage == HostStage.DONE

    def advance(self, stage: HostStage) -> "HostDeployment":
        allowed = _TRANSITIONS.get(self._stage, frozenset())
        if stage not in allowed:
            raise ValueError(
                f"{self._host_name}: cannot move from {self._stage} to {stage}"
            )
        return HostDeployment(
            host_name=self._host_name,
            stage=stage,
            last_stage=stage,
            domain_events=self._domain_events
            + (
                HostStageChangedEvent(
                    aggregate_id=self._host_name,
                    stage=stage.value,
                    previous_stage=self._stage.value,
                ),
            ),
        )

    def fail(self, step: str, error: BaseException) -> "HostDeployment":
        if self._stage.is_terminal:
            raise ValueError(f"{self._host_name}: already {self._stage}")
        return HostDeployment(
            host_name=self._host_name,
            stage=HostStage.FAILED,
            last_stage=self._last_stage,
            failed_step=step,
            error=error,
            domain_events=self._domain_events
            + (
                HostFailedEvent(
                    aggregate_id=self._host_name,
                    stage=step,
                    error_message=str(error),
                ),
            ),
        )

    def __repr__(self) -> str:
        return (
            f"HostDeployment(host={self._host_name}, stage={self._stage}, "
            f"last_stage={self._last_stage}, failed_step={self._failed_step}, "
            f"error={self._error!r})"
        )
