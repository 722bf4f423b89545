from dataclasses import dataclass

from nixmorph.domain.events.event_base import DomainEvent


@dataclass(frozen=True)
class HostStageChangedEvent(DomainEvent):
    stage: str = ""
    previous_stage: str = ""


@dataclass(frozen=True)
class HostFailedEvent(DomainEvent):
    # stage is the pipeline step that failed, not the stage the host reached
    stage: str = ""
    error_message: str = ""


@dataclass(frozen=True)
class DeploymentFinishedEvent(DomainEvent):
    succeeded: tuple[str, ...] = ()
    failed: tuple[str, ...] = ()

    @property
    def success(self) -> bool:
        return not self.failed
