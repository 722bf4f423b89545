from dataclasses import dataclass
from typing import Optional

# ssh(1) exits with 255 when the transport itself fails, e.g. the remote end hung up
SSH_DISCONNECT_STATUS = 255


@dataclass(frozen=True)
class RemoteResult:
    """
    Value Object holding the outcome of a command run on a remote host.
    """
    stdout: str
    exit_status: int
    stderr: str = ""

    @property
    def ok(self) -> bool:
        return self.exit_status == 0

    @property
    def disconnected(self) -> bool:
        return self.exit_status == SSH_DISCONNECT_STATUS


@dataclass(frozen=True)
class CheckResult:
    ok: bool
    error: Optional[str] = None

    @staticmethod
    def passed() -> "CheckResult":
        return CheckResult(ok=True)

    @staticmethod
    def failed(error: str) -> "CheckResult":
        return CheckResult(ok=False, error=error)
