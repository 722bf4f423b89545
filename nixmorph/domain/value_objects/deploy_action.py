from enum import Enum


class DeployAction(str, Enum):
    """
    Activation mode passed to switch-to-configuration on the target host.
    """
    SWITCH = "switch"
    BOOT = "boot"
    DRY_ACTIVATE = "dry-activate"
    TEST = "test"

    @property
    def sets_boot_profile(self) -> bool:
        """switch and boot make the closure the system profile (the next boot default)."""
        return self in (DeployAction.SWITCH, DeployAction.BOOT)

    @staticmethod
    def parse(value: str) -> "DeployAction":
        try:
            return DeployAction(value)
        except ValueError:
            valid = ", ".join(a.value for a in DeployAction)
            raise ValueError(f"Unknown deploy action {value!r} (expected one of: {valid})")

    def __str__(self) -> str:
        return self.value
