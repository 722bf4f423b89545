from dataclasses import dataclass

WILDCARD = "*"


@dataclass(frozen=True)
class LabelSelector:
    """
    Value Object selecting hosts by a single label.
    A value of "*" on either side matches any value of that label.
    """
    label: str
    value: str = WILDCARD

    def __post_init__(self):
        if not self.label:
            raise ValueError("Label selector needs a label name")

    def match(self, label: str, value: str) -> bool:
        if self.label != label:
            return False
        if self.value == WILDCARD or value == WILDCARD:
            return True
        return self.value == value

    def __str__(self):
        return f"{self.label}={self.value}"
