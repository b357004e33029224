"""
SafePaste — risk labels and flagging threshold policy.

Both surfaces share one classifier. The API configures the policy from a
binary strict flag; the paste guard configures it from the three-way warning
mode stored in its settings.
"""

from dataclasses import dataclass
from enum import Enum

RISK_HIGH_MIN = 60
RISK_MEDIUM_MIN = 30

# Threshold table: mode -> (normal, strict)
NEVER_FLAG = 101
_THRESHOLDS = {
    "yellow": (35, 25),
    "red": (60, 55),
    "off": (NEVER_FLAG, NEVER_FLAG),
}


class RiskLevel(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"

    @property
    def color(self) -> str:
        """Badge color used by the paste guard UI."""
        return {"low": "green", "medium": "yellow", "high": "red"}[self.value]


class WarnThresholdMode(str, Enum):
    YELLOW = "yellow"   # warn on medium or high risk (default)
    RED = "red"         # warn on high risk only
    OFF = "off"         # never warn


def risk_level(score: int) -> RiskLevel:
    if score >= RISK_HIGH_MIN:
        return RiskLevel.HIGH
    if score >= RISK_MEDIUM_MIN:
        return RiskLevel.MEDIUM
    return RiskLevel.LOW


@dataclass(frozen=True)
class ThresholdPolicy:
    """Selects the flagging threshold from a warning mode and a strict flag.

    Strict mode never raises the threshold relative to normal mode. A mode
    that is not red or off selects the yellow thresholds.
    """
    mode: WarnThresholdMode = WarnThresholdMode.YELLOW
    strict: bool = False

    def __post_init__(self):
        if not isinstance(self.mode, WarnThresholdMode):
            try:
                mode = WarnThresholdMode(self.mode)
            except (ValueError, TypeError):
                mode = WarnThresholdMode.YELLOW
            object.__setattr__(self, "mode", mode)
        object.__setattr__(self, "strict", bool(self.strict))

    @classmethod
    def from_strict(cls, strict_mode: bool) -> "ThresholdPolicy":
        return cls(mode=WarnThresholdMode.YELLOW, strict=bool(strict_mode))

    @property
    def threshold(self) -> int:
        normal, strict = _THRESHOLDS[self.mode.value]
        return strict if self.strict else normal

    def flags(self, score: int) -> bool:
        return score >= self.threshold
