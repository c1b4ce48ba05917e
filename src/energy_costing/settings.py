"""
Case settings consumed by the cost accounting engine.

The settings object is read-only once loaded. It carries the discounting
inputs (discount rate and period lengths), the solution algorithm, and the
output/dual export switches used by the writers.
"""

import json
import logging
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Dict, Mapping, Tuple

from . import config
from .economics import years_remaining
from .exceptions import SettingsError

logger = logging.getLogger(__name__)


class SolutionAlgorithm(Enum):
    MONOLITHIC = "Monolithic"
    MYOPIC = "Myopic"
    BENDERS = "Benders"

    @classmethod
    def parse(cls, value) -> "SolutionAlgorithm":
        if isinstance(value, cls):
            return value
        for member in cls:
            if str(value).strip().lower() == member.value.lower():
                return member
        raise SettingsError(
            f"Unknown SolutionAlgorithm '{value}'. Expected one of {[m.value for m in cls]}"
        )

    @property
    def has_perfect_foresight(self) -> bool:
        return self is not SolutionAlgorithm.MYOPIC


def applicable_horizon(mode: SolutionAlgorithm, period_idx: int, period_lengths) -> int:
    """Years of the horizon visible to the investment decisions of ``period_idx``.

    Myopic runs only see their own period; Monolithic and Benders see every
    remaining year of the case.
    """
    if mode is SolutionAlgorithm.MYOPIC:
        return int(period_lengths[period_idx - 1])
    return years_remaining(period_idx, period_lengths)


DEFAULT_MYOPIC_SETTINGS = {
    "ReturnModels": False,
    "Restart": {"enabled": False, "folder": "results", "from_period": 1},
    "StopAfterPeriod": None,
    "WriteModelLP": False,
}

DEFAULT_BENDERS_SETTINGS = {
    "Distributed": False,
}


@dataclass(frozen=True)
class CaseSettings:
    DiscountRate: float = config.DEFAULT_DISCOUNT_RATE
    PeriodLengths: Tuple[int, ...] = (1,)
    SolutionAlgorithm: SolutionAlgorithm = SolutionAlgorithm.MONOLITHIC
    OutputLayout: str = config.DEFAULT_OUTPUT_LAYOUT
    DualExportsEnabled: bool = False
    MyopicSettings: Dict[str, Any] = field(default_factory=lambda: dict(DEFAULT_MYOPIC_SETTINGS))
    BendersSettings: Dict[str, Any] = field(default_factory=lambda: dict(DEFAULT_BENDERS_SETTINGS))

    def __post_init__(self):
        # normalise inputs so the rest of the code can rely on the types
        object.__setattr__(self, "DiscountRate", float(self.DiscountRate))
        object.__setattr__(self, "PeriodLengths", tuple(int(x) for x in self.PeriodLengths))
        object.__setattr__(self, "SolutionAlgorithm", SolutionAlgorithm.parse(self.SolutionAlgorithm))
        self.validate()

    def validate(self):
        if self.DiscountRate < 0:
            raise SettingsError(f"DiscountRate must be non-negative, got {self.DiscountRate}")
        bad = [x for x in self.PeriodLengths if x <= 0]
        if bad:
            raise SettingsError(f"PeriodLengths must be positive integers, got {list(self.PeriodLengths)}")
        if self.OutputLayout not in ("long", "wide"):
            raise SettingsError(f"OutputLayout must be 'long' or 'wide', got '{self.OutputLayout}'")

    @property
    def num_periods(self) -> int:
        return len(self.PeriodLengths)

    @property
    def is_myopic(self) -> bool:
        return self.SolutionAlgorithm is SolutionAlgorithm.MYOPIC

    @property
    def is_benders(self) -> bool:
        return self.SolutionAlgorithm is SolutionAlgorithm.BENDERS

    def period_length(self, period_idx: int) -> int:
        return self.PeriodLengths[period_idx - 1]

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "CaseSettings":
        """Build settings from the case-settings JSON keys."""
        if "PeriodLengths" not in data:
            raise SettingsError("Case settings must define PeriodLengths")
        myopic = _merge_nested(DEFAULT_MYOPIC_SETTINGS, data.get("MyopicSettings", {}))
        benders = _merge_nested(DEFAULT_BENDERS_SETTINGS, data.get("BendersSettings", {}))
        return cls(
            DiscountRate=data.get("DiscountRate", config.DEFAULT_DISCOUNT_RATE),
            PeriodLengths=data["PeriodLengths"],
            SolutionAlgorithm=data.get("SolutionAlgorithm", config.DEFAULT_SOLUTION_ALGORITHM),
            OutputLayout=data.get("OutputLayout", config.DEFAULT_OUTPUT_LAYOUT),
            DualExportsEnabled=bool(data.get("DualExportsEnabled", False)),
            MyopicSettings=myopic,
            BendersSettings=benders,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "DiscountRate": self.DiscountRate,
            "PeriodLengths": list(self.PeriodLengths),
            "SolutionAlgorithm": self.SolutionAlgorithm.value,
            "OutputLayout": self.OutputLayout,
            "DualExportsEnabled": self.DualExportsEnabled,
            "MyopicSettings": self.MyopicSettings,
            "BendersSettings": self.BendersSettings,
        }


def _merge_nested(defaults: Mapping[str, Any], overrides: Mapping[str, Any]) -> Dict[str, Any]:
    merged = {k: (dict(v) if isinstance(v, dict) else v) for k, v in defaults.items()}
    for key, value in overrides.items():
        if isinstance(value, Mapping) and isinstance(merged.get(key), dict):
            merged[key].update(value)
        else:
            merged[key] = value
    return merged


def load_case_settings(path) -> CaseSettings:
    """Read case settings from a JSON file."""
    path = Path(path)
    logger.info(f"Loading case settings from {path}")
    with open(path) as f:
        data = json.load(f)
    return CaseSettings.from_dict(data)


def write_settings(settings: CaseSettings, path) -> None:
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, "w") as f:
        json.dump(settings.to_dict(), f, indent=4)
    logger.info(f"Settings written to {path}")
