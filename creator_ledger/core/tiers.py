"""
Versioned tier rate schedule.

The schedule is immutable and injected into the tier and accrual services.
Earnings records store the schedule version alongside the locked rate so
historical rows document which table applied.
"""

from dataclasses import dataclass
from decimal import Decimal
from enum import Enum
from typing import Optional, Tuple

from .exceptions import ConfigurationError


class TierLevel(str, Enum):
    """Creator rate brackets, lowest first."""
    BRONZE = "bronze"
    SILVER = "silver"
    GOLD = "gold"
    PLATINUM = "platinum"


@dataclass(frozen=True)
class TierSpec:
    """One row of the rate table."""
    level: TierLevel
    min_views: int
    rate_per_view: Decimal


@dataclass(frozen=True)
class TierEligibility:
    """Result of an eligibility recomputation."""
    current_tier: TierLevel
    next_tier: Optional[TierLevel]
    views_needed: int
    total_views: int

    @property
    def can_request_upgrade(self) -> bool:
        return self.next_tier is not None and self.views_needed == 0


@dataclass(frozen=True)
class RateSchedule:
    version: str
    tiers: Tuple[TierSpec, ...]

    def __post_init__(self):
        if not self.tiers:
            raise ConfigurationError("Rate schedule must define at least one tier")

        if self.tiers[0].min_views != 0:
            raise ConfigurationError(
                "Lowest tier must start at zero views",
                {"version": self.version}
            )

        for lower, higher in zip(self.tiers, self.tiers[1:]):
            if higher.min_views <= lower.min_views or higher.rate_per_view <= lower.rate_per_view:
                raise ConfigurationError(
                    "Rate schedule must be strictly increasing",
                    {
                        "version": self.version,
                        "lower": lower.level.value,
                        "higher": higher.level.value,
                    }
                )

    def _index(self, level: TierLevel) -> int:
        level = TierLevel(level)
        for i, spec in enumerate(self.tiers):
            if spec.level == level:
                return i
        raise ConfigurationError(
            f"Tier {level.value} is not part of schedule {self.version}",
            {"version": self.version, "tier": level.value}
        )

    def spec_for(self, level: TierLevel) -> TierSpec:
        return self.tiers[self._index(level)]

    def rate_for(self, level: TierLevel) -> Decimal:
        return self.spec_for(level).rate_per_view

    def rank(self, level: TierLevel) -> int:
        return self._index(level)

    def next_tier(self, level: TierLevel) -> Optional[TierSpec]:
        i = self._index(level)
        if i + 1 < len(self.tiers):
            return self.tiers[i + 1]
        return None

    @property
    def lowest(self) -> TierSpec:
        return self.tiers[0]

    @property
    def highest(self) -> TierSpec:
        return self.tiers[-1]

    def eligibility(self, level: TierLevel, total_views: int) -> TierEligibility:
        """Compute the next tier and the views still needed to reach it."""
        nxt = self.next_tier(level)
        if nxt is None:
            return TierEligibility(TierLevel(level), None, 0, total_views)
        return TierEligibility(
            current_tier=TierLevel(level),
            next_tier=nxt.level,
            views_needed=max(0, nxt.min_views - total_views),
            total_views=total_views,
        )


DEFAULT_RATE_SCHEDULE = RateSchedule(
    version="2024.1",
    tiers=(
        TierSpec(TierLevel.BRONZE, 0, Decimal("0.0008")),
        TierSpec(TierLevel.SILVER, 10_000, Decimal("0.005")),
        TierSpec(TierLevel.GOLD, 50_000, Decimal("0.01")),
        TierSpec(TierLevel.PLATINUM, 200_000, Decimal("0.025")),
    ),
)
