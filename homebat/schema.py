# homebat/schema.py
from datetime import datetime
from typing import Optional, List
import math

from pydantic import BaseModel, Field, validator


class PricePeriod(BaseModel):
    start_time: Optional[datetime] = None    # start of the fixed-length interval
    price: float                             # currency per kWh equivalent


class PowerTier(BaseModel):
    """A selectable charge or discharge operating point."""

    power_watts: float                       # AC side for charging, DC side for discharging
    efficiency: float                        # η in (0,1]

    @property
    def is_usable(self) -> bool:
        """Tiers without power or with a degenerate efficiency count as absent"""
        if not math.isfinite(self.power_watts) or self.power_watts <= 0:
            return False
        return math.isfinite(self.efficiency) and 0 < self.efficiency <= 1

    @property
    def power_kw(self) -> float:
        return self.power_watts / 1000.0


# Reference hardware values (5.05 kWh home battery)
DEFAULT_CAPACITY_KWH = 5.05
DEFAULT_CHARGE_TIERS = [
    {"power_watts": 2200, "efficiency": 0.90},   # max speed
    {"power_watts": 1050, "efficiency": 0.95},   # efficient
]
DEFAULT_DISCHARGE_TIERS = [
    {"power_watts": 1550, "efficiency": 0.92},   # max speed
    {"power_watts": 765, "efficiency": 0.96},    # efficient
]


class BatteryParams(BaseModel):
    capacity_kwh: float = DEFAULT_CAPACITY_KWH
    charge_tiers: List[PowerTier] = Field(
        default_factory=lambda: [PowerTier(**t) for t in DEFAULT_CHARGE_TIERS])
    discharge_tiers: List[PowerTier] = Field(
        default_factory=lambda: [PowerTier(**t) for t in DEFAULT_DISCHARGE_TIERS])
    start_soc_percent: float = 0.0
    fixed_cost_per_kwh: Optional[float] = None   # None: half of min_price_delta

    @property
    def usable_charge_tiers(self) -> List[PowerTier]:
        return [tier for tier in self.charge_tiers if tier.is_usable]

    @property
    def usable_discharge_tiers(self) -> List[PowerTier]:
        return [tier for tier in self.discharge_tiers if tier.is_usable]

    @property
    def max_charge_watts(self) -> float:
        return max((t.power_watts for t in self.usable_charge_tiers), default=0.0)

    @property
    def max_discharge_watts(self) -> float:
        return max((t.power_watts for t in self.usable_discharge_tiers), default=0.0)


class CleanupThresholds(BaseModel):
    """Empirical cleanup rules, tuned on the reference hardware"""

    suppress_charge_below_soc: float = 95.0      # short charges kept only when almost full
    suppress_discharge_above_soc: float = 5.0    # short discharges kept only when almost empty
    park_full_above_soc: float = 97.0            # partial charge stretched to the full period
    park_empty_below_soc: float = 3.0            # partial discharge stretched to the full period
    min_duration_divisor: float = 6.0            # min active minutes = interval / divisor

    @validator("min_duration_divisor")
    def positive_divisor(cls, v):
        assert v > 0, "min_duration_divisor must be positive"
        return v


class ScheduleOptions(BaseModel):
    interval_minutes: int = Field(60, gt=0)
    min_price_delta: float = 0.1                 # minimum profitable price swing
    elapsed_minutes_in_first_period: float = 0.0
    max_steps: int = Field(120, gt=0)            # caps solver cost
    max_horizon_hours: float = Field(48, gt=0)
    cleanup: bool = True
    thresholds: CleanupThresholds = Field(default_factory=CleanupThresholds)

    @validator("min_price_delta")
    def non_negative_delta(cls, v):
        assert v >= 0, "min_price_delta must be non-negative"
        return v

    @property
    def interval_hours(self) -> float:
        return self.interval_minutes / 60.0

    @property
    def horizon_limit(self) -> int:
        """Number of periods the optimizer is allowed to look ahead"""
        steps_per_hour = 60.0 / self.interval_minutes
        horizon_hours = min(self.max_horizon_hours, self.max_steps / steps_per_hour)
        return int(math.ceil(horizon_hours * steps_per_hour))


class ScheduleEntry(BaseModel):
    index: int
    start_time: Optional[datetime] = None
    power_watts: int                 # signed, + is charging
    active_minutes: int
    soc_percent: int                 # SoC at the end of the period
    price: float
    energy_kwh: float = 0.0          # signed change of stored energy in this period


class BatteryState(BaseModel):
    id: str
    max_charge_watts: float
    max_discharge_watts: float
    efficient_charge_watts: Optional[float] = None       # falls back to max_charge_watts
    efficient_discharge_watts: Optional[float] = None    # falls back to max_discharge_watts
    soc_percent: float
    last_target_watts: float = 0.0                       # previous tick's command, for hysteresis
    measured_power_watts: Optional[float] = None         # reported by the device, informational only

    @validator("max_charge_watts", "max_discharge_watts")
    def non_negative_limits(cls, v):
        assert v >= 0, "Power limits must be non-negative"
        return v

    @property
    def efficient_charge_limit(self) -> float:
        return self.efficient_charge_watts or self.max_charge_watts

    @property
    def efficient_discharge_limit(self) -> float:
        return self.efficient_discharge_watts or self.max_discharge_watts


class DistributionTarget(BaseModel):
    id: str
    target_watts: float


class DistributionTuning(BaseModel):
    """Empirical hysteresis constants for the fleet controller"""

    soc_hysteresis: float = 20.0         # rank bonus for batteries already active
    active_threshold_watts: float = 10.0
    efficiency_margin: float = 1.1       # allowed overshoot of the efficient tier
    tolerance_watts: float = 10.0
    min_weight: float = 0.1              # keeps empty/full batteries out of a zero division
