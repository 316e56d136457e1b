# homebat/schedule.py
"""
Look-ahead charge/discharge schedule against a forecast price series.

Each period and power tier gets a continuous variable holding the fraction of
the period the tier is active. Periods are linked through the stored energy
balance, the objective charges a fixed cost of half the minimum price delta
per kWh moved in either direction so that trades below that swing are never
worth scheduling. After solving, a cleanup pass removes short direction flips
and stretches periods that run into a full or empty battery.
Reported energy stays within [0, capacity]: after a suppressed period the later
periods are credited only with what the battery can actually take or give.
"""

from dataclasses import dataclass, field
from typing import Dict, Iterator, List, Optional, Sequence, Union
import logging
import math

import numpy as np
import pandas as pd

from .schema import (
    BatteryParams, CleanupThresholds, PowerTier, PricePeriod, ScheduleEntry, ScheduleOptions,
)
from .optimization.lp_model import LinearProgram, LPSolution
from .optimization.lp_solver import GurobiSolver
from .utils.validators import DataValidator

logger = logging.getLogger(__name__)

# Solver values below this are treated as inactive
ACTIVATION_EPSILON = 1e-9


@dataclass
class Schedule:
    """Container for a computed schedule"""
    entries: List[ScheduleEntry]
    objective_value: float          # LP optimum, before cleanup
    status: str
    solve_time: float
    horizon: int                    # number of periods considered

    def __len__(self) -> int:
        return len(self.entries)

    def __iter__(self) -> Iterator[ScheduleEntry]:
        return iter(self.entries)

    def __getitem__(self, idx: int) -> ScheduleEntry:
        return self.entries[idx]

    @property
    def first_entry(self) -> Optional[ScheduleEntry]:
        """The action to apply now"""
        return self.entries[0] if self.entries else None

    def to_dataframe(self) -> pd.DataFrame:
        data = {
            'start_time': [e.start_time for e in self.entries],
            'power_watts': [e.power_watts for e in self.entries],
            'active_minutes': [e.active_minutes for e in self.entries],
            'soc_percent': [e.soc_percent for e in self.entries],
            'price': [e.price for e in self.entries],
            'energy_kwh': [e.energy_kwh for e in self.entries],
        }
        return pd.DataFrame(data, index=pd.RangeIndex(len(self.entries), name='period'))


@dataclass
class ScheduleModel:
    """LP plus the index maps needed to read a solution back"""
    lp: LinearProgram
    charge_tiers: List[PowerTier]
    discharge_tiers: List[PowerTier]
    available: List[float]                                   # usable fraction per period
    charge_vars: List[List[int]] = field(default_factory=list)     # [t][tier]
    discharge_vars: List[List[int]] = field(default_factory=list)  # [t][tier]
    soc_vars: List[int] = field(default_factory=list)


def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def _coerce_prices(prices: Sequence[Union[PricePeriod, float]]) -> List[PricePeriod]:
    return [p if isinstance(p, PricePeriod) else PricePeriod(price=float(p)) for p in prices]


def available_fraction(t: int, options: ScheduleOptions) -> float:
    """Fraction of period t that can still be used"""
    if t != 0:
        return 1.0
    interval = options.interval_minutes
    return (interval - (options.elapsed_minutes_in_first_period % interval)) / interval


def build_schedule_model(prices: Sequence[PricePeriod], battery: BatteryParams,
                         options: ScheduleOptions) -> ScheduleModel:
    """
    Build the schedule LP for an already truncated price series.

    Args:
        prices: Price periods, at most options.horizon_limit long
        battery: Capacity, start SoC and power tiers
        options: Interval length and minimum profitable price delta

    Returns:
        ScheduleModel with the LP and its variable indices
    """
    dt = options.interval_hours
    capacity = battery.capacity_kwh
    start_kwh = battery.start_soc_percent / 100.0 * capacity
    fixed_cost = battery.fixed_cost_per_kwh
    if fixed_cost is None:
        fixed_cost = 0.5 * options.min_price_delta

    model = ScheduleModel(
        lp=LinearProgram("battery_schedule"),
        charge_tiers=battery.usable_charge_tiers,
        discharge_tiers=battery.usable_discharge_tiers,
        available=[available_fraction(t, options) for t in range(len(prices))],
    )
    lp = model.lp

    for t, period in enumerate(prices):
        avail = model.available[t]

        # Tier activation fractions
        charge_idx = [
            lp.add_variable(f"charge_{i}_{t}", 0.0, avail,
                            cost=tier.power_kw * dt * (fixed_cost + period.price))
            for i, tier in enumerate(model.charge_tiers)
        ]
        discharge_idx = [
            lp.add_variable(f"discharge_{j}_{t}", 0.0, avail,
                            cost=tier.power_kw * dt * (fixed_cost - period.price))
            for j, tier in enumerate(model.discharge_tiers)
        ]
        # Stored energy at the end of period t
        soc_idx = lp.add_variable(f"soc_{t}", 0.0, capacity)

        model.charge_vars.append(charge_idx)
        model.discharge_vars.append(discharge_idx)
        model.soc_vars.append(soc_idx)

        # Tiers share the period's time
        if charge_idx or discharge_idx:
            lp.add_constraint(f"time_{t}", {idx: 1.0 for idx in charge_idx + discharge_idx},
                              "<=", avail)

        # soc_t - soc_{t-1} - charged + discharged = start (t == 0) or 0
        balance: Dict[int, float] = {soc_idx: 1.0}
        if t > 0:
            balance[model.soc_vars[t - 1]] = -1.0
        for idx, tier in zip(charge_idx, model.charge_tiers):
            balance[idx] = -tier.power_kw * dt * tier.efficiency
        for idx, tier in zip(discharge_idx, model.discharge_tiers):
            balance[idx] = tier.power_kw * dt / tier.efficiency
        lp.add_constraint(f"balance_{t}", balance, "==", start_kwh if t == 0 else 0.0)

    return model


def _soc_percent(stored_kwh: float, capacity: float) -> int:
    return min(100, max(_round_half_up(100 * stored_kwh / capacity), 0))


def reconstruct_schedule(model: ScheduleModel, solution: LPSolution,
                         prices: Sequence[PricePeriod], battery: BatteryParams,
                         options: ScheduleOptions) -> List[ScheduleEntry]:
    """
    Turn tier fractions into one entry per period and apply the cleanup pass.
    """
    values = solution.values
    interval = options.interval_minutes
    dt = options.interval_hours
    capacity = battery.capacity_kwh
    thresholds = options.thresholds
    min_duration = max(1, _round_half_up(interval / thresholds.min_duration_divisor))

    stored = battery.start_soc_percent / 100.0 * capacity
    last_power = 0
    entries = []

    for t, period in enumerate(prices):
        soc_at_start = stored
        total_time = 0.0
        avg_power_kw = 0.0

        for idx, tier in zip(model.charge_vars[t], model.charge_tiers):
            frac = values[idx]
            if frac <= ACTIVATION_EPSILON:
                continue
            total_time += frac
            avg_power_kw += frac * tier.power_kw
            stored += frac * tier.power_kw * tier.efficiency * dt

        for idx, tier in zip(model.discharge_vars[t], model.discharge_tiers):
            frac = values[idx]
            if frac <= ACTIVATION_EPSILON:
                continue
            total_time += frac
            avg_power_kw -= frac * tier.power_kw
            stored -= frac * tier.power_kw / tier.efficiency * dt

        power = _round_half_up(avg_power_kw * 1000 / total_time) if total_time > 0 else 0
        duration = _round_half_up(total_time * interval)
        soc = _soc_percent(stored, capacity)

        if options.cleanup:
            power, duration, soc, stored = _clean_up_period(
                power, duration, soc, stored, soc_at_start, last_power,
                min_duration, _round_half_up(model.available[t] * interval),
                capacity, thresholds)

        # A suppressed period shifts the LP trajectory for all later periods
        stored = min(capacity, max(0.0, stored))

        last_power = power
        entries.append(ScheduleEntry(
            index=t,
            start_time=period.start_time,
            power_watts=power,
            active_minutes=duration,
            soc_percent=soc,
            price=period.price,
            energy_kwh=stored - soc_at_start,
        ))

    return entries


def _clean_up_period(power: int, duration: int, soc: int, stored: float,
                     soc_at_start: float, last_power: int, min_duration: int,
                     available_minutes: int, capacity: float,
                     thresholds: CleanupThresholds):
    # Short charges after a non-charging period, unless almost full; same for discharges
    short = duration < min_duration
    if ((short and power > 0 and soc < thresholds.suppress_charge_below_soc and last_power <= 0)
            or (short and power < 0 and soc > thresholds.suppress_discharge_above_soc
                and last_power >= 0)):
        power = 0
        duration = 0
        stored = soc_at_start
        soc = _soc_percent(stored, capacity)

    # Battery parked at a boundary: run for the whole period
    if ((duration < available_minutes and power > 0 and soc > thresholds.park_full_above_soc)
            or (duration < available_minutes and power < 0
                and soc < thresholds.park_empty_below_soc)):
        duration = available_minutes

    return power, duration, soc, stored


def compute_schedule(prices: Sequence[Union[PricePeriod, float]],
                     battery: Optional[BatteryParams] = None,
                     options: Optional[ScheduleOptions] = None,
                     solver=None) -> Schedule:
    """
    Compute the optimal charge/discharge plan for the coming periods.

    Args:
        prices: Ordered, contiguous price periods (or plain prices)
        battery: Battery parameters; reference hardware defaults if omitted
        options: Interval, min price delta, first period proration, cleanup
        solver: Object with solve(LinearProgram) -> LPSolution; Gurobi if omitted

    Returns:
        Schedule with one entry per period within the horizon

    Raises:
        InvalidInput: Empty price series or unusable battery parameters
        SolverInfeasible: The solver reported the model infeasible
    """
    battery = battery or BatteryParams()
    options = options or ScheduleOptions()
    periods = _coerce_prices(prices)

    DataValidator(strict=True).validate_schedule_inputs(periods, battery, options)

    horizon = options.horizon_limit
    periods = periods[:horizon]

    model = build_schedule_model(periods, battery, options)
    logger.debug(f"Schedule model: {len(periods)} periods, "
                 f"{len(model.charge_tiers)}/{len(model.discharge_tiers)} charge/discharge tiers")

    solver = solver or GurobiSolver()
    solution = solver.solve(model.lp)

    entries = reconstruct_schedule(model, solution, periods, battery, options)

    return Schedule(
        entries=entries,
        objective_value=solution.objective_value,
        status=solution.status,
        solve_time=solution.solve_time,
        horizon=len(periods),
    )


def schedule_summary(schedule: Schedule) -> Dict[str, float]:
    """Aggregate figures of a schedule"""
    powers = np.array([e.power_watts for e in schedule.entries], dtype=float)
    minutes = np.array([e.active_minutes for e in schedule.entries], dtype=float)
    energy = np.array([e.energy_kwh for e in schedule.entries], dtype=float)
    return {
        'periods': len(schedule),
        'charge_periods': int(np.sum(powers > 0)),
        'discharge_periods': int(np.sum(powers < 0)),
        'stored_kwh': float(np.sum(energy[energy > 0])),
        'released_kwh': float(-np.sum(energy[energy < 0])),
        'active_hours': float(np.sum(minutes) / 60),
        'objective_value': schedule.objective_value,
    }
