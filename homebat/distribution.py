# homebat/distribution.py
"""
Real-time split of one aggregate power target over a fleet of batteries.

Called every tick with fresh telemetry. The only memory between calls is each
battery's last_target_watts, which the caller threads through (see
with_last_targets) and which aggregate_target turns into the next fleet
target. Targets are signed: + charges, - discharges.
"""

from dataclasses import dataclass
from typing import Dict, List, Optional, Sequence
import logging

from .schema import BatteryState, DistributionTarget, DistributionTuning
from .utils.validators import DataValidator

logger = logging.getLogger(__name__)

DEFAULT_MIN_LOAD_WATTS = 50.0


@dataclass
class Allocation:
    """Working value for one battery during a tick"""
    battery: BatteryState
    target: float = 0.0

    @property
    def headroom_charge(self) -> float:
        return max(0.0, self.battery.max_charge_watts - self.target)

    @property
    def headroom_discharge(self) -> float:
        return max(0.0, self.battery.max_discharge_watts + self.target)

    def headroom(self, direction: float) -> float:
        return self.headroom_charge if direction > 0 else self.headroom_discharge

    def apply(self, delta: float) -> float:
        """Move the target by delta within headroom; returns the applied change."""
        if delta > 0:
            delta = min(delta, self.headroom_charge)
        else:
            delta = max(delta, -self.headroom_discharge)
        self.target += delta
        return delta


def _clamp(battery: BatteryState, target: float) -> float:
    return max(-battery.max_discharge_watts, min(battery.max_charge_watts, target))


def _is_active(watts: float, direction: float, threshold: float) -> bool:
    return watts * direction > threshold


def rank_batteries(batteries: Sequence[BatteryState], direction: float,
                   tuning: Optional[DistributionTuning] = None,
                   hysteresis: bool = True) -> List[BatteryState]:
    """
    Order batteries by suitability for the requested direction.

    Discharging prefers high SoC, charging prefers low SoC. A battery already
    active in the same direction gets a bonus so small SoC differences do not
    swap the leader every tick. The sort is stable: ties keep input order.
    """
    tuning = tuning or DistributionTuning()

    def score(b: BatteryState) -> float:
        bonus = 0.0
        if hysteresis and _is_active(b.last_target_watts, direction, tuning.active_threshold_watts):
            bonus = tuning.soc_hysteresis
        if direction < 0:
            return -(b.soc_percent + bonus)
        return b.soc_percent - bonus

    return sorted(batteries, key=score)


def _proportional_split(subset: Sequence[BatteryState], total_target: float,
                        tuning: DistributionTuning) -> Dict[str, float]:
    """SoC-weighted split of total_target, clamped to each battery's limits."""
    if total_target < 0:
        weights = [max(b.soc_percent, tuning.min_weight) for b in subset]
    else:
        weights = [max(100 - b.soc_percent, tuning.min_weight) for b in subset]
    total_weight = sum(weights)
    return {
        b.id: _clamp(b, total_target * w / total_weight)
        for b, w in zip(subset, weights)
    }


def _is_efficient(subset: Sequence[BatteryState], split: Dict[str, float],
                  direction: float, tuning: DistributionTuning) -> bool:
    """
    True when no allocation exceeds its efficient tier by more than the margin.
    Batteries keeping their active/inactive state from the last tick are exempt.
    """
    for b in subset:
        target = split[b.id]
        if abs(target) <= 0.1:
            continue
        was_active = _is_active(b.last_target_watts, direction, tuning.active_threshold_watts)
        if was_active:
            continue
        limit = b.efficient_charge_limit if target > 0 else b.efficient_discharge_limit
        if abs(target) > limit * tuning.efficiency_margin:
            return False
    return True


def _apply_min_load(ranked: Sequence[BatteryState], split: Dict[str, float],
                    total_target: float, min_load: float) -> List[Allocation]:
    plan = []
    for b in ranked:
        target = split.get(b.id, 0.0)
        # A large aggregate is never dropped because one share is small
        if abs(target) < min_load and abs(total_target) < min_load:
            target = 0.0
        plan.append(Allocation(b, target))
    return plan


def calculate_allocation(batteries: Sequence[BatteryState], total_target: float,
                         min_load: float = DEFAULT_MIN_LOAD_WATTS,
                         tuning: Optional[DistributionTuning] = None) -> List[Allocation]:
    """
    Smallest ranked subset that meets the target, preferring efficient ones.

    Returns allocations for all batteries in rank order; batteries outside the
    chosen subset get 0.
    """
    tuning = tuning or DistributionTuning()
    direction = -1.0 if total_target < 0 else 1.0
    ranked = rank_batteries(batteries, direction, tuning)

    fallback = None
    for k in range(1, len(ranked) + 1):
        subset = ranked[:k]
        split = _proportional_split(subset, total_target, tuning)
        if abs(total_target - sum(split.values())) >= tuning.tolerance_watts:
            continue
        plan = _apply_min_load(ranked, split, total_target, min_load)
        if _is_efficient(subset, split, direction, tuning):
            logger.debug(f"Using {k} of {len(ranked)} batteries")
            return plan
        if fallback is None:
            fallback = plan

    if fallback is not None:
        logger.debug("No efficient subset, using smallest feasible one")
        return fallback

    # Demand exceeds the fleet: best effort over all batteries
    split = _proportional_split(ranked, total_target, tuning)
    return _apply_min_load(ranked, split, total_target, min_load)


def distribute_remaining_power(plan: List[Allocation], total_target: float,
                               min_load: float = DEFAULT_MIN_LOAD_WATTS,
                               tuning: Optional[DistributionTuning] = None) -> List[Allocation]:
    """
    Hand out what clamping left over.

    First proportionally to headroom over batteries that are already running,
    then greedily by SoC rank. An idle battery is only started when the
    remainder is at least min_load.
    """
    tuning = tuning or DistributionTuning()
    plan = [Allocation(a.battery, a.target) for a in plan]
    rest = total_target - sum(a.target for a in plan)

    if abs(rest) <= tuning.tolerance_watts:
        return plan

    direction = 1.0 if rest > 0 else -1.0

    # Pass 1: proportional over active batteries
    active = [a for a in plan if a.target and a.headroom(direction) > 0]
    total_headroom = sum(a.headroom(direction) for a in active)
    if active and total_headroom > 0:
        share_base = rest
        for a in active:
            if abs(rest) < tuning.tolerance_watts:
                break
            rest -= a.apply(share_base * a.headroom(direction) / total_headroom)

    # Pass 2: greedy by SoC
    if abs(rest) > tuning.tolerance_watts:
        ranked = sorted(plan, key=lambda a: a.battery.soc_percent, reverse=rest < 0)
        for a in ranked:
            if a.headroom(direction) <= 0:
                continue
            if abs(rest) < tuning.tolerance_watts:
                break
            if a.target == 0 and abs(rest) < min_load:
                break
            rest -= a.apply(rest)

    return plan


def enforce_direction(plan: List[Allocation], total_target: float) -> List[Allocation]:
    """The aggregate direction always wins."""
    for a in plan:
        if (total_target > 0 and a.target < 0) or (total_target < 0 and a.target > 0):
            a.target = 0.0
    return plan


def aggregate_target(batteries: Sequence[BatteryState], cumulative_power_watts: float,
                     offset_watts: float = 0.0) -> float:
    """
    Fleet target for the next tick from a grid meter reading.

    Starts from what the batteries were last commanded, not from their
    measured power, so a battery lagging its setpoint does not wind up the
    loop. A positive meter reading (import) pushes the target towards
    discharging; offset_watts shifts the grid setpoint away from zero.
    """
    commanded = sum(b.last_target_watts for b in batteries)
    return commanded - (cumulative_power_watts - offset_watts)


def compute_distribution(batteries: Sequence[BatteryState], aggregate_target_watts: float,
                         min_load_watts: float = DEFAULT_MIN_LOAD_WATTS,
                         tuning: Optional[DistributionTuning] = None) -> List[DistributionTarget]:
    """
    Split an aggregate power target over the fleet.

    Args:
        batteries: Telemetry snapshot, including each battery's last target
        aggregate_target_watts: Total power the fleet must produce (+ charge)
        min_load_watts: Smallest worthwhile command for a single battery
        tuning: Hysteresis and tolerance constants

    Returns:
        One DistributionTarget per battery, in input order

    Raises:
        InvalidInput: Duplicate ids or a battery with unknown SoC
    """
    tuning = tuning or DistributionTuning()
    if not batteries:
        return []

    DataValidator(strict=True).validate_fleet(batteries)

    targets = {b.id: 0.0 for b in batteries}

    if aggregate_target_watts != 0:
        plan = calculate_allocation(batteries, aggregate_target_watts, min_load_watts, tuning)
        plan = distribute_remaining_power(plan, aggregate_target_watts, min_load_watts, tuning)
        plan = enforce_direction(plan, aggregate_target_watts)
        targets.update({a.battery.id: a.target for a in plan})

    return [DistributionTarget(id=b.id, target_watts=targets[b.id]) for b in batteries]


def with_last_targets(batteries: Sequence[BatteryState],
                      targets: Sequence[DistributionTarget]) -> List[BatteryState]:
    """Copies of the batteries carrying this tick's targets into the next tick."""
    by_id = {t.id: t.target_watts for t in targets}
    return [
        b.copy(update={'last_target_watts': by_id.get(b.id, b.last_target_watts)})
        for b in batteries
    ]
