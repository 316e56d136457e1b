# tests/test_distribution.py
"""Tests for the fleet distribution controller"""

import numpy as np
import pytest
import sys
from pathlib import Path

# Add parent to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from homebat import (
    BatteryState, DistributionTarget, InvalidInput, aggregate_target, compute_distribution,
    with_last_targets,
)
from homebat.distribution import (
    Allocation, calculate_allocation, distribute_remaining_power, enforce_direction,
    rank_batteries,
)


def make_battery(id, soc, max_charge=2000, max_discharge=2000,
                 efficient_charge=None, efficient_discharge=None, last=0.0):
    """Create a battery snapshot with sensible defaults"""
    return BatteryState(
        id=id,
        max_charge_watts=max_charge,
        max_discharge_watts=max_discharge,
        efficient_charge_watts=efficient_charge,
        efficient_discharge_watts=efficient_discharge,
        soc_percent=soc,
        last_target_watts=last,
    )


def by_id(targets):
    return {t.id: t.target_watts for t in targets}


def test_empty_fleet():
    assert compute_distribution([], -1000) == []


def test_zero_target_is_all_idle():
    fleet = [make_battery("a", 50, last=-500), make_battery("b", 80)]
    targets = compute_distribution(fleet, 0)
    assert [t.id for t in targets] == ["a", "b"]
    assert all(t.target_watts == 0 for t in targets)


def test_even_split_over_equal_batteries():
    """Three equal batteries, efficient tier forces all three into use"""
    fleet = [make_battery(name, 80, efficient_discharge=400) for name in "abc"]
    result = by_id(compute_distribution(fleet, -1000))

    assert abs(sum(result.values()) + 1000) <= 10
    for value in result.values():
        assert abs(value + 1000 / 3) < 1


def test_single_battery_when_efficient():
    fleet = [make_battery("a", 90), make_battery("b", 40), make_battery("c", 60)]
    result = by_id(compute_distribution(fleet, -500))

    assert result["a"] == -500
    assert result["b"] == 0
    assert result["c"] == 0


def test_charge_prefers_low_soc():
    fleet = [make_battery("a", 90), make_battery("b", 20), make_battery("c", 60)]
    result = by_id(compute_distribution(fleet, 800))

    assert result["b"] == 800
    assert result["a"] == 0
    assert result["c"] == 0


def test_clamping_redistributes_to_others():
    """A tiny battery saturates; the rest is carried by the big ones"""
    fleet = [
        make_battery("tiny", 90, max_charge=100, max_discharge=100),
        make_battery("big1", 90),
        make_battery("big2", 90),
    ]
    result = by_id(compute_distribution(fleet, -1000))

    assert result["tiny"] == -100
    assert abs(sum(result.values()) + 1000) <= 10
    assert abs(result["big1"] + 450) < 1
    assert abs(result["big2"] + 450) < 1


def test_demand_above_fleet_capacity():
    fleet = [make_battery("a", 60, max_discharge=500), make_battery("b", 70, max_discharge=700)]
    result = by_id(compute_distribution(fleet, -5000))

    assert result["a"] == -500
    assert result["b"] == -700


def test_small_aggregate_below_min_load_goes_to_one_battery():
    fleet = [make_battery(name, 50) for name in "abc"]
    targets = compute_distribution(fleet, -120, min_load_watts=50)
    values = [t.target_watts for t in targets]

    assert abs(sum(values) + 120) <= 10
    assert sum(1 for v in values if v != 0) == 1
    assert min(values) == -120


def test_aggregate_below_min_load_stays_idle():
    fleet = [make_battery(name, 50) for name in "abc"]
    targets = compute_distribution(fleet, -40, min_load_watts=50)
    assert all(t.target_watts == 0 for t in targets)


def test_unknown_soc_rejected():
    fleet = [make_battery("a", float("nan")), make_battery("b", 50)]
    with pytest.raises(InvalidInput):
        compute_distribution(fleet, -500)


def test_duplicate_ids_rejected():
    fleet = [make_battery("a", 80), make_battery("a", 40)]
    with pytest.raises(InvalidInput):
        compute_distribution(fleet, -500)


def test_outputs_follow_input_order():
    fleet = [make_battery("x", 10), make_battery("y", 90), make_battery("z", 50)]
    targets = compute_distribution(fleet, -300)
    assert [t.id for t in targets] == ["x", "y", "z"]
    assert all(isinstance(t, DistributionTarget) for t in targets)


def test_hysteresis_keeps_active_leader():
    """A running battery stays in front of a slightly fuller idle one"""
    running = make_battery("running", 60, last=-300)
    idle = make_battery("idle", 70)

    ranked = rank_batteries([idle, running], -1)
    assert ranked[0].id == "running"

    result = by_id(compute_distribution([idle, running], -300))
    assert result["running"] == -300
    assert result["idle"] == 0


def test_hysteresis_bonus_is_bounded():
    running = make_battery("running", 40, last=-300)
    idle = make_battery("idle", 70)
    ranked = rank_batteries([running, idle], -1)
    assert ranked[0].id == "idle"


def test_hysteresis_only_for_same_direction():
    charging = make_battery("charging", 60, last=500)
    other = make_battery("other", 70)
    ranked = rank_batteries([charging, other], -1)
    assert ranked[0].id == "other"


def test_rank_is_stable_on_ties():
    fleet = [make_battery(name, 50) for name in "dcba"]
    assert [b.id for b in rank_batteries(fleet, -1)] == list("dcba")
    assert [b.id for b in rank_batteries(fleet, 1)] == list("dcba")


def test_efficiency_exemption_for_running_battery():
    """A battery already discharging may stay above its efficient tier"""
    fleet = [
        make_battery("a", 90, efficient_discharge=500, last=-1200),
        make_battery("b", 50, efficient_discharge=500),
    ]
    plan = calculate_allocation(fleet, -1200)
    result = {a.battery.id: a.target for a in plan}
    assert result["a"] == -1200
    assert result["b"] == 0


def test_efficiency_adds_batteries_when_idle():
    fleet = [
        make_battery("a", 80, efficient_discharge=500),
        make_battery("b", 80, efficient_discharge=500),
    ]
    plan = calculate_allocation(fleet, -1000)
    result = {a.battery.id: a.target for a in plan}
    assert abs(result["a"] + 500) < 1e-6
    assert abs(result["b"] + 500) < 1e-6


def test_smallest_subset_when_none_is_efficient():
    fleet = [
        make_battery("a", 90, efficient_discharge=500),
        make_battery("b", 50, efficient_discharge=500),
    ]
    plan = calculate_allocation(fleet, -1000)
    result = {a.battery.id: a.target for a in plan}
    assert result["a"] == -1000
    assert result["b"] == 0


def test_greedy_pass_starts_idle_battery():
    a = make_battery("a", 80, max_discharge=1000)
    b = make_battery("b", 60)
    plan = [Allocation(a, -1000.0), Allocation(b, 0.0)]

    result = distribute_remaining_power(plan, -1300, min_load=50)
    assert result[0].target == -1000
    assert result[1].target == -300
    # Input plan untouched
    assert plan[1].target == 0


def test_greedy_pass_skips_small_remainder_for_idle():
    a = make_battery("a", 80, max_discharge=1000)
    b = make_battery("b", 60)
    plan = [Allocation(a, -1000.0), Allocation(b, 0.0)]

    result = distribute_remaining_power(plan, -1030, min_load=50)
    assert result[1].target == 0


def test_remaining_power_proportional_over_active():
    a = make_battery("a", 80, max_discharge=1000)
    b = make_battery("b", 80, max_discharge=1000)
    plan = [Allocation(a, -400.0), Allocation(b, -800.0)]

    result = distribute_remaining_power(plan, -1500)
    # headroom 600 and 200, remainder 300 split 3:1
    assert abs(result[0].target + 625) < 1e-6
    assert abs(result[1].target + 875) < 1e-6


def test_direction_guard():
    a = make_battery("a", 50)
    b = make_battery("b", 50)
    plan = enforce_direction([Allocation(a, 200.0), Allocation(b, -700.0)], -500)
    assert plan[0].target == 0
    assert plan[1].target == -700


def test_idempotent_and_inputs_unchanged():
    fleet = [make_battery("a", 75, last=-200), make_battery("b", 35), make_battery("c", 55)]
    snapshot = [b.copy() for b in fleet]

    first = compute_distribution(fleet, -1700)
    second = compute_distribution(fleet, -1700)

    assert by_id(first) == by_id(second)
    assert fleet == snapshot


def test_with_last_targets_threads_state():
    fleet = [make_battery("a", 75), make_battery("b", 35)]
    targets = compute_distribution(fleet, -600)
    next_fleet = with_last_targets(fleet, targets)

    assert [b.last_target_watts for b in next_fleet] == [t.target_watts for t in targets]
    assert all(b.last_target_watts == 0 for b in fleet)


def test_random_fleets_stay_within_limits_and_sign():
    rng = np.random.default_rng(7)
    for _ in range(200):
        n = int(rng.integers(1, 7))
        fleet = [
            make_battery(
                f"b{i}",
                float(rng.uniform(0, 100)),
                max_charge=float(rng.uniform(100, 2500)),
                max_discharge=float(rng.uniform(100, 2500)),
                efficient_charge=float(rng.uniform(50, 1200)),
                efficient_discharge=float(rng.uniform(50, 1200)),
                last=float(rng.choice([-800.0, 0.0, 800.0])),
            )
            for i in range(n)
        ]
        target = float(rng.uniform(-6000, 6000))
        targets = compute_distribution(fleet, target)

        total = 0.0
        for b, t in zip(fleet, targets):
            assert -b.max_discharge_watts - 1e-6 <= t.target_watts <= b.max_charge_watts + 1e-6
            if target > 0:
                assert t.target_watts >= 0
            else:
                assert t.target_watts <= 0
            total += t.target_watts

        capacity = sum(b.max_charge_watts if target > 0 else b.max_discharge_watts for b in fleet)
        assert abs(total) <= abs(target) + 10
        # Idle batteries are not started for a remainder below min load
        if capacity >= abs(target) + 10:
            assert abs(total - target) < 50


def test_aggregate_target_from_grid_reading():
    fleet = [make_battery("a", 80, last=-300), make_battery("b", 60, last=-200)]

    # Importing 150 W: discharge 150 W more than last tick
    assert aggregate_target(fleet, 150) == -650
    # Exporting 400 W: back off
    assert aggregate_target(fleet, -400) == -100
    # Grid setpoint of +100 W import
    assert aggregate_target(fleet, 150, offset_watts=100) == -550


def test_aggregate_target_uses_commanded_not_measured_power():
    """A battery lagging its setpoint must not wind up the loop"""
    commanded = [make_battery("a", 80, last=-1000)]
    lagging = [commanded[0].copy(update={'measured_power_watts': -400})]

    assert aggregate_target(commanded, 200) == aggregate_target(lagging, 200) == -1200


def test_control_loop_settles():
    """Feed targets back through the meter reading until the grid is balanced"""
    fleet = [make_battery("a", 80), make_battery("b", 60)]
    house_load = 900.0

    for _ in range(3):
        delivered = sum(b.last_target_watts for b in fleet)
        grid = house_load + delivered
        targets = compute_distribution(fleet, aggregate_target(fleet, grid))
        fleet = with_last_targets(fleet, targets)

    assert abs(sum(b.last_target_watts for b in fleet) + house_load) <= 10
