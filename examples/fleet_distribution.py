# examples/fleet_distribution.py
"""Example of a few control ticks splitting a grid setpoint over three batteries"""

import sys
from pathlib import Path

# Add parent to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from homebat import BatteryState, compute_distribution, with_last_targets


def create_fleet():
    """Three identical units at different SoC"""
    return [
        BatteryState(id=name, max_charge_watts=2200, max_discharge_watts=1550,
                     efficient_charge_watts=1050, efficient_discharge_watts=765,
                     soc_percent=soc)
        for name, soc in (("garage", 82), ("cellar", 64), ("attic", 35))
    ]


def main():
    print("=== homebat Fleet Distribution Example ===\n")

    fleet = create_fleet()
    setpoints = [-600, -1400, -2600, -5000, -300, 0, 1800]

    header = " | ".join(f"{b.id:>8s}" for b in fleet)
    print(f"Target W | {header} | Total")
    print("-" * (20 + 11 * len(fleet)))

    for target in setpoints:
        targets = compute_distribution(fleet, target, min_load_watts=50)
        row = " | ".join(f"{t.target_watts:8.0f}" for t in targets)
        total = sum(t.target_watts for t in targets)
        print(f"{target:8d} | {row} | {total:6.0f}")

        # Next tick remembers this tick's commands
        fleet = with_last_targets(fleet, targets)

    print("\n✅ Example completed successfully!")


if __name__ == "__main__":
    main()
