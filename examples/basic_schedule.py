# examples/basic_schedule.py
"""Example of planning a day of charging and discharging against hourly prices"""

import numpy as np
from datetime import datetime, timedelta
import sys
from pathlib import Path

# Add parent to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from homebat import (
    BatteryParams, PricePeriod, ScheduleOptions, DataWriter, compute_schedule, schedule_summary,
)


def create_day_prices(hours=24, start=datetime(2024, 1, 1, 23)):
    """Dynamic tariff shape: cheap early afternoon, expensive evening"""
    hours_array = (np.arange(hours) + start.hour) % 24

    prices = 0.30 - 0.04 * np.cos((hours_array - 3) * np.pi / 12)
    prices += 0.20 * np.exp(-((hours_array - 18.5) ** 2) / 3)   # evening peak
    prices[(hours_array >= 11) & (hours_array <= 15)] -= 0.03    # solar dip

    return [PricePeriod(start_time=start + timedelta(hours=h), price=float(p))
            for h, p in enumerate(prices)]


def main():
    """Run a single planning cycle"""

    print("=== homebat Schedule Example ===\n")

    prices = create_day_prices()
    battery = BatteryParams(start_soc_percent=50)
    options = ScheduleOptions(interval_minutes=60, min_price_delta=0.1,
                              elapsed_minutes_in_first_period=10)

    print(f"Battery: {battery.capacity_kwh} kWh, "
          f"{battery.max_charge_watts:.0f} W charge / {battery.max_discharge_watts:.0f} W discharge")
    print(f"Planning {len(prices)} periods, first period {options.elapsed_minutes_in_first_period:.0f} min in\n")

    schedule = compute_schedule(prices, battery, options)

    print(f"Status: {schedule.status}")
    print(f"Solve time: {schedule.solve_time:.3f}s")

    print("\n=== Hourly Plan ===")
    print("Time  | Price  | Power W | Minutes | SoC %")
    print("------|--------|---------|---------|------")
    for e in schedule:
        print(f"{e.start_time:%H:%M} | {e.price:.4f} | {e.power_watts:7d} | "
              f"{e.active_minutes:7d} | {e.soc_percent:5d}")

    summary = schedule_summary(schedule)
    print("\n=== Summary ===")
    print(f"Stored:    {summary['stored_kwh']:.2f} kWh in {summary['charge_periods']} periods")
    print(f"Released:  {summary['released_kwh']:.2f} kWh in {summary['discharge_periods']} periods")
    print(f"Objective: {summary['objective_value']:.4f}")

    action = schedule.first_entry
    print(f"\nApply now: {action.power_watts} W for {action.active_minutes} min")

    DataWriter.save_schedule(schedule, 'example_schedule.csv')
    print("\n✅ Example completed successfully!")


if __name__ == "__main__":
    main()
