"""
Input validation for the schedule optimizer and the fleet distribution controller.
Raises InvalidInput in strict mode; degenerate power tiers are reported as
warnings only, since tiers are optional hardware configuration.
"""

import math
from collections import Counter
from pathlib import Path
from typing import List, Optional, Sequence, Tuple, Union
import logging

import numpy as np
import pandas as pd

from homebat.schema import BatteryParams, BatteryState, PricePeriod, ScheduleOptions

logger = logging.getLogger(__name__)


class InvalidInput(ValueError):
    """Input the core cannot compute with; never retried internally."""
    pass


class SolverError(RuntimeError):
    """The LP backend did not produce a usable solution."""
    pass


class SolverInfeasible(SolverError):
    """The LP backend reported the model infeasible."""
    pass


class DataValidator:
    """Validation of schedule and distribution inputs."""

    def __init__(self, strict: bool = True):
        """
        Initialize validator.

        Args:
            strict: If True, raise InvalidInput on errors. If False, only collect them.
        """
        self.strict = strict
        self.errors = []
        self.warnings = []

    def validate_schedule_inputs(self, prices: Sequence[PricePeriod],
                                 battery: BatteryParams,
                                 options: ScheduleOptions) -> Tuple[bool, List[str], List[str]]:
        """
        Validate a price series and battery parameters before building the LP.

        Returns:
            Tuple of (is_valid, errors, warnings)
        """
        self.errors = []
        self.warnings = []

        self._validate_prices(prices, options)
        self._validate_battery(battery)
        self._validate_options(options)

        return self._finish()

    def validate_fleet(self, batteries: Sequence[BatteryState]) -> Tuple[bool, List[str], List[str]]:
        """
        Validate a telemetry snapshot for the distribution controller.

        A battery without a usable SoC reading cannot be ranked or weighted.
        """
        self.errors = []
        self.warnings = []

        duplicates = [bid for bid, n in Counter(b.id for b in batteries).items() if n > 1]
        if duplicates:
            self.errors.append(f"Duplicate battery ids: {sorted(duplicates)}")

        for b in batteries:
            if not math.isfinite(b.soc_percent):
                self.errors.append(f"Battery {b.id}: SoC is not a finite number")
            elif not 0 <= b.soc_percent <= 100:
                self.warnings.append(f"Battery {b.id}: SoC {b.soc_percent} outside [0,100]")
            if b.efficient_charge_limit > b.max_charge_watts:
                self.warnings.append(f"Battery {b.id}: efficient charge power exceeds max charge power")
            if b.efficient_discharge_limit > b.max_discharge_watts:
                self.warnings.append(f"Battery {b.id}: efficient discharge power exceeds max discharge power")

        return self._finish()

    def _finish(self) -> Tuple[bool, List[str], List[str]]:
        is_valid = len(self.errors) == 0

        for warning in self.warnings:
            logger.debug(warning)

        if not is_valid and self.strict:
            raise InvalidInput(f"Validation failed with {len(self.errors)} errors:\n" +
                               "\n".join(self.errors))

        return is_valid, self.errors, self.warnings

    def _validate_prices(self, prices: Sequence[PricePeriod], options: ScheduleOptions):
        """Check the price series is present, finite and contiguous."""
        if len(prices) == 0:
            self.errors.append("Price series is empty")
            return

        values = np.array([p.price for p in prices], dtype=float)
        if np.any(~np.isfinite(values)):
            self.errors.append("Price series contains NaN or infinite values")

        limit = options.horizon_limit
        if len(prices) > limit:
            self.warnings.append(f"Price series of {len(prices)} periods truncated to {limit}")

        times = [p.start_time for p in prices]
        if all(t is not None for t in times) and len(times) > 1:
            steps = np.diff(np.array([t.timestamp() for t in times])) / 60.0
            if np.any(np.abs(steps - options.interval_minutes) > 1e-6):
                self.warnings.append(
                    f"Price periods are not contiguous {options.interval_minutes} minute intervals")

    def _validate_battery(self, battery: BatteryParams):
        """Check capacity and start SoC; report excluded tiers."""
        if not math.isfinite(battery.capacity_kwh) or battery.capacity_kwh <= 0:
            self.errors.append(f"Capacity must be positive, got {battery.capacity_kwh}")

        if not math.isfinite(battery.start_soc_percent):
            self.errors.append("Start SoC is not a finite number")
        elif not 0 <= battery.start_soc_percent <= 100:
            self.errors.append(f"Start SoC {battery.start_soc_percent} outside [0,100]")

        if battery.fixed_cost_per_kwh is not None and not math.isfinite(battery.fixed_cost_per_kwh):
            self.errors.append("Fixed cost per kWh is not a finite number")

        for kind, tiers in (("charge", battery.charge_tiers), ("discharge", battery.discharge_tiers)):
            for idx, tier in enumerate(tiers):
                if not tier.is_usable:
                    self.warnings.append(
                        f"{kind} tier {idx} ({tier.power_watts} W, eff {tier.efficiency}) excluded")

    def _validate_options(self, options: ScheduleOptions):
        elapsed = options.elapsed_minutes_in_first_period
        if not math.isfinite(elapsed) or elapsed < 0:
            self.errors.append(f"Elapsed minutes must be non-negative, got {elapsed}")
        if not math.isfinite(options.min_price_delta):
            self.errors.append("min_price_delta is not a finite number")


def validate_schedule_inputs(prices: Sequence[PricePeriod], battery: BatteryParams,
                             options: ScheduleOptions,
                             strict: bool = True) -> Tuple[bool, List[str], List[str]]:
    """Convenience wrapper around DataValidator.validate_schedule_inputs."""
    validator = DataValidator(strict=strict)
    return validator.validate_schedule_inputs(prices, battery, options)


def validate_fleet(batteries: Sequence[BatteryState],
                   strict: bool = True) -> Tuple[bool, List[str], List[str]]:
    """Convenience wrapper around DataValidator.validate_fleet."""
    validator = DataValidator(strict=strict)
    return validator.validate_fleet(batteries)


def generate_validation_report(output_path: Optional[Union[str, Path]] = None,
                               prices: Optional[Sequence[PricePeriod]] = None,
                               battery: Optional[BatteryParams] = None,
                               options: Optional[ScheduleOptions] = None,
                               batteries: Optional[Sequence[BatteryState]] = None) -> str:
    """
    Generate a plain-text validation report.

    Args:
        output_path: Optional path to save the report
        prices, battery, options: Schedule inputs to check (all three or none)
        batteries: Fleet snapshot to check

    Returns:
        Report text
    """
    lines = [
        "=" * 60,
        "HOMEBAT INPUT VALIDATION REPORT",
        f"Generated: {pd.Timestamp.now()}",
        "=" * 60,
    ]

    sections = []
    if battery is not None:
        validator = DataValidator(strict=False)
        sections.append(("Schedule inputs", validator.validate_schedule_inputs(
            prices or [], battery, options or ScheduleOptions())))
    if batteries is not None:
        validator = DataValidator(strict=False)
        sections.append(("Fleet", validator.validate_fleet(batteries)))

    for title, (is_valid, errors, warnings) in sections:
        lines.append("")
        lines.append(f"{title}: {'VALID' if is_valid else 'INVALID'}")
        lines.append("-" * 60)
        for error in errors:
            lines.append(f"  ERROR: {error}")
        for warning in warnings:
            lines.append(f"  WARNING: {warning}")
        if not errors and not warnings:
            lines.append("  No issues found")

    report = "\n".join(lines) + "\n"

    if output_path:
        Path(output_path).write_text(report, encoding="utf-8")
        logger.info(f"Validation report saved to {output_path}")

    return report
