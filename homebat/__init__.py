"""
homebat
Price-driven home battery scheduling and fleet power distribution.
"""

__version__ = "0.1.0"

# Main API exports
from .schedule import compute_schedule, Schedule, schedule_summary
from .distribution import compute_distribution, aggregate_target, with_last_targets
from .schema import PricePeriod, PowerTier, BatteryParams, ScheduleOptions, CleanupThresholds
from .schema import ScheduleEntry, BatteryState, DistributionTarget, DistributionTuning
from .io import DataLoader, DataWriter, HomebatConfig, generate_template

# Convenience imports
from .optimization import LinearProgram, GurobiSolver
from .utils.validators import InvalidInput, SolverError, SolverInfeasible, generate_validation_report

__all__ = [
    "compute_schedule",
    "Schedule",
    "schedule_summary",
    "compute_distribution",
    "aggregate_target",
    "with_last_targets",
    "PricePeriod",
    "PowerTier",
    "BatteryParams",
    "ScheduleOptions",
    "CleanupThresholds",
    "ScheduleEntry",
    "BatteryState",
    "DistributionTarget",
    "DistributionTuning",
    "DataLoader",
    "DataWriter",
    "HomebatConfig",
    "generate_template",
    "LinearProgram",
    "GurobiSolver",
    "InvalidInput",
    "SolverError",
    "SolverInfeasible",
    "generate_validation_report",
]
