"""
Utility functions for validation and error types.
"""

from .validators import (
    DataValidator,
    InvalidInput,
    SolverError,
    SolverInfeasible,
    generate_validation_report,
    validate_fleet,
    validate_schedule_inputs,
)

__all__ = [
    "DataValidator",
    "InvalidInput",
    "SolverError",
    "SolverInfeasible",
    "generate_validation_report",
    "validate_fleet",
    "validate_schedule_inputs",
]
