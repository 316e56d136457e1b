"""
Solver-independent LP model and the Gurobi backend.
"""

from .lp_model import LinearProgram, Variable, Constraint, LPSolution
from .lp_solver import GurobiSolver

__all__ = ["LinearProgram", "Variable", "Constraint", "LPSolution", "GurobiSolver"]
