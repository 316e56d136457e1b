# homebat/optimization/lp_model.py
"""
Explicit linear program: indexed variables and sparse constraints.
Kept independent of any solver library so backends can be swapped.
"""

from dataclasses import dataclass
from typing import Dict, List
import math

import numpy as np

SENSES = ("<=", ">=", "==")


@dataclass
class Variable:
    name: str
    lb: float = 0.0
    ub: float = math.inf
    cost: float = 0.0              # objective coefficient (minimized)


@dataclass
class Constraint:
    name: str
    coeffs: Dict[int, float]       # variable index -> coefficient
    sense: str                     # one of SENSES
    rhs: float = 0.0


@dataclass
class LPSolution:
    """Container for a solved LP"""
    values: np.ndarray
    objective_value: float
    status: str
    solve_time: float = 0.0


class LinearProgram:
    """Minimization problem built incrementally."""

    def __init__(self, name: str = "lp"):
        self.name = name
        self.variables: List[Variable] = []
        self.constraints: List[Constraint] = []
        self._index: Dict[str, int] = {}

    @property
    def num_variables(self) -> int:
        return len(self.variables)

    @property
    def num_constraints(self) -> int:
        return len(self.constraints)

    def add_variable(self, name: str, lb: float = 0.0, ub: float = math.inf,
                     cost: float = 0.0) -> int:
        """Add a continuous variable and return its index."""
        if name in self._index:
            raise ValueError(f"Duplicate variable name {name}")
        if lb > ub:
            raise ValueError(f"Variable {name} has lb {lb} > ub {ub}")
        self.variables.append(Variable(name, lb, ub, cost))
        self._index[name] = len(self.variables) - 1
        return self._index[name]

    def add_constraint(self, name: str, coeffs: Dict[int, float], sense: str,
                       rhs: float = 0.0) -> int:
        """Add a sparse linear constraint and return its index."""
        if sense not in SENSES:
            raise ValueError(f"Unknown constraint sense {sense}")
        for idx in coeffs:
            if not 0 <= idx < len(self.variables):
                raise IndexError(f"Constraint {name} references unknown variable {idx}")
        self.constraints.append(Constraint(name, dict(coeffs), sense, rhs))
        return len(self.constraints) - 1

    def index_of(self, name: str) -> int:
        return self._index[name]

    def variable(self, name: str) -> Variable:
        return self.variables[self._index[name]]

    def objective_value(self, x: np.ndarray) -> float:
        costs = np.array([v.cost for v in self.variables])
        return float(np.dot(costs, x))

    def violations(self, x: np.ndarray, tol: float = 1e-6) -> List[str]:
        """Names of bounds and constraints violated by x (empty when feasible)."""
        violated = []
        for v, val in zip(self.variables, x):
            if val < v.lb - tol or val > v.ub + tol:
                violated.append(v.name)
        for c in self.constraints:
            lhs = sum(coef * x[idx] for idx, coef in c.coeffs.items())
            if c.sense == "<=" and lhs > c.rhs + tol:
                violated.append(c.name)
            elif c.sense == ">=" and lhs < c.rhs - tol:
                violated.append(c.name)
            elif c.sense == "==" and abs(lhs - c.rhs) > tol:
                violated.append(c.name)
        return violated

