# homebat/optimization/lp_solver.py
"""
Gurobi backend for LinearProgram models.
"""

from typing import Optional
import logging
import math

import numpy as np
import gurobipy as gp
from gurobipy import GRB

from .lp_model import LinearProgram, LPSolution
from ..utils.validators import SolverError, SolverInfeasible

logger = logging.getLogger(__name__)

_SENSES = {
    "<=": GRB.LESS_EQUAL,
    ">=": GRB.GREATER_EQUAL,
    "==": GRB.EQUAL,
}

_STATUS_NAMES = {
    GRB.OPTIMAL: "optimal",
    GRB.INFEASIBLE: "infeasible",
    GRB.INF_OR_UNBD: "infeasible_or_unbounded",
    GRB.UNBOUNDED: "unbounded",
    GRB.TIME_LIMIT: "time_limit",
    GRB.NUMERIC: "numeric",
    GRB.SUBOPTIMAL: "suboptimal",
}


def _bound(value: float) -> float:
    if math.isinf(value):
        return GRB.INFINITY if value > 0 else -GRB.INFINITY
    return value


class GurobiSolver:
    """Solve a LinearProgram with gurobipy."""

    def __init__(self, time_limit: Optional[float] = None, verbose: bool = False):
        """
        Args:
            time_limit: Maximum solve time in seconds
            verbose: Whether to show solver output
        """
        self.time_limit = time_limit
        self.verbose = verbose

    def solve(self, lp: LinearProgram) -> LPSolution:
        model = gp.Model(lp.name)
        try:
            model.setParam('OutputFlag', 1 if self.verbose else 0)
            if self.time_limit:
                model.setParam('TimeLimit', self.time_limit)

            x = [
                model.addVar(lb=_bound(v.lb), ub=_bound(v.ub), obj=v.cost, name=v.name)
                for v in lp.variables
            ]
            for c in lp.constraints:
                expr = gp.LinExpr(list(c.coeffs.values()), [x[idx] for idx in c.coeffs])
                model.addLConstr(expr, _SENSES[c.sense], c.rhs, name=c.name)

            model.ModelSense = GRB.MINIMIZE
            model.optimize()

            status = model.Status
            status_name = _STATUS_NAMES.get(status, str(status))
            logger.debug(f"{lp.name}: {lp.num_variables} vars, {lp.num_constraints} constraints, "
                         f"status {status_name} in {model.Runtime:.3f}s")

            if status in (GRB.INFEASIBLE, GRB.INF_OR_UNBD):
                raise SolverInfeasible(f"Model {lp.name} is {status_name}")
            if status != GRB.OPTIMAL and model.SolCount == 0:
                raise SolverError(f"Optimization failed with status {status_name}")

            values = np.array([var.X for var in x]) if x else np.zeros(0)
            return LPSolution(
                values=values,
                objective_value=model.ObjVal,
                status=status_name,
                solve_time=model.Runtime,
            )
        finally:
            model.dispose()
