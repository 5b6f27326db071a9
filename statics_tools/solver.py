"""
solver.py - Assemble and solve the equilibrium system of a sub-mechanism.
"""
from __future__ import annotations

import logging
import warnings
from typing import Sequence

import numpy as np
from scipy.linalg import LinAlgError
from scipy.linalg import LinAlgWarning
from scipy.linalg import lu_factor
from scipy.linalg import lu_solve

from statics_tools.equations import EquilibriumEquation
from statics_tools.equations import MOTOR_TORQUE
from statics_tools.equations import parse_reaction_variable
from statics_tools.schemas import ReactionForce
from statics_tools.schemas import StaticSolution

logger = logging.getLogger(__name__)


def collect_variables(equations: Sequence[EquilibriumEquation]) -> list[str]:
    """Distinct unknown names in first-seen order."""
    seen: dict[str, None] = {}
    for eq in equations:
        for name in eq.coefficients:
            seen.setdefault(name, None)
    return list(seen)


def assemble_system(
    equations: Sequence[EquilibriumEquation],
    variables: Sequence[str],
) -> tuple[np.ndarray, np.ndarray]:
    """Coefficient matrix A and constant vector b for A @ x = b."""
    index = {name: i for i, name in enumerate(variables)}
    A = np.zeros((len(equations), len(variables)))
    b = np.zeros(len(equations))
    for row, eq in enumerate(equations):
        for name, coeff in eq.coefficients.items():
            A[row, index[name]] = coeff
        b[row] = eq.constant
    return A, b


def solve_equilibrium(equations: Sequence[EquilibriumEquation]) -> StaticSolution:
    """
    Solve the linear equilibrium system of one timestep.

    The system must be square. Over- and under-determined systems are
    reported without attempting a solve.

    Args:
        equations: Equations of every rigid body in the sub-mechanism

    Returns:
        StaticSolution with reactions per joint and the motor torque
    """
    variables = collect_variables(equations)
    n_eq = len(equations)
    n_var = len(variables)

    if n_eq != n_var:
        kind = 'over' if n_eq > n_var else 'under'
        return StaticSolution.invalid(
            f'System is {kind}-determined ({n_eq} equations, {n_var} unknowns)',
        )
    if n_eq == 0:
        return StaticSolution.invalid('System is empty (0 equations, 0 unknowns)')

    A, b = assemble_system(equations, variables)

    try:
        with warnings.catch_warnings():
            warnings.simplefilter('error', LinAlgWarning)
            lu_piv = lu_factor(A)
        x = lu_solve(lu_piv, b)
    except (LinAlgError, LinAlgWarning, ValueError) as e:
        return StaticSolution.invalid(f'Matrix solution failed: {e}')

    if not np.all(np.isfinite(x)):
        return StaticSolution.invalid('Matrix solution failed: singular matrix')

    values = {name: float(v) for name, v in zip(variables, x)}

    reactions: dict[int, ReactionForce] = {}
    for name, value in values.items():
        parsed = parse_reaction_variable(name)
        if parsed is None:
            continue
        axis, joint_id = parsed
        reaction = reactions.setdefault(joint_id, ReactionForce(0.0, 0.0))
        if axis == 'x':
            reaction.fx = value
        else:
            reaction.fy = value

    return StaticSolution(
        is_valid=True,
        motor_torque=values.get(MOTOR_TORQUE, 0.0),
        reactions=reactions,
        values=values,
    )
