"""
export.py - Flatten statics results into one row per timestep.
"""
from __future__ import annotations

import csv
import logging
from pathlib import Path

from statics_tools.schemas import SubMechanismAnalysis
from statics_tools.topology import Mechanism

logger = logging.getLogger(__name__)


def _body_name(mechanism: Mechanism, key: tuple[str, int]) -> str:
    kind, body_id = key
    if kind == 'compound':
        return mechanism.compound_links[body_id].name
    return mechanism.links[body_id].name


def build_export_rows(mechanism: Mechanism, analysis: SubMechanismAnalysis) -> list[dict]:
    """
    One row per timestep of a sub-mechanism analysis.

    Columns: timestep, joint positions, centers of mass, force application
    points, motor torque, then reaction components per joint. Values that
    could not be computed for a timestep are left empty.
    """
    joint_ids = list(analysis.key)
    rows = []
    for result in analysis.timesteps:
        row: dict[str, object] = {'timestep': result.timestep}

        for jid in joint_ids:
            name = mechanism.joints[jid].name
            pos = result.positions.get(jid)
            row[f'joint_{name}_x'] = pos.x if pos is not None else ''
            row[f'joint_{name}_y'] = pos.y if pos is not None else ''

        for key, com in result.centers_of_mass.items():
            name = _body_name(mechanism, key)
            row[f'com_{name}_x'] = com.x
            row[f'com_{name}_y'] = com.y

        for fid, state in result.forces.items():
            name = mechanism.forces[fid].name
            row[f'force_{name}_x'] = state.start.x
            row[f'force_{name}_y'] = state.start.y

        solution = result.solution
        row['valid'] = solution.is_valid
        row['motor_torque'] = solution.motor_torque if solution.is_valid else ''

        for jid in joint_ids:
            name = mechanism.joints[jid].name
            reaction = solution.reactions.get(jid)
            if reaction is None:
                continue
            row[f'reaction_{name}_fx'] = reaction.fx
            row[f'reaction_{name}_fy'] = reaction.fy

        row['error'] = solution.error or ''
        rows.append(row)
    return rows


def reaction_history(analysis: SubMechanismAnalysis, joint_id: int) -> list[tuple[float, float, float] | None]:
    """(fx, fy, magnitude) at a joint per timestep; None where unsolved."""
    history = []
    for result in analysis.timesteps:
        reaction = result.solution.reactions.get(joint_id) if result.solution.is_valid else None
        if reaction is None:
            history.append(None)
        else:
            history.append((reaction.fx, reaction.fy, reaction.magnitude))
    return history


def write_csv(path: str | Path, rows: list[dict]) -> Path:
    """Write rows to CSV; the header is the union of all row keys in first-seen order."""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)

    fieldnames: dict[str, None] = {}
    for row in rows:
        for key in row:
            fieldnames.setdefault(key, None)

    with open(path, 'w', newline='') as f:
        writer = csv.DictWriter(f, fieldnames=list(fieldnames), restval='')
        writer.writeheader()
        writer.writerows(rows)

    logger.info(f"Wrote {len(rows)} rows to {path}")
    return path
