"""
loader.py - Read and write mechanisms as JSON documents.

Document layout:
    {
      "name": "fourbar",
      "joints": [{"id": 0, "name": "A", "x": 0, "y": 0, "grounded": true, "is_input": true}, ...],
      "links":  [{"id": 0, "name": "crank", "joint_ids": [0, 1], "mass": 1.0}, ...],
      "forces": [{"id": 0, "parent_link_id": 1, "start": [1, 2], "magnitude": 5, "angle": -90,
                  "frame": "global"}, ...],
      "welds":  [3]
    }
"""
from __future__ import annotations

import json
import logging
from pathlib import Path

from statics_tools.topology import Force
from statics_tools.topology import Joint
from statics_tools.topology import Link
from statics_tools.topology import Mechanism

logger = logging.getLogger(__name__)


def mechanism_from_dict(data: dict) -> Mechanism:
    """Build a Mechanism from a document; entities are validated by their models."""
    mechanism = Mechanism(name=data.get('name', 'mechanism'))

    for jdata in data.get('joints', []):
        joint = Joint.model_validate(jdata)
        mechanism.add_joint(
            joint.x, joint.y,
            grounded=joint.grounded,
            is_input=joint.is_input,
            name=joint.name,
            id=joint.id,
        )

    for ldata in data.get('links', []):
        link = Link.model_validate({k: v for k, v in ldata.items() if k != 'force_ids'})
        mechanism.add_link(
            link.joint_ids,
            mass=link.mass,
            name=link.name,
            center_of_mass=link.center_of_mass,
            id=link.id,
        )

    for fdata in data.get('forces', []):
        force = Force.model_validate(fdata)
        mechanism.add_force(
            force.parent_link_id,
            force.start,
            force.magnitude,
            angle=force.angle,
            frame=force.frame,
            name=force.name,
            id=force.id,
        )

    for joint_id in data.get('welds', []):
        mechanism.add_weld(joint_id)

    logger.debug(
        f"Loaded '{mechanism.name}': {len(mechanism.joints)} joints, "
        f"{len(mechanism.links)} links, {len(mechanism.forces)} forces",
    )
    return mechanism


def mechanism_to_dict(mechanism: Mechanism) -> dict:
    return {
        'name': mechanism.name,
        'joints': [j.model_dump(exclude={'welded'}) for j in mechanism.joints.values()],
        'links': [
            l.model_dump(mode='json', exclude={'kind', 'force_ids'}, exclude_none=True)
            for l in mechanism.links.values()
        ],
        'forces': [f.model_dump(mode='json') for f in mechanism.forces.values()],
        'welds': [j.id for j in mechanism.joints.values() if j.welded],
    }


def load_mechanism(path: str | Path) -> Mechanism:
    with open(path) as f:
        return mechanism_from_dict(json.load(f))


def save_mechanism(mechanism: Mechanism, path: str | Path) -> Path:
    path = Path(path)
    path.write_text(json.dumps(mechanism_to_dict(mechanism), indent=2))
    return path
