"""
topology.py - Mechanism arena: joints, links, compound links and forces.

Entities are stored by integer id. Links reference joints by id and forces
reference their parent link by id, so there are no ownership cycles and any
entity can be looked up in O(1).

A rigid body is either a plain Link or a CompoundLink (links welded together).
The two share one capability interface exposed by Mechanism:
    joints_of(body), mass_of(body), center_of_mass(body), forces_of(body)
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from dataclasses import field
from enum import Enum
from typing import Any
from typing import Iterable
from typing import Literal
from typing import Optional
from typing import Union

import networkx as nx
from pydantic import BaseModel
from pydantic import Field
from pydantic import field_validator
from typing_extensions import Annotated

from statics_tools.errors import TopologyError
from statics_tools.geometry import Coord
from statics_tools.geometry import direction_components
from statics_tools.geometry import link_angle
from statics_tools.geometry import mean_point

logger = logging.getLogger(__name__)


_MODEL_CONFIG = {
    "validate_assignment": True,
    "extra": "forbid",
}


# =============================================================================
# Entities
# =============================================================================

class Joint(BaseModel):
    """A revolute joint in the plane."""
    id: int = Field(ge=0, description="Arena id")
    name: str = Field(default="", description="Display name")
    x: float
    y: float
    grounded: bool = Field(default=False, description="Pinned to the frame")
    is_input: bool = Field(default=False, description="Driven joint carrying the motor torque")
    welded: bool = Field(default=False, description="Links meeting here are welded together")

    model_config = _MODEL_CONFIG

    @property
    def coords(self) -> Coord:
        return Coord(self.x, self.y)

    def model_post_init(self, __context: Any) -> None:
        if not self.name:
            self.name = f"J{self.id}"


class Link(BaseModel):
    """A rigid bar connecting two or more joints."""
    kind: Literal["link"] = "link"
    id: int = Field(ge=0)
    name: str = ""
    joint_ids: list[int] = Field(min_length=2, description="Ordered member joints")
    mass: Annotated[float, Field(ge=0, description="Mass in kg")] = 0.0
    center_of_mass: Optional[Coord] = Field(
        default=None,
        description="Explicit COM at the reference pose; defaults to the joint centroid",
    )
    force_ids: list[int] = Field(default_factory=list)

    model_config = _MODEL_CONFIG

    @field_validator("joint_ids")
    @classmethod
    def _unique_joints(cls, v: list[int]) -> list[int]:
        if len(set(v)) != len(v):
            raise ValueError(f"joint_ids must be unique, got {v}")
        return v

    def model_post_init(self, __context: Any) -> None:
        if not self.name:
            self.name = f"L{self.id}"


class CompoundLink(BaseModel):
    """Two or more links welded into a single rigid body."""
    kind: Literal["compound"] = "compound"
    id: int = Field(ge=0)
    name: str = ""
    link_ids: list[int] = Field(min_length=2)
    mass: Optional[float] = Field(default=None, ge=0, description="Overrides the sum of member masses")
    center_of_mass: Optional[Coord] = None

    model_config = _MODEL_CONFIG

    def model_post_init(self, __context: Any) -> None:
        if not self.name:
            self.name = f"C{self.id}"


RigidBody = Annotated[Union[Link, CompoundLink], Field(discriminator="kind")]


class ForceFrame(str, Enum):
    LOCAL = "local"    # rotates with the parent link
    GLOBAL = "global"  # fixed in the world frame


class Force(BaseModel):
    """A point force applied to a link."""
    id: int = Field(ge=0)
    name: str = ""
    parent_link_id: int
    start: Coord
    magnitude: float = Field(ge=0)
    angle: float = Field(default=0.0, description="Degrees, counterclockwise from +x")
    frame: ForceFrame = ForceFrame.GLOBAL

    model_config = _MODEL_CONFIG

    def model_post_init(self, __context: Any) -> None:
        if not self.name:
            self.name = f"F{self.id}"

    @property
    def components(self) -> Coord:
        return direction_components(self.magnitude, self.angle)

    @classmethod
    def from_endpoints(cls, id: int, parent_link_id: int, start, end, **kwargs) -> Force:
        start = Coord.of(start)
        end = Coord.of(end)
        return cls(
            id=id,
            parent_link_id=parent_link_id,
            start=start,
            magnitude=start.distance_to(end),
            angle=start.angle_to(end),
            **kwargs,
        )


# =============================================================================
# Sub-mechanisms
# =============================================================================

@dataclass
class SubMechanism:
    """A connected component of the joint / rigid-body graph."""
    joint_bodies: dict[int, list[RigidBody]]
    index: int = 0
    bodies: list[RigidBody] = field(init=False)

    def __post_init__(self):
        seen: dict[tuple[str, int], RigidBody] = {}
        for bodies in self.joint_bodies.values():
            for body in bodies:
                seen.setdefault((body.kind, body.id), body)
        self.bodies = list(seen.values())

    @property
    def key(self) -> tuple[int, ...]:
        """Identity of the sub-mechanism: its sorted joint ids."""
        return tuple(sorted(self.joint_bodies))

    @property
    def joint_ids(self) -> list[int]:
        return list(self.joint_bodies)

    def bodies_at(self, joint_id: int) -> list[RigidBody]:
        return self.joint_bodies.get(joint_id, [])


# =============================================================================
# Arena
# =============================================================================

class Mechanism:
    """
    Arena of joints, links, compound links and forces keyed by integer id.

    The mechanism is the single source of truth for the reference pose. The
    statics pipeline reads from it and never writes per-timestep state back.
    """

    def __init__(self, name: str = 'mechanism'):
        self.name = name
        self.joints: dict[int, Joint] = {}
        self.links: dict[int, Link] = {}
        self.compound_links: dict[int, CompoundLink] = {}
        self.forces: dict[int, Force] = {}
        self._next_id = {'joint': 0, 'link': 0, 'compound': 0, 'force': 0}

    def _take_id(self, kind: str, requested: int | None = None) -> int:
        if requested is None:
            requested = self._next_id[kind]
        self._next_id[kind] = max(self._next_id[kind], requested + 1)
        return requested

    # -------------------------------------------------------------------------
    # Construction
    # -------------------------------------------------------------------------

    def add_joint(
        self,
        x: float,
        y: float,
        grounded: bool = False,
        is_input: bool = False,
        name: str = '',
        id: int | None = None,
    ) -> Joint:
        jid = self._take_id('joint', id)
        if jid in self.joints:
            raise TopologyError(f'Joint id {jid} already exists')
        joint = Joint(id=jid, name=name, x=x, y=y, grounded=grounded, is_input=is_input)
        self.joints[jid] = joint
        return joint

    def add_link(
        self,
        joint_ids: Iterable[int],
        mass: float = 0.0,
        name: str = '',
        center_of_mass: tuple[float, float] | None = None,
        id: int | None = None,
    ) -> Link:
        joint_ids = list(joint_ids)
        missing = [j for j in joint_ids if j not in self.joints]
        if missing:
            raise TopologyError(f'Link references unknown joints {missing}')
        if len(joint_ids) < 2:
            raise TopologyError('A link needs at least 2 joints')
        lid = self._take_id('link', id)
        if lid in self.links:
            raise TopologyError(f'Link id {lid} already exists')
        link = Link(
            id=lid,
            name=name,
            joint_ids=joint_ids,
            mass=mass,
            center_of_mass=Coord.of(center_of_mass) if center_of_mass is not None else None,
        )
        self.links[lid] = link
        return link

    def add_force(
        self,
        link_id: int,
        start: tuple[float, float],
        magnitude: float,
        angle: float = 0.0,
        frame: ForceFrame = ForceFrame.GLOBAL,
        name: str = '',
        id: int | None = None,
    ) -> Force:
        if link_id not in self.links:
            raise TopologyError(f'Force references unknown link {link_id}')
        fid = self._take_id('force', id)
        force = Force(
            id=fid,
            name=name,
            parent_link_id=link_id,
            start=Coord.of(start),
            magnitude=magnitude,
            angle=angle,
            frame=frame,
        )
        self.forces[fid] = force
        self.links[link_id].force_ids.append(fid)
        return force

    def add_compound_link(self, link_ids: Iterable[int], name: str = '', id: int | None = None) -> CompoundLink:
        link_ids = list(dict.fromkeys(link_ids))
        if len(link_ids) < 2:
            raise TopologyError('A compound link needs at least 2 links')
        missing = [lid for lid in link_ids if lid not in self.links]
        if missing:
            raise TopologyError(f'Compound link references unknown links {missing}')
        cid = self._take_id('compound', id)
        compound = CompoundLink(id=cid, name=name, link_ids=link_ids)
        self.compound_links[cid] = compound
        return compound

    def remove_compound_link(self, compound_id: int) -> None:
        self.compound_links.pop(compound_id, None)

    def remove_joint_from_link(self, link_id: int, joint_id: int) -> None:
        link = self.links[link_id]
        if len(link.joint_ids) <= 2:
            raise TopologyError(f'Link {link.name} cannot have fewer than 2 joints')
        link.joint_ids = [j for j in link.joint_ids if j != joint_id]

    # -------------------------------------------------------------------------
    # Welding
    # -------------------------------------------------------------------------

    def add_weld(self, joint_id: int) -> CompoundLink:
        from statics_tools.welding import merge_on_weld
        return merge_on_weld(self, joint_id)

    def remove_weld(self, joint_id: int) -> list[CompoundLink]:
        from statics_tools.welding import split_on_unweld
        return split_on_unweld(self, joint_id)

    # -------------------------------------------------------------------------
    # Rigid-body capability interface
    # -------------------------------------------------------------------------

    def joints_of(self, body: RigidBody) -> list[Joint]:
        """Ordered unique member joints of a rigid body."""
        if body.kind == 'link':
            return [self.joints[j] for j in body.joint_ids]
        ids: dict[int, None] = {}
        for lid in body.link_ids:
            for jid in self.links[lid].joint_ids:
                ids.setdefault(jid, None)
        return [self.joints[j] for j in ids]

    def joint_ids_of(self, body: RigidBody) -> list[int]:
        return [j.id for j in self.joints_of(body)]

    def mass_of(self, body: RigidBody) -> float:
        if body.kind == 'link' or body.mass is not None:
            return body.mass
        return sum(self.links[lid].mass for lid in body.link_ids)

    def center_of_mass(self, body: RigidBody) -> Coord:
        """Nominal center of mass at the reference pose."""
        if body.center_of_mass is not None:
            return body.center_of_mass
        if body.kind == 'link':
            return mean_point(self.joints[j].coords for j in body.joint_ids)
        # Centroid over every member link's joints, shared joints counted per link
        return mean_point(
            self.joints[j].coords
            for lid in body.link_ids
            for j in self.links[lid].joint_ids
        )

    def forces_of(self, body: RigidBody) -> list[Force]:
        if body.kind == 'link':
            return [self.forces[f] for f in body.force_ids]
        return [self.forces[f] for lid in body.link_ids for f in self.links[lid].force_ids]

    def link_angle(self, link: Link) -> float:
        """Angle in degrees from the link's first joint to its second."""
        j0, j1 = (self.joints[j] for j in link.joint_ids[:2])
        return link_angle(j0.coords, j1.coords)

    def reference_joint_ids(self, body: RigidBody) -> tuple[int, int]:
        ids = self.joint_ids_of(body)
        return ids[0], ids[1]

    # -------------------------------------------------------------------------
    # Connectivity
    # -------------------------------------------------------------------------

    def connected_links(self, joint_id: int) -> list[Link]:
        return [link for link in self.links.values() if joint_id in link.joint_ids]

    def compound_of(self, link_id: int) -> CompoundLink | None:
        for compound in self.compound_links.values():
            if link_id in compound.link_ids:
                return compound
        return None

    def connected_compound_links(self, joint_id: int) -> list[CompoundLink]:
        found: dict[int, CompoundLink] = {}
        for link in self.connected_links(joint_id):
            compound = self.compound_of(link.id)
            if compound is not None:
                found.setdefault(compound.id, compound)
        return list(found.values())

    def bodies_at_joint(self, joint_id: int) -> list[RigidBody]:
        """Effective rigid bodies at a joint: a compound replaces its members."""
        bodies: dict[tuple[str, int], RigidBody] = {}
        for link in self.connected_links(joint_id):
            compound = self.compound_of(link.id)
            body = compound if compound is not None else link
            bodies.setdefault((body.kind, body.id), body)
        return list(bodies.values())

    def rigid_bodies(self) -> list[RigidBody]:
        welded = {lid for c in self.compound_links.values() for lid in c.link_ids}
        bodies: list[RigidBody] = list(self.compound_links.values())
        bodies.extend(link for link in self.links.values() if link.id not in welded)
        return bodies

    def body_graph(self) -> nx.Graph:
        """Bipartite graph of joints and the rigid bodies touching them."""
        G = nx.Graph()
        for jid in self.joints:
            G.add_node(('joint', jid))
        for body in self.rigid_bodies():
            node = (body.kind, body.id)
            G.add_node(node)
            for jid in self.joint_ids_of(body):
                G.add_edge(node, ('joint', jid))
        return G

    def sub_mechanisms(self) -> list[SubMechanism]:
        """
        Split the mechanism into connected components.

        Joints are visited in insertion order so the result is deterministic.
        Isolated joints (no rigid body) are not reported.
        """
        G = self.body_graph()
        visited: set[int] = set()
        result: list[SubMechanism] = []

        for jid in self.joints:
            if jid in visited:
                continue
            component = nx.node_connected_component(G, ('joint', jid))
            joint_ids = [j for j in self.joints if ('joint', j) in component]
            visited.update(joint_ids)
            if len(component) == 1:
                continue
            joint_bodies = {j: self.bodies_at_joint(j) for j in joint_ids}
            result.append(SubMechanism(joint_bodies=joint_bodies, index=len(result)))

        logger.debug(f"Found {len(result)} sub-mechanism(s) in '{self.name}'")
        return result

    def input_joint(self, joint_ids: Iterable[int] | None = None) -> Joint | None:
        ids = self.joints if joint_ids is None else joint_ids
        for jid in ids:
            if self.joints[jid].is_input:
                return self.joints[jid]
        return None
