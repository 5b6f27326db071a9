"""
schemas.py - Result structures for statics analysis.

Dataclasses returned by the solver and orchestrator. Failure is carried in
`is_valid` / `success` plus an error message rather than raised.
"""
from __future__ import annotations

import math
from dataclasses import dataclass
from dataclasses import field
from typing import Any
from typing import Optional
from typing import Protocol

from statics_tools.geometry import Coord


@dataclass
class ReactionForce:
    fx: float
    fy: float

    @property
    def magnitude(self) -> float:
        return math.hypot(self.fx, self.fy)

    def to_dict(self) -> dict:
        return {'fx': self.fx, 'fy': self.fy}


@dataclass
class StaticSolution:
    """Reaction forces and motor torque at one timestep."""
    is_valid: bool
    motor_torque: float = 0.0
    reactions: dict[int, ReactionForce] = field(default_factory=dict)
    values: dict[str, float] = field(default_factory=dict)  # variable -> value
    error: str | None = None

    @classmethod
    def invalid(cls, error: str) -> StaticSolution:
        return cls(is_valid=False, error=error)

    def to_dict(self) -> dict:
        return {
            'is_valid': self.is_valid,
            'motor_torque': self.motor_torque,
            'reactions': {jid: r.to_dict() for jid, r in self.reactions.items()},
            'error': self.error,
        }


@dataclass
class TimestepResult:
    """Everything computed at one timestep of a sub-mechanism."""
    timestep: int
    solution: StaticSolution
    positions: dict[int, Coord] = field(default_factory=dict)
    centers_of_mass: dict[tuple[str, int], Coord] = field(default_factory=dict)
    forces: dict[int, Any] = field(default_factory=dict)  # force id -> ForceAtTimestep
    equations: list[Any] = field(default_factory=list)  # EquilibriumEquation

    def to_dict(self) -> dict:
        return {
            'timestep': self.timestep,
            'solution': self.solution.to_dict(),
            'positions': {jid: list(p) for jid, p in self.positions.items()},
            'centers_of_mass': {f'{k}:{i}': list(p) for (k, i), p in self.centers_of_mass.items()},
            'forces': {
                fid: {'start': list(f.start), 'fx': f.fx, 'fy': f.fy}
                for fid, f in self.forces.items()
            },
        }


@dataclass
class SubMechanismAnalysis:
    """Result of analyzing one sub-mechanism over a full motion cycle."""
    key: tuple[int, ...]
    success: bool
    timesteps: list[TimestepResult] = field(default_factory=list)
    error: Optional[str] = None

    @property
    def n_steps(self) -> int:
        return len(self.timesteps)

    @property
    def n_valid(self) -> int:
        return sum(1 for t in self.timesteps if t.solution.is_valid)

    def motor_torques(self) -> list[float | None]:
        return [t.solution.motor_torque if t.solution.is_valid else None for t in self.timesteps]

    def to_dict(self) -> dict:
        return {
            'key': list(self.key),
            'success': self.success,
            'n_steps': self.n_steps,
            'n_valid': self.n_valid,
            'timesteps': [t.to_dict() for t in self.timesteps],
            'error': self.error,
        }


@dataclass
class AnimationFrames:
    """Joint positions over one motion cycle of a sub-mechanism."""
    positions: list[list[Coord]]  # positions[t][i] belongs to corresponding_joints[i]
    corresponding_joints: list[int]

    def frame(self, t: int) -> dict[int, Coord]:
        return {jid: Coord.of(p) for jid, p in zip(self.corresponding_joints, self.positions[t])}

    def __len__(self) -> int:
        return len(self.positions)


class FrameSource(Protocol):
    """External position solver consumed by the orchestrator."""

    def get_animation_frames(self) -> list[AnimationFrames]:
        ...

    def validate_submechanism(self, sub_mechanism) -> bool:
        ...
