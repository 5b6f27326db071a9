"""
Static-equilibrium analysis of planar linkages.

Given a mechanism and its joint positions over one motion cycle, solves the
reaction force at every joint and the input torque at every timestep.

Typical use:
    mechanism = load_mechanism('fourbar.json')
    analyses = analyze_mechanism(mechanism, PylinkageFrameSource(mechanism))
"""
from __future__ import annotations

from statics_tools.conventions import AnalysisSession
from statics_tools.conventions import ConventionEdit
from statics_tools.conventions import GravityDirection
from statics_tools.errors import ConventionError
from statics_tools.errors import MissingReferenceError
from statics_tools.errors import ReconstructionError
from statics_tools.errors import StaticsError
from statics_tools.errors import TopologyError
from statics_tools.export import build_export_rows
from statics_tools.export import write_csv
from statics_tools.geometry import circle_circle_intersection
from statics_tools.geometry import Coord
from statics_tools.kinematic import PylinkageFrameSource
from statics_tools.loader import load_mechanism
from statics_tools.loader import mechanism_from_dict
from statics_tools.orchestrator import analyze_mechanism
from statics_tools.orchestrator import solve_all_timesteps
from statics_tools.orchestrator import StaticsConfig
from statics_tools.schemas import AnimationFrames
from statics_tools.schemas import StaticSolution
from statics_tools.schemas import SubMechanismAnalysis
from statics_tools.solver import solve_equilibrium
from statics_tools.topology import CompoundLink
from statics_tools.topology import Force
from statics_tools.topology import ForceFrame
from statics_tools.topology import Joint
from statics_tools.topology import Link
from statics_tools.topology import Mechanism
