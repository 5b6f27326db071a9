"""
errors.py - Exception types raised inside the statics pipeline.

Public analysis entry points convert these into result objects
(StaticSolution / SubMechanismAnalysis) so callers never see them unless they
use the editing API directly.
"""
from __future__ import annotations


class StaticsError(Exception):
    """Base class for all statics engine errors."""


class TopologyError(StaticsError, ValueError):
    """Invalid mechanism structure (unknown ids, too few joints, bad welds)."""


class ConventionError(StaticsError, ValueError):
    """Rejected edit to a sign, torque, gravity or pivot convention."""


class MissingReferenceError(StaticsError):
    """A center of mass, pivot or reference joint has no position at a timestep."""


class ReconstructionError(StaticsError):
    """Circle-circle reconstruction found no solution for a tracked point."""
