"""AG2 agent factories for the generative backend."""

from .design_coach import make_design_coach

__all__ = ["make_design_coach"]
