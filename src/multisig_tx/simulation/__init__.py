"""
Simulation and authorization resolution.
"""

from .resolver import SimulationResolver, assemble_with_authorization, requires_second_pass

__all__ = ["SimulationResolver", "assemble_with_authorization", "requires_second_pass"]
