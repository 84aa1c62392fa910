"""
Submission and finalization tracking.
"""

from .tracker import FinalizationTracker

__all__ = ["FinalizationTracker"]
