"""
Director services - chunk tracking, event lifecycle, activity, automation and the orchestrator.
"""

from .director import FeatureDisabledError, WorldDirector

__all__ = ["FeatureDisabledError", "WorldDirector"]
