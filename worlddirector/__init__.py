"""
World Director - autonomous content and event director for a persistent simulated world.
"""

__version__ = "1.0.0"
