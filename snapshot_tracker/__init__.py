"""
Portfolio snapshot aggregation and bulk recalculation tracking.
"""

__version__ = "0.1.0"
