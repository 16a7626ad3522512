"""
Components package for the feed pipeline.
Provides HashCalculator and FeedDiff.
"""
from services.components.hash_calculator import HashCalculator
from services.components.change_detector import FeedDiff

__all__ = [
    "HashCalculator",
    "FeedDiff",
]
