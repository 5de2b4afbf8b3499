"""
Data access package for the NTP prediction pipeline.

This package contains loading and saving components for expression matrices,
template tables and prediction results.
"""

from .data_loader import NTPDataLoader
from .data_saver import NTPDataSaver

__all__ = ["NTPDataLoader", "NTPDataSaver"]
