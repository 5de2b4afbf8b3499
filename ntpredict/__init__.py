"""
Nearest Template Prediction Package

Single-sample classification of centered, scaled expression profiles against
a fixed set of class templates, with permutation-based significance and
false-discovery-rate correction across samples.
"""

__version__ = "1.0.0"
