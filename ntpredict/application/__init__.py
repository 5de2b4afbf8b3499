"""
This package contains the application layer for the NTP prediction pipeline.

The application layer is responsible for orchestrating the prediction stages.
"""

from .ntp_prediction_service import NTPPredictionService

__all__ = ["NTPPredictionService"]
