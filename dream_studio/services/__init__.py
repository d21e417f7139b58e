"""
Prediction Services
"""

from dream_studio.services.image_loader import HttpImageLoader
from dream_studio.services.prediction_controller import PredictionProgressController, PredictionRun
from dream_studio.services.prediction_service import ReplicatePredictionService
from dream_studio.services.progress_estimator import ProgressEstimator

__all__ = [
    "HttpImageLoader",
    "PredictionProgressController",
    "PredictionRun",
    "ProgressEstimator",
    "ReplicatePredictionService",
]
