"""
Schemas Package
"""

from dream_studio.schemas.prediction import (
    ControllerState,
    GeneratedImage,
    ImageLoadFailure,
    JobHandle,
    JobResult,
    JobStatus,
    PhotoMakerInput,
    Prediction,
    PredictionUpdate,
    ProgressEvent,
)

__all__ = [
    "ControllerState",
    "GeneratedImage",
    "ImageLoadFailure",
    "JobHandle",
    "JobResult",
    "JobStatus",
    "PhotoMakerInput",
    "Prediction",
    "PredictionUpdate",
    "ProgressEvent",
]
