"""Data models for imageprobe."""

from imageprobe.models.model_config import ProbeConfig
from imageprobe.models.model_inspection import (
    InspectionBatchResult,
    InspectionResult,
    InspectionStage,
)

__all__ = [
    "InspectionBatchResult",
    "InspectionResult",
    "InspectionStage",
    "ProbeConfig",
]
