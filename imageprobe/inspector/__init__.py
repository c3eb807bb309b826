"""Concurrent per-image inspection pipeline."""

from imageprobe.inspector.image_inspector import ImageInspector
from imageprobe.inspector.orchestrator import InspectionOrchestrator

__all__ = [
    "ImageInspector",
    "InspectionOrchestrator",
]
