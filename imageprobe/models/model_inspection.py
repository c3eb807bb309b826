"""Data models for per-image inspection results."""

from dataclasses import dataclass, field
from enum import Enum


class InspectionStage(Enum):
    """Container lifecycle stage at which an inspection failed."""

    CLIENT = "client"
    PULL = "pull"
    CREATE = "create"
    START = "start"
    WAIT = "wait"
    LOGS = "logs"


@dataclass(frozen=True)
class InspectionResult:
    """Outcome of probing a single image.

    Exactly one of a non-empty output or an error is meaningful. Both may be
    absent when the probe ran cleanly but printed nothing.
    """

    image: str
    output: str = ""
    error: str | None = None
    stage: InspectionStage | None = None
    exit_code: int | None = None
    duration_seconds: float = 0.0

    @property
    def success(self) -> bool:
        """True when the lifecycle completed without an error."""
        return self.error is None


@dataclass
class InspectionBatchResult:
    """Result of inspecting a batch of images."""

    total: int
    succeeded: int
    failed: int
    results: list[InspectionResult] = field(default_factory=list)  # arrival order
    failures: dict[str, str] = field(default_factory=dict)  # image → error
    duration_seconds: float = 0.0
