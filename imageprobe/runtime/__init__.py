"""Container runtime adapter (Docker Engine API)."""

from imageprobe.runtime.docker_client import DockerClient, RuntimeAPIError, TLSConfig
from imageprobe.runtime.progress import PullProgressSink

__all__ = [
    "DockerClient",
    "PullProgressSink",
    "RuntimeAPIError",
    "TLSConfig",
]
