"""imageprobe - verify a binary's presence and version across container images."""

__version__ = "0.1.0"
