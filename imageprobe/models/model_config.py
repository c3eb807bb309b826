"""Pydantic model for the images configuration file."""

from pydantic import BaseModel, Field, field_validator

from imageprobe.consts import DEFAULT_PROBE_COMMAND, DEFAULT_PROBE_TARGET


class ProbeConfig(BaseModel):
    """Declarative list of images to probe plus probe settings."""

    images: list[str] = Field(description="Pullable image identifiers (registry/name:tag)")
    target: str = Field(
        default=DEFAULT_PROBE_TARGET,
        min_length=1,
        description="Substring identifying the probed binary in its output",
    )
    command: list[str] = Field(
        default_factory=lambda: list(DEFAULT_PROBE_COMMAND),
        min_length=1,
        description="Command run inside each container",
    )
    capture_stderr: bool = Field(
        default=False,
        description="Include the probe's stderr in the captured output",
    )

    @field_validator("images")
    @classmethod
    def _strip_images(cls, images: list[str]) -> list[str]:
        """Strip whitespace and reject blank identifiers."""
        stripped = [image.strip() for image in images]
        if any(not image for image in stripped):
            raise ValueError("image identifiers must be non-empty strings")
        return stripped
