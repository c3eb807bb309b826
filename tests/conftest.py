"""Pytest configuration and fixtures."""

import pytest

from imageprobe.runtime.docker_client import RuntimeAPIError


class FakeDockerClient:
    """In-memory stand-in for DockerClient that records lifecycle calls.

    Any step can be made to fail by passing its name in fail_on, e.g.
    fail_on={"pull": "manifest unknown"}.
    """

    def __init__(
        self,
        output: bytes = b"",
        exit_code: int = 0,
        fail_on: dict[str, str] | None = None,
        container_id: str = "c0ffee1234567890",
    ):
        self.output = output
        self.exit_code = exit_code
        self.fail_on = fail_on or {}
        self.container_id = container_id
        self.calls: list[str] = []
        self.closed = False

    def _maybe_fail(self, step: str) -> None:
        self.calls.append(step)
        if step in self.fail_on:
            raise RuntimeAPIError(self.fail_on[step])

    async def pull_image(self, image, progress=None):
        self._maybe_fail("pull")
        if progress is not None:
            progress(image, {"status": f"Pulling from library/{image}"})

    async def create_container(self, image, command, labels=None):
        self._maybe_fail("create")
        return self.container_id

    async def start_container(self, container_id):
        self._maybe_fail("start")

    async def wait_container(self, container_id):
        self._maybe_fail("wait")
        return self.exit_code

    async def read_logs(self, container_id, stdout=True, stderr=True):
        self._maybe_fail("logs")
        return self.output

    async def remove_container(self, container_id, force=True):
        self._maybe_fail("remove")

    async def aclose(self):
        self.closed = True


@pytest.fixture
def fake_client_cls() -> type[FakeDockerClient]:
    """Expose FakeDockerClient to tests."""
    return FakeDockerClient


@pytest.fixture
def xz_output() -> bytes:
    """Typical `xz --version` output."""
    return b"xz (XZ Utils) 5.4.3\nliblzma 5.4.3\n"
