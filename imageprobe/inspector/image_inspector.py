"""Single-image inspection: pull, run the probe in an ephemeral container, collect output."""

import contextlib
import logging
import time
from collections.abc import AsyncIterator, Callable

from imageprobe.consts import DEFAULT_PROBE_COMMAND, DEFAULT_PROBE_TARGET
from imageprobe.models.model_inspection import InspectionResult, InspectionStage
from imageprobe.runtime.docker_client import DockerClient, ProgressCallback

logger = logging.getLogger(__name__)

CONTAINER_LABEL = "io.imageprobe.probe"


class InspectionFailed(Exception):
    """Internal signal carrying the failed stage; never escapes inspect()."""

    def __init__(self, stage: InspectionStage, message: str):
        super().__init__(message)
        self.stage = stage
        self.message = message


class ImageInspector:
    """Runs the probe command inside one ephemeral container per image.

    inspect() owns the full lifecycle of its container and always returns
    exactly one InspectionResult. Runtime failures become error results
    instead of exceptions, so one bad image cannot sink a batch.
    """

    def __init__(
        self,
        client_factory: Callable[[], DockerClient] = DockerClient.from_env,
        command: list[str] | None = None,
        target: str = DEFAULT_PROBE_TARGET,
        capture_stderr: bool = False,
        progress: ProgressCallback | None = None,
    ):
        """Initialize ImageInspector.

        Args:
            client_factory: Callable returning a fresh DockerClient (one per inspection)
            command: Probe command run in the container (default: sh -c "xz --version")
            target: Name of the probed binary, used for container labelling
            capture_stderr: Include stderr in the captured output (default: stdout only)
            progress: Optional sink for pull progress events
        """
        self.client_factory = client_factory
        self.command = list(command) if command else list(DEFAULT_PROBE_COMMAND)
        self.target = target
        self.capture_stderr = capture_stderr
        self.progress = progress

    async def inspect(self, image: str) -> InspectionResult:
        """Probe a single image.

        Lifecycle, short-circuiting on the first failure:
        1. Obtain a runtime client
        2. Pull the image (no container exists yet, nothing to clean up)
        3. Create the probe container
        4. Start it
        5. Wait until it is no longer running
        6. Read its logs (only if it started; a read failure overrides success)
        7. Force-remove the container (whenever one was created)

        Args:
            image: Image identifier (registry/name:tag)

        Returns:
            InspectionResult with either the captured output or an error
        """
        start_time = time.time()

        try:
            client = self.client_factory()
        except Exception as e:
            logger.warning(f"✗ {image}: cannot create runtime client: {e}")
            return self._error_result(image, InspectionStage.CLIENT, str(e), start_time)

        try:
            output, exit_code = await self._run_lifecycle(client, image)
        except InspectionFailed as e:
            logger.warning(f"✗ {image}: {e.stage.value} failed: {e.message}")
            return self._error_result(image, e.stage, e.message, start_time)
        except Exception as e:
            logger.exception(f"✗ {image}: unexpected inspection error")
            return self._error_result(image, None, f"unexpected error: {e}", start_time)
        finally:
            try:
                await client.aclose()
            except Exception as e:
                logger.debug(f"Failed to close runtime client for {image}: {e}")

        logger.info(f"✓ {image}: probe exited with status {exit_code}")
        return InspectionResult(
            image=image,
            output=output,
            exit_code=exit_code,
            duration_seconds=time.time() - start_time,
        )

    async def _run_lifecycle(self, client: DockerClient, image: str) -> tuple[str, int | None]:
        """Drive the container lifecycle; raise InspectionFailed on the first error."""
        logger.info(f"Pulling {image}...")
        try:
            await client.pull_image(image, progress=self.progress)
        except Exception as e:
            raise InspectionFailed(InspectionStage.PULL, f"error pulling image: {e}") from e

        async with self._container(client, image) as container_id:
            try:
                await client.start_container(container_id)
            except Exception as e:
                raise InspectionFailed(InspectionStage.START, f"error starting container: {e}") from e

            wait_error: InspectionFailed | None = None
            exit_code: int | None = None
            try:
                exit_code = await client.wait_container(container_id)
            except Exception as e:
                wait_error = InspectionFailed(
                    InspectionStage.WAIT, f"error waiting for container: {e}"
                )

            # Logs are read even after a wait error; the first error wins.
            try:
                raw = await client.read_logs(
                    container_id, stdout=True, stderr=self.capture_stderr
                )
            except Exception as e:
                if wait_error is not None:
                    logger.debug(f"Log read for {image} also failed: {e}")
                    raise wait_error from e
                raise InspectionFailed(InspectionStage.LOGS, f"error reading logs: {e}") from e

            if wait_error is not None:
                raise wait_error

            return raw.decode("utf-8", errors="replace"), exit_code

    @contextlib.asynccontextmanager
    async def _container(self, client: DockerClient, image: str) -> AsyncIterator[str]:
        """Create the probe container and guarantee its removal on exit.

        Creation failures raise before anything is yielded, so removal is only
        ever attempted for a container that actually exists. Removal errors are
        logged and never replace the inspection outcome.
        """
        try:
            container_id = await client.create_container(
                image,
                self.command,
                labels={CONTAINER_LABEL: self.target},
            )
        except Exception as e:
            raise InspectionFailed(InspectionStage.CREATE, f"error creating container: {e}") from e

        logger.debug(f"Created container {container_id[:12]} for {image}")
        try:
            yield container_id
        finally:
            try:
                await client.remove_container(container_id, force=True)
                logger.debug(f"Removed container {container_id[:12]} for {image}")
            except Exception as e:
                logger.warning(f"Error removing container {container_id[:12]} ({image}): {e}")

    @staticmethod
    def _error_result(
        image: str,
        stage: InspectionStage | None,
        message: str,
        start_time: float,
    ) -> InspectionResult:
        return InspectionResult(
            image=image,
            error=message,
            stage=stage,
            duration_seconds=time.time() - start_time,
        )
