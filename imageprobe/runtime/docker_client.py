"""Async Docker Engine API client for ephemeral probe containers.

Talks to the Docker daemon over HTTP with httpx:
- unix:// sockets via httpx's UDS transport (the default)
- tcp:// and http(s):// endpoints via a plain base URL, upgraded to https with
  client certificates when DOCKER_CERT_PATH or DOCKER_TLS_VERIFY is set
- API version negotiated against the daemon on first use
"""

import json
import logging
import os
import ssl
from collections.abc import Callable
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import httpx

from imageprobe.consts import (
    DEFAULT_IMAGE_TAG,
    DOCKER_API_VERSION_ENV,
    DOCKER_CERT_DIR,
    DOCKER_CERT_PATH_ENV,
    DOCKER_CONNECT_TIMEOUT,
    DOCKER_DEFAULT_HOST,
    DOCKER_HOST_ENV,
    DOCKER_MAX_API_VERSION,
    DOCKER_REQUEST_TIMEOUT,
    DOCKER_STREAM_READ_TIMEOUT,
    DOCKER_TLS_VERIFY_ENV,
)

logger = logging.getLogger(__name__)

# Callback receiving (image, event) for each pull progress message
ProgressCallback = Callable[[str, dict[str, Any]], None]

# Stream types in the multiplexed logs format
STREAM_STDIN = 0
STREAM_STDOUT = 1
STREAM_STDERR = 2
_FRAME_HEADER_SIZE = 8


class RuntimeAPIError(Exception):
    """Raised when a Docker Engine API call fails."""

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.message = message
        self.status_code = status_code

    def __str__(self) -> str:
        if self.status_code is not None:
            return f"{self.message} (HTTP {self.status_code})"
        return self.message


def _version_tuple(version: str) -> tuple[int, ...]:
    """Convert '1.43' to (1, 43) for comparison."""
    try:
        return tuple(int(part) for part in version.split("."))
    except ValueError:
        return (0,)


def split_image_reference(image: str) -> tuple[str, str]:
    """Split an image reference into (repository, tag-or-digest).

    The pull endpoint pulls every tag of a repository when no tag is given,
    so a missing tag defaults to 'latest'.

    Examples:
        alpine                      -> ("alpine", "latest")
        alpine:3.18                 -> ("alpine", "3.18")
        localhost:5000/tools:1.2    -> ("localhost:5000/tools", "1.2")
        debian@sha256:abc...        -> ("debian", "sha256:abc...")

    Args:
        image: Image reference

    Returns:
        Tuple of (repository, tag or digest)
    """
    if "@" in image:
        repository, digest = image.split("@", 1)
        return repository, digest

    last_segment = image.rsplit("/", 1)[-1]
    if ":" in last_segment:
        repository, tag = image.rsplit(":", 1)
        return repository, tag

    return image, DEFAULT_IMAGE_TAG


def demultiplex_logs(data: bytes) -> bytes:
    """Strip the 8-byte frame headers from a multiplexed logs stream.

    Containers created without a TTY return logs framed as
    [stream_type, 0, 0, 0, size(4 bytes, big endian)] + payload. Data that
    does not look framed (TTY containers) is returned unchanged.

    Args:
        data: Raw response body from the logs endpoint

    Returns:
        Concatenated payloads in stream order
    """
    if not _looks_multiplexed(data):
        return data

    chunks: list[bytes] = []
    offset = 0
    while offset + _FRAME_HEADER_SIZE <= len(data):
        header = data[offset : offset + _FRAME_HEADER_SIZE]
        size = int.from_bytes(header[4:8], "big")
        start = offset + _FRAME_HEADER_SIZE
        chunks.append(data[start : start + size])
        offset = start + size

    return b"".join(chunks)


def _looks_multiplexed(data: bytes) -> bool:
    return (
        len(data) >= _FRAME_HEADER_SIZE
        and data[0] in (STREAM_STDIN, STREAM_STDOUT, STREAM_STDERR)
        and data[1:4] == b"\x00\x00\x00"
    )


def _error_message(response: httpx.Response) -> str:
    """Extract the daemon's error message from a failed response."""
    try:
        payload = response.json()
        if isinstance(payload, dict) and payload.get("message"):
            return str(payload["message"])
    except ValueError:
        pass
    text = response.text.strip()
    return text or response.reason_phrase or "unknown error"


@dataclass(frozen=True)
class TLSConfig:
    """Client TLS material for a tcp:// daemon, laid out like ~/.docker."""

    cert_path: Path
    verify: bool = True

    @property
    def ca_cert(self) -> Path:
        return self.cert_path / "ca.pem"

    @property
    def client_cert(self) -> Path:
        return self.cert_path / "cert.pem"

    @property
    def client_key(self) -> Path:
        return self.cert_path / "key.pem"

    def ssl_context(self) -> ssl.SSLContext:
        """Build the SSL context for the daemon connection.

        With verify set, the daemon certificate must chain to ca.pem.
        Without it, the daemon certificate is not checked, but the client
        certificate is still presented when one exists.
        """
        if self.verify:
            context = ssl.create_default_context(cafile=str(self.ca_cert))
        else:
            context = ssl.create_default_context()
            context.check_hostname = False
            context.verify_mode = ssl.CERT_NONE

        if self.client_cert.exists() and self.client_key.exists():
            context.load_cert_chain(certfile=str(self.client_cert), keyfile=str(self.client_key))
        return context


class DockerClient:
    """Minimal async client for the container lifecycle used by a probe.

    One instance is meant to be used by one inspection task. The daemon is
    treated as a service that tolerates concurrent lifecycle calls, so there
    is no client-side locking.
    """

    def __init__(
        self,
        host: str | None = None,
        api_version: str | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
        timeout: float = DOCKER_REQUEST_TIMEOUT,
        tls: TLSConfig | None = None,
    ):
        """Initialize DockerClient.

        Args:
            host: Daemon endpoint, e.g. unix:///var/run/docker.sock or
                  tcp://127.0.0.1:2375 (default: DOCKER_HOST or the local socket)
            api_version: Pin an API version instead of negotiating it
            transport: Custom httpx transport (overrides host-derived transport)
            timeout: Timeout in seconds for non-streaming requests
            tls: Client TLS material; switches tcp:// endpoints to https
        """
        self.host = host or DOCKER_DEFAULT_HOST
        self.api_version = api_version
        self.timeout = timeout
        self.tls = tls

        base_url = self._base_url(self.host, tls)
        if transport is None:
            transport = self._host_transport(self.host, tls)
        self._client = httpx.AsyncClient(
            base_url=base_url,
            transport=transport,
            timeout=httpx.Timeout(timeout, connect=DOCKER_CONNECT_TIMEOUT),
            headers={"Accept": "application/json"},
        )

    @classmethod
    def from_env(cls, **kwargs: Any) -> "DockerClient":
        """Create a client configured from the Docker environment variables.

        Reads DOCKER_HOST, DOCKER_API_VERSION, DOCKER_CERT_PATH and
        DOCKER_TLS_VERIFY. TLS is enabled when either of the last two is set;
        the daemon certificate is only verified when DOCKER_TLS_VERIFY is
        non-empty.
        """
        host = os.getenv(DOCKER_HOST_ENV, "").strip() or None
        kwargs.setdefault("api_version", os.getenv(DOCKER_API_VERSION_ENV, "").strip() or None)

        cert_path = os.getenv(DOCKER_CERT_PATH_ENV, "").strip()
        tls_verify = bool(os.getenv(DOCKER_TLS_VERIFY_ENV, "").strip())
        if cert_path or tls_verify:
            kwargs.setdefault(
                "tls",
                TLSConfig(
                    cert_path=Path(cert_path) if cert_path else DOCKER_CERT_DIR,
                    verify=tls_verify,
                ),
            )

        return cls(host=host, **kwargs)

    @staticmethod
    def _base_url(host: str, tls: TLSConfig | None = None) -> str:
        """Map a DOCKER_HOST value to an httpx base URL."""
        if host.startswith("unix://"):
            return "http://docker"
        if host.startswith("tcp://"):
            scheme = "https://" if tls else "http://"
            return scheme + host[len("tcp://") :]
        if host.startswith(("http://", "https://")):
            return host
        raise ValueError(f"Unsupported Docker host: {host}")

    @staticmethod
    def _host_transport(host: str, tls: TLSConfig | None = None) -> httpx.AsyncBaseTransport | None:
        """Build the transport a DOCKER_HOST value needs, if not the default one."""
        if host.startswith("unix://"):
            return httpx.AsyncHTTPTransport(uds=host[len("unix://") :])
        if tls is not None:
            return httpx.AsyncHTTPTransport(verify=tls.ssl_context())
        return None

    @property
    def _stream_timeout(self) -> httpx.Timeout:
        return httpx.Timeout(
            self.timeout,
            connect=DOCKER_CONNECT_TIMEOUT,
            read=DOCKER_STREAM_READ_TIMEOUT,
        )

    async def __aenter__(self) -> "DockerClient":
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        """Close the underlying HTTP connection pool."""
        await self._client.aclose()

    # === CONNECTION ===

    async def negotiate_version(self) -> str:
        """Agree on an API version with the daemon.

        Uses the lower of the daemon's ApiVersion and the highest version this
        client supports, raised to the daemon's MinAPIVersion when it reports
        one. If the daemon does not answer /version, requests use the highest
        supported version and negotiation is retried on the next call.

        Returns:
            The API version used for subsequent requests
        """
        if self.api_version:
            return self.api_version

        try:
            response = await self._client.get("/version")
            response.raise_for_status()
            payload = response.json()
            server_version = str(payload.get("ApiVersion", ""))
            min_version = str(payload.get("MinAPIVersion", ""))
        except (httpx.HTTPError, ValueError, AttributeError) as e:
            logger.debug(f"API version negotiation failed, using {DOCKER_MAX_API_VERSION}: {e}")
            return DOCKER_MAX_API_VERSION

        version = DOCKER_MAX_API_VERSION
        if server_version and _version_tuple(server_version) < _version_tuple(version):
            version = server_version
        if min_version and _version_tuple(min_version) > _version_tuple(version):
            version = min_version

        self.api_version = version
        logger.debug(
            f"Negotiated Docker API version {version} "
            f"(daemon: {server_version}, min: {min_version or 'n/a'})"
        )
        return version

    async def _url(self, path: str) -> str:
        version = await self.negotiate_version()
        return f"/v{version}{path}"

    async def _request(
        self,
        method: str,
        path: str,
        ok_statuses: tuple[int, ...] = (),
        **kwargs: Any,
    ) -> httpx.Response:
        """Send a request and convert failures to RuntimeAPIError.

        Args:
            method: HTTP method
            path: Unversioned API path (e.g. /containers/create)
            ok_statuses: Extra non-2xx status codes to treat as success
            **kwargs: Passed through to httpx

        Returns:
            The successful response

        Raises:
            RuntimeAPIError: On transport errors or error status codes
        """
        url = await self._url(path)
        try:
            response = await self._client.request(method, url, **kwargs)
        except httpx.HTTPError as e:
            raise RuntimeAPIError(f"{method} {path} failed: {e}") from e

        if response.is_success or response.status_code in ok_statuses:
            return response

        raise RuntimeAPIError(_error_message(response), status_code=response.status_code)

    # === IMAGE OPERATIONS ===

    async def pull_image(self, image: str, progress: ProgressCallback | None = None) -> None:
        """Pull an image, streaming progress events to the callback.

        The daemon reports pull failures in-band: the HTTP status is 200 and
        the stream ends with an event carrying 'error'/'errorDetail'.

        Args:
            image: Image reference to pull
            progress: Optional callback receiving (image, event) per progress message

        Raises:
            RuntimeAPIError: If the request fails or the stream reports an error
        """
        repository, tag = split_image_reference(image)
        url = await self._url("/images/create")
        params = {"fromImage": repository, "tag": tag}

        try:
            async with self._client.stream(
                "POST", url, params=params, timeout=self._stream_timeout
            ) as response:
                if not response.is_success:
                    await response.aread()
                    raise RuntimeAPIError(
                        _error_message(response), status_code=response.status_code
                    )

                async for line in response.aiter_lines():
                    if not line.strip():
                        continue
                    try:
                        event = json.loads(line)
                    except json.JSONDecodeError:
                        logger.debug(f"Ignoring malformed pull event for {image}: {line[:200]}")
                        continue

                    if event.get("error") or event.get("errorDetail"):
                        detail = event.get("errorDetail") or {}
                        raise RuntimeAPIError(str(detail.get("message") or event.get("error")))

                    if progress is not None:
                        progress(image, event)
        except httpx.HTTPError as e:
            raise RuntimeAPIError(f"pull of {image} failed: {e}") from e

    # === CONTAINER OPERATIONS ===

    async def create_container(
        self,
        image: str,
        command: list[str],
        labels: dict[str, str] | None = None,
    ) -> str:
        """Create (but do not start) a container running command.

        Args:
            image: Image to instantiate
            command: Command and arguments to run
            labels: Optional container labels

        Returns:
            The container id
        """
        body: dict[str, Any] = {
            "Image": image,
            "Cmd": command,
            "AttachStdout": True,
            "AttachStderr": True,
            "Tty": False,
        }
        if labels:
            body["Labels"] = labels

        response = await self._request("POST", "/containers/create", json=body)
        payload = response.json()
        container_id = payload.get("Id")
        if not container_id:
            raise RuntimeAPIError(f"Daemon returned no container id for {image}")

        for warning in payload.get("Warnings") or []:
            logger.debug(f"Create warning for {image}: {warning}")

        return container_id

    async def start_container(self, container_id: str) -> None:
        """Start a created container. 304 (already started) counts as success."""
        await self._request("POST", f"/containers/{container_id}/start", ok_statuses=(304,))

    async def wait_container(self, container_id: str) -> int:
        """Block until the container is no longer running.

        Args:
            container_id: Container to wait for

        Returns:
            The container's exit status

        Raises:
            RuntimeAPIError: If waiting fails or the daemon reports a wait error
        """
        response = await self._request(
            "POST",
            f"/containers/{container_id}/wait",
            params={"condition": "not-running"},
            timeout=self._stream_timeout,
        )
        payload = response.json()

        error = payload.get("Error") or {}
        if error.get("Message"):
            raise RuntimeAPIError(str(error["Message"]))

        return int(payload.get("StatusCode", 0))

    async def read_logs(
        self,
        container_id: str,
        stdout: bool = True,
        stderr: bool = True,
    ) -> bytes:
        """Read the container's complete log output.

        Args:
            container_id: Container to read from
            stdout: Include stdout
            stderr: Include stderr

        Returns:
            Log output with stream framing removed
        """
        response = await self._request(
            "GET",
            f"/containers/{container_id}/logs",
            params={"stdout": int(stdout), "stderr": int(stderr)},
            timeout=self._stream_timeout,
        )
        return demultiplex_logs(response.content)

    async def remove_container(self, container_id: str, force: bool = True) -> None:
        """Remove a container (killing it first when force is set)."""
        await self._request(
            "DELETE",
            f"/containers/{container_id}",
            params={"force": str(force).lower(), "v": "true"},
        )
