from pathlib import Path

# Input / output artifacts
DEFAULT_CONFIG_PATH = Path("images.yaml")
DEFAULT_REPORT_PATH = Path("report.txt")

# Probe defaults
DEFAULT_PROBE_TARGET = "xz"
DEFAULT_PROBE_COMMAND = ["sh", "-c", "xz --version"]
DEFAULT_IMAGE_TAG = "latest"

# Docker Engine API connection
DOCKER_HOST_ENV = "DOCKER_HOST"
DOCKER_API_VERSION_ENV = "DOCKER_API_VERSION"
DOCKER_CERT_PATH_ENV = "DOCKER_CERT_PATH"
DOCKER_TLS_VERIFY_ENV = "DOCKER_TLS_VERIFY"
DOCKER_DEFAULT_HOST = "unix:///var/run/docker.sock"
DOCKER_MAX_API_VERSION = "1.52"  # Highest API version this client speaks
DOCKER_CERT_DIR = Path.home() / ".docker"  # ca.pem, cert.pem, key.pem when DOCKER_CERT_PATH is unset
DOCKER_CONNECT_TIMEOUT = 30.0
DOCKER_REQUEST_TIMEOUT = 60.0
# Pull, wait and logs block until the remote operation completes, so no read timeout
DOCKER_STREAM_READ_TIMEOUT = None

# Report rendering
REPORT_VERSION_NOT_FOUND = "version info not found"
