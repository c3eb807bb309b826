"""Renders inspection results into the plain-text report."""

import logging
import re
from collections.abc import Iterable
from pathlib import Path

from imageprobe.consts import DEFAULT_PROBE_TARGET, DEFAULT_REPORT_PATH, REPORT_VERSION_NOT_FOUND
from imageprobe.models.model_inspection import InspectionResult

logger = logging.getLogger(__name__)

# C0 controls, DEL and C1 controls
_CONTROL_CHARS = re.compile(r"[\x00-\x1f\x7f-\x9f]")


def sanitize_output(text: str) -> str:
    """Remove control characters (terminal escapes, binary noise). Idempotent."""
    return _CONTROL_CHARS.sub("", text)


def extract_version_line(output: str, target: str = DEFAULT_PROBE_TARGET) -> str:
    """Return the first output line mentioning target, sanitized and trimmed.

    Lines are split before sanitizing since newlines are control characters too.

    Args:
        output: Raw captured probe output
        target: Substring identifying the probed binary

    Returns:
        The matching line, or the 'version info not found' marker
    """
    for line in output.splitlines():
        clean_line = sanitize_output(line)
        if target in clean_line:
            return clean_line.strip()
    return REPORT_VERSION_NOT_FOUND


def render_line(result: InspectionResult, target: str = DEFAULT_PROBE_TARGET) -> str:
    """Render one report line for an inspection result.

    Formats:
        Image: <id> - Error: <message>
        Image: <id> - <first line containing target>
        Image: <id> - <target> not found

    Args:
        result: Inspection result to render
        target: Substring identifying the probed binary

    Returns:
        Report line without a trailing newline
    """
    if result.error is not None:
        return f"Image: {result.image} - Error: {sanitize_output(result.error)}"

    if target in sanitize_output(result.output):
        return f"Image: {result.image} - {extract_version_line(result.output, target)}"

    return f"Image: {result.image} - {target} not found"


def write_report(
    results: Iterable[InspectionResult],
    path: Path | str = DEFAULT_REPORT_PATH,
    target: str = DEFAULT_PROBE_TARGET,
) -> Path:
    """Write the full report, one line per result, replacing any previous report.

    Args:
        results: Inspection results in the order they should appear
        path: Report file path
        target: Substring identifying the probed binary

    Returns:
        Path to the written report

    Raises:
        OSError: If the report cannot be written
    """
    report_path = Path(path)
    lines = [render_line(result, target) for result in results]

    report_path.parent.mkdir(parents=True, exist_ok=True)
    report_path.write_text("".join(f"{line}\n" for line in lines), encoding="utf-8")

    logger.info(f"Wrote report: {report_path} ({len(lines)} images)")
    return report_path
