"""Plain-text report rendering."""

from imageprobe.report.report_writer import (
    extract_version_line,
    render_line,
    sanitize_output,
    write_report,
)

__all__ = [
    "extract_version_line",
    "render_line",
    "sanitize_output",
    "write_report",
]
