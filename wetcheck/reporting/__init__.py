"""
Report generation for Wet Check inspections.
"""

from wetcheck.reporting.text_report import (
    render_text,
    zone_status,
    aggregate_materials,
    suggested_filename,
    share_link,
)
from wetcheck.reporting.pdf import (
    RenderedDocument,
    InspectionDocument,
    render_document,
    write_reports,
)

__all__ = [
    "render_text",
    "zone_status",
    "aggregate_materials",
    "suggested_filename",
    "share_link",
    "RenderedDocument",
    "InspectionDocument",
    "render_document",
    "write_reports",
]
