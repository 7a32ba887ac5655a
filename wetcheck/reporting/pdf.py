"""
Paginated PDF wet check report.
Renders the full in-memory record, photos included, with a branded header
and a "Page N of M" footer on every page.
"""

from dataclasses import dataclass
import io
import re
from pathlib import Path
from typing import List, Optional, Sequence, Tuple
from xml.sax.saxutils import escape

from reportlab.lib.pagesizes import letter
from reportlab.lib.units import inch
from reportlab.lib.colors import HexColor, white
from reportlab.lib.styles import getSampleStyleSheet, ParagraphStyle
from reportlab.lib.enums import TA_CENTER
from reportlab.platypus import (
    SimpleDocTemplate, Paragraph, Spacer, Table, TableStyle,
    Image as RLImage, KeepTogether
)
from reportlab.pdfgen import canvas

from wetcheck.exceptions import ImageEncodingFailure
from wetcheck.reporting.text_report import (
    aggregate_materials,
    observation_labels,
    render_text,
    suggested_filename,
    zone_status,
)
from wetcheck.schemas.models import CompanyBranding, Geolocation, InspectionRecord
from utils.image_utils import decode_image_data_url, load_image
from utils.logger import setup_logger
from utils.config import config

logger = setup_logger(__name__, level=config.log_level, log_file=config.get_log_file(), component="REPORTS")


# ============================================================================
# COLORS
# ============================================================================

BRAND_PRIMARY = HexColor("#1a3a5c")  # Navy
BRAND_ACCENT = HexColor("#2d6da8")   # Blue
BRAND_DANGER = HexColor("#d32f2f")   # Red
BRAND_GRAY = HexColor("#646464")     # Gray
BRAND_LIGHT = HexColor("#e8f0f8")    # Row tint
TEXT_DARK = HexColor("#1e1e1e")

PAGE_MARGIN = 0.6 * inch
CONTENT_WIDTH = letter[0] - 2 * PAGE_MARGIN
PLACEHOLDER = "—"


@dataclass
class RenderedDocument:
    content: bytes
    file_name: str


# ============================================================================
# PDF FOOTER
# ============================================================================

class NumberedCanvas(canvas.Canvas):
    """Canvas with the branded footer and page numbers."""

    def __init__(self, *args, footer_text: str = "", **kwargs):
        canvas.Canvas.__init__(self, *args, **kwargs)
        self._saved_page_states = []
        self.footer_text = footer_text

    def showPage(self):
        self._saved_page_states.append(dict(self.__dict__))
        self._startPage()

    def save(self):
        num_pages = len(self._saved_page_states)
        for state in self._saved_page_states:
            self.__dict__.update(state)
            self.draw_footer(num_pages)
            canvas.Canvas.showPage(self)
        canvas.Canvas.save(self)

    def draw_footer(self, page_count):
        """Draw rule, company line and page number at the bottom."""
        self.saveState()
        width = letter[0]

        self.setStrokeColor(BRAND_PRIMARY)
        self.setLineWidth(1.4)
        self.line(PAGE_MARGIN, 0.7 * inch, width - PAGE_MARGIN, 0.7 * inch)

        self.setFont("Helvetica", 8)
        self.setFillColor(BRAND_GRAY)
        self.drawCentredString(width / 2, 0.5 * inch, self.footer_text)

        page_num = f"Page {self._pageNumber} of {page_count}"
        self.drawRightString(width - PAGE_MARGIN, 0.5 * inch, page_num)

        self.restoreState()


def _canvas_factory(footer_text: str):
    def make(*args, **kwargs):
        return NumberedCanvas(*args, footer_text=footer_text, **kwargs)
    return make


# ============================================================================
# PDF REPORT GENERATOR
# ============================================================================

class InspectionDocument:
    """Wet check PDF report generator."""

    def __init__(self, branding: Optional[CompanyBranding] = None):
        self.logger = logger
        self.branding = branding
        self.company_name = (branding.name if branding else "") or config.default_pdf_company_name
        self.company_website = (branding.website if branding else "") or config.default_company_website
        self.company_phone = (branding.phone if branding else "") or ""
        self.styles = getSampleStyleSheet()
        self._setup_custom_styles()

    def _setup_custom_styles(self):
        """Setup custom paragraph styles."""
        self.styles.add(ParagraphStyle(
            name="HeaderTitle",
            parent=self.styles["Title"],
            fontSize=18,
            leading=22,
            textColor=white,
            alignment=TA_CENTER,
            spaceAfter=2,
            fontName="Helvetica-Bold"
        ))

        self.styles.add(ParagraphStyle(
            name="HeaderSubtitle",
            parent=self.styles["Normal"],
            fontSize=11,
            leading=14,
            textColor=white,
            alignment=TA_CENTER
        ))

        self.styles.add(ParagraphStyle(
            name="SectionHeader",
            parent=self.styles["Heading1"],
            fontSize=12,
            textColor=BRAND_PRIMARY,
            spaceBefore=12,
            spaceAfter=6,
            fontName="Helvetica-Bold",
        ))

        self.styles.add(ParagraphStyle(
            name="SubHeader",
            parent=self.styles["Normal"],
            fontSize=9,
            textColor=BRAND_GRAY,
            spaceBefore=6,
            spaceAfter=4,
            fontName="Helvetica-Bold"
        ))

        self.styles.add(ParagraphStyle(
            name="Body",
            parent=self.styles["Normal"],
            fontSize=10,
            leading=13,
            textColor=TEXT_DARK
        ))

        self.styles.add(ParagraphStyle(
            name="Small",
            parent=self.styles["Normal"],
            fontSize=8,
            leading=10,
            textColor=BRAND_GRAY
        ))

        self.styles.add(ParagraphStyle(
            name="Cell",
            parent=self.styles["Normal"],
            fontSize=8,
            leading=10,
            alignment=TA_CENTER
        ))

    @property
    def footer_text(self) -> str:
        parts = [self.company_website, self.company_phone, config.footer_tagline]
        return " | ".join(p for p in parts if p)

    def render(self, record: InspectionRecord) -> RenderedDocument:
        """
        Render the report for a record.

        Args:
            record: Full in-memory record, images included

        Returns:
            PDF bytes and the suggested file name
        """
        file_name = suggested_filename(record, "pdf")
        self.logger.info(f"Generating PDF report {file_name}...")

        buffer = io.BytesIO()
        doc = SimpleDocTemplate(
            buffer,
            pagesize=letter,
            rightMargin=PAGE_MARGIN,
            leftMargin=PAGE_MARGIN,
            topMargin=0.5 * inch,
            bottomMargin=0.9 * inch,
            title=file_name,
            author=self.company_name
        )

        # Fixed section order
        story = []
        story.extend(self._build_header(record))
        story.extend(self._build_client_section(record))
        story.extend(self._build_controllers_section(record))
        story.extend(self._build_system_section(record))
        story.extend(self._build_backflow_section(record))
        story.extend(self._build_zone_table(record))
        story.extend(self._build_zone_notes(record))
        story.extend(self._build_zone_locations(record))
        story.extend(self._build_zone_photos(record))
        story.extend(self._build_materials_section(record))
        story.extend(self._build_observations_section(record))
        story.extend(self._build_recommendations_section(record))
        story.extend(self._build_priority_box(record))
        story.extend(self._build_technician_section(record))

        doc.build(story, canvasmaker=_canvas_factory(self.footer_text))

        self.logger.info(f"PDF report generated: {file_name}")
        return RenderedDocument(content=buffer.getvalue(), file_name=file_name)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _section(self, title: str) -> Paragraph:
        return Paragraph(escape(title), self.styles["SectionHeader"])

    def _image(self, data_url: Optional[str], max_width: float, max_height: float, label: str):
        """Scaled image flowable, or None if the image cannot be used."""
        if not data_url:
            return None
        try:
            raw = decode_image_data_url(data_url)
            width, height = load_image(raw).size
        except ImageEncodingFailure as e:
            self.logger.warning(f"Skipping {label}: {e}")
            return None

        scale = min(max_width / width, max_height / height)
        return RLImage(io.BytesIO(raw), width=width * scale, height=height * scale)

    def _info_grid(self, rows: Sequence[Sequence[Tuple[str, str]]]) -> List:
        """Label-over-value cells, one table per row."""
        elements = []
        for row in rows:
            cells = [
                Paragraph(
                    f'<font size="8" color="#646464"><b>{escape(label)}</b></font><br/>'
                    f'{escape(value or PLACEHOLDER)}',
                    self.styles["Body"]
                )
                for label, value in row
            ]
            table = Table([cells], colWidths=[CONTENT_WIDTH / len(row)] * len(row))
            table.setStyle(TableStyle([
                ("VALIGN", (0, 0), (-1, -1), "TOP"),
                ("LEFTPADDING", (0, 0), (-1, -1), 0),
                ("TOPPADDING", (0, 0), (-1, -1), 2),
                ("BOTTOMPADDING", (0, 0), (-1, -1), 4),
            ]))
            elements.append(table)
        return elements

    def _location_line(self, prefix: str, location: Geolocation) -> Paragraph:
        return Paragraph(
            f'{escape(prefix)}: {location.display()} &nbsp; '
            f'<link href="{escape(location.map_url)}" color="#2d6da8">View on Google Maps</link>',
            self.styles["Small"]
        )

    def _located_entry(self, prefix: str, location: Optional[Geolocation], image: Optional[str]) -> List:
        if not location:
            return []
        elements = [self._location_line(prefix, location)]
        flowable = self._image(image, 2.0 * inch, 1.5 * inch, f"{prefix} location image")
        if flowable is not None:
            elements.append(Spacer(1, 0.05 * inch))
            elements.append(flowable)
        elements.append(Spacer(1, 0.08 * inch))
        return elements

    def _grid_table(self, head: List[str], rows: List[List[str]], col_widths=None) -> Table:
        data = [head] + [[str(cell) for cell in row] for row in rows]
        table = Table(data, colWidths=col_widths, repeatRows=1)
        table.setStyle(TableStyle([
            ("FONT", (0, 0), (-1, 0), "Helvetica-Bold", 9),
            ("FONT", (0, 1), (-1, -1), "Helvetica", 9),
            ("BACKGROUND", (0, 0), (-1, 0), BRAND_PRIMARY),
            ("TEXTCOLOR", (0, 0), (-1, 0), white),
            ("ALIGN", (0, 0), (-1, -1), "CENTER"),
            ("VALIGN", (0, 0), (-1, -1), "MIDDLE"),
            ("GRID", (0, 0), (-1, -1), 0.5, BRAND_GRAY),
            ("ROWBACKGROUNDS", (0, 1), (-1, -1), [white, BRAND_LIGHT]),
            ("TOPPADDING", (0, 0), (-1, -1), 4),
            ("BOTTOMPADDING", (0, 0), (-1, -1), 4),
        ]))
        return table

    # ------------------------------------------------------------------
    # Sections
    # ------------------------------------------------------------------

    def _build_header(self, record: InspectionRecord) -> List:
        """Branded header band."""
        type_label = "Commercial" if record.is_commercial else "Residential"
        text = [
            Paragraph(escape(self.company_name), self.styles["HeaderTitle"]),
            Paragraph(f"{type_label} Wet Check Inspection Report", self.styles["HeaderSubtitle"]),
        ]
        if record.is_commercial and record.client.property_sub_type:
            text.append(Paragraph(escape(record.client.property_sub_type), self.styles["HeaderSubtitle"]))

        logo = self._image(self.branding.logo if self.branding else None, 0.85 * inch, 0.85 * inch, "company logo")
        logo_width = 1.0 * inch
        table = Table(
            [[logo if logo is not None else "", text, ""]],
            colWidths=[logo_width, CONTENT_WIDTH - 2 * logo_width, logo_width]
        )
        table.setStyle(TableStyle([
            ("BACKGROUND", (0, 0), (-1, -1), BRAND_PRIMARY),
            ("LINEBELOW", (0, 0), (-1, -1), 4, BRAND_ACCENT),
            ("VALIGN", (0, 0), (-1, -1), "MIDDLE"),
            ("TOPPADDING", (0, 0), (-1, -1), 8),
            ("BOTTOMPADDING", (0, 0), (-1, -1), 8),
        ]))
        return [table, Spacer(1, 0.15 * inch)]

    def _build_client_section(self, record: InspectionRecord) -> List:
        client = record.client
        rows = [
            [("Client Name", client.name), ("Date", client.date), ("Work Order", client.work_order)],
            [("Property Address", client.address), ("City / Zip", client.city), ("Phone", client.phone)],
            [("Email", client.email), ("Property Manager", client.manager)],
        ]
        if record.is_commercial:
            rows.append([
                ("Complex / Building", client.building_name),
                ("# Buildings / Areas", client.num_buildings),
                ("Irrigated Acreage", client.irrigated_acreage),
            ])

        elements = [self._section("CLIENT INFORMATION")]
        elements.extend(self._info_grid(rows))
        elements.extend(self._located_entry("Location", client.geolocation, client.location_image))
        return elements

    def _build_controllers_section(self, record: InspectionRecord) -> List:
        rows = []
        for c in record.controllers:
            zones = (
                f"{c.zone_range_from}–{c.zone_range_to}"
                if c.zone_range_from and c.zone_range_to else PLACEHOLDER
            )
            rows.append([
                str(c.id),
                c.make or PLACEHOLDER,
                c.type or PLACEHOLDER,
                c.location or PLACEHOLDER,
                zones,
            ])

        elements = [self._section("CONTROLLERS")]
        elements.append(self._grid_table(
            ["#", "Make / Model", "Type", "Location", "Zones"],
            rows,
            [0.4 * inch, None, None, None, None]
        ))
        elements.append(Spacer(1, 0.08 * inch))
        for c in record.controllers:
            elements.extend(self._located_entry(f"Controller {c.id}", c.geolocation, c.location_image))
        return elements

    def _build_system_section(self, record: InspectionRecord) -> List:
        system = record.system
        rows = [
            [("Water Source", system.water_source), ("Meter Size", system.meter_size), ("Flow Rate (GPM)", system.flow_rate)],
            [("Static PSI", system.static_psi), ("Working PSI", system.working_psi)],
            [("Rain Sensor", system.rain_sensor), ("Pump Station", system.pump_station)],
        ]
        if record.is_commercial:
            rows.append([
                ("Mainline Size", system.mainline_size),
                ("Mainline Material", system.mainline_material),
                ("Master Valve", system.master_valve),
            ])
            rows.append([("Flow Sensor", system.flow_sensor), ("Points of Connection", system.poc)])

        elements = [self._section("SYSTEM OVERVIEW")]
        elements.extend(self._info_grid(rows))
        elements.extend(self._located_entry("Pump", system.pump_geolocation, system.pump_location_image))
        return elements

    def _build_backflow_section(self, record: InspectionRecord) -> List:
        if not record.backflow_devices:
            return []
        rows = [
            [str(b.id), b.type or PLACEHOLDER, b.condition or PLACEHOLDER]
            for b in record.backflow_devices
        ]
        return [
            self._section("BACKFLOW DEVICES"),
            self._grid_table(["#", "Type", "Condition"], rows, [0.4 * inch, None, None]),
        ]

    def _build_zone_table(self, record: InspectionRecord) -> List:
        """Zone-by-zone results with colored status cells."""
        commercial = record.is_commercial
        if commercial:
            head = ["Zone", "Area", "Ctrl", "Type", "Brand", "Heads", "PSI", "Status"]
            widths = [0.5 * inch, None, 0.45 * inch, None, None, 0.55 * inch, 0.5 * inch, 1.4 * inch]
        else:
            head = ["Zone", "Type", "Head Brand", "Heads", "PSI", "Status"]
            widths = [0.55 * inch, None, None, 0.7 * inch, 0.6 * inch, 1.6 * inch]
        status_col = len(head) - 1

        rows = []
        status_styles = []
        for row_index, zone in enumerate(record.active_zones, start=1):
            status = zone_status(zone) or PLACEHOLDER
            cells = [str(zone.id)]
            if commercial:
                cells += [zone.area or PLACEHOLDER, str(record.resolve_controller_id(zone))]
            cells += [
                zone.type or PLACEHOLDER,
                zone.head_type or PLACEHOLDER,
                zone.head_count or PLACEHOLDER,
                zone.psi or PLACEHOLDER,
                status,
            ]
            rows.append(cells)

            if status != PLACEHOLDER:
                color = BRAND_PRIMARY if zone.ok_flag else BRAND_DANGER
                status_styles += [
                    ("TEXTCOLOR", (status_col, row_index), (status_col, row_index), color),
                    ("FONT", (status_col, row_index), (status_col, row_index), "Helvetica-Bold", 9),
                ]

        table = self._grid_table(head, rows, widths)
        table.setStyle(TableStyle(status_styles))
        return [self._section("ZONE-BY-ZONE INSPECTION RESULTS"), table, Spacer(1, 0.08 * inch)]

    def _build_zone_notes(self, record: InspectionRecord) -> List:
        zones = [z for z in record.active_zones if z.notes]
        if not zones:
            return []
        elements = [Paragraph("Zone Notes:", self.styles["SubHeader"])]
        for zone in zones:
            elements.append(Paragraph(f"{escape(zone.label)}: {escape(zone.notes)}", self.styles["Body"]))
        return elements

    def _build_zone_locations(self, record: InspectionRecord) -> List:
        zones = [z for z in record.active_zones if z.geolocation]
        if not zones:
            return []
        elements = [Paragraph("Zone Locations:", self.styles["SubHeader"])]
        for zone in zones:
            elements.extend(self._located_entry(zone.label, zone.geolocation, zone.location_image))
        return elements

    def _build_zone_photos(self, record: InspectionRecord) -> List:
        """Before/after photos, two per row."""
        elements = []
        cell_width = CONTENT_WIDTH / 2

        for zone in record.active_zones:
            photos = [("Before", url) for url in zone.before_images]
            photos += [("After", url) for url in zone.after_images]

            cells = []
            for label, url in photos:
                flowable = self._image(url, cell_width - 0.2 * inch, 2.1 * inch, f"{zone.label} {label.lower()} photo")
                if flowable is not None:
                    cells.append([Paragraph(label, self.styles["Cell"]), flowable])
            if not cells:
                continue

            if len(cells) % 2:
                cells.append("")
            grid = Table(
                [cells[i:i + 2] for i in range(0, len(cells), 2)],
                colWidths=[cell_width, cell_width]
            )
            grid.setStyle(TableStyle([
                ("ALIGN", (0, 0), (-1, -1), "CENTER"),
                ("VALIGN", (0, 0), (-1, -1), "TOP"),
            ]))

            heading = Paragraph(f"<b>{escape(zone.label)}</b>", self.styles["Body"])
            elements.append(KeepTogether([heading, Spacer(1, 0.05 * inch), grid]))
            elements.append(Spacer(1, 0.1 * inch))

        if elements:
            elements.insert(0, self._section("ZONE PHOTOS"))
        return elements

    def _build_materials_section(self, record: InspectionRecord) -> List:
        materials = aggregate_materials(record.active_zones)
        if not materials:
            return []
        rows = [[str(qty), part] for part, qty in materials.items()]
        table = self._grid_table(["Qty", "Part / Fitting"], rows, [0.7 * inch, CONTENT_WIDTH - 0.7 * inch])
        table.setStyle(TableStyle([
            ("ALIGN", (1, 1), (1, -1), "LEFT"),
            ("FONT", (0, 1), (0, -1), "Helvetica-Bold", 9),
        ]))
        return [self._section("MATERIALS NEEDED"), table]

    def _build_observations_section(self, record: InspectionRecord) -> List:
        elements = [self._section("GENERAL OBSERVATIONS")]
        labels = observation_labels(record, pdf=True)
        if not labels:
            elements.append(Paragraph("No issues noted.", self.styles["Small"]))
        for label in labels:
            elements.append(Paragraph(
                f'<font color="#d32f2f">•</font> {escape(label)}',
                self.styles["Body"]
            ))
        return elements

    def _build_recommendations_section(self, record: InspectionRecord) -> List:
        elements = [self._section("RECOMMENDATIONS")]
        if record.recommendations:
            text = escape(record.recommendations).replace("\n", "<br/>")
            elements.append(Paragraph(text, self.styles["Body"]))
        else:
            elements.append(Paragraph("None.", self.styles["Small"]))
        return elements

    def _build_priority_box(self, record: InspectionRecord) -> List:
        labels = ["Priority", "Est. Cost", "Est. Time"]
        values = [
            record.priority_label or PLACEHOLDER,
            record.estimated_cost or PLACEHOLDER,
            record.estimated_time or PLACEHOLDER,
        ]
        table = Table(
            [labels, values],
            colWidths=[CONTENT_WIDTH / 3] * 3
        )
        table.setStyle(TableStyle([
            ("FONT", (0, 0), (-1, 0), "Helvetica-Bold", 8),
            ("TEXTCOLOR", (0, 0), (-1, 0), BRAND_GRAY),
            ("FONT", (0, 1), (-1, 1), "Helvetica-Bold", 11),
            ("TEXTCOLOR", (0, 1), (-1, 1), BRAND_PRIMARY),
            ("BACKGROUND", (0, 0), (-1, -1), BRAND_LIGHT),
            ("BOX", (0, 0), (-1, -1), 1, BRAND_PRIMARY),
            ("LEFTPADDING", (0, 0), (-1, -1), 10),
            ("TOPPADDING", (0, 0), (-1, -1), 5),
            ("BOTTOMPADDING", (0, 0), (-1, -1), 6),
        ]))
        return [Spacer(1, 0.2 * inch), KeepTogether([table])]

    def _build_technician_section(self, record: InspectionRecord) -> List:
        table = Table(
            [
                ["Technician", ""],
                [record.technician_name or PLACEHOLDER, ""],
                ["", "Signature"],
            ],
            colWidths=[3.0 * inch, 2.8 * inch]
        )
        table.setStyle(TableStyle([
            ("FONT", (0, 0), (0, 0), "Helvetica-Bold", 8),
            ("TEXTCOLOR", (0, 0), (-1, 0), BRAND_GRAY),
            ("FONT", (0, 1), (0, 1), "Helvetica", 12),
            ("FONT", (1, 2), (1, 2), "Helvetica", 8),
            ("TEXTCOLOR", (1, 2), (1, 2), BRAND_GRAY),
            ("LINEBELOW", (1, 1), (1, 1), 0.6, BRAND_GRAY),
            ("LEFTPADDING", (0, 0), (-1, -1), 0),
        ]))
        return [Spacer(1, 0.35 * inch), KeepTogether([table])]


# ============================================================================
# ENTRY POINTS
# ============================================================================

def render_document(record: InspectionRecord, branding: Optional[CompanyBranding] = None) -> RenderedDocument:
    """PDF bytes and suggested file name for a record."""
    return InspectionDocument(branding).render(record)


def disk_filename(name: str) -> str:
    """Suggested file name with path separators replaced, so it stays inside the output directory."""
    return re.sub(r"[\\/]", "-", name)


def write_reports(
    record: InspectionRecord,
    branding: Optional[CompanyBranding] = None,
    output_dir: Optional[Path] = None
) -> Tuple[Path, Path]:
    """
    Write the text and PDF reports under their suggested file names.

    Returns:
        (text_path, pdf_path)
    """
    output_dir = Path(output_dir) if output_dir else config.get_report_dir()
    output_dir.mkdir(parents=True, exist_ok=True)

    text_path = output_dir / disk_filename(suggested_filename(record, "txt"))
    text_path.write_text(render_text(record, branding), encoding="utf-8")

    rendered = render_document(record, branding)
    pdf_path = output_dir / disk_filename(rendered.file_name)
    pdf_path.write_bytes(rendered.content)

    logger.info(f"Reports written: {text_path}, {pdf_path}")
    return text_path, pdf_path
