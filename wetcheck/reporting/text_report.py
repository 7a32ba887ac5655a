"""
Plain-text wet check report and shared report helpers.
"""

import re
from typing import Dict, Iterable, List, Optional
from urllib.parse import quote

from wetcheck.schemas.models import (
    BASE_OBSERVATIONS,
    COMMERCIAL_OBSERVATIONS,
    CompanyBranding,
    Geolocation,
    InspectionRecord,
    Zone,
)
from utils.config import config

RULE = "═══════════════════════"


def zone_status(zone: Zone) -> str:
    """Status cell: OK, the set issue flags in fixed order, or empty."""
    if zone.ok_flag:
        return "OK"
    return ", ".join(flag.upper() for flag in zone.issue_flags)


def aggregate_materials(zones: Iterable[Zone]) -> Dict[str, int]:
    """Total quantity per part across zones, in order of first appearance."""
    totals: Dict[str, int] = {}
    for zone in zones:
        for item in zone.materials:
            if not item.part_name:
                continue
            totals[item.part_name] = totals.get(item.part_name, 0) + (item.quantity or 1)
    return totals


def observation_labels(record: InspectionRecord, pdf: bool = False) -> List[str]:
    """Labels of the observations that are set; commercial ones only for commercial sites."""
    entries = BASE_OBSERVATIONS + (COMMERCIAL_OBSERVATIONS if record.is_commercial else [])
    return [
        pdf_label if pdf else text_label
        for name, text_label, pdf_label in entries
        if getattr(record.observations, name)
    ]


def suggested_filename(record: InspectionRecord, ext: str) -> str:
    prefix = "CommWetCheck" if record.is_commercial else "WetCheck"
    name = re.sub(r"\s+", "_", record.client.name or "report")
    return f"{prefix}_{name}_{record.client.date}.{ext}"


def _map_suffix(location: Optional[Geolocation]) -> str:
    return f" | 📍 {location.map_url}" if location else ""


def _or(value: str, placeholder: str) -> str:
    return value if value else placeholder


def _zone_line(record: InspectionRecord, zone: Zone) -> str:
    status = zone_status(zone)
    if zone.ok_flag:
        status_display = "✅ OK"
    elif status:
        status_display = f"⚠️ {status}"
    else:
        status_display = "—"

    area = f" [{zone.area}]" if zone.area else ""
    ctrl = f" (Ctrl {record.resolve_controller_id(zone)})" if record.is_commercial else ""
    notes = f" | {zone.notes}" if zone.notes else ""

    return (
        f"Zone {zone.id}{area}{ctrl}: {_or(zone.type, 'N/A')} | {_or(zone.head_type, 'N/A')} | "
        f"{_or(zone.head_count, '—')} heads | {_or(zone.psi, '—')} PSI | {status_display}"
        f"{notes}{_map_suffix(zone.geolocation)}"
    )


def render_text(record: InspectionRecord, branding: Optional[CompanyBranding] = None) -> str:
    """
    Render the plain-text report of the active part of a record.

    Args:
        record: Full in-memory record
        branding: Company details; defaults apply when missing

    Returns:
        UTF-8 report text
    """
    company_name = (branding.name if branding else "") or config.default_company_name
    company_website = (branding.website if branding else "") or ""
    company_phone = (branding.phone if branding else "") or ""
    client = record.client
    system = record.system
    type_label = "COMMERCIAL" if record.is_commercial else "RESIDENTIAL"

    lines = [
        RULE,
        company_name,
        f"  {type_label} WET CHECK REPORT",
        RULE,
        "",
        "📋 CLIENT INFO",
        f"Client: {client.name}",
        f"Address: {client.address}, {client.city}",
    ]
    if client.geolocation:
        lines.append(f"Location: {client.geolocation.display()} | {client.geolocation.map_url}")
    lines += [
        f"Phone: {client.phone}",
        f"Date: {client.date}",
        f"Work Order: {client.work_order}",
    ]
    if record.is_commercial:
        lines += [
            f"Property Type: {client.property_sub_type}",
            f"Building/Complex: {client.building_name}",
            f"Buildings/Areas: {client.num_buildings}",
            f"Irrigated Acreage: {client.irrigated_acreage}",
        ]

    lines += ["", "⚙️ SYSTEM OVERVIEW", "Controllers:"]
    for c in record.controllers:
        lines.append(
            f"  Controller {c.id}: {_or(c.make, 'N/A')} ({_or(c.type, 'N/A')}) — "
            f"{_or(c.location, 'N/A')} — Zones {_or(c.zone_range_from, '?')}-{_or(c.zone_range_to, '?')}"
            f"{_map_suffix(c.geolocation)}"
        )
    lines += [
        f"Water Source: {system.water_source}",
        f"Static PSI: {system.static_psi} | Working PSI: {system.working_psi}",
        f"Flow: {system.flow_rate} GPM",
        "Backflow Devices:",
    ]
    for b in record.backflow_devices:
        lines.append(f"  Backflow {b.id}: {_or(b.type, 'N/A')} — {_or(b.condition, 'N/A')}")
    lines += [
        f"Rain Sensor: {system.rain_sensor}",
        f"Pump: {system.pump_station}",
    ]
    if record.is_commercial:
        lines += [
            f"Mainline: {system.mainline_size} {system.mainline_material}",
            f"Master Valve: {system.master_valve}",
            f"Flow Sensor: {system.flow_sensor}",
            f"Points of Connection: {system.poc}",
        ]

    lines += ["", "💧 ZONE-BY-ZONE CHECK"]
    lines += [_zone_line(record, z) for z in record.active_zones]

    materials = aggregate_materials(record.active_zones)
    if materials:
        lines += ["", "🔧 MATERIALS NEEDED (TOTAL)"]
        lines += [f"  {qty}x {part}" for part, qty in materials.items()]

    observations = observation_labels(record)
    lines += ["", "🔍 OBSERVATIONS"]
    lines += [f"• {label}" for label in observations] or ["No issues noted"]

    footer = company_website + (f" | {company_phone}" if company_phone else "")
    lines += [
        "",
        "📝 RECOMMENDATIONS",
        record.recommendations or "None",
        "",
        f"⚡ PRIORITY: {record.priority_label or 'N/A'}",
        f"💰 Est. Cost: {record.estimated_cost or 'N/A'}",
        f"⏱️ Est. Time: {record.estimated_time or 'N/A'}",
        "",
        f"Technician: {record.technician_name}",
        "",
        RULE,
        footer,
        config.footer_tagline,
        RULE,
    ]
    return "\n".join(lines)


def share_link(record: InspectionRecord, file_name: str) -> str:
    """WhatsApp link announcing a downloaded report, for devices that cannot share files."""
    message = (
        f"Wet Check Report for {record.client.name or 'Client'} – {record.client.date}\n"
        f"PDF file downloaded: {file_name}"
    )
    return f"https://wa.me/?text={quote(message, safe='')}"
