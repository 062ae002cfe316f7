"""
Text formats exchanged between the edge client, the relay and the command service.

Alert payload:
    SOS|ID=<deviceId>|LAT=<lat>|LON=<lon>|DIR=<dir>|TYPE=<category>|TIME=<ISO8601>

Acknowledgment:
    ACK|SAFEBASE=<id or NONE>|DIST=<km, 2 decimals>KM|CAPACITY=<status>
"""

import logging
import math
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import List, Optional

logger = logging.getLogger(__name__)

UNKNOWN = "UNKNOWN"
NO_SAFE_BASE = "NONE"


@dataclass
class ParsedEmergency:
    """Fields extracted from an alert payload. Missing values are defaulted."""
    device_id: str = UNKNOWN
    lat: float = 0.0
    lon: float = 0.0
    type: str = UNKNOWN
    time: str = ""
    direction: Optional[str] = None
    flags: List[str] = field(default_factory=list)
    # True when any of device_id/lat/lon/type/time fell back to its default
    degraded: bool = False


def utc_now_iso() -> str:
    """Current UTC time as ISO-8601 with milliseconds and a Z suffix."""
    return datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def _parse_coordinate(value: Optional[str]) -> Optional[float]:
    if not value:
        return None
    try:
        number = float(value)
    except ValueError:
        return None
    if not math.isfinite(number):
        return None
    return number


def parse_alert(raw: str, now: Optional[str] = None) -> ParsedEmergency:
    """
    Parse an alert payload. Never raises.

    Tokens are split on "|" and then on the first "=". Tokens without "="
    (such as the leading "SOS") are kept as flags. Empty or unparsable
    values fall back to defaults and mark the result as degraded.

    Args:
        raw: The payload text
        now: Timestamp to use when TIME is missing (defaults to current UTC time)
    """
    fields = {}
    flags = []
    for token in (raw or "").split("|"):
        if "=" in token:
            key, value = token.split("=", 1)
            fields[key.strip().upper()] = value.strip()
        elif token.strip():
            flags.append(token.strip())

    lat = _parse_coordinate(fields.get("LAT"))
    lon = _parse_coordinate(fields.get("LON"))
    device_id = fields.get("ID") or None
    emergency_type = fields.get("TYPE") or None
    time_value = fields.get("TIME") or None

    degraded = any(v is None for v in (device_id, lat, lon, emergency_type, time_value))

    parsed = ParsedEmergency(
        device_id=device_id or UNKNOWN,
        lat=lat if lat is not None else 0.0,
        lon=lon if lon is not None else 0.0,
        type=emergency_type or UNKNOWN,
        time=time_value or now or utc_now_iso(),
        direction=fields.get("DIR") or None,
        flags=flags,
        degraded=degraded,
    )
    if degraded:
        logger.warning(f"Alert payload parsed with defaults: device={parsed.device_id}")
    return parsed


def build_alert_payload(
    device_id: str,
    lat: float,
    lon: float,
    type: str,
    time: str,
    direction: Optional[str] = None,
) -> str:
    """Build the payload text an edge client sends for an emergency."""
    parts = ["SOS", f"ID={device_id}", f"LAT={lat}", f"LON={lon}"]
    if direction:
        parts.append(f"DIR={direction}")
    parts.append(f"TYPE={type}")
    parts.append(f"TIME={time}")
    return "|".join(parts)


def format_distance(distance_km: float) -> str:
    if math.isinf(distance_km):
        return "Infinity"
    return f"{distance_km:.2f}"


def format_ack(safe_base_id: Optional[str], distance_km: float, capacity_status: str) -> str:
    """
    Build the acknowledgment line returned to the sender.

    Args:
        safe_base_id: Nearest base id, or None for an empty directory (NONE)
        distance_km: Distance to that base, rendered with 2 decimals
        capacity_status: AVAILABLE, NEARLY_FULL or FULL

    Returns:
        ACK|SAFEBASE=<id>|DIST=<km>KM|CAPACITY=<status>
    """
    return (
        f"ACK|SAFEBASE={safe_base_id or NO_SAFE_BASE}"
        f"|DIST={format_distance(distance_km)}KM"
        f"|CAPACITY={capacity_status}"
    )
